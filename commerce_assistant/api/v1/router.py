"""API v1 router combining all route modules."""

from fastapi import APIRouter

from commerce_assistant.api.v1 import assist, health, history, settings

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Assistant sessions and turns (for the chat widget)
api_router.include_router(
    assist.router,
    prefix="/assist",
    tags=["assist"],
)

# Saved conversations
api_router.include_router(
    history.router,
    prefix="/history",
    tags=["history"],
)

# Voice settings
api_router.include_router(
    settings.router,
    prefix="/settings",
    tags=["settings"],
)
