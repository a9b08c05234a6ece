"""Voice settings endpoints."""

from fastapi import APIRouter, Query

from commerce_assistant.core.deps import RegistryDep, StoreDep
from commerce_assistant.schemas.voice import VoiceSettings, VoiceSettingsUpdate

router = APIRouter()


@router.get(
    "/voice",
    response_model=VoiceSettings,
    summary="Get voice settings",
)
async def get_voice_settings(store: StoreDep) -> VoiceSettings:
    return await store.load_voice_settings()


@router.put(
    "/voice",
    response_model=VoiceSettings,
    summary="Update voice settings",
)
async def update_voice_settings(
    data: VoiceSettingsUpdate,
    store: StoreDep,
    registry: RegistryDep,
    session_id: str | None = Query(None, alias="sessionId", description="Live session to update"),
) -> VoiceSettings:
    """Update voice settings.

    The change is persisted immediately. When ``sessionId`` names a live
    session, its voice controller picks the new settings up as well.
    """
    service = registry.get(session_id) if session_id else None
    if service is not None:
        service.store = store
        return await service.update_voice_settings(data)

    updated = data.apply_to(await store.load_voice_settings())
    await store.save_voice_settings(updated)
    return updated
