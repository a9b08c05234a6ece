"""LangGraph node functions for the assistant turn workflow."""

import logging
from typing import Any

from commerce_assistant.schemas.assistant import AssistantTurn
from commerce_assistant.services.catalog_scope import (
    check_for_non_catalog_products,
    redirect_message,
)
from commerce_assistant.services.gateway_service import GenerationContext, GenerationGateway
from commerce_assistant.services.graph.state import TurnState

logger = logging.getLogger(__name__)


async def restrict_node(state: TurnState) -> dict[str, Any]:
    """Check whether the user asks for a product line the store does not carry."""
    return {"blocked_category": check_for_non_catalog_products(state.get("user_message", ""))}


async def redirect_node(state: TurnState) -> dict[str, Any]:
    """Answer a non-catalog request without contacting the completion service."""
    category = state.get("blocked_category") or "those products"
    logger.info("Redirecting non-catalog request: %s", category)
    return {"turn": AssistantTurn(assistant_message=redirect_message(category))}


async def generate_node(state: TurnState, gateway: GenerationGateway) -> dict[str, Any]:
    """Produce the assistant turn through the generation gateway."""
    context = state.get("context") or GenerationContext()
    turn = await gateway.generate(
        state.get("user_message", ""),
        context,
        state.get("candidates") or [],
    )
    return {"turn": turn}
