"""LangGraph conditional routing logic."""

from commerce_assistant.services.graph.state import TurnState


def route_turn(state: TurnState) -> str:
    """Send non-catalog requests to the canned redirect, everything else to generation.

    This is used as the conditional edge function in the LangGraph workflow.

    Returns:
        The name of the next node to execute.
    """
    if state.get("blocked_category"):
        return "redirect"
    return "generate"
