"""LangGraph workflow definition for one assistant turn."""

import logging
from typing import Any

from langgraph.graph import END, StateGraph

from commerce_assistant.services.gateway_service import GenerationGateway
from commerce_assistant.services.graph.nodes import generate_node, redirect_node, restrict_node
from commerce_assistant.services.graph.router import route_turn
from commerce_assistant.services.graph.state import TurnState

logger = logging.getLogger(__name__)


def create_turn_graph(gateway: GenerationGateway) -> Any:
    """Build and compile the turn workflow.

    restrict -> (redirect | generate) -> END

    Args:
        gateway: Generation gateway used by the generate node

    Returns:
        Compiled LangGraph workflow
    """

    async def _generate_node(state: TurnState) -> dict[str, Any]:
        return await generate_node(state, gateway)

    graph = StateGraph(TurnState)

    graph.add_node("restrict", restrict_node)
    graph.add_node("redirect", redirect_node)
    graph.add_node("generate", _generate_node)

    graph.set_entry_point("restrict")

    graph.add_conditional_edges(
        "restrict",
        route_turn,
        {
            "redirect": "redirect",
            "generate": "generate",
        },
    )

    graph.add_edge("redirect", END)
    graph.add_edge("generate", END)

    return graph.compile()
