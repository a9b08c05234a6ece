"""LangGraph turn state definition."""

from typing import Any

from typing_extensions import TypedDict

from commerce_assistant.schemas.assistant import AssistantTurn, ProductSummary


class TurnState(TypedDict, total=False):
    """State that flows through the assistant turn workflow.

    Attributes:
        user_message: Text of the user message being answered
        context: ``GenerationContext`` for the gateway (prefs, history, stage)
        candidates: Candidate products found for this message
        blocked_category: Non-catalog category the user asked for, if any
        turn: Assistant turn produced by the redirect or generate node
    """

    user_message: str
    context: Any
    candidates: list[ProductSummary]
    blocked_category: str | None
    turn: AssistantTurn
