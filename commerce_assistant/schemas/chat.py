"""Pydantic schemas for the assistant HTTP surface."""

from typing import Literal

from pydantic import Field

from commerce_assistant.schemas.assistant import (
    Message,
    PanelView,
    ProductSummary,
    ShoppingFlowState,
    SuggestedProduct,
    ToolCall,
)
from commerce_assistant.schemas.common import BaseSchema

# === Turn Schemas ===


class SendMessageRequest(BaseSchema):
    """Schema for sending a user message."""

    message: str = Field(..., min_length=1, max_length=4000)
    session_id: str | None = Field(None, alias="sessionId")


class AssistResponse(BaseSchema):
    """Result of one assistant turn."""

    session_id: str = Field(alias="sessionId")
    message: Message
    suggested_products: list[SuggestedProduct] = Field(
        default_factory=list, alias="suggestedProducts"
    )
    actions: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list, alias="toolCalls")
    flow_state: ShoppingFlowState = Field(alias="flowState")
    panel_view: PanelView = Field(alias="panelView")
    checkout_mode: bool = Field(False, alias="checkoutMode")


class SessionStartResponse(BaseSchema):
    """A freshly started session with its welcome messages."""

    session_id: str = Field(alias="sessionId")
    messages: list[Message]


class SessionMessagesResponse(BaseSchema):
    """Message log and panel state of a session."""

    session_id: str = Field(alias="sessionId")
    messages: list[Message]
    flow_state: ShoppingFlowState = Field(alias="flowState")
    panel_view: PanelView = Field(alias="panelView")
    checkout_mode: bool = Field(False, alias="checkoutMode")


# === Feedback Schemas ===


class FeedbackRequest(BaseSchema):
    """A thumbs up/down vote on an assistant message."""

    message_id: str = Field(..., alias="messageId")
    vote: Literal["up", "down"]
    reason: str | None = Field(None, max_length=1000)
    session_id: str | None = Field(None, alias="sessionId")


class FeedbackResponse(BaseSchema):
    success: bool = True
    message: str = "Feedback received"


# === Suggestion Schemas ===


class SuggestionsResponse(BaseSchema):
    """Products prefetched by category, budget and brand."""

    products: list[ProductSummary]
