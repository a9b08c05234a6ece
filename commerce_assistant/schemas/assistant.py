"""Pydantic schemas for the conversational assistant core."""

import enum
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import ConfigDict, Field

from commerce_assistant.schemas.common import BaseSchema


def generate_message_id() -> str:
    """Generate a unique, roughly time-ordered message ID."""
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def generate_tool_call_id() -> str:
    """Generate a unique tool call ID."""
    return f"call_{uuid.uuid4().hex[:12]}"


class MessageRole(str, enum.Enum):
    """Message sender roles."""

    USER = "user"
    ASSISTANT = "assistant"


class ToolName(str, enum.Enum):
    """Tool calls the dispatcher knows how to execute."""

    SEARCH_PRODUCTS = "searchProducts"
    SHOW_PRODUCT = "showProduct"
    ADD_TO_CART = "addToCart"
    REMOVE_FROM_CART = "removeFromCart"
    OPEN_CHECKOUT = "openCheckout"


class ShoppingFlowState(str, enum.Enum):
    """Stage of the shopping journey a session is in."""

    INITIAL = "initial"
    BROWSING_CATEGORIES = "browsing_categories"
    BROWSING_PRODUCTS = "browsing_products"
    VIEWING_PRODUCT = "viewing_product"
    CART = "cart"
    CHECKOUT = "checkout"


class PanelView(str, enum.Enum):
    """Which view the shopping side panel shows."""

    PRODUCTS = "products"
    PRODUCT_DETAIL = "product-detail"
    CART = "cart"
    CHECKOUT = "checkout"


class TurnStatus(str, enum.Enum):
    """Orchestrator turn status."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


# === Tool Calls ===


class ToolCall(BaseSchema):
    """A structured instruction from an assistant turn.

    ``name`` is kept as a plain string so that unknown tool names produced
    upstream survive until the dispatcher, which logs and ignores them.
    """

    id: str = Field(default_factory=generate_tool_call_id)
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


# === Messages ===


class Message(BaseSchema):
    """A single chat message. Appended to the session log, never mutated."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=generate_message_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tool_calls: list[ToolCall] | None = Field(default=None, alias="toolCalls")


class ConversationHistoryItem(BaseSchema):
    """A saved conversation."""

    id: str = Field(default_factory=lambda: f"conv_{uuid.uuid4().hex[:12]}")
    title: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    messages: list[Message] = Field(default_factory=list)


# === Products ===


class ProductSummary(BaseSchema):
    """Candidate product as returned by the catalog search service."""

    product_id: int | str
    name: str
    price: float | None = None
    in_stock: bool = True
    stock_quantity: int | None = None
    categories: list[str] = Field(default_factory=list)
    description: str | None = None
    brand: str | None = None

    @property
    def stock_status(self) -> str:
        if not self.in_stock and not (self.stock_quantity or 0) > 0:
            return "Out of stock"
        if self.stock_quantity is not None and 0 < self.stock_quantity <= 5:
            return f"Only {self.stock_quantity} left in stock!"
        return "In stock"

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_status == "Out of stock"

    @property
    def primary_category(self) -> str | None:
        return self.categories[0] if self.categories else None

    def to_prompt_line(self) -> str:
        """Render as a single line for the products block of the prompt."""
        price = f"${self.price:.2f}" if self.price is not None else "price unavailable"
        parts = [f"Product ID: {self.product_id}, {self.name}, {price}, {self.stock_status}."]
        if self.categories:
            parts.append(f"Category: {', '.join(self.categories)}.")
        if self.description:
            desc = self.description[:100]
            if len(self.description) > 100:
                desc += "..."
            parts.append(desc)
        return " ".join(parts)

    @classmethod
    def from_storefront(cls, data: dict[str, Any]) -> "ProductSummary":
        """Build from a storefront product payload."""
        quantity = data.get("stockQuantity", data.get("inventory"))
        raw_categories = data.get("categories") or []
        if isinstance(raw_categories, str):
            raw_categories = [raw_categories]
        categories = [
            c.get("name", "") if isinstance(c, dict) else str(c) for c in raw_categories
        ]
        if not categories and data.get("category"):
            categories = [str(data["category"])]

        price = data.get("price")
        try:
            price = float(price) if price is not None else None
        except (TypeError, ValueError):
            price = None

        return cls(
            product_id=data["id"],
            name=data.get("name") or data.get("title") or f"Product {data['id']}",
            price=price,
            in_stock=bool(data.get("inStock", (quantity or 0) > 0)),
            stock_quantity=quantity,
            categories=[c for c in categories if c],
            description=data.get("description"),
            brand=data.get("brand"),
        )


class SuggestedProduct(BaseSchema):
    """A product the assistant recommends, with its reason."""

    product_id: int | str = Field(alias="productId")
    reason: str = ""


# === Assistant Turn ===


class AssistantTurn(BaseSchema):
    """Normalized output of the generation gateway."""

    assistant_message: str
    suggested_products: list[SuggestedProduct] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)
    memory_updates: dict[str, Any] = Field(default_factory=dict)
    tool_calls: list[ToolCall] = Field(default_factory=list)
