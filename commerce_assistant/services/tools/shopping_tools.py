"""Tool-call dispatcher for catalog, cart and checkout actions.

Tool calls of a turn are executed one at a time in arrival order: a later
call (``addToCart`` after ``showProduct``) may depend on state set by an
earlier one. Side-effect failures are logged and swallowed; they never fail
the turn.
"""

import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from commerce_assistant.core.config import settings
from commerce_assistant.schemas.assistant import (
    PanelView,
    ProductSummary,
    ShoppingFlowState,
    ToolCall,
    ToolName,
)
from commerce_assistant.services.flow_service import (
    FlowUpdate,
    advance_on_tool,
    extract_category,
    is_product_category,
)
from commerce_assistant.services.session import AssistantSession
from commerce_assistant.services.tools.arguments import normalize_arguments

logger = logging.getLogger(__name__)

SuggestionSink = Callable[[str], Awaitable[Any] | Any]

RELATED_SUGGESTIONS = {
    "phones": (
        "Would you like to see phone cases or screen protectors that go with this device?"
    ),
    "laptops": (
        "You might also be interested in laptop bags, external mice, or keyboard accessories."
    ),
    "accessories": (
        "We have other accessories that complement this item. Would you like to see them?"
    ),
    "furniture": "Customers who bought this furniture item also viewed our matching pieces.",
    "shoes": "Would you like to see socks or shoe care products that go well with these?",
    "clothes": (
        "We have other clothing items that would match well with this. "
        "Would you like to see them?"
    ),
}
DEFAULT_RELATED_SUGGESTION = "Would you like to see other similar products?"

UPSELL_SUGGESTIONS = {
    "phones": (
        "Great choice! Many customers also add a premium screen protector "
        "and wireless charger to their order."
    ),
    "laptops": "Would you like to add a laptop case or extended warranty to your purchase?",
    "accessories": "This item is eligible for a bundle discount if you add related accessories.",
    "furniture": (
        "Would you like to check out our furniture care kits "
        "to keep your new purchase looking great?"
    ),
    "shoes": (
        "We're running a special on shoe care kits that can extend the life of your new shoes."
    ),
    "clothes": (
        "Complete your look! We have matching items that would go perfectly "
        "with what's in your cart."
    ),
}
DEFAULT_UPSELL_SUGGESTION = "Would you like to see other items that go well with your selection?"


class CatalogService(Protocol):
    async def search_products(
        self,
        query: str | None = None,
        *,
        category: str | None = None,
        max_price: float | None = None,
        brand: str | None = None,
        limit: int | None = None,
    ) -> list[ProductSummary]: ...

    async def get_product(self, product_id: int | str) -> ProductSummary | None: ...


class CartService(Protocol):
    async def add_item(self, product_id: int | str, quantity: int = 1) -> Any: ...

    async def remove_item(self, product_id: int | str, quantity: int | None = None) -> Any: ...


# --- Argument schemas ---


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SearchProductsArgs(_ToolArgs):
    """Arguments of ``searchProducts``."""

    query: str = Field("", description="Free-text search query")
    category: str | None = Field(None, description="Catalog category to browse")

    @property
    def term(self) -> str:
        return (self.query or self.category or "").strip()


class ProductArgs(_ToolArgs):
    """Arguments of ``showProduct``."""

    id: int | str = Field(validation_alias=AliasChoices("id", "productId", "product_id"))
    category: str | None = None


class CartArgs(ProductArgs):
    """Arguments of ``addToCart`` and ``removeFromCart``."""

    quantity: int = Field(1, ge=1)

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value: Any) -> Any:
        return 1 if value in (None, "", 0) else value


def suggestion_key(category: str | None) -> str:
    """Map a free-form category name onto a suggestion table key."""
    if not category:
        return ""
    return extract_category(category) or category.strip().lower()


class ToolDispatcher:
    """Executes tool calls against the storefront and updates session panel state."""

    def __init__(
        self,
        session: AssistantSession,
        catalog: CatalogService,
        cart: CartService,
        *,
        suggest: SuggestionSink | None = None,
        rng: random.Random | None = None,
        related_rate: float | None = None,
        upsell_rate: float | None = None,
        related_delay: float | None = None,
        upsell_delay: float | None = None,
    ) -> None:
        self.session = session
        self.catalog = catalog
        self.cart = cart
        self.suggest = suggest
        self.rng = rng or random.Random()
        self.related_rate = (
            settings.related_suggestion_rate if related_rate is None else related_rate
        )
        self.upsell_rate = settings.upsell_suggestion_rate if upsell_rate is None else upsell_rate
        self.related_delay = (
            settings.related_suggestion_delay if related_delay is None else related_delay
        )
        self.upsell_delay = (
            settings.upsell_suggestion_delay if upsell_delay is None else upsell_delay
        )

        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[str]]] = {
            ToolName.SEARCH_PRODUCTS.value: self._search_products,
            ToolName.SHOW_PRODUCT.value: self._show_product,
            ToolName.ADD_TO_CART.value: self._add_to_cart,
            ToolName.REMOVE_FROM_CART.value: self._remove_from_cart,
            ToolName.OPEN_CHECKOUT.value: self._open_checkout,
        }

    async def dispatch(self, tool_calls: Sequence[ToolCall]) -> None:
        """Execute tool calls sequentially, in arrival order."""
        for call in tool_calls:
            await self.dispatch_one(call)

    async def dispatch_one(self, call: ToolCall) -> None:
        handler = self._handlers.get(call.name)
        if handler is None:
            logger.warning("Ignoring unknown tool call: %s", call.name)
            return

        args = normalize_arguments(call.arguments)
        logger.info("Dispatching tool call %s (%s)", call.name, call.id)
        try:
            term = await handler(args)
        except ValidationError as e:
            logger.warning("Invalid arguments for %s: %s", call.name, e.errors())
            return
        except Exception:
            logger.exception("Tool call %s failed", call.name)
            term = ""

        self.session.apply_flow(
            advance_on_tool(
                self.session.flow_state, call.name, self.session.panel_view, term=term
            )
        )

    # --- Handlers ---
    # Each returns the search term relevant to the flow transition ("" if none).

    async def _search_products(self, args: dict[str, Any]) -> str:
        params = SearchProductsArgs.model_validate(args)
        term = params.term
        self.session.search_query = term
        self.session.panel_view = PanelView.PRODUCTS
        if term and not is_product_category(term):
            self.session.last_search_query = term

        try:
            self.session.product_results = await self.catalog.search_products(
                params.query or None,
                category=params.category,
            )
        except Exception:
            logger.exception("Catalog search failed for %r", term)
            self.session.product_results = []
        return term

    async def _show_product(self, args: dict[str, Any]) -> str:
        params = ProductArgs.model_validate(args)
        self.session.selected_product_id = str(params.id)
        self.session.panel_view = PanelView.PRODUCT_DETAIL

        product: ProductSummary | None = None
        try:
            product = await self.catalog.get_product(params.id)
        except Exception:
            logger.exception("Product lookup failed for %s", params.id)
        self.session.selected_product = product

        category = params.category or (product.primary_category if product else None)
        self._maybe_schedule(
            self.related_rate,
            self.related_delay,
            RELATED_SUGGESTIONS.get(suggestion_key(category), DEFAULT_RELATED_SUGGESTION),
        )
        return ""

    async def _add_to_cart(self, args: dict[str, Any]) -> str:
        params = CartArgs.model_validate(args)
        try:
            await self.cart.add_item(params.id, params.quantity)
        except Exception:
            logger.exception("Failed to add product %s to cart", params.id)
            return ""

        logger.info("Added product %s x%d to cart", params.id, params.quantity)
        self._maybe_schedule(
            self.upsell_rate,
            self.upsell_delay,
            UPSELL_SUGGESTIONS.get(suggestion_key(params.category), DEFAULT_UPSELL_SUGGESTION),
        )
        return ""

    async def _remove_from_cart(self, args: dict[str, Any]) -> str:
        params = CartArgs.model_validate(args)
        quantity = params.quantity if "quantity" in args else None
        try:
            await self.cart.remove_item(params.id, quantity)
        except Exception:
            logger.exception("Failed to remove product %s from cart", params.id)
        return ""

    async def _open_checkout(self, args: dict[str, Any]) -> str:  # noqa: ARG002
        self.session.panel_view = PanelView.CHECKOUT
        self.session.set_checkout_mode(True)
        return ""

    # --- Checkout exit ---

    def exit_checkout(self) -> None:
        """Leave checkout mode and return to the product list."""
        self.session.set_checkout_mode(False)
        self.session.panel_view = PanelView.PRODUCTS
        self.session.apply_flow(FlowUpdate(ShoppingFlowState.BROWSING_PRODUCTS))

    # --- Delayed suggestions ---

    def _maybe_schedule(self, rate: float, delay: float, message: str) -> None:
        """Schedule a delayed suggestion message with probability ``rate``."""
        if self.suggest is None or self.rng.random() >= rate:
            return
        sink = self.suggest
        name = self.session.timers.schedule(delay, lambda: sink(message))
        logger.debug("Scheduled suggestion %s in %.1fs", name, delay)
