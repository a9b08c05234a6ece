"""Session-scoped state shared by the assistant components.

One ``AssistantSession`` exists per live conversation. It is the single owner
of the message log, the shopping flow state, the side-panel state, checkout
mode and every pending delayed action of the session. Components receive it
explicitly instead of reaching for module-level state.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from commerce_assistant.schemas.assistant import (
    Message,
    MessageRole,
    PanelView,
    ProductSummary,
    ShoppingFlowState,
    TurnStatus,
)
from commerce_assistant.services.flow_service import FlowUpdate
from commerce_assistant.services.timers import TimerRegistry

logger = logging.getLogger(__name__)

CheckoutListener = Callable[[bool], None]


def generate_session_id() -> str:
    """Generate a new assistant session ID."""
    return f"sess_{uuid.uuid4().hex}"


@dataclass
class AssistantSession:
    """Mutable state of one conversation.

    Attributes:
        session_id: Stable identity of the session
        messages: Ordered message log (append-only)
        flow_state: Current shopping flow stage (last writer wins)
        last_category: Last catalog category the user browsed
        last_search_query: Last free-text search that was not a category
        search_query: Active search text of the products panel
        panel_view: Which side-panel view is shown
        selected_product_id: Product shown in the detail panel
        selected_product: Catalog lookup for the selected product, if any
        product_results: Results of the last catalog search
        checkout_mode: Whether a sensitive checkout flow is active
        prefs: Conversation memory (budget, brand, tone...)
        status: Orchestrator turn status
        active_conversation_id: Saved-history ID this session continues, if any
        timers: Pending delayed actions owned by this session
    """

    session_id: str = field(default_factory=generate_session_id)
    messages: list[Message] = field(default_factory=list)
    flow_state: ShoppingFlowState = ShoppingFlowState.INITIAL
    last_category: str = ""
    last_search_query: str = ""
    search_query: str = ""
    panel_view: PanelView = PanelView.PRODUCTS
    selected_product_id: str | None = None
    selected_product: ProductSummary | None = None
    product_results: list[ProductSummary] = field(default_factory=list)
    checkout_mode: bool = False
    prefs: dict[str, Any] = field(default_factory=dict)
    status: TurnStatus = TurnStatus.IDLE
    active_conversation_id: str | None = None
    timers: TimerRegistry = field(default_factory=TimerRegistry)

    _turn_counter: int = field(default=0, repr=False)
    _awaited_turn: int | None = field(default=None, repr=False)
    _checkout_listeners: list[CheckoutListener] = field(default_factory=list, repr=False)

    # --- Message log ---

    def append(self, message: Message) -> Message:
        """Append a message, clamping its timestamp to keep the log ordered."""
        if self.messages and message.timestamp < self.messages[-1].timestamp:
            message = message.model_copy(update={"timestamp": self.messages[-1].timestamp})
        self.messages.append(message)
        return message

    def replace_messages(self, messages: list[Message]) -> None:
        """Swap the whole log (loading a saved conversation)."""
        self.messages = []
        for message in messages:
            self.append(message)

    @property
    def has_user_messages(self) -> bool:
        return any(m.role == MessageRole.USER for m in self.messages)

    # --- Flow state ---

    def apply_flow(self, update: FlowUpdate) -> None:
        """Store a flow transition result (last writer wins)."""
        if update.state != self.flow_state:
            logger.debug("Flow state %s -> %s", self.flow_state.value, update.state.value)
        self.flow_state = update.state
        if update.category:
            self.last_category = update.category

    # --- Turn sequencing ---

    def begin_turn(self) -> int:
        """Mark the session as awaiting a response and return the turn ID."""
        self._turn_counter += 1
        self._awaited_turn = self._turn_counter
        self.status = TurnStatus.AWAITING_RESPONSE
        return self._turn_counter

    def is_awaiting(self, turn_id: int) -> bool:
        """Whether ``turn_id`` is the turn the session is still waiting for."""
        return self.status == TurnStatus.AWAITING_RESPONSE and self._awaited_turn == turn_id

    def end_turn(self, turn_id: int) -> None:
        """Return to idle, unless a newer turn has taken over."""
        if self._awaited_turn == turn_id:
            self._awaited_turn = None
            self.status = TurnStatus.IDLE

    def abandon_turn(self) -> None:
        """Stop waiting for the in-flight turn; its response will be discarded."""
        if self._awaited_turn is not None:
            logger.info("Abandoning in-flight turn %d", self._awaited_turn)
        self._awaited_turn = None
        self.status = TurnStatus.IDLE

    # --- Checkout mode ---

    def add_checkout_listener(self, listener: CheckoutListener) -> None:
        self._checkout_listeners.append(listener)

    def set_checkout_mode(self, active: bool) -> None:
        """Enter or leave checkout mode and notify listeners on change."""
        if self.checkout_mode == active:
            return
        self.checkout_mode = active
        for listener in list(self._checkout_listeners):
            try:
                listener(active)
            except Exception:
                logger.exception("Checkout listener failed")

    # --- Lifecycle ---

    def reset(self) -> None:
        """Clear conversation state for a fresh conversation.

        Session identity, memory and listeners are kept; pending delayed
        messages belong to the old conversation and are cancelled.
        """
        self.timers.cancel_all()
        self.abandon_turn()
        self.messages = []
        self.flow_state = ShoppingFlowState.INITIAL
        self.last_category = ""
        self.last_search_query = ""
        self.search_query = ""
        self.panel_view = PanelView.PRODUCTS
        self.selected_product_id = None
        self.selected_product = None
        self.product_results = []
        self.active_conversation_id = None
        self.set_checkout_mode(False)
