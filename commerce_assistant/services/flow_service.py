"""Shopping flow state machine.

Two pure transition functions share one state field per session:

- ``advance_on_text`` is a heuristic pass over free text (user or assistant).
- ``advance_on_tool`` applies the side effect of an executed tool call.

The orchestrator runs the text pass first and the tool pass after it, so the
dispatcher wins when both fire in the same turn.
"""

import logging
import re
from dataclasses import dataclass

from commerce_assistant.schemas.assistant import (
    MessageRole,
    PanelView,
    ShoppingFlowState,
    ToolName,
)

logger = logging.getLogger(__name__)

# Terms that mark a message as being about a catalog category at all
CATEGORY_TRIGGER_TERMS = [
    "phones", "phone", "smartphone", "smartphones",
    "laptops", "laptop", "computer", "computers",
    "accessories", "accessory",
    "furniture", "chair", "table", "desk", "sofa", "couch",
    "shoes", "shoe", "sneakers", "boots", "sandals",
    "clothes", "clothing", "shirt", "t-shirt", "pants", "dress", "jacket",
]

# Category key -> vocabulary, checked in order
CATEGORY_VOCABULARY: dict[str, list[str]] = {
    "phones": ["phones", "phone", "smartphone", "smartphones", "cell phone", "mobile phone"],
    "laptops": ["laptops", "laptop", "computer", "computers", "notebook", "netbook"],
    "accessories": ["accessories", "accessory", "charger", "case", "headphones", "earbuds"],
    "furniture": ["furniture", "chair", "table", "desk", "sofa", "couch", "bed", "shelf"],
    "shoes": ["shoes", "shoe", "sneakers", "boots", "sandals", "footwear"],
    "clothes": ["clothes", "clothing", "shirt", "t-shirt", "pants", "dress", "jacket", "apparel"],
}

CATALOG_CATEGORIES = list(CATEGORY_VOCABULARY)


def _terms_pattern(terms: list[str]) -> re.Pattern[str]:
    # Longest first so "cell phone" wins over "phone"
    alternation = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
    return re.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", re.IGNORECASE)


_CATEGORY_TRIGGER_RE = _terms_pattern(CATEGORY_TRIGGER_TERMS)
_CATEGORY_RES = {key: _terms_pattern(terms) for key, terms in CATEGORY_VOCABULARY.items()}

# --- User text rules ---

GREETING_RE = re.compile(
    r"^\s*(?:hi|hello|hey|greetings|howdy|what can you do|help me)\b", re.IGNORECASE
)
CHECKOUT_RE = re.compile(
    r"\b(?:check ?out|buy now|purchase|complete (?:my )?order|proceed to payment)\b",
    re.IGNORECASE,
)
CART_RE = re.compile(r"\b(?:cart|shopping bag|my items|show cart|view cart)\b", re.IGNORECASE)
COMPARE_RE = re.compile(
    r"\b(?:compare|vs|versus|difference between|recommend\w*|suggestions?|best|top rated)\b",
    re.IGNORECASE,
)
ATTRIBUTE_RE = re.compile(
    r"\b(?:features|specs|specifications?|compare|details|description|colou?rs?|sizes?|price)\b",
    re.IGNORECASE,
)
STORE_INFO_RE = re.compile(
    r"\b(?:store (?:hours|location)|shipping|delivery|return policy|warranty)\b", re.IGNORECASE
)

# --- Assistant narration rules ---

OFFER_RE = re.compile(
    r"\b(?:would you like to see|i can show you|here are some|we have several)\b", re.IGNORECASE
)
PRODUCT_NARRATION_RE = re.compile(
    r"\b(?:this product|this (?:smartphone|phone|laptop|device|item)|features include)\b",
    re.IGNORECASE,
)
CART_NARRATION_RE = re.compile(
    r"\b(?:your cart|shopping cart|items in your cart|added to your cart)\b", re.IGNORECASE
)
CHECKOUT_NARRATION_RE = re.compile(
    r"\b(?:checkout process|payment options|shipping information|complete your purchase)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FlowUpdate:
    """Result of a transition.

    Attributes:
        state: Flow state after the transition
        category: Catalog category to record as "last category", if any
    """

    state: ShoppingFlowState
    category: str | None = None


def is_product_category(text: str) -> bool:
    """Whether the text mentions catalog category vocabulary."""
    return bool(_CATEGORY_TRIGGER_RE.search(text))


def extract_category(text: str) -> str:
    """Return the most likely catalog category key, or "" when none matches."""
    for key, pattern in _CATEGORY_RES.items():
        if pattern.search(text):
            return key
    return ""


def _advance_on_user_text(state: ShoppingFlowState, text: str) -> FlowUpdate:
    if GREETING_RE.search(text):
        return FlowUpdate(ShoppingFlowState.INITIAL)

    if CHECKOUT_RE.search(text):
        return FlowUpdate(ShoppingFlowState.CHECKOUT)

    if CART_RE.search(text):
        return FlowUpdate(ShoppingFlowState.CART)

    if is_product_category(text):
        return FlowUpdate(ShoppingFlowState.BROWSING_PRODUCTS, extract_category(text) or None)

    if COMPARE_RE.search(text):
        if state in (ShoppingFlowState.BROWSING_PRODUCTS, ShoppingFlowState.VIEWING_PRODUCT):
            return FlowUpdate(state)
        return FlowUpdate(ShoppingFlowState.BROWSING_PRODUCTS)

    # Attribute questions keep the product detail stage; store-policy
    # questions are left to the reply. Both leave the state as it is.
    if state == ShoppingFlowState.VIEWING_PRODUCT and ATTRIBUTE_RE.search(text):
        return FlowUpdate(state)
    if STORE_INFO_RE.search(text):
        return FlowUpdate(state)

    return FlowUpdate(state)


def _advance_on_assistant_text(state: ShoppingFlowState, text: str) -> FlowUpdate:
    # Rules are cumulative; the last matching one wins.
    category = None
    if OFFER_RE.search(text) and is_product_category(text):
        state = ShoppingFlowState.BROWSING_PRODUCTS
        category = extract_category(text) or None

    if PRODUCT_NARRATION_RE.search(text):
        state = ShoppingFlowState.VIEWING_PRODUCT

    if CART_NARRATION_RE.search(text):
        state = ShoppingFlowState.CART

    if CHECKOUT_NARRATION_RE.search(text):
        state = ShoppingFlowState.CHECKOUT

    return FlowUpdate(state, category)


def advance_on_text(
    state: ShoppingFlowState,
    text: str,
    role: MessageRole = MessageRole.USER,
) -> FlowUpdate:
    """Heuristic transition from the text of a user or assistant message.

    Text that matches no rule leaves the state unchanged.
    """
    if not text:
        return FlowUpdate(state)
    if role == MessageRole.ASSISTANT:
        return _advance_on_assistant_text(state, text)
    return _advance_on_user_text(state, text)


def advance_on_tool(
    state: ShoppingFlowState,
    tool_name: str,
    panel_view: PanelView,
    *,
    term: str = "",
) -> FlowUpdate:
    """Transition caused by an executed tool call.

    Args:
        state: Current flow state
        tool_name: Name of the executed tool
        panel_view: Panel view after the tool ran
        term: Search query or category of a ``searchProducts`` call

    Returns:
        The resulting flow update (unknown tools leave the state unchanged)
    """
    if tool_name == ToolName.SEARCH_PRODUCTS:
        category = extract_category(term) if term and is_product_category(term) else ""
        return FlowUpdate(ShoppingFlowState.BROWSING_PRODUCTS, category or None)
    if tool_name == ToolName.SHOW_PRODUCT:
        return FlowUpdate(ShoppingFlowState.VIEWING_PRODUCT)
    if tool_name in (ToolName.ADD_TO_CART, ToolName.REMOVE_FROM_CART):
        if panel_view == PanelView.CART:
            return FlowUpdate(ShoppingFlowState.CART)
        return FlowUpdate(state)
    if tool_name == ToolName.OPEN_CHECKOUT:
        return FlowUpdate(ShoppingFlowState.CHECKOUT)
    return FlowUpdate(state)
