"""Generation gateway: prompt assembly, guardrails and tolerant reply parsing.

The gateway never raises to its caller. Every failure (guardrail trip,
missing credentials, transport error, malformed JSON) produces a valid
``AssistantTurn``.
"""

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from commerce_assistant.core.config import settings
from commerce_assistant.schemas.assistant import (
    AssistantTurn,
    Message,
    MessageRole,
    ProductSummary,
    ShoppingFlowState,
    SuggestedProduct,
    ToolCall,
    ToolName,
)
from commerce_assistant.services.graph.prompts import (
    ALL_OUT_OF_STOCK_NOTICE,
    CANDIDATES_FALLBACK_REPLY,
    CATEGORY_TAXONOMY,
    CLARIFYING_REPLY,
    DEFAULT_REPLY,
    FALLBACK_REASON,
    NO_PREFERENCES_NOTICE,
    NO_PRODUCTS_NOTICE,
    OUT_OF_STOCK_REPLY,
    SALES_SYSTEM_PROMPT,
    SENSITIVE_DATA_REPLY,
    TROUBLE_CONNECTING_REPLY,
    USER_TURN_TEMPLATE,
)
from commerce_assistant.services.persona_service import tone_instructions
from commerce_assistant.services.tools.arguments import normalize_arguments

logger = logging.getLogger(__name__)

SHOW_ALTERNATIVES = "SHOW_ALTERNATIVES"
BEGIN_CHECKOUT = "BEGIN_CHECKOUT"

# === Guardrails ===

GUARDRAIL_PATTERNS: dict[str, re.Pattern[str]] = {
    "card_number": re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b"),
    "cvv": re.compile(r"\b(?:cvv|cvc|security code|card code)\s*:?\s*\d{3,4}\b", re.IGNORECASE),
    "otp": re.compile(
        r"\b(?:otp|verification code|security code)\s*:?\s*\d{4,8}\b", re.IGNORECASE
    ),
    "national_id": re.compile(
        r"\b(?:national id|id number|identification number)\s*:?\s*[\w-]{6,12}\b",
        re.IGNORECASE,
    ),
    "password": re.compile(r"\b(?:password|pwd|passcode)\s*:?\s*\S{8,}", re.IGNORECASE),
}

# === Reply parsing ===

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)\s*:")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_PY_LITERALS_RE = re.compile(r"\b(True|False|None)\b")
_SMART_QUOTES = str.maketrans(
    {"“": '"', "”": '"', "„": '"', "‘": "'", "’": "'"}
)


@dataclass
class GenerationContext:
    """Session context the gateway needs to build a prompt.

    Attributes:
        prefs: Conversation memory (budget, brand, tone...)
        history: Prior messages, oldest first, excluding the current one
        flow_state: Current shopping flow stage
        last_category: Last catalog category browsed
    """

    prefs: dict[str, Any] = field(default_factory=dict)
    history: list[Message] = field(default_factory=list)
    flow_state: ShoppingFlowState = ShoppingFlowState.INITIAL
    last_category: str = ""


def _get_llm() -> Any | None:
    """Create the completion client, or None when no credentials are configured."""
    if settings.azure_configured:
        return AzureChatOpenAI(
            azure_endpoint=settings.azure_openai_endpoint,
            azure_deployment=settings.azure_openai_deployment,
            api_version=settings.azure_openai_api_version,
            api_key=settings.azure_openai_api_key,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )
    if settings.openai_api_key:
        return ChatOpenAI(
            model=settings.chat_model,
            api_key=settings.openai_api_key,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )
    return None


def _coerce_product_id(value: Any) -> int | str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    return int(text) if text.isdigit() else text


def _all_out_of_stock(candidates: Sequence[ProductSummary]) -> bool:
    return bool(candidates) and all(c.is_out_of_stock for c in candidates)


# === JSON span location and repair ===


def _strip_code_fences(text: str) -> str:
    text = _FENCE_OPEN_RE.sub("", text.strip())
    return _FENCE_CLOSE_RE.sub("", text.strip())


def extract_json_span(text: str) -> str | None:
    """Locate the first top-level ``{...}`` object in free text.

    Braces inside double-quoted strings are ignored. An object that is never
    closed is returned with the missing braces appended.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    # Never closed: close whatever is still open
    tail = text[start:].rstrip()
    if in_string:
        tail += '"'
    return tail.rstrip(",") + "}" * depth


def _split_strings(text: str) -> list[tuple[bool, str]]:
    """Split text into (is_string, chunk) pieces on double-quoted strings."""
    pieces: list[tuple[bool, str]] = []
    buf: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            buf.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                pieces.append((True, "".join(buf)))
                buf = []
                in_string = False
        elif ch == '"':
            if buf:
                pieces.append((False, "".join(buf)))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)
    if buf:
        pieces.append((in_string, "".join(buf)))
    return pieces


def _convert_single_quoted(text: str) -> str:
    """Rewrite 'single-quoted' strings outside double-quoted ones as JSON strings."""
    out: list[str] = []
    for is_string, chunk in _split_strings(text):
        if is_string:
            out.append(chunk)
            continue
        i = 0
        while i < len(chunk):
            ch = chunk[i]
            if ch != "'":
                out.append(ch)
                i += 1
                continue
            j = i + 1
            value: list[str] = []
            while j < len(chunk) and chunk[j] != "'":
                if chunk[j] == "\\" and j + 1 < len(chunk):
                    value.append(chunk[j + 1])
                    j += 2
                    continue
                value.append(chunk[j])
                j += 1
            out.append(json.dumps("".join(value)))
            i = j + 1
    return "".join(out)


def _outside_strings(text: str, fn: Callable[[str], str]) -> str:
    return "".join(chunk if is_string else fn(chunk) for is_string, chunk in _split_strings(text))


def repair_json(text: str) -> str:
    """Best-effort fix of the usual model JSON mistakes.

    Normalizes smart quotes, converts single-quoted strings, quotes bare
    keys, maps Python literals and strips trailing commas. Text inside valid
    double-quoted strings is left alone, typographic quotes included.
    """
    text = _outside_strings(text, lambda s: s.translate(_SMART_QUOTES))
    text = _convert_single_quoted(text)
    text = _outside_strings(text, lambda s: _BARE_KEY_RE.sub(r'\1"\2":', s))
    text = _outside_strings(
        text,
        lambda s: _PY_LITERALS_RE.sub(
            lambda m: {"True": "true", "False": "false", "None": "null"}[m.group(1)], s
        ),
    )
    return _outside_strings(text, lambda s: _TRAILING_COMMA_RE.sub(r"\1", s))


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


# === Actions -> tool calls ===


def actions_to_tool_calls(actions: Sequence[str]) -> list[ToolCall]:
    """Translate action strings (``ADD_TO_CART:123:2``...) into tool calls.

    ``SHOW_ALTERNATIVES`` is a UI hint with no tool behind it. Unrecognized
    actions are skipped.
    """
    calls: list[ToolCall] = []
    for action in actions:
        verb, _, rest = action.strip().partition(":")
        verb = verb.strip().upper()

        if verb in ("ADD_TO_CART", "REMOVE_FROM_CART"):
            raw_id, _, raw_qty = rest.partition(":")
            product_id = _coerce_product_id(raw_id)
            if product_id is None:
                logger.warning("Ignoring %s action without product id", verb)
                continue
            args: dict[str, Any] = {"id": product_id}
            if raw_qty.strip().isdigit():
                args["quantity"] = int(raw_qty.strip())
            name = ToolName.ADD_TO_CART if verb == "ADD_TO_CART" else ToolName.REMOVE_FROM_CART
            calls.append(ToolCall(name=name.value, arguments=args))
        elif verb == "SHOW_PRODUCT":
            product_id = _coerce_product_id(rest)
            if product_id is None:
                continue
            calls.append(ToolCall(name=ToolName.SHOW_PRODUCT.value, arguments={"id": product_id}))
        elif verb == "SEARCH":
            if rest.strip():
                calls.append(
                    ToolCall(name=ToolName.SEARCH_PRODUCTS.value, arguments={"query": rest.strip()})
                )
        elif verb == BEGIN_CHECKOUT:
            calls.append(ToolCall(name=ToolName.OPEN_CHECKOUT.value))
        elif verb != SHOW_ALTERNATIVES:
            logger.debug("Unmapped action: %s", action)
    return calls


def _explicit_tool_calls(raw: Any) -> list[ToolCall]:
    """Read a ``tool_calls`` array, plain or OpenAI function-call shaped."""
    if not isinstance(raw, list):
        return []
    calls: list[ToolCall] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        function = item.get("function") if isinstance(item.get("function"), dict) else item
        name = function.get("name")
        if not isinstance(name, str) or not name:
            continue
        arguments = normalize_arguments(function.get("arguments", function.get("args")))
        if item.get("id"):
            calls.append(ToolCall(id=str(item["id"]), name=name, arguments=arguments))
        else:
            calls.append(ToolCall(name=name, arguments=arguments))
    return calls


def _enrich_with_category(
    calls: list[ToolCall], candidates: Sequence[ProductSummary]
) -> list[ToolCall]:
    """Attach the candidate's category to product tool calls that lack one."""
    by_id = {str(c.product_id): c for c in candidates}
    enriched: list[ToolCall] = []
    for call in calls:
        product = by_id.get(str(call.arguments.get("id", call.arguments.get("productId", ""))))
        if product and product.primary_category and not call.arguments.get("category"):
            call = call.model_copy(
                update={"arguments": {**call.arguments, "category": product.primary_category}}
            )
        enriched.append(call)
    return enriched


class GenerationGateway:
    """Turns a user utterance plus session context into an ``AssistantTurn``."""

    def __init__(
        self,
        llm: Any | None = None,
        *,
        history_window: int | None = None,
        fallback_product_limit: int | None = None,
    ) -> None:
        self.llm = llm
        self.history_window = history_window or settings.history_window
        self.fallback_product_limit = fallback_product_limit or settings.fallback_product_limit

    @classmethod
    def from_settings(cls) -> "GenerationGateway":
        return cls(llm=_get_llm())

    @property
    def available(self) -> bool:
        return self.llm is not None

    # --- Prompt ---

    def build_prompt(
        self,
        user_message: str,
        context: GenerationContext,
        candidates: Sequence[ProductSummary],
    ) -> list[BaseMessage]:
        """Assemble system, history and user messages for the completion call."""
        system = SALES_SYSTEM_PROMPT.format(tone_instructions=tone_instructions(context.prefs))
        messages: list[BaseMessage] = [SystemMessage(content=system)]

        for msg in context.history[-self.history_window :]:
            if msg.role == MessageRole.USER:
                messages.append(HumanMessage(content=msg.content))
            else:
                messages.append(AIMessage(content=msg.content))

        messages.append(
            HumanMessage(
                content=USER_TURN_TEMPLATE.format(
                    message=user_message,
                    context_section=self._context_section(context),
                    products_section=self._products_section(candidates),
                )
            )
        )
        return messages

    @staticmethod
    def _context_section(context: GenerationContext) -> str:
        section = CATEGORY_TAXONOMY + "\n"
        if context.prefs:
            section += "User preferences:\n"
            for key, value in context.prefs.items():
                section += f"- {key}: {value}\n"
        else:
            section += NO_PREFERENCES_NOTICE
        section += f"Shopping stage: {context.flow_state.value}\n"
        if context.last_category:
            section += f"Last browsed category: {context.last_category}\n"
        return section

    @staticmethod
    def _products_section(candidates: Sequence[ProductSummary]) -> str:
        if not candidates:
            return f"\n{NO_PRODUCTS_NOTICE}\n"
        lines = ["", "Available products:"]
        lines += [f"{i}. {p.to_prompt_line()}" for i, p in enumerate(candidates, start=1)]
        if _all_out_of_stock(candidates):
            lines += ["", ALL_OUT_OF_STOCK_NOTICE]
        return "\n".join(lines) + "\n"

    # --- Guardrails ---

    @staticmethod
    def guardrails(message: str) -> bool:
        """Whether the message carries payment credentials or other secrets."""
        for name, pattern in GUARDRAIL_PATTERNS.items():
            if pattern.search(message):
                # The text itself is never logged
                logger.warning("Guardrail triggered: %s", name)
                return True
        return False

    # --- Generation ---

    async def generate(
        self,
        user_message: str,
        context: GenerationContext,
        candidates: Sequence[ProductSummary] = (),
    ) -> AssistantTurn:
        """Produce the assistant turn for a user message. Never raises."""
        if self.guardrails(user_message):
            return self.sensitive_data_turn()

        if self.llm is None:
            logger.warning("Completion client not configured, returning fallback turn")
            return self.fallback_turn(candidates)

        try:
            messages = self.build_prompt(user_message, context, candidates)
            logger.info(
                "Calling completion service: history=%d, candidates=%d",
                len(messages) - 2,
                len(candidates),
            )
            response = await self.llm.ainvoke(messages)
        except Exception:
            logger.exception("Completion request failed, returning fallback turn")
            return self.fallback_turn(candidates)

        content = response.content if isinstance(response.content, str) else ""
        return self.parse_response(content, candidates)

    # --- Parsing ---

    def parse_response(
        self,
        raw_text: str,
        candidates: Sequence[ProductSummary] = (),
    ) -> AssistantTurn:
        """Parse a semi-structured model reply into an ``AssistantTurn``."""
        text = _strip_code_fences(raw_text or "")
        span = extract_json_span(text)
        if span is None:
            logger.warning("No JSON object in completion reply: %r", text[:200])
            return self.message_turn(CLARIFYING_REPLY)

        parsed = _loads_object(span)
        if parsed is None:
            parsed = _loads_object(repair_json(span))
            if parsed is None:
                logger.warning("Completion reply is not valid JSON after repair: %r", span[:200])
                return self.message_turn(CLARIFYING_REPLY)
            logger.info("Parsed completion reply after repair")

        suggested = self._coerce_suggestions(parsed.get("suggested_products"))
        actions = [
            a.strip() for a in _as_list(parsed.get("actions")) if isinstance(a, str) and a.strip()
        ]
        memory = parsed.get("memory_updates")
        memory = memory if isinstance(memory, dict) else {}

        if _all_out_of_stock(candidates) and SHOW_ALTERNATIVES not in actions:
            actions.append(SHOW_ALTERNATIVES)

        message = parsed.get("assistant_message")
        message = message.strip() if isinstance(message, str) else ""
        if not message:
            if SHOW_ALTERNATIVES in actions and not suggested:
                message = OUT_OF_STOCK_REPLY
            else:
                message = DEFAULT_REPLY

        tool_calls = _explicit_tool_calls(parsed.get("tool_calls")) + actions_to_tool_calls(actions)

        return AssistantTurn(
            assistant_message=message,
            suggested_products=suggested,
            actions=actions,
            memory_updates=memory,
            tool_calls=_enrich_with_category(tool_calls, candidates),
        )

    @staticmethod
    def _coerce_suggestions(raw: Any) -> list[SuggestedProduct]:
        suggestions: list[SuggestedProduct] = []
        for item in _as_list(raw):
            if isinstance(item, dict):
                product_id = _coerce_product_id(item.get("productId", item.get("product_id")))
                reason = item.get("reason")
            else:
                product_id, reason = _coerce_product_id(item), None
            if product_id is None:
                continue
            suggestions.append(
                SuggestedProduct(product_id=product_id, reason=str(reason) if reason else "")
            )
        return suggestions

    # --- Canned turns ---

    @staticmethod
    def message_turn(message: str) -> AssistantTurn:
        return AssistantTurn(assistant_message=message)

    @staticmethod
    def sensitive_data_turn() -> AssistantTurn:
        """Fixed refusal that redirects to the secure checkout."""
        return AssistantTurn(
            assistant_message=SENSITIVE_DATA_REPLY,
            actions=[BEGIN_CHECKOUT],
            tool_calls=[ToolCall(name=ToolName.OPEN_CHECKOUT.value)],
        )

    def fallback_turn(self, candidates: Sequence[ProductSummary]) -> AssistantTurn:
        """Deterministic reply used when the completion service cannot answer."""
        if not candidates:
            return self.message_turn(TROUBLE_CONNECTING_REPLY)
        actions = [SHOW_ALTERNATIVES] if _all_out_of_stock(candidates) else []
        return AssistantTurn(
            assistant_message=CANDIDATES_FALLBACK_REPLY,
            suggested_products=[
                SuggestedProduct(product_id=c.product_id, reason=FALLBACK_REASON)
                for c in candidates[: self.fallback_product_limit]
            ],
            actions=actions,
        )


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
