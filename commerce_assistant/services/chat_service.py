"""Dialogue orchestrator running one assistant session.

A message carrying payment details or other secrets is refused before any
of the steps below: it is never searched, sent for generation or logged.

A turn runs as follows:
1. The user message is appended and the text flow pass runs on it.
2. Candidate products are searched in the catalog.
3. The LangGraph turn workflow runs: domain restriction, then a redirect
   or the generation gateway.
4. Memory updates are merged.
5. The assistant message is appended and the text flow pass runs on it.
6. Tool calls are dispatched.
7. The reply is spoken.

A response that arrives after its turn was abandoned (new conversation,
conversation loaded, session closed) is discarded.
"""

import logging
import random
from typing import Any

from commerce_assistant.core.config import settings
from commerce_assistant.core.logging_config import session_id_var
from commerce_assistant.schemas.assistant import (
    AssistantTurn,
    ConversationHistoryItem,
    Message,
    MessageRole,
    ProductSummary,
    SuggestedProduct,
    TurnStatus,
)
from commerce_assistant.schemas.voice import VoiceSettings, VoiceSettingsUpdate
from commerce_assistant.services.flow_service import advance_on_text, extract_category
from commerce_assistant.services.gateway_service import (
    SHOW_ALTERNATIVES,
    GenerationContext,
    GenerationGateway,
)
from commerce_assistant.services.graph.workflow import create_turn_graph
from commerce_assistant.services.history_service import ConversationStore
from commerce_assistant.services.session import AssistantSession
from commerce_assistant.services.tools.shopping_tools import (
    CartService,
    CatalogService,
    ToolDispatcher,
)
from commerce_assistant.services.voice.controller import VoiceController

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Welcome to e-com! I'm your AI shopping assistant. "
    "I can help you browse phones, laptops, accessories, furniture, shoes, and clothes. "
    "{voice_tip} How can I help you today?"
)
VOICE_TIP = "Click the microphone button or press Space to speak, or type your questions."
TEXT_TIP = "Type your questions and I'll help you find what you need."
WELCOME_BACK_MESSAGE = (
    "Welcome back to e-com! I'm ready to help you find phones, laptops, accessories, "
    "furniture, shoes, or clothes. What are you looking for today?"
)
EMPTY_REPLY_MESSAGE = (
    "I apologize, but I seem to be having trouble right now. "
    "Please try again or contact support if the issue persists."
)
ERROR_REPLY_MESSAGE = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again later."
)
ALTERNATIVE_REASON = "Alternative option based on your search"
REDACTED_USER_MESSAGE = "[message removed: it contained sensitive information]"


class ChatService:
    """Orchestrates one assistant session.

    Args:
        store: Persistence for history, voice settings and memory
        gateway: Generation gateway used by the turn workflow
        storefront: Catalog and cart client
        session: Session state (a fresh one when omitted)
        voice: Voice controller (text-only when omitted)
        rng: Random source for delayed suggestions
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: GenerationGateway,
        storefront: Any,
        *,
        session: AssistantSession | None = None,
        voice: VoiceController | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.catalog: CatalogService = storefront
        self.cart: CartService = storefront
        self.session = session or AssistantSession()
        self.voice = voice or VoiceController(timers=self.session.timers)
        self.voice.transcript_sink = self.send_message
        self.dispatcher = ToolDispatcher(
            self.session,
            self.catalog,
            self.cart,
            suggest=self._append_suggestion,
            rng=rng,
        )
        self.graph = create_turn_graph(gateway)
        self.session.add_checkout_listener(self.voice.set_checkout_mode)
        self.last_turn: AssistantTurn | None = None
        self.history: list[ConversationHistoryItem] = []

    @property
    def session_id(self) -> str:
        return self.session.session_id

    # --- Lifecycle ---

    async def start(self, *, user_agent: str = "") -> list[Message]:
        """Load persisted state and post the welcome (and compatibility) messages.

        Returns:
            Messages appended by the start-up sequence
        """
        voice_settings = await self.store.load_voice_settings()
        self.voice.update_settings(voice_settings)
        self.history = await self.store.load_history()
        self.session.prefs.update(await self.store.load_memory(self.session_id))

        tip = VOICE_TIP if self.voice.capture_supported else TEXT_TIP
        posted = [self._post_assistant(WELCOME_MESSAGE.format(voice_tip=tip))]
        notice = self.voice.take_compatibility_notice(user_agent)
        if notice:
            posted.append(self._post_assistant(notice, speak=False))
        logger.info("Started assistant session %s", self.session_id)
        return posted

    async def start_new_conversation(self) -> Message:
        """Discard the current conversation and greet again."""
        self.voice.stop_listening()
        self.session.reset()
        return self._post_assistant(WELCOME_BACK_MESSAGE)

    async def close(self) -> None:
        """Cancel every pending timer and stop voice activity."""
        self.voice.close()
        self.session.abandon_turn()
        cancelled = self.session.timers.cancel_all()
        logger.info("Closed session %s (%d timers cancelled)", self.session_id, cancelled)

    # --- Turns ---

    async def send_message(self, text: str) -> Message | None:
        """Run one turn for ``text``.

        Returns:
            The assistant message, or None if the input was empty, a turn is
            already awaiting its response, or the response was discarded
        """
        text = text.strip()
        if not text:
            return None
        if self.session.status == TurnStatus.AWAITING_RESPONSE:
            logger.warning("Rejected message while a turn is awaiting its response")
            return None

        session_id_var.set(self.session_id)
        if self.gateway.guardrails(text):
            return await self._refuse_sensitive()

        turn_id = self.session.begin_turn()
        self.session.append(Message(role=MessageRole.USER, content=text))
        self.session.apply_flow(
            advance_on_text(self.session.flow_state, text, MessageRole.USER)
        )

        try:
            candidates = await self._find_candidates(text)
            result = await self.graph.ainvoke(
                {
                    "user_message": text,
                    "context": GenerationContext(
                        prefs=dict(self.session.prefs),
                        history=self.session.messages[:-1],
                        flow_state=self.session.flow_state,
                        last_category=self.session.last_category,
                    ),
                    "candidates": candidates,
                }
            )

            if not self.session.is_awaiting(turn_id):
                logger.info("Discarding stale response for turn %d", turn_id)
                return None

            turn = self._fill_alternatives(result["turn"], candidates)
            await self._remember(turn.memory_updates)

            content = turn.assistant_message.strip()
            if not content and not turn.tool_calls:
                content = EMPTY_REPLY_MESSAGE
            message = self.session.append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=content,
                    tool_calls=turn.tool_calls or None,
                )
            )
            if content:
                self.session.apply_flow(
                    advance_on_text(self.session.flow_state, content, MessageRole.ASSISTANT)
                )
            await self.dispatcher.dispatch(turn.tool_calls)
            if content:
                self.voice.speak(content)
            self.last_turn = turn
            return message
        except Exception:
            logger.exception("Turn %d failed", turn_id)
            if not self.session.is_awaiting(turn_id):
                return None
            return self.session.append(
                Message(role=MessageRole.ASSISTANT, content=ERROR_REPLY_MESSAGE)
            )
        finally:
            self.session.end_turn(turn_id)

    async def _refuse_sensitive(self) -> Message:
        """Answer a message carrying secrets without searching or generating.

        The raw text never reaches the catalog, the completion client or the
        message log; a placeholder takes its place.
        """
        self.session.append(Message(role=MessageRole.USER, content=REDACTED_USER_MESSAGE))
        turn = self.gateway.sensitive_data_turn()
        message = self.session.append(
            Message(
                role=MessageRole.ASSISTANT,
                content=turn.assistant_message,
                tool_calls=turn.tool_calls or None,
            )
        )
        await self.dispatcher.dispatch(turn.tool_calls)
        self.voice.speak(turn.assistant_message)
        self.last_turn = turn
        return message

    async def _find_candidates(self, text: str) -> list[ProductSummary]:
        prefs = self.session.prefs
        category = extract_category(text) or prefs.get("category") or None
        max_price = prefs.get("budgetMax")
        try:
            max_price = float(max_price) if max_price is not None else None
        except (TypeError, ValueError):
            max_price = None

        try:
            return await self.catalog.search_products(
                text,
                category=category,
                max_price=max_price,
                brand=prefs.get("preferredBrand") or None,
                limit=settings.candidate_limit,
            )
        except Exception:
            logger.exception("Candidate product search failed")
            return []

    @staticmethod
    def _fill_alternatives(
        turn: AssistantTurn, candidates: list[ProductSummary]
    ) -> AssistantTurn:
        """Suggest the first search results when alternatives were requested without any."""
        if SHOW_ALTERNATIVES not in turn.actions or turn.suggested_products or not candidates:
            return turn
        suggestions = [
            SuggestedProduct(product_id=p.product_id, reason=ALTERNATIVE_REASON)
            for p in candidates[: settings.fallback_product_limit]
        ]
        return turn.model_copy(update={"suggested_products": suggestions})

    async def _remember(self, updates: dict[str, Any]) -> None:
        if not updates:
            return
        self.session.prefs.update(updates)
        await self.store.update_memory(self.session_id, updates)

    def _post_assistant(self, content: str, *, speak: bool = True) -> Message:
        message = self.session.append(Message(role=MessageRole.ASSISTANT, content=content))
        if speak:
            self.voice.speak(content)
        return message

    def _append_suggestion(self, content: str) -> None:
        """Delayed suggestion sink used by the dispatcher timers."""
        self._post_assistant(content)

    # --- Checkout ---

    def exit_checkout_mode(self) -> None:
        self.dispatcher.exit_checkout()

    # --- History ---

    async def save_conversation(self) -> ConversationHistoryItem | None:
        """Save the current conversation; later saves update the same entry."""
        item = await self.store.save_conversation(
            self.session.messages,
            conversation_id=self.session.active_conversation_id,
        )
        if item is not None:
            self.session.active_conversation_id = item.id
            self.history = await self.store.load_history()
        return item

    async def load_conversation(self, conversation_id: str) -> ConversationHistoryItem | None:
        """Replace the current conversation with a saved one."""
        item = await self.store.get_conversation(conversation_id)
        if item is None:
            return None
        self.voice.stop_listening()
        self.session.reset()
        self.session.replace_messages(item.messages)
        self.session.active_conversation_id = item.id
        return item

    async def delete_conversation(self, conversation_id: str) -> bool:
        deleted = await self.store.delete_conversation(conversation_id)
        if deleted:
            self.history = [h for h in self.history if h.id != conversation_id]
            if self.session.active_conversation_id == conversation_id:
                self.session.active_conversation_id = None
        return deleted

    async def clear_history(self) -> None:
        await self.store.clear_history()
        self.history = []
        self.session.active_conversation_id = None

    async def list_history(self) -> list[ConversationHistoryItem]:
        self.history = await self.store.load_history()
        return self.history

    # --- Voice settings ---

    async def update_voice_settings(self, update: VoiceSettingsUpdate) -> VoiceSettings:
        """Apply a partial settings change and persist it immediately."""
        voice_settings = update.apply_to(self.voice.voice_settings)
        self.voice.update_settings(voice_settings)
        await self.store.save_voice_settings(voice_settings)
        return voice_settings
