"""Persistence of conversation history, voice settings and session memory in Redis.

History and voice settings are each one JSON record under a fixed key,
read at session start and written on every mutation. Session memory is a
JSON object per session that accumulates the model's ``memory_updates``.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError

from commerce_assistant.schemas.assistant import (
    ConversationHistoryItem,
    Message,
    MessageRole,
)
from commerce_assistant.schemas.voice import VoiceSettings

logger = logging.getLogger(__name__)

HISTORY_KEY = "voice-chat-history"
VOICE_SETTINGS_KEY = "voice-chat-settings"
MEMORY_KEY_PREFIX = "assistant:memory:"
MEMORY_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days

TITLE_MAX_LENGTH = 40
DEFAULT_TITLE = "New conversation"

_history_adapter = TypeAdapter(list[ConversationHistoryItem])


def conversation_title(messages: list[Message]) -> str:
    """Title from the first user message, truncated to 40 characters."""
    first = next((m.content for m in messages if m.role == MessageRole.USER), "")
    first = " ".join(first.split())
    if not first:
        return DEFAULT_TITLE
    if len(first) > TITLE_MAX_LENGTH:
        return first[:TITLE_MAX_LENGTH].rstrip() + "..."
    return first


class ConversationStore:
    """Redis-backed persistence adapter.

    Read failures fall back to defaults and write failures are logged, so a
    Redis outage never breaks a conversation.
    """

    def __init__(self, redis: aioredis.Redis, *, profile: str = "") -> None:
        self.redis = redis
        self.profile = profile

    def _key(self, base: str) -> str:
        return f"{base}:{self.profile}" if self.profile else base

    async def _read_json(self, key: str) -> Any:
        try:
            raw = await self.redis.get(key)
        except aioredis.RedisError:
            logger.exception("Failed to read %s", key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt record under %s", key)
            return None

    async def _write_json(self, key: str, value: Any, *, ttl: int | None = None) -> bool:
        try:
            await self.redis.set(key, json.dumps(value), ex=ttl)
        except aioredis.RedisError:
            logger.exception("Failed to write %s", key)
            return False
        return True

    # --- Conversation history ---

    async def load_history(self) -> list[ConversationHistoryItem]:
        """Saved conversations, newest first."""
        data = await self._read_json(self._key(HISTORY_KEY))
        if not data:
            return []
        try:
            return _history_adapter.validate_python(data)
        except ValidationError:
            logger.warning("Discarding invalid conversation history record")
            return []

    async def save_history(self, items: list[ConversationHistoryItem]) -> bool:
        payload = _history_adapter.dump_python(items, mode="json", by_alias=True)
        return await self._write_json(self._key(HISTORY_KEY), payload)

    async def get_conversation(self, conversation_id: str) -> ConversationHistoryItem | None:
        for item in await self.load_history():
            if item.id == conversation_id:
                return item
        return None

    async def save_conversation(
        self,
        messages: list[Message],
        *,
        conversation_id: str | None = None,
    ) -> ConversationHistoryItem | None:
        """Save (or update) a conversation. Nothing is saved without user messages.

        Args:
            messages: The full message log of the conversation
            conversation_id: ID of an already-saved conversation to overwrite

        Returns:
            The saved history item, or None if there was nothing to save
        """
        if not any(m.role == MessageRole.USER for m in messages):
            return None

        history = await self.load_history()
        existing = next((h for h in history if h.id == conversation_id), None)
        if existing is not None:
            item = existing.model_copy(update={"messages": list(messages)})
            history = [item if h.id == item.id else h for h in history]
        else:
            kwargs: dict[str, Any] = {"id": conversation_id} if conversation_id else {}
            item = ConversationHistoryItem(
                title=conversation_title(messages), messages=list(messages), **kwargs
            )
            history.insert(0, item)

        await self.save_history(history)
        logger.info("Saved conversation %s (%d messages)", item.id, len(messages))
        return item

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete one saved conversation. Returns False if it did not exist."""
        history = await self.load_history()
        remaining = [h for h in history if h.id != conversation_id]
        if len(remaining) == len(history):
            return False
        await self.save_history(remaining)
        return True

    async def clear_history(self) -> None:
        try:
            await self.redis.delete(self._key(HISTORY_KEY))
        except aioredis.RedisError:
            logger.exception("Failed to clear conversation history")

    # --- Voice settings ---

    async def load_voice_settings(self) -> VoiceSettings:
        data = await self._read_json(self._key(VOICE_SETTINGS_KEY))
        if not isinstance(data, dict):
            return VoiceSettings()
        try:
            return VoiceSettings.model_validate(data)
        except ValidationError:
            logger.warning("Discarding invalid voice settings record")
            return VoiceSettings()

    async def save_voice_settings(self, voice_settings: VoiceSettings) -> bool:
        return await self._write_json(
            self._key(VOICE_SETTINGS_KEY), voice_settings.model_dump(mode="json", by_alias=True)
        )

    # --- Session memory ---

    async def load_memory(self, session_id: str) -> dict[str, Any]:
        data = await self._read_json(f"{MEMORY_KEY_PREFIX}{session_id}")
        return data if isinstance(data, dict) else {}

    async def update_memory(self, session_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge ``patch`` into the stored memory and return the result."""
        memory = await self.load_memory(session_id)
        if not patch:
            return memory
        memory.update(patch)
        await self._write_json(f"{MEMORY_KEY_PREFIX}{session_id}", memory, ttl=MEMORY_TTL_SECONDS)
        return memory
