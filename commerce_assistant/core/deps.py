"""Dependency injection for FastAPI routes."""

import logging
import time
from collections import OrderedDict
from collections.abc import AsyncGenerator, Callable
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, status

from commerce_assistant.core.config import settings
from commerce_assistant.integrations.storefront.client import StorefrontClient
from commerce_assistant.schemas.assistant import TurnStatus
from commerce_assistant.services.chat_service import ChatService
from commerce_assistant.services.gateway_service import GenerationGateway
from commerce_assistant.services.history_service import ConversationStore

logger = logging.getLogger(__name__)

# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


RedisDep = Annotated[aioredis.Redis, Depends(get_redis)]


async def get_store(redis: RedisDep) -> ConversationStore:
    return ConversationStore(redis)


_gateway: GenerationGateway | None = None


def get_gateway() -> GenerationGateway:
    """Process-wide generation gateway (the completion client is reused)."""
    global _gateway  # noqa: PLW0603
    if _gateway is None:
        _gateway = GenerationGateway.from_settings()
    return _gateway


def get_storefront() -> StorefrontClient:
    return StorefrontClient()


class SessionRegistry:
    """Live assistant sessions of this process, keyed by session ID.

    Every ``get`` marks a session as used. Adding a session first closes the
    ones idle for longer than ``idle_ttl`` seconds, then the least recently
    used ones while more than ``max_sessions`` are live. A session with a
    turn awaiting its response is never evicted.
    """

    def __init__(
        self,
        *,
        idle_ttl: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.session_idle_ttl
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_sessions
        self._clock = clock
        # Least recently used first
        self._sessions: OrderedDict[str, ChatService] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def get(self, session_id: str) -> ChatService | None:
        service = self._sessions.get(session_id)
        if service is not None:
            self._touch(session_id)
        return service

    async def add(self, service: ChatService) -> ChatService:
        await self.evict_idle()
        self._sessions[service.session_id] = service
        self._touch(service.session_id)

        for session_id in list(self._sessions):
            if len(self._sessions) <= self.max_sessions:
                break
            if session_id == service.session_id or self._busy(session_id):
                continue
            logger.info("Session limit reached, closing %s", session_id)
            await self.remove(session_id)
        return service

    async def evict_idle(self) -> int:
        """Close sessions unused for longer than ``idle_ttl``.

        Returns:
            Number of sessions closed
        """
        cutoff = self._clock() - self.idle_ttl
        idle = [
            session_id
            for session_id, seen in self._last_seen.items()
            if seen < cutoff and not self._busy(session_id)
        ]
        for session_id in idle:
            await self.remove(session_id)
        if idle:
            logger.info("Closed %d idle sessions", len(idle))
        return len(idle)

    async def remove(self, session_id: str) -> bool:
        service = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if service is None:
            return False
        await service.close()
        return True

    def _touch(self, session_id: str) -> None:
        self._last_seen[session_id] = self._clock()
        self._sessions.move_to_end(session_id)

    def _busy(self, session_id: str) -> bool:
        return self._sessions[session_id].session.status == TurnStatus.AWAITING_RESPONSE

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.remove(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


session_registry = SessionRegistry()


def get_session_registry() -> SessionRegistry:
    return session_registry


StoreDep = Annotated[ConversationStore, Depends(get_store)]
GatewayDep = Annotated[GenerationGateway, Depends(get_gateway)]
StorefrontDep = Annotated[StorefrontClient, Depends(get_storefront)]
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]


async def get_chat_session(session_id: str, registry: RegistryDep) -> ChatService:
    """Resolve a live session from the path, or 404."""
    service = registry.get(session_id)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return service


ChatSessionDep = Annotated[ChatService, Depends(get_chat_session)]


__all__ = [
    "ChatSessionDep",
    "GatewayDep",
    "RedisDep",
    "RegistryDep",
    "SessionRegistry",
    "StoreDep",
    "StorefrontDep",
    "get_chat_session",
    "get_gateway",
    "get_redis",
    "get_session_registry",
    "get_store",
    "get_storefront",
    "session_registry",
]
