"""Pytest configuration and fixtures for the commerce assistant test suite.

Provides:
- Mock Redis (fakeredis)
- Disabled rate limiting
- A fake storefront (catalog + cart) recording every call
- A scripted completion client
- Fake voice platform primitives
- App clients with dependency overrides
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from langchain_core.messages import AIMessage

from commerce_assistant.core.deps import (
    get_gateway,
    get_redis,
    get_storefront,
    session_registry,
)
from commerce_assistant.core.rate_limit import limiter
from commerce_assistant.main import app
from commerce_assistant.schemas.assistant import ProductSummary
from commerce_assistant.services.gateway_service import GenerationGateway
from commerce_assistant.services.history_service import ConversationStore
from commerce_assistant.services.voice.platform import Utterance, Voice

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def conversation_store(fake_redis: fakeredis.aioredis.FakeRedis) -> ConversationStore:
    return ConversationStore(fake_redis)


# ---------------------------------------------------------------------------
# Products & storefront
# ---------------------------------------------------------------------------


@pytest.fixture
def product_factory() -> Callable[..., ProductSummary]:
    """Factory for catalog product summaries."""

    def _create(
        product_id: int | str = 1,
        name: str = "Test Product",
        price: float | None = 99.99,
        in_stock: bool = True,
        stock_quantity: int | None = 10,
        categories: list[str] | None = None,
        **kwargs: Any,
    ) -> ProductSummary:
        return ProductSummary(
            product_id=product_id,
            name=name,
            price=price,
            in_stock=in_stock,
            stock_quantity=stock_quantity,
            categories=categories if categories is not None else ["phones"],
            **kwargs,
        )

    return _create


class FakeStorefront:
    """In-memory catalog and cart recording calls in order."""

    def __init__(self, products: list[ProductSummary] | None = None) -> None:
        self.products = list(products or [])
        self.calls: list[tuple[str, Any]] = []
        self.cart: dict[str, int] = {}
        self.fail_search = False
        self.fail_cart = False

    async def search_products(
        self,
        query: str | None = None,
        *,
        category: str | None = None,
        max_price: float | None = None,
        brand: str | None = None,
        limit: int | None = None,
    ) -> list[ProductSummary]:
        self.calls.append(
            (
                "search",
                {"query": query, "category": category, "max_price": max_price, "brand": brand},
            )
        )
        if self.fail_search:
            raise RuntimeError("catalog down")
        return self.products[: limit or len(self.products)]

    async def get_product(self, product_id: int | str) -> ProductSummary | None:
        self.calls.append(("get", product_id))
        return next((p for p in self.products if str(p.product_id) == str(product_id)), None)

    async def add_item(self, product_id: int | str, quantity: int = 1) -> dict[str, Any]:
        self.calls.append(("add", (product_id, quantity)))
        if self.fail_cart:
            raise RuntimeError("cart down")
        key = str(product_id)
        self.cart[key] = self.cart.get(key, 0) + quantity
        return {"items": dict(self.cart)}

    async def remove_item(self, product_id: int | str, quantity: int | None = None) -> None:
        self.calls.append(("remove", (product_id, quantity)))
        if self.fail_cart:
            raise RuntimeError("cart down")
        self.cart.pop(str(product_id), None)


@pytest.fixture
def storefront(product_factory: Callable[..., ProductSummary]) -> FakeStorefront:
    return FakeStorefront(
        [
            product_factory(product_id=7, name="Pixel 9", price=799.0),
            product_factory(product_id=8, name="Galaxy S24", price=899.0),
        ]
    )


# ---------------------------------------------------------------------------
# Completion client
# ---------------------------------------------------------------------------


def make_llm(content: str | Exception) -> MagicMock:
    """Completion client mock whose ``ainvoke`` answers ``content`` (or raises it)."""
    llm = MagicMock()
    if isinstance(content, Exception):
        llm.ainvoke = AsyncMock(side_effect=content)
    else:
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=content))
    return llm


@pytest.fixture
def llm_factory() -> Callable[[str | Exception], MagicMock]:
    return make_llm


@pytest.fixture
def offline_gateway() -> GenerationGateway:
    """Gateway without a completion client (fallback replies only)."""
    return GenerationGateway(llm=None)


# ---------------------------------------------------------------------------
# Voice platform fakes
# ---------------------------------------------------------------------------


class FakeCapture:
    def __init__(self) -> None:
        self.starts = 0
        self.aborts = 0
        self.fail_start = False

    def start(self) -> None:
        if self.fail_start:
            raise RuntimeError("recognition already started")
        self.starts += 1

    def abort(self) -> None:
        self.aborts += 1


class FakeSynthesizer:
    def __init__(self, voices: list[Voice] | None = None) -> None:
        self._voices = voices if voices is not None else [
            Voice(id="fr-1", name="Amelie", lang="fr-FR"),
            Voice(id="en-1", name="Daniel", lang="en-GB"),
        ]
        self.spoken: list[Utterance] = []
        self.cancels = 0

    def voices(self) -> list[Voice]:
        return list(self._voices)

    def speak(self, utterance: Utterance) -> None:
        self.spoken.append(utterance)

    def cancel(self) -> None:
        self.cancels += 1


class FakeAnalyser:
    def __init__(self, data: list[int] | None = None, ready: bool = True) -> None:
        self.data = data if data is not None else [255] * 40
        self.ready = ready
        self.initialize_calls = 0
        self.closed = False

    async def initialize(self) -> bool:
        self.initialize_calls += 1
        await asyncio.sleep(0)
        return self.ready

    def frequency_data(self) -> list[int]:
        return list(self.data)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def analyser() -> FakeAnalyser:
    return FakeAnalyser()


# ---------------------------------------------------------------------------
# App client (overrides Redis, gateway and storefront)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    storefront: FakeStorefront,
    offline_gateway: GenerationGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with Redis, gateway and storefront overridden."""

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_gateway] = lambda: offline_gateway
    app.dependency_overrides[get_storefront] = lambda: storefront

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    await session_registry.close_all()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
