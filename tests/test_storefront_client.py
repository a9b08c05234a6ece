"""Tests for the storefront REST client."""

import json

import httpx
import pytest

from commerce_assistant.integrations.storefront.client import StorefrontClient, StorefrontError

BASE_URL = "http://shop.test/api"


def _client(handler, **kwargs) -> StorefrontClient:
    return StorefrontClient(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


class TestSearchProducts:
    @pytest.mark.asyncio
    async def test_query_parameters_and_parsing(self) -> None:
        """Filters become query parameters and products are normalized."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "products": [
                            {
                                "id": 7,
                                "name": "Pixel 9",
                                "price": "799.00",
                                "stockQuantity": 3,
                                "categories": [{"name": "phones"}],
                                "brand": "Google",
                            },
                            {"name": "missing id"},
                        ]
                    },
                },
            )

        products = await _client(handler).search_products(
            "pixel", category="phones", max_price=800, brand="Google", limit=2
        )

        request = seen[0]
        assert request.url.path == "/api/products/search"
        assert request.url.params["query"] == "pixel"
        assert request.url.params["category"] == "phones"
        assert request.url.params["maxPrice"] == "800"
        assert request.url.params["brand"] == "Google"
        assert request.url.params["limit"] == "2"

        assert len(products) == 1
        assert products[0].product_id == 7
        assert products[0].price == 799.0
        assert products[0].categories == ["phones"]
        assert products[0].stock_status == "Only 3 left in stock!"

    @pytest.mark.asyncio
    async def test_omits_empty_filters(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": []})

        assert await _client(handler).search_products() == []
        assert set(seen[0].url.params.keys()) == {"limit"}

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        client = _client(lambda request: httpx.Response(500))

        with pytest.raises(StorefrontError, match="status 500"):
            await client.search_products("pixel")

    @pytest.mark.asyncio
    async def test_rejected_envelope_raises(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"success": False, "error": "bad query"})
        )

        with pytest.raises(StorefrontError, match="bad query"):
            await client.search_products("pixel")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StorefrontError):
            await _client(handler).search_products("pixel")


class TestGetProduct:
    @pytest.mark.asyncio
    async def test_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/products/8"
            return httpx.Response(
                200,
                json={"success": True, "data": {"product": {"id": 8, "name": "Galaxy S24"}}},
            )

        product = await _client(handler).get_product(8)

        assert product is not None
        assert product.name == "Galaxy S24"

    @pytest.mark.asyncio
    async def test_not_found_is_none(self) -> None:
        client = _client(lambda request: httpx.Response(404, json={"success": False}))
        assert await client.get_product(99) is None


class TestCart:
    @pytest.mark.asyncio
    async def test_add_item_sends_session_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": {"itemCount": 2}})

        result = await _client(handler, session_token="cart-123").add_item(7, 2)

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/cart"
        assert request.headers["X-Session-ID"] == "cart-123"
        assert json.loads(request.content) == {"productId": 7, "quantity": 2}
        assert result == {"itemCount": 2}

    @pytest.mark.asyncio
    async def test_remove_item(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        await _client(handler).remove_item("7", quantity=1)

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/api/cart/7"
        assert seen[0].url.params["quantity"] == "1"
