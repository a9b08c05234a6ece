"""Storefront REST API client (catalog search and cart) using httpx."""

import logging
from typing import Any

import httpx

from commerce_assistant.core.config import settings
from commerce_assistant.schemas.assistant import ProductSummary

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Raised when the storefront API is unreachable or answers with an error."""


class StorefrontClient:
    """Async client for the storefront catalog and cart endpoints.

    Responses use the storefront envelope ``{"success": bool, "data": ...}``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        session_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.storefront_api_url).rstrip("/")
        self.timeout = timeout or settings.storefront_timeout
        self.headers = {"Content-Type": "application/json"}
        if session_token:
            self.headers["X-Session-ID"] = session_token
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and unwrap the envelope. Returns the ``data`` member."""
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                body = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise StorefrontError(
                f"{method} {path} failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise StorefrontError(f"{method} {path} failed: {e}") from e

        if isinstance(body, dict) and body.get("success") is False:
            raise StorefrontError(f"{method} {path} rejected: {body.get('error', 'unknown error')}")
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # --- Catalog ---

    async def search_products(
        self,
        query: str | None = None,
        *,
        category: str | None = None,
        max_price: float | None = None,
        brand: str | None = None,
        limit: int | None = None,
    ) -> list[ProductSummary]:
        """Search the catalog by free text, category, budget and brand."""
        params: dict[str, Any] = {"limit": limit or settings.candidate_limit}
        if query:
            params["query"] = query
        if category:
            params["category"] = category
        if max_price is not None:
            params["maxPrice"] = max_price
        if brand:
            params["brand"] = brand

        data = await self._request("GET", "/products/search", params=params)
        raw_products = data.get("products", []) if isinstance(data, dict) else data
        products: list[ProductSummary] = []
        for raw in raw_products or []:
            try:
                products.append(ProductSummary.from_storefront(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed product payload: %r", raw)
        return products

    async def get_product(self, product_id: int | str) -> ProductSummary | None:
        """Fetch one product. Returns None when the storefront does not know it."""
        try:
            data = await self._request("GET", f"/products/{product_id}")
        except StorefrontError as e:
            if isinstance(e.__cause__, httpx.HTTPStatusError) and (
                e.__cause__.response.status_code == 404
            ):
                return None
            raise
        raw = data.get("product", data) if isinstance(data, dict) else None
        if not raw:
            return None
        return ProductSummary.from_storefront(raw)

    # --- Cart ---

    async def add_item(self, product_id: int | str, quantity: int = 1) -> dict[str, Any]:
        """Add a product to the cart."""
        data = await self._request(
            "POST", "/cart", json={"productId": product_id, "quantity": quantity}
        )
        return data if isinstance(data, dict) else {}

    async def remove_item(self, product_id: int | str, quantity: int | None = None) -> None:
        """Remove a product (or ``quantity`` units of it) from the cart."""
        params = {"quantity": quantity} if quantity else None
        await self._request("DELETE", f"/cart/{product_id}", params=params)
