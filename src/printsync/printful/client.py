"""
Async read-only client for the Printful store-products API.

Only the two endpoints the catalog sync needs are wrapped:

    GET /store/products?offset=&limit=   -> paged sync-product summaries
    GET /store/products/{id}             -> one sync product + its variants

Every Printful response is wrapped in an envelope:

    {"code": 200, "result": ..., "paging": {"total": 12, "offset": 0, "limit": 100}}

Non-2xx responses raise PrintfulAPIError. Transport failures (timeouts,
connection errors) are httpx exceptions and propagate unmodified; the
orchestrator decides what is fatal.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.printful.com"
DEFAULT_PAGE_SIZE = 100


class PrintfulAPIError(RuntimeError):
    """Raised when Printful answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Printful API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class CatalogPage:
    """One page of sync-product summaries."""

    items: List[Dict[str, Any]]
    total: Optional[int] = None


@dataclass
class ProductDetail:
    """A sync product with its full variant list."""

    product: Dict[str, Any]
    variants: List[Dict[str, Any]] = field(default_factory=list)


class PrintfulClient:
    """
    Thin async wrapper over the Printful REST API.

    Use as an async context manager, or call connect()/close() explicitly:

        async with PrintfulClient(api_key="...") as client:
            summaries = await client.fetch_all_products()
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        store_id: Optional[str] = None,
        timeout: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_delay: float = 0.1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Printful private token (sent as a Bearer token).
            base_url: API root, overridable for tests and proxies.
            store_id: Sent as X-PF-Store-Id for account-level tokens.
            timeout: Per-request timeout in seconds.
            page_size: Items requested per listing page.
            page_delay: Seconds to sleep between listing pages (rate limit).
            transport: Optional httpx transport (httpx.MockTransport in tests).
        """
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._store_id = store_id
        self._timeout = timeout
        self._transport = transport
        self.page_size = page_size
        self.page_delay = page_delay
        self._http: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings) -> "PrintfulClient":
        return cls(
            api_key=settings.printful_api_key,
            base_url=settings.printful_base_url,
            store_id=settings.printful_store_id,
            timeout=settings.printful_timeout_seconds,
            page_size=settings.printful_page_size,
            page_delay=settings.printful_page_delay_seconds,
        )

    async def __aenter__(self) -> "PrintfulClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is not None:
            return
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        if self._store_id:
            headers["X-PF-Store-Id"] = str(self._store_id)
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Printful endpoint and return the decoded envelope."""
        if self._http is None:
            await self.connect()
        response = await self._http.get(path, params=params)
        if response.status_code >= 400:
            raise PrintfulAPIError(response.status_code, _error_message(response))
        return response.json()

    async def list_products(self, offset: int = 0, limit: Optional[int] = None) -> CatalogPage:
        """Fetch one page of sync-product summaries."""
        limit = limit or self.page_size
        body = await self._get("/store/products", params={"offset": offset, "limit": limit})
        items = body.get("result") or []
        total = (body.get("paging") or {}).get("total")
        return CatalogPage(items=list(items), total=total)

    async def get_product(self, remote_id: str) -> ProductDetail:
        """Fetch one sync product with its variants."""
        body = await self._get(f"/store/products/{remote_id}")
        result = body.get("result") or {}
        return ProductDetail(
            product=result.get("sync_product") or {},
            variants=list(result.get("sync_variants") or []),
        )

    async def fetch_all_products(self) -> List[Dict[str, Any]]:
        """
        Page through the whole catalog until an empty page comes back.

        Sleeps `page_delay` seconds between pages. Any error aborts the
        listing; partial results are never returned.
        """
        products: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.list_products(offset=offset, limit=self.page_size)
            if not page.items:
                break
            products.extend(page.items)
            logger.debug(
                "Fetched %d products at offset %d (total reported: %s)",
                len(page.items), offset, page.total,
            )
            # Printful caps limit at 100; advance by what actually came back
            offset += len(page.items)
            if self.page_delay:
                await asyncio.sleep(self.page_delay)
        logger.info("Fetched %d products from Printful", len(products))
        return products


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable reason out of a Printful error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(body, dict) and isinstance(body.get("result"), str):
        return body["result"]
    return response.text
