"""Async HTTP client for the restaurant backend REST API.

Provides :class:`BistroClient` for the promotion catalog, cart preview, order
creation and payment endpoints.  Responses are returned as typed dataclasses
from :mod:`bistro_client.models` rather than raw dicts.
"""

import logging
from typing import Any

import httpx

from bistro_client.models import (
    BundledPromotion,
    OrderResult,
    PaymentRecord,
    Promotion,
    ServerPreview,
    parse_records,
)

logger = logging.getLogger(__name__)


class BistroAPIError(RuntimeError):
    """Raised when a backend request fails at the transport or HTTP level.

    Attributes:
        status_code: HTTP status of the failed response, or ``None`` when no
            response was received (connection error, timeout).
        url: The URL that was requested.
    """

    def __init__(self, message: str, *, status_code: int | None = None, url: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class BistroClient:
    """Async HTTP client for the restaurant backend.

    Each call opens a short-lived :class:`httpx.AsyncClient`; the client object
    itself holds no connection state and is safe to share.

    Args:
        base_url: Root URL of the backend API (e.g. ``"http://localhost:8080/api"``).
        api_token: Optional bearer token sent on every request.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used to inject a mock in tests.

    Example::

        client = BistroClient("http://localhost:8080/api", api_token="abc123")
        promotions = await client.fetch_promotions_for_article(42)
        preview = await client.preview_cart({"deliveryMode": "PICKUP", "lines": [...]})
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport

        self.headers: dict[str, str] = {"Accept": "application/json"}
        if self.api_token:
            self.headers["Authorization"] = f"Bearer {self.api_token}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Endpoint path relative to ``base_url``.
            params: Optional query parameters.
            json: Optional JSON request body.

        Returns:
            The decoded JSON body, or ``None`` for an empty response.

        Raises:
            BistroAPIError: If the request fails, the backend answers with an
                error status, or the body is not valid JSON.
        """
        url = self._url(path)
        logger.debug("%s %s", method, url)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, url, params=params, json=json)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                msg = f"Backend request failed: {exc.response.status_code} for URL {exc.request.url}"
                raise BistroAPIError(msg, status_code=exc.response.status_code, url=str(exc.request.url)) from exc
            except httpx.RequestError as exc:
                msg = f"Backend connection error for URL {url}: {exc}"
                raise BistroAPIError(msg, url=url) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"Backend returned invalid JSON for URL {url}"
            raise BistroAPIError(msg, status_code=response.status_code, url=url) from exc

    async def _get_list(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        data = await self._request("GET", path, params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            msg = f"Expected a JSON list from {self._url(path)}, got {type(data).__name__}"
            raise BistroAPIError(msg, url=self._url(path))
        return data

    async def _get_object(self, method: str, path: str, *, json: Any = None) -> dict[str, Any]:
        data = await self._request(method, path, json=json)
        if not isinstance(data, dict):
            msg = f"Expected a JSON object from {self._url(path)}, got {type(data).__name__}"
            raise BistroAPIError(msg, url=self._url(path))
        return data

    async def fetch_promotions_for_article(self, article_id: int) -> list[Promotion]:
        """Fetch every promotion that can attach to an article.

        Args:
            article_id: The article to look up.

        Returns:
            Parsed promotions; malformed entries are skipped.

        Raises:
            BistroAPIError: If the request fails.
        """
        items = await self._get_list(f"promotions/article/{article_id}")
        return parse_records(Promotion.from_api, items, "promotion")

    async def fetch_applicable_promotions(self, article_id: int, branch_id: int) -> list[Promotion]:
        """Fetch promotions applicable to an article at a given branch.

        Raises:
            BistroAPIError: If the request fails.
        """
        items = await self._get_list(
            "promotions/applicable",
            params={"articleId": article_id, "branchId": branch_id},
        )
        return parse_records(Promotion.from_api, items, "promotion")

    async def fetch_current_promotions(self) -> list[Promotion]:
        """Fetch every currently valid promotion.

        Raises:
            BistroAPIError: If the request fails.
        """
        items = await self._get_list("promotions/current")
        return parse_records(Promotion.from_api, items, "promotion")

    async def fetch_bundled_promotions(self) -> list[BundledPromotion]:
        """Fetch currently valid bundled promotions with their articles.

        Raises:
            BistroAPIError: If the request fails.
        """
        items = await self._get_list("promotions/current/bundles")
        return parse_records(BundledPromotion.from_api, items, "bundled promotion")

    async def preview_cart(self, payload: dict[str, Any]) -> ServerPreview:
        """Ask the backend to price a cart.

        Args:
            payload: ``{"deliveryMode": ..., "lines": [...]}`` as built by the
                preview reconciler.

        Returns:
            The authoritative totals.

        Raises:
            BistroAPIError: If the request fails or the response cannot be
                parsed.
        """
        data = await self._get_object("POST", "cart/preview", json=payload)
        try:
            return ServerPreview.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed cart preview response: {exc}"
            raise BistroAPIError(msg, url=self._url("cart/preview")) from exc

    async def create_order(self, payload: dict[str, Any]) -> OrderResult:
        """Create an order (and optionally an online payment preference).

        Raises:
            BistroAPIError: If the request fails or the response cannot be
                parsed.
        """
        data = await self._get_object("POST", "orders", json=payload)
        try:
            return OrderResult.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed order response: {exc}"
            raise BistroAPIError(msg, url=self._url("orders")) from exc

    async def confirm_cash_payment(self, payment_id: int) -> PaymentRecord:
        """Mark a pending cash payment as received.

        Raises:
            BistroAPIError: If the request fails or the response cannot be
                parsed.
        """
        data = await self._get_object("PUT", "payments/cash/confirm", json={"paymentId": payment_id})
        try:
            return PaymentRecord.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed payment response: {exc}"
            raise BistroAPIError(msg, url=self._url("payments/cash/confirm")) from exc

    async def fetch_invoice_payments(self, invoice_id: int) -> list[PaymentRecord]:
        """Fetch every payment recorded against an invoice.

        Raises:
            BistroAPIError: If the request fails.
        """
        items = await self._get_list(f"payments/invoice/{invoice_id}")
        return parse_records(PaymentRecord.from_api, items, "payment")
