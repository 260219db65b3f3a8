"""Tests for bistro_client.client -- BistroClient HTTP layer."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from bistro_client.client import BistroAPIError, BistroClient
from bistro_client.models import DeliveryMode, PaymentStatus

PROMOTION = {
    "id": 1,
    "name": "Pizza Tuesday",
    "discountKind": "PERCENTAGE",
    "discountValue": "15",
    "isCurrentlyValid": True,
    "applicableArticleIds": [10],
}

# -- Helpers ------------------------------------------------------------------


def _client(handler, **kwargs):
    return BistroClient("http://backend.test/api/", transport=httpx.MockTransport(handler), **kwargs)


def _responding(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


# ---------------------------------------------------------------------------
# BistroClient.__init__()
# ---------------------------------------------------------------------------


class TestBistroClientInit:
    @pytest.mark.unit
    def test_base_url_gets_trailing_slash(self):
        assert BistroClient("http://backend.test/api").base_url == "http://backend.test/api/"
        assert BistroClient("http://backend.test/api///").base_url == "http://backend.test/api/"

    @pytest.mark.unit
    def test_no_token_no_auth_header(self):
        client = BistroClient("http://backend.test/api")
        assert "Authorization" not in client.headers
        assert client.headers["Accept"] == "application/json"

    @pytest.mark.unit
    def test_token_sets_bearer_header(self):
        client = BistroClient("http://backend.test/api", api_token="abc123")
        assert client.headers["Authorization"] == "Bearer abc123"


# ---------------------------------------------------------------------------
# Promotion endpoints
# ---------------------------------------------------------------------------


class TestPromotionEndpoints:
    @pytest.mark.unit
    def test_fetch_promotions_for_article(self):
        seen = []
        client = _client(_responding([PROMOTION], seen=seen), api_token="tok")

        promotions = asyncio.run(client.fetch_promotions_for_article(10))

        assert [p.id for p in promotions] == [1]
        assert promotions[0].discount_value == Decimal("15")
        assert str(seen[0].url) == "http://backend.test/api/promotions/article/10"
        assert seen[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.unit
    def test_malformed_entries_are_skipped(self, caplog):
        broken = {**PROMOTION, "id": 2, "discountValue": "lots"}
        client = _client(_responding([PROMOTION, broken, {"name": "no id"}]))

        promotions = asyncio.run(client.fetch_promotions_for_article(10))

        assert [p.id for p in promotions] == [1]
        assert caplog.text.count("Skipping malformed promotion") == 2

    @pytest.mark.unit
    def test_fetch_applicable_promotions_sends_query(self):
        seen = []
        client = _client(_responding([PROMOTION], seen=seen))

        asyncio.run(client.fetch_applicable_promotions(10, 3))

        assert seen[0].url.path == "/api/promotions/applicable"
        assert seen[0].url.params["articleId"] == "10"
        assert seen[0].url.params["branchId"] == "3"

    @pytest.mark.unit
    def test_fetch_current_promotions(self):
        seen = []
        client = _client(_responding([PROMOTION], seen=seen))

        promotions = asyncio.run(client.fetch_current_promotions())

        assert len(promotions) == 1
        assert seen[0].url.path == "/api/promotions/current"

    @pytest.mark.unit
    def test_fetch_bundled_promotions(self):
        bundle = {
            "id": 5,
            "name": "Combo",
            "discountKind": "PERCENTAGE",
            "discountValue": 20,
            "articles": [
                {"articleId": 10, "name": "Pizza", "unitPrice": 1200},
                {"articleId": 11, "name": "Soda", "unitPrice": 800},
            ],
        }
        client = _client(_responding([bundle]))

        bundles = asyncio.run(client.fetch_bundled_promotions())

        assert bundles[0].base_price == Decimal("2000")

    @pytest.mark.unit
    def test_empty_body_is_empty_list(self):
        client = _client(lambda request: httpx.Response(204))

        assert asyncio.run(client.fetch_current_promotions()) == []

    @pytest.mark.unit
    def test_non_list_body_raises(self):
        client = _client(_responding({"results": []}))

        with pytest.raises(BistroAPIError, match="Expected a JSON list"):
            asyncio.run(client.fetch_current_promotions())


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.unit
    def test_http_error_status(self):
        client = _client(_responding({"error": "boom"}, status_code=500))

        with pytest.raises(BistroAPIError, match="500") as exc_info:
            asyncio.run(client.fetch_promotions_for_article(10))

        assert exc_info.value.status_code == 500
        assert exc_info.value.url == "http://backend.test/api/promotions/article/10"
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.unit
    def test_connection_error(self):
        def handler(request):
            msg = "connection refused"
            raise httpx.ConnectError(msg, request=request)

        client = _client(handler)

        with pytest.raises(BistroAPIError, match="connection error") as exc_info:
            asyncio.run(client.fetch_current_promotions())

        assert exc_info.value.status_code is None

    @pytest.mark.unit
    def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(BistroAPIError, match="invalid JSON"):
            asyncio.run(client.fetch_current_promotions())

    @pytest.mark.unit
    def test_api_error_is_runtime_error(self):
        assert issubclass(BistroAPIError, RuntimeError)


# ---------------------------------------------------------------------------
# Cart preview, orders and payments
# ---------------------------------------------------------------------------


class TestCartAndOrders:
    @pytest.mark.unit
    def test_preview_cart(self):
        seen = []
        payload = {
            "originalSubtotal": 2000,
            "totalDiscount": 300,
            "discountedSubtotal": 1700,
            "deliveryFee": 200,
            "finalTotal": 1900,
            "deliveryMode": "DELIVERY",
            "promotionsSummary": "1 promotion",
            "lines": [
                {
                    "articleId": 10,
                    "name": "Pizza",
                    "quantity": 2,
                    "unitPrice": 1000,
                    "finalUnitPrice": 850,
                    "subtotal": 2000,
                    "finalSubtotal": 1700,
                    "discount": 300,
                    "hasPromotion": True,
                    "promotionName": "Pizza Tuesday",
                }
            ],
        }
        client = _client(_responding(payload, seen=seen))
        body = {"deliveryMode": "DELIVERY", "lines": [{"articleId": 10, "quantity": 2}]}

        preview = asyncio.run(client.preview_cart(body))

        assert preview.final_total == Decimal("1900")
        assert preview.delivery_mode == DeliveryMode.DELIVERY
        assert preview.lines[0].final_unit_price == Decimal("850")
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == body

    @pytest.mark.unit
    def test_preview_cart_malformed_response(self):
        client = _client(_responding({"totalDiscount": 0}))

        with pytest.raises(BistroAPIError, match="Malformed cart preview"):
            asyncio.run(client.preview_cart({"deliveryMode": "PICKUP", "lines": []}))

    @pytest.mark.unit
    def test_create_order(self):
        seen = []
        payload = {
            "success": True,
            "order": {"id": 77},
            "paymentInfo": {"preferenceCreated": True, "paymentLink": "https://pay/77"},
        }
        client = _client(_responding(payload, seen=seen))

        result = asyncio.run(client.create_order({"clientId": 1}))

        assert result.success is True
        assert result.order_id == 77
        assert result.payment_info.link() == "https://pay/77"
        assert seen[0].url.path == "/api/orders"

    @pytest.mark.unit
    def test_create_order_malformed_response(self):
        client = _client(_responding({"success": True, "order": "x"}))

        with pytest.raises(BistroAPIError, match="Malformed order") as exc_info:
            asyncio.run(client.create_order({"clientId": 1}))

        assert exc_info.value.url == "http://backend.test/api/orders"

    @pytest.mark.unit
    def test_confirm_cash_payment(self):
        seen = []
        client = _client(_responding({"id": 9, "status": "APPROVED", "amount": 1800, "method": "CASH"}, seen=seen))

        payment = asyncio.run(client.confirm_cash_payment(9))

        assert payment.status == PaymentStatus.APPROVED
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/api/payments/cash/confirm"
        assert json.loads(seen[0].content) == {"paymentId": 9}

    @pytest.mark.unit
    def test_confirm_cash_payment_malformed(self):
        client = _client(_responding({"id": 9, "status": "LOST"}))

        with pytest.raises(BistroAPIError, match="Malformed payment"):
            asyncio.run(client.confirm_cash_payment(9))

    @pytest.mark.unit
    def test_fetch_invoice_payments(self):
        seen = []
        client = _client(
            _responding(
                [{"id": 1, "status": "PENDING", "amount": "100.50", "method": "CASH", "invoiceId": 4}],
                seen=seen,
            )
        )

        payments = asyncio.run(client.fetch_invoice_payments(4))

        assert payments[0].amount == Decimal("100.50")
        assert payments[0].invoice_id == 4
        assert seen[0].url.path == "/api/payments/invoice/4"
