"""End-to-end cart flow against a mocked backend (httpx.MockTransport)."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest
from bistro_client import BistroClient, DeliveryMode, PaymentMethod

from django_bistro.cart.services.cart import CartState
from django_bistro.cart.services.checkout import CheckoutError, CheckoutState, CheckoutSubmitter
from django_bistro.cart.services.preview import PreviewReconciler, TotalsSource
from django_bistro.cart.services.promotions import PromotionCatalog

PROMOTION = {
    "id": 1,
    "name": "Pizza Tuesday",
    "discountKind": "PERCENTAGE",
    "discountValue": 15,
    "minimumQuantity": 1,
    "isCurrentlyValid": True,
    "applicableArticleIds": [10],
}


class FakeBackend:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self, *, preview_status=200, order_response=None):
        self.preview_status = preview_status
        self.order_response = order_response or {"success": True, "order": {"id": 501}}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/promotions/article/10":
            return httpx.Response(200, json=[PROMOTION])
        if path == "/api/cart/preview":
            if self.preview_status != 200:
                return httpx.Response(self.preview_status, json={"error": "unavailable"})
            body = json.loads(request.content)
            quantity = body["lines"][0]["quantity"]
            subtotal = 1000 * quantity
            discount = subtotal * 15 // 100
            return httpx.Response(
                200,
                json={
                    "originalSubtotal": subtotal,
                    "totalDiscount": discount,
                    "discountedSubtotal": subtotal - discount,
                    "deliveryFee": 200,
                    "finalTotal": subtotal - discount + 200,
                    "deliveryMode": body["deliveryMode"],
                    "promotionsSummary": "server summary",
                },
            )
        if path == "/api/orders":
            return httpx.Response(200, json=self.order_response)
        return httpx.Response(404)

    def paths(self):
        return [request.url.path for request in self.requests]


def _client(backend):
    return BistroClient("http://backend.test/api", transport=httpx.MockTransport(backend))


@pytest.mark.integration
def test_promotion_preview_and_cash_checkout():
    backend = FakeBackend()
    client = _client(backend)
    cart = CartState()
    reconciler = PreviewReconciler(cart, client, debounce_seconds=0.01)
    catalog = PromotionCatalog(client)

    async def flow():
        cart.add_line(10, 2, Decimal("1000"), "Pizza")
        await catalog.load_into(cart, 10)
        cart.select_promotion(10, 1)
        assert cart.pricing.final_total == Decimal("1900.00")

        totals = await reconciler.flush()
        assert totals.source == TotalsSource.SERVER
        assert totals.final_total == Decimal("1900")

        submitter = CheckoutSubmitter(cart, client, client_id=7, reconciler=reconciler)
        result = await submitter.submit(PaymentMethod.CASH, delivery_address_id=3)
        await reconciler.flush()
        return result

    result = asyncio.run(flow())

    assert result.state == CheckoutState.CASH_PENDING_CONFIRMATION
    assert result.order_id == 501
    assert cart.is_empty
    previews = [r for r in backend.requests if r.url.path == "/api/cart/preview"]
    assert json.loads(previews[-1].content)["lines"] == [{"articleId": 10, "quantity": 2, "selectedPromotionId": 1}]
    assert backend.paths()[-1] == "/api/orders"
    order_body = json.loads(backend.requests[-1].content)
    assert order_body["lines"] == [{"articleId": 10, "quantity": 2, "selectedPromotionId": 1}]
    assert order_body["deliveryAddressId"] == 3


@pytest.mark.integration
def test_preview_outage_keeps_local_estimate():
    backend = FakeBackend(preview_status=503)
    client = _client(backend)
    cart = CartState()
    reconciler = PreviewReconciler(cart, client, debounce_seconds=0)

    async def flow():
        cart.add_line(10, 3, Decimal("1000"), "Pizza")
        cart.set_delivery_mode(DeliveryMode.PICKUP)
        return await reconciler.flush()

    totals = asyncio.run(flow())

    assert totals.confirmed is False
    assert totals.final_total == Decimal("2700.00")
    assert "503" in totals.error


@pytest.mark.integration
def test_malformed_order_response_keeps_cart():
    backend = FakeBackend(order_response={"success": True, "order": "x"})
    client = _client(backend)
    cart = CartState()
    cart.add_line(10, 1, Decimal("1000"), "Pizza")
    cart.set_delivery_mode(DeliveryMode.PICKUP)
    submitter = CheckoutSubmitter(cart, client, client_id=7)

    with pytest.raises(CheckoutError, match="Malformed order response"):
        asyncio.run(submitter.submit(PaymentMethod.CASH))

    assert cart.get_line(10).quantity == 1
    assert submitter.state == CheckoutState.DRAFT
    assert submitter.in_flight is False
