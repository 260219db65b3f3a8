"""Tests for django_bistro.cart.session.SessionCartStore."""

from decimal import Decimal

import pytest
from bistro_client import DeliveryMode
from django.contrib.sessions.backends.signed_cookies import SessionStore

from django_bistro.cart.services.cart import CartState
from django_bistro.cart.session import SessionCartStore


@pytest.mark.unit
class TestSessionCartStore:
    def test_load_empty_session(self):
        cart = SessionCartStore({}).load()

        assert cart.is_empty

    def test_default_key_from_config(self):
        assert SessionCartStore({}).key == "bistro_cart"
        assert SessionCartStore({}, key="other").key == "other"

    def test_save_and_load(self):
        session = {}
        store = SessionCartStore(session)
        cart = CartState()
        cart.add_line(10, 2, Decimal("1000"), "Pizza")
        cart.set_delivery_mode(DeliveryMode.PICKUP)

        store.save(cart)
        restored = store.load()

        assert "bistro_cart" in session
        assert restored.lines == cart.lines
        assert restored.pricing.final_total == Decimal("1800.00")

    def test_django_session_is_marked_modified(self):
        session = SessionStore()
        store = SessionCartStore(session)
        cart = CartState()
        cart.add_line(10, 1, Decimal("1000"), "Pizza")

        store.save(cart)

        assert session.modified is True
        assert store.load().item_count == 1

    def test_clear(self):
        session = {"bistro_cart": {"lines": []}}

        SessionCartStore(session).clear()
        SessionCartStore(session).clear()

        assert session == {}

    def test_unreadable_cart_is_discarded(self, caplog):
        session = {"bistro_cart": {"lines": [{"article_id": "x"}]}}

        cart = SessionCartStore(session).load()

        assert cart.is_empty
        assert "bistro_cart" not in session
        assert "Discarding unreadable cart" in caplog.text
