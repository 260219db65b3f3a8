"""Session persistence for :class:`~django_bistro.cart.services.cart.CartState`.

The cart is stored as plain JSON-compatible data under one key of a Django
session (or any mutable mapping), so it survives between requests without
any module-level state.
"""

import logging
from collections.abc import MutableMapping
from decimal import InvalidOperation
from typing import Any

from django_bistro.cart.services.cart import CartState
from django_bistro.settings import get_config

logger = logging.getLogger(__name__)


class SessionCartStore:
    """Load and save a cart in a session.

    Args:
        session: ``request.session`` or any mutable mapping.
        key: Session key; defaults to the configured ``session_key``.
    """

    def __init__(self, session: MutableMapping[str, Any], key: str | None = None) -> None:
        self.session = session
        self.key = key or get_config().session_key

    def load(self, **kwargs: Any) -> CartState:
        """Return the stored cart, or a new empty cart.

        Stored data that can no longer be parsed is discarded and logged.
        Keyword arguments are passed to the ``CartState`` constructor.
        """
        data = self.session.get(self.key)
        if not data:
            return CartState(**kwargs)
        try:
            return CartState.from_dict(data, **kwargs)
        except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as exc:
            logger.warning("Discarding unreadable cart in session key %r: %s", self.key, exc)
            self.clear()
            return CartState(**kwargs)

    def save(self, cart: CartState) -> None:
        self.session[self.key] = cart.to_dict()
        _mark_modified(self.session)

    def clear(self) -> None:
        if self.key in self.session:
            del self.session[self.key]
            _mark_modified(self.session)


def _mark_modified(session: MutableMapping[str, Any]) -> None:
    if hasattr(session, "modified"):
        session.modified = True
