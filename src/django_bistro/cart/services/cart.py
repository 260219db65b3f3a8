"""Cart state for restaurant orders.

Owns the cart lines, the delivery context and the single optional bundled
promotion, and keeps a :class:`~django_bistro.cart.services.pricing.PricingResult`
that is recomputed synchronously on every mutation.  Subscribers are notified
after each recomputation; the preview reconciler uses this to schedule its
debounced server refresh.

Business rule violations raise :class:`django.core.exceptions.ValidationError`
and leave the cart untouched.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any

from bistro_client.models import BundledPromotion, DeliveryMode, Promotion
from django.core.exceptions import ValidationError

from django_bistro.cart.services.pricing import (
    CartLine,
    DeliveryContext,
    PricingResult,
    check_promotion_applicable,
    compute_totals,
)
from django_bistro.settings import get_config

logger = logging.getLogger(__name__)

CartListener = Callable[["CartState"], None]


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """Immutable view of the cart at one revision."""

    revision: int
    lines: tuple[CartLine, ...]
    delivery: DeliveryContext
    bundle: BundledPromotion | None
    pricing: PricingResult

    @property
    def is_empty(self) -> bool:
        return not self.lines


class CartState:
    """Canonical client-side cart.

    Args:
        delivery_mode: Initial delivery mode; also the mode restored by
            :meth:`clear`.
        delivery_fee: Fee charged for delivery orders. Defaults to the
            configured ``pricing.delivery_fee``.
        take_away_percentage: Pickup discount percentage. Defaults to the
            configured ``pricing.take_away_discount_percent``.
        currency_symbol: Symbol used in the pricing summary. Defaults to the
            configured ``pricing.currency_symbol``.
    """

    def __init__(
        self,
        *,
        delivery_mode: DeliveryMode = DeliveryMode.DELIVERY,
        delivery_fee: Decimal | None = None,
        take_away_percentage: Decimal | None = None,
        currency_symbol: str | None = None,
    ) -> None:
        pricing_config = get_config().pricing
        self._default_mode = DeliveryMode(delivery_mode)
        self._delivery_fee = pricing_config.delivery_fee if delivery_fee is None else Decimal(delivery_fee)
        self._take_away_percentage = (
            pricing_config.take_away_discount_percent if take_away_percentage is None else Decimal(take_away_percentage)
        )
        self._currency_symbol = pricing_config.currency_symbol if currency_symbol is None else currency_symbol

        self._lines: dict[int, CartLine] = {}
        self._promotions: dict[int, tuple[Promotion, ...]] = {}
        self._delivery = DeliveryContext(mode=self._default_mode, delivery_fee=self._delivery_fee)
        self._bundle: BundledPromotion | None = None
        self._revision = 0
        self._listeners: list[CartListener] = []
        self._pricing = self._compute()

    # -- Read side ---------------------------------------------------------

    @property
    def lines(self) -> tuple[CartLine, ...]:
        """Copies of the cart lines, in insertion order."""
        return tuple(replace(line) for line in self._lines.values())

    def get_line(self, article_id: int) -> CartLine | None:
        line = self._lines.get(article_id)
        return replace(line) if line is not None else None

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self._lines.values())

    @property
    def delivery(self) -> DeliveryContext:
        return self._delivery

    @property
    def bundle(self) -> BundledPromotion | None:
        return self._bundle

    @property
    def revision(self) -> int:
        """Counter bumped by every mutation; identifies the cart content."""
        return self._revision

    @property
    def pricing(self) -> PricingResult:
        """Locally computed totals for the current revision."""
        return self._pricing

    def available_promotions(self, article_id: int) -> tuple[Promotion, ...]:
        """The promotion snapshot stored for an article."""
        return self._promotions.get(article_id, ())

    def eligible_promotions(self, article_id: int) -> list[Promotion]:
        """Promotions that could be selected for the article's line right now."""
        line = self._lines.get(article_id)
        if line is None:
            return []
        return [p for p in self._promotions.get(article_id, ()) if p.is_eligible(article_id, line.quantity)]

    def snapshot(self) -> CartSnapshot:
        """Return an immutable copy of the cart at the current revision."""
        return CartSnapshot(
            revision=self._revision,
            lines=self.lines,
            delivery=self._delivery,
            bundle=self._bundle,
            pricing=self._pricing,
        )

    # -- Mutations ---------------------------------------------------------

    def add_line(
        self,
        article_id: int,
        quantity: int,
        unit_price: Decimal | int | str,
        name: str,
        notes: str = "",
    ) -> CartLine:
        """Add an article, merging into an existing line for the same article.

        Args:
            article_id: The article to add.
            quantity: Units to add (must be >= 1).
            unit_price: Listed price of one unit.
            name: Display name of the article.
            notes: Optional preparation notes for a new line.

        Returns:
            A copy of the created or updated line.

        Raises:
            ValidationError: If the quantity or the price is invalid.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        price = _parse_price(unit_price)

        line = self._lines.get(article_id)
        if line is not None:
            line.quantity += quantity
        else:
            line = CartLine(article_id=article_id, name=name, unit_price=price, quantity=quantity, notes=notes)
            self._lines[article_id] = line
        self._changed()
        return replace(line)

    def remove_line(self, article_id: int) -> None:
        """Remove an article's line.

        Raises:
            ValidationError: If the article is not in the cart.
        """
        self._require_line(article_id)
        del self._lines[article_id]
        self._promotions.pop(article_id, None)
        self._changed()

    def set_quantity(self, article_id: int, quantity: int) -> CartLine | None:
        """Set a line's quantity; zero or less removes the line.

        Returns:
            A copy of the updated line, or ``None`` if it was removed.

        Raises:
            ValidationError: If the article is not in the cart or the
                quantity is not an integer.
        """
        line = self._require_line(article_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be at least 1.")
        if quantity <= 0:
            self.remove_line(article_id)
            return None
        if line.quantity == quantity:
            return replace(line)
        line.quantity = quantity
        self._changed()
        return replace(line)

    def increment(self, article_id: int) -> CartLine | None:
        line = self._require_line(article_id)
        return self.set_quantity(article_id, line.quantity + 1)

    def decrement(self, article_id: int) -> CartLine | None:
        line = self._require_line(article_id)
        return self.set_quantity(article_id, line.quantity - 1)

    def set_notes(self, article_id: int, notes: str) -> None:
        line = self._require_line(article_id)
        line.notes = notes
        self._changed()

    def set_available_promotions(self, article_id: int, promotions: Iterable[Promotion]) -> None:
        """Store the promotion snapshot fetched for an article.

        Replaces any previous snapshot.  A line's existing selection is kept;
        if it is missing from the new snapshot it simply stops discounting.
        """
        self._promotions[article_id] = tuple(promotions)
        self._changed()

    def select_promotion(self, article_id: int, promotion_id: int | None) -> None:
        """Select or clear the promotion for an article's line.

        Raises:
            ValidationError: If the line does not exist, the promotion is not
                in the article's snapshot, or it is not eligible for the
                line.  The cart is left untouched.
        """
        line = self._require_line(article_id)
        if promotion_id is None:
            if line.selected_promotion_id is None:
                return
            line.selected_promotion_id = None
            self._changed()
            return

        promotion = next((p for p in self._promotions.get(article_id, ()) if p.id == promotion_id), None)
        if promotion is None:
            raise ValidationError(f"Promotion {promotion_id} is not available for this article.")
        applicable, reason = check_promotion_applicable(promotion, article_id, line.quantity)
        if not applicable:
            raise ValidationError(reason)

        line.selected_promotion_id = promotion.id
        self._changed()

    def set_delivery_mode(self, mode: DeliveryMode | str) -> None:
        """Switch between delivery and pickup.

        The take-away discount is derived from the mode at pricing time and is
        never stored separately.
        """
        mode = DeliveryMode(mode)
        if self._delivery.mode == mode:
            return
        self._delivery = DeliveryContext(mode=mode, delivery_fee=self._delivery_fee)
        self._changed()

    def select_bundled_promotion(self, bundle: BundledPromotion | None) -> None:
        """Select a bundled promotion, replacing any previous one."""
        if self._bundle == bundle:
            return
        self._bundle = bundle
        self._changed()

    def clear(self) -> None:
        """Empty the cart and reset the delivery mode and bundle selection."""
        self._lines.clear()
        self._promotions.clear()
        self._bundle = None
        self._delivery = DeliveryContext(mode=self._default_mode, delivery_fee=self._delivery_fee)
        self._changed()

    # -- Observers ---------------------------------------------------------

    def subscribe(self, listener: CartListener) -> None:
        """Call *listener* with the cart after every mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: CartListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -- Serialization -----------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize the cart into JSON-compatible primitives."""
        return {
            "delivery_mode": self._delivery.mode.value,
            "lines": [
                {
                    "article_id": line.article_id,
                    "name": line.name,
                    "unit_price": str(line.unit_price),
                    "quantity": line.quantity,
                    "notes": line.notes,
                    "selected_promotion_id": line.selected_promotion_id,
                }
                for line in self._lines.values()
            ],
            "promotions": {
                str(article_id): [promotion.to_api() for promotion in promotions]
                for article_id, promotions in self._promotions.items()
            },
            "bundle": self._bundle.to_api() if self._bundle is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "CartState":
        """Rebuild a cart from :meth:`to_dict` output.

        Keyword arguments are passed to the constructor.  The restored cart
        starts at revision 0 and has no subscribers.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a value cannot be parsed.
        """
        cart = cls(**kwargs)
        for raw in data.get("lines") or []:
            line = CartLine(
                article_id=int(raw["article_id"]),
                name=raw.get("name") or "",
                unit_price=_parse_price(raw["unit_price"], error=ValueError),
                quantity=int(raw["quantity"]),
                notes=raw.get("notes") or "",
                selected_promotion_id=raw.get("selected_promotion_id"),
            )
            if line.quantity < 1:
                msg = f"Stored quantity for article {line.article_id} must be at least 1"
                raise ValueError(msg)
            cart._lines[line.article_id] = line
        for article_id, promotions in (data.get("promotions") or {}).items():
            cart._promotions[int(article_id)] = tuple(Promotion.from_api(p) for p in promotions)
        if data.get("delivery_mode"):
            cart._delivery = DeliveryContext(mode=DeliveryMode(data["delivery_mode"]), delivery_fee=cart._delivery_fee)
        if data.get("bundle"):
            cart._bundle = BundledPromotion.from_api(data["bundle"])
        cart._pricing = cart._compute()
        return cart

    # -- Internals ---------------------------------------------------------

    def _require_line(self, article_id: int) -> CartLine:
        line = self._lines.get(article_id)
        if line is None:
            raise ValidationError("Cart line not found.")
        return line

    def _compute(self) -> PricingResult:
        return compute_totals(
            self._lines.values(),
            self._delivery,
            self._bundle,
            promotions=self._promotions,
            take_away_percentage=self._take_away_percentage,
            currency_symbol=self._currency_symbol,
        )

    def _changed(self) -> None:
        self._revision += 1
        self._pricing = self._compute()
        logger.debug("Cart revision %d: total %s", self._revision, self._pricing.final_total)
        for listener in list(self._listeners):
            listener(self)


def _parse_price(value: Decimal | int | str, *, error: type[Exception] = ValidationError) -> Decimal:
    if isinstance(value, (bool, float)):
        raise error("Unit price must be a Decimal, int or numeric string.")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise error("Unit price must be a number.") from exc
    if not price.is_finite() or price < 0:
        raise error("Unit price must not be negative.")
    return price
