"""Discount calculator for restaurant carts.

Pure functions that turn cart lines, the delivery context and an optional
bundled promotion into a :class:`PricingResult`.  Nothing here performs I/O,
reads the wall clock or reads Django settings: promotion validity is evaluated
upstream by the backend, and policy values (take-away percentage, currency
symbol) are passed in by the caller.

Percentage discounts are rounded to cents with ``ROUND_HALF_UP``; fixed-amount
discounts are exact.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from bistro_client.models import BundledPromotion, DeliveryMode, DiscountKind, Promotion

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DEFAULT_TAKE_AWAY_PERCENTAGE = Decimal("10")

_PRICING_ERRORS = (ArithmeticError, TypeError, ValueError, AttributeError)


@dataclass
class CartLine:
    """One article in the cart.

    ``quantity`` is always at least 1; a line whose quantity would drop to 0
    is removed from the cart instead.
    """

    article_id: int
    name: str
    unit_price: Decimal
    quantity: int = 1
    notes: str = ""
    selected_promotion_id: int | None = None

    @property
    def subtotal(self) -> Decimal:
        """Unit price times quantity, before any discount."""
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class DeliveryContext:
    """How the order reaches the customer and what delivery costs."""

    mode: DeliveryMode = DeliveryMode.DELIVERY
    delivery_fee: Decimal = ZERO

    @property
    def fee(self) -> Decimal:
        """The fee actually charged: zero unless the mode is ``DELIVERY``."""
        return self.delivery_fee if self.mode == DeliveryMode.DELIVERY else ZERO


@dataclass(frozen=True, slots=True)
class AppliedPromotion:
    """A per-line promotion that produced a discount."""

    article_id: int
    promotion_id: int
    name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    final_unit_price: Decimal


@dataclass(frozen=True, slots=True)
class PricingResult:
    """Locally computed totals for a cart.

    ``total_discount`` never exceeds ``original_subtotal``, so
    ``final_total >= delivery_fee >= 0`` always holds.
    """

    original_subtotal: Decimal = ZERO
    promotions_discount: Decimal = ZERO
    take_away_discount: Decimal = ZERO
    bundled_discount: Decimal = ZERO
    total_discount: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    final_total: Decimal = ZERO
    applied_promotions: tuple[AppliedPromotion, ...] = field(default_factory=tuple)
    summary: str = ""

    @property
    def discounted_subtotal(self) -> Decimal:
        """Subtotal after every discount, before the delivery fee."""
        return self.original_subtotal - self.total_discount

    @property
    def has_discounts(self) -> bool:
        return self.total_discount > ZERO


def _percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    return (amount * percentage / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def _discount_amount(kind: DiscountKind, value: Decimal, base: Decimal, *, units: int = 1) -> Decimal:
    if value < ZERO:
        msg = f"Discount value must not be negative, got {value}"
        raise ValueError(msg)
    if kind == DiscountKind.PERCENTAGE:
        if value > HUNDRED:
            msg = f"Percentage discount must not exceed 100, got {value}"
            raise ValueError(msg)
        return _percentage_of(base, value)
    if kind == DiscountKind.FIXED_AMOUNT:
        return min(value * units, base)
    msg = f"Unknown discount kind {kind!r}"
    raise ValueError(msg)


def compute_line_discount(line: CartLine, promotion: Promotion) -> Decimal:
    """Return the discount a promotion grants on one cart line.

    The caller is responsible for checking that the promotion is currently
    valid and applies to the line's article.  The minimum quantity is checked
    again here and yields zero when not met.

    Args:
        line: The cart line being priced.
        promotion: The promotion selected for the line.

    Returns:
        ``subtotal * value / 100`` for percentage promotions (rounded to
        cents), or ``value * quantity`` capped at the line subtotal for
        fixed-amount promotions.

    Raises:
        ValueError: If the promotion's discount value is out of range.
    """
    if line.quantity < promotion.minimum_quantity:
        return ZERO
    return _discount_amount(
        promotion.discount_kind,
        promotion.discount_value,
        line.subtotal,
        units=line.quantity,
    )


def check_promotion_applicable(promotion: Promotion, article_id: int, quantity: int) -> tuple[bool, str]:
    """Check whether a promotion can be selected for a line.

    Returns:
        A ``(applicable, reason)`` tuple; ``reason`` is empty when applicable.
    """
    if not promotion.is_currently_valid:
        return False, "Promotion is not currently valid"
    if not promotion.applies_to(article_id):
        return False, "Promotion does not apply to this article"
    if quantity < promotion.minimum_quantity:
        return False, f"Minimum quantity required: {promotion.minimum_quantity}"
    return True, ""


def compute_take_away_discount(
    subtotal: Decimal,
    mode: DeliveryMode,
    percentage: Decimal = DEFAULT_TAKE_AWAY_PERCENTAGE,
) -> Decimal:
    """Return the pickup discount for *subtotal*, or zero for delivery orders."""
    if mode != DeliveryMode.PICKUP:
        return ZERO
    return _percentage_of(subtotal, Decimal(percentage))


def compute_bundled_discount(bundle: BundledPromotion) -> Decimal:
    """Return the discount of a bundled promotion.

    The base is the advertised composition of the bundle (each listed
    article's price, counted once), independent of the cart's lines.
    """
    return _discount_amount(bundle.discount_kind, bundle.discount_value, bundle.base_price)


def compute_totals(
    lines: Iterable[CartLine],
    delivery: DeliveryContext,
    bundle: BundledPromotion | None = None,
    *,
    promotions: Mapping[int, Sequence[Promotion]] | None = None,
    take_away_percentage: Decimal = DEFAULT_TAKE_AWAY_PERCENTAGE,
    currency_symbol: str = "$",
) -> PricingResult:
    """Price a cart.

    Each line's ``selected_promotion_id`` is resolved against
    ``promotions[line.article_id]``; only selections that are currently
    valid, apply to the article and meet the minimum quantity contribute.
    The take-away discount is computed on the original subtotal, so discounts
    add up rather than compound.  A promotion or bundle that cannot be priced
    contributes zero and is logged.

    Args:
        lines: The cart lines.
        delivery: Delivery mode and fee.
        bundle: The selected bundled promotion, if any.
        promotions: Available promotions per article ID.
        take_away_percentage: Pickup discount percentage.
        currency_symbol: Symbol used in the summary text.

    Returns:
        A :class:`PricingResult`.
    """
    promotions = promotions or {}
    original_subtotal = ZERO
    promotions_discount = ZERO
    applied: list[AppliedPromotion] = []

    for line in lines:
        original_subtotal += line.subtotal
        promotion = _resolve_selection(line, promotions)
        if promotion is None:
            continue
        try:
            discount = compute_line_discount(line, promotion)
        except _PRICING_ERRORS as exc:
            logger.warning("Ignoring promotion %s on article %s: %s", promotion.id, line.article_id, exc)
            continue
        if discount <= ZERO:
            continue
        promotions_discount += discount
        applied.append(
            AppliedPromotion(
                article_id=line.article_id,
                promotion_id=promotion.id,
                name=promotion.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=discount,
                final_unit_price=((line.subtotal - discount) / line.quantity).quantize(CENT, rounding=ROUND_HALF_UP),
            )
        )

    take_away_discount = compute_take_away_discount(original_subtotal, delivery.mode, take_away_percentage)

    bundled_discount = ZERO
    if bundle is not None:
        try:
            bundled_discount = compute_bundled_discount(bundle)
        except _PRICING_ERRORS as exc:
            logger.warning("Ignoring bundled promotion %s: %s", bundle.id, exc)

    total_discount = min(promotions_discount + take_away_discount + bundled_discount, original_subtotal)
    delivery_fee = delivery.fee
    return PricingResult(
        original_subtotal=original_subtotal,
        promotions_discount=promotions_discount,
        take_away_discount=take_away_discount,
        bundled_discount=bundled_discount,
        total_discount=total_discount,
        delivery_fee=delivery_fee,
        final_total=original_subtotal - total_discount + delivery_fee,
        applied_promotions=tuple(applied),
        summary=_build_summary(
            applied=applied,
            promotions_discount=promotions_discount,
            bundle=bundle,
            bundled_discount=bundled_discount,
            take_away_percentage=Decimal(take_away_percentage),
            take_away_discount=take_away_discount,
            total_discount=total_discount,
            currency_symbol=currency_symbol,
        ),
    )


def format_money(amount: Decimal, currency_symbol: str = "$") -> str:
    """Render an amount as ``$300`` or ``$12.50``."""
    if amount == amount.to_integral_value():
        return f"{currency_symbol}{amount.to_integral_value():f}"
    return f"{currency_symbol}{amount.quantize(CENT, rounding=ROUND_HALF_UP):f}"


def _resolve_selection(line: CartLine, promotions: Mapping[int, Sequence[Promotion]]) -> Promotion | None:
    if line.selected_promotion_id is None:
        return None
    for promotion in promotions.get(line.article_id, ()):
        if promotion.id != line.selected_promotion_id:
            continue
        if promotion.is_currently_valid and promotion.applies_to(line.article_id):
            return promotion
        return None
    logger.debug("Promotion %s for article %s is not in the snapshot", line.selected_promotion_id, line.article_id)
    return None


def _build_summary(
    *,
    applied: Sequence[AppliedPromotion],
    promotions_discount: Decimal,
    bundle: BundledPromotion | None,
    bundled_discount: Decimal,
    take_away_percentage: Decimal,
    take_away_discount: Decimal,
    total_discount: Decimal,
    currency_symbol: str,
) -> str:
    parts: list[str] = []
    if applied:
        label = "promotion" if len(applied) == 1 else "promotions"
        parts.append(f"{len(applied)} {label} (-{format_money(promotions_discount, currency_symbol)})")
    if bundle is not None and bundled_discount > ZERO:
        parts.append(f"{bundle.name} (-{format_money(bundled_discount, currency_symbol)})")
    if take_away_discount > ZERO:
        parts.append(
            f"{take_away_percentage.normalize():f}% pickup discount "
            f"(-{format_money(take_away_discount, currency_symbol)})"
        )
    if not parts:
        return "No discounts applied"
    return f"{', '.join(parts)} - Total savings: {format_money(total_discount, currency_symbol)}"
