"""Typed dataclasses for restaurant backend response data.

Provides :class:`Promotion`, :class:`BundledPromotion`, :class:`ServerPreview`,
:class:`OrderResult` and :class:`PaymentRecord` as frozen dataclasses that parse
raw API dicts into well-typed Python objects.  Money is always a
:class:`~decimal.Decimal`.

The normalization helpers live in :mod:`bistro_client.adapters.normalization`.
"""

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from bistro_client.adapters.normalization import format_time, int_set, parse_date, parse_time, to_decimal

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

T = TypeVar("T")


class DiscountKind(enum.StrEnum):
    """How a promotion's ``discount_value`` is interpreted."""

    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class DeliveryMode(enum.StrEnum):
    """How the order reaches the customer."""

    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class PaymentMethod(enum.StrEnum):
    """Payment flows supported at checkout."""

    CASH = "CASH"
    ONLINE = "ONLINE"


class PaymentStatus(enum.StrEnum):
    """Lifecycle states of a payment record on the backend."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


def parse_records(parser: Callable[[dict[str, Any]], T], items: Iterable[Any], label: str) -> list[T]:
    """Parse a list of raw API dicts, skipping entries that fail to parse.

    A malformed record never aborts the whole list: it is logged and dropped so
    one broken promotion cannot hide the others.

    Args:
        parser: A ``from_api`` classmethod.
        items: Raw dicts from the API.
        label: Record name used in the log message.

    Returns:
        The successfully parsed records, in input order.
    """
    records: list[T] = []
    for item in items:
        try:
            records.append(parser(item))
        except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as exc:
            logger.warning("Skipping malformed %s record %r: %s", label, item, exc)
    return records


def _discount_value(kind: DiscountKind, raw: Any) -> Decimal:
    """Parse and range-check a discount value for its kind."""
    value = to_decimal(raw)
    if kind == DiscountKind.PERCENTAGE and not _ZERO <= value <= _HUNDRED:
        msg = f"Percentage discount must be between 0 and 100, got {value}"
        raise ValueError(msg)
    if kind == DiscountKind.FIXED_AMOUNT and value <= _ZERO:
        msg = f"Fixed discount must be greater than zero, got {value}"
        raise ValueError(msg)
    return value


def _discount_label(kind: DiscountKind, value: Decimal, currency_symbol: str) -> str:
    if kind == DiscountKind.PERCENTAGE:
        return f"{value.normalize():f}% off"
    return f"{currency_symbol}{value.normalize():f} off"


@dataclass(frozen=True, slots=True)
class Promotion:
    """A per-article discount rule from the promotion catalog.

    Validity is evaluated by the backend; ``is_currently_valid`` is treated as
    ground truth and never re-derived from the date and time windows, which
    are kept for display only.

    Attributes:
        id: Promotion identifier.
        name: Display name.
        description: Free-text description of the discount.
        discount_kind: Percentage or fixed amount per unit.
        discount_value: Percentage in [0, 100] or a positive currency amount.
        minimum_quantity: Minimum line quantity required to qualify.
        valid_from: First calendar day of the promotion.
        valid_until: Last calendar day of the promotion.
        active_from: Daily start time (may be later than ``active_until``
            when the window wraps past midnight).
        active_until: Daily end time.
        is_currently_valid: Validity as evaluated by the backend.
        applicable_article_ids: Articles this promotion can attach to.
    """

    id: int
    name: str
    discount_kind: DiscountKind
    discount_value: Decimal
    description: str = ""
    minimum_quantity: int = 1
    valid_from: date | None = None
    valid_until: date | None = None
    active_from: time | None = None
    active_until: time | None = None
    is_currently_valid: bool = False
    applicable_article_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Promotion":
        """Construct a ``Promotion`` from a raw API dict.

        ``applicableArticleIds`` may be a list of ints or the list of
        ``{"articleId": ...}`` objects the catalog embeds as ``articles``.

        Args:
            data: A single promotion object from the catalog endpoints.

        Returns:
            A populated ``Promotion`` instance.

        Raises:
            KeyError: If ``id``, ``discountKind`` or ``discountValue`` is missing.
            ValueError: If a value is out of range or not parseable.
        """
        kind = DiscountKind(data["discountKind"])
        minimum_quantity = int(data.get("minimumQuantity") or 1)
        if minimum_quantity < 1:
            msg = f"minimumQuantity must be at least 1, got {minimum_quantity}"
            raise ValueError(msg)
        articles = data.get("applicableArticleIds")
        if articles is None:
            articles = data.get("articles")
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            discount_kind=kind,
            discount_value=_discount_value(kind, data["discountValue"]),
            minimum_quantity=minimum_quantity,
            valid_from=parse_date(data.get("validFrom")),
            valid_until=parse_date(data.get("validUntil")),
            active_from=parse_time(data.get("activeFrom")),
            active_until=parse_time(data.get("activeUntil")),
            is_currently_valid=bool(data.get("isCurrentlyValid", False)),
            applicable_article_ids=int_set(articles),
        )

    def to_api(self) -> dict[str, Any]:
        """Serialize back into the API shape accepted by :meth:`from_api`."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discountKind": self.discount_kind.value,
            "discountValue": str(self.discount_value),
            "minimumQuantity": self.minimum_quantity,
            "validFrom": self.valid_from.isoformat() if self.valid_from else None,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
            "activeFrom": format_time(self.active_from),
            "activeUntil": format_time(self.active_until),
            "isCurrentlyValid": self.is_currently_valid,
            "applicableArticleIds": sorted(self.applicable_article_ids),
        }

    def applies_to(self, article_id: int) -> bool:
        """Return ``True`` when the promotion can attach to *article_id*."""
        return article_id in self.applicable_article_ids

    def is_eligible(self, article_id: int, quantity: int) -> bool:
        """Return ``True`` when the promotion can discount a line right now."""
        return self.is_currently_valid and self.applies_to(article_id) and quantity >= self.minimum_quantity

    def discount_label(self, currency_symbol: str = "$") -> str:
        """Short human-readable discount, e.g. ``"15% off"`` or ``"$500 off"``."""
        return _discount_label(self.discount_kind, self.discount_value, currency_symbol)


@dataclass(frozen=True, slots=True)
class BundleArticle:
    """One article of a bundled promotion, priced at its listed price."""

    article_id: int
    name: str
    unit_price: Decimal

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BundleArticle":
        """Construct a ``BundleArticle`` from a raw API dict."""
        return cls(
            article_id=int(data["articleId"]),
            name=data.get("name") or "",
            unit_price=to_decimal(data["unitPrice"]),
        )

    def to_api(self) -> dict[str, Any]:
        """Serialize back into the API shape."""
        return {"articleId": self.article_id, "name": self.name, "unitPrice": str(self.unit_price)}


@dataclass(frozen=True, slots=True)
class BundledPromotion:
    """A discount on a fixed group of distinct articles sold as a combo.

    Attributes:
        id: Promotion identifier.
        name: Display name of the combo.
        discount_kind: Percentage or fixed amount off the whole bundle.
        discount_value: Percentage in [0, 100] or a positive currency amount.
        description: Free-text description.
        articles: The articles composing the bundle, each counted once.
    """

    id: int
    name: str
    discount_kind: DiscountKind
    discount_value: Decimal
    description: str = ""
    articles: tuple[BundleArticle, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BundledPromotion":
        """Construct a ``BundledPromotion`` from a raw API dict.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the bundle lists the same article twice or a value
                is out of range.
        """
        kind = DiscountKind(data["discountKind"])
        articles = tuple(BundleArticle.from_api(item) for item in data.get("articles") or [])
        ids = [article.article_id for article in articles]
        if len(ids) != len(set(ids)):
            msg = f"Bundle {data.get('id')} lists the same article more than once"
            raise ValueError(msg)
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            discount_kind=kind,
            discount_value=_discount_value(kind, data["discountValue"]),
            articles=articles,
        )

    def to_api(self) -> dict[str, Any]:
        """Serialize back into the API shape accepted by :meth:`from_api`."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discountKind": self.discount_kind.value,
            "discountValue": str(self.discount_value),
            "articles": [article.to_api() for article in self.articles],
        }

    @property
    def base_price(self) -> Decimal:
        """Sum of the listed article prices, each counted once."""
        return sum((article.unit_price for article in self.articles), Decimal("0"))

    @property
    def article_ids(self) -> frozenset[int]:
        """IDs of the articles composing the bundle."""
        return frozenset(article.article_id for article in self.articles)

    def discount_label(self, currency_symbol: str = "$") -> str:
        """Short human-readable discount, e.g. ``"20% off"``."""
        return _discount_label(self.discount_kind, self.discount_value, currency_symbol)


@dataclass(frozen=True, slots=True)
class PreviewLine:
    """Server-side pricing breakdown for one cart line."""

    article_id: int
    name: str
    quantity: int
    unit_price: Decimal
    final_unit_price: Decimal
    subtotal: Decimal
    final_subtotal: Decimal
    discount: Decimal = Decimal("0")
    has_promotion: bool = False
    promotion_name: str = ""
    discount_summary: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PreviewLine":
        """Construct a ``PreviewLine`` from a raw API dict."""
        unit_price = to_decimal(data["unitPrice"])
        subtotal = to_decimal(data.get("subtotal"), default=unit_price * int(data["quantity"]))
        return cls(
            article_id=int(data["articleId"]),
            name=data.get("name") or "",
            quantity=int(data["quantity"]),
            unit_price=unit_price,
            final_unit_price=to_decimal(data.get("finalUnitPrice"), default=unit_price),
            subtotal=subtotal,
            final_subtotal=to_decimal(data.get("finalSubtotal"), default=subtotal),
            discount=to_decimal(data.get("discount"), default=_ZERO),
            has_promotion=bool(data.get("hasPromotion", False)),
            promotion_name=data.get("promotionName") or "",
            discount_summary=data.get("discountSummary") or "",
        )


@dataclass(frozen=True, slots=True)
class ServerPreview:
    """Authoritative cart totals computed by the backend.

    Attributes:
        original_subtotal: Sum of unit price times quantity, no discounts.
        total_discount: Every discount the backend applied.
        discounted_subtotal: ``original_subtotal - total_discount``.
        delivery_fee: Fee charged for delivery orders.
        final_total: Amount payable.
        delivery_mode: The mode the preview was computed for.
        promotions_summary: Human-readable summary of the applied discounts.
        lines: Per-line breakdown.
    """

    original_subtotal: Decimal
    total_discount: Decimal
    discounted_subtotal: Decimal
    delivery_fee: Decimal
    final_total: Decimal
    delivery_mode: DeliveryMode | None = None
    promotions_summary: str = ""
    lines: tuple[PreviewLine, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ServerPreview":
        """Construct a ``ServerPreview`` from a raw API dict.

        Raises:
            KeyError: If ``originalSubtotal`` or ``finalTotal`` is missing.
            ValueError: If a money value is not numeric.
        """
        original = to_decimal(data["originalSubtotal"])
        discount = to_decimal(data.get("totalDiscount"), default=_ZERO)
        mode = data.get("deliveryMode")
        return cls(
            original_subtotal=original,
            total_discount=discount,
            discounted_subtotal=to_decimal(data.get("discountedSubtotal"), default=original - discount),
            delivery_fee=to_decimal(data.get("deliveryFee"), default=_ZERO),
            final_total=to_decimal(data["finalTotal"]),
            delivery_mode=DeliveryMode(mode) if mode else None,
            promotions_summary=data.get("promotionsSummary") or "",
            lines=tuple(PreviewLine.from_api(item) for item in data.get("lines") or []),
        )


@dataclass(frozen=True, slots=True)
class PaymentInfo:
    """Online payment setup returned alongside a created order.

    Attributes:
        preference_created: Whether the payment provider accepted the order.
        preference_id: Provider-side preference identifier.
        payment_link: Production checkout URL.
        sandbox_payment_link: Sandbox checkout URL.
        error: Provider error message when the link could not be issued.
    """

    preference_created: bool = False
    preference_id: str = ""
    payment_link: str = ""
    sandbox_payment_link: str = ""
    error: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PaymentInfo":
        """Construct a ``PaymentInfo`` from a raw API dict."""
        return cls(
            preference_created=bool(data.get("preferenceCreated", False)),
            preference_id=str(data.get("preferenceId") or ""),
            payment_link=data.get("paymentLink") or "",
            sandbox_payment_link=data.get("sandboxPaymentLink") or "",
            error=data.get("error") or "",
        )

    def link(self, *, prefer_sandbox: bool = False) -> str:
        """Return the checkout URL, or an empty string when none was issued."""
        if prefer_sandbox:
            return self.sandbox_payment_link or self.payment_link
        return self.payment_link or self.sandbox_payment_link


@dataclass(frozen=True, slots=True)
class OrderResult:
    """Response of the order-creation endpoint."""

    success: bool
    order: dict[str, Any] = field(default_factory=dict)
    message: str = ""
    payment_info: PaymentInfo | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "OrderResult":
        """Construct an ``OrderResult`` from a raw API dict.

        Raises:
            TypeError: If ``order`` is present but not an object.
        """
        payment_raw = data.get("paymentInfo")
        order = data.get("order") or {}
        if not isinstance(order, dict):
            msg = f"Expected order to be an object, got {type(order).__name__}"
            raise TypeError(msg)
        return cls(
            success=bool(data.get("success", False)),
            order=dict(order),
            message=data.get("message") or "",
            payment_info=PaymentInfo.from_api(payment_raw) if isinstance(payment_raw, dict) else None,
        )

    @property
    def order_id(self) -> int | None:
        """Backend identifier of the created order, or ``None`` if missing or not numeric."""
        raw = self.order.get("id")
        if raw is None or isinstance(raw, bool):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Order id %r is not numeric", raw)
            return None


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    """A payment attached to an order's invoice."""

    id: int
    status: PaymentStatus
    amount: Decimal
    method: PaymentMethod | None = None
    invoice_id: int | None = None
    currency: str = ""
    description: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PaymentRecord":
        """Construct a ``PaymentRecord`` from a raw API dict."""
        method = data.get("method")
        invoice_id = data.get("invoiceId")
        return cls(
            id=int(data["id"]),
            status=PaymentStatus(data["status"]),
            amount=to_decimal(data.get("amount"), default=_ZERO),
            method=PaymentMethod(method) if method else None,
            invoice_id=int(invoice_id) if invoice_id is not None else None,
            currency=data.get("currency") or "",
            description=data.get("description") or "",
        )
