"""Checkout submitter for restaurant orders.

Validates the cart, settles the totals with the backend, sends exactly one
order-creation request and moves the checkout through its states::

    DRAFT -> SUBMITTED -> CASH_PENDING_CONFIRMATION -> CASH_CONFIRMED
                       -> PAYMENT_LINK_ISSUED -> PAID | PAYMENT_FAILED

The cart is cleared only once the order exists and the chosen payment flow
is set up.  Lines added while the order request is in flight stay in the
cart.  A rejected or failed submission leaves the cart untouched so the
customer can retry.
"""

import enum
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any

from bistro_client import (
    BistroAPIError,
    BistroClient,
    DeliveryMode,
    OrderResult,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
)
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from django_bistro.cart.services.backend import get_client
from django_bistro.cart.services.cart import CartState
from django_bistro.cart.services.preview import PreviewReconciler, ReconciledTotals
from django_bistro.cart.signals import cash_payment_confirmed, order_submitted
from django_bistro.settings import get_config

logger = logging.getLogger(__name__)


class CheckoutState(enum.StrEnum):
    """Lifecycle of one checkout."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    CASH_PENDING_CONFIRMATION = "CASH_PENDING_CONFIRMATION"
    CASH_CONFIRMED = "CASH_CONFIRMED"
    PAYMENT_LINK_ISSUED = "PAYMENT_LINK_ISSUED"
    PAID = "PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"


_CASH_STATES = {
    PaymentStatus.PENDING: CheckoutState.CASH_PENDING_CONFIRMATION,
    PaymentStatus.APPROVED: CheckoutState.CASH_CONFIRMED,
    PaymentStatus.REJECTED: CheckoutState.PAYMENT_FAILED,
    PaymentStatus.CANCELLED: CheckoutState.PAYMENT_FAILED,
}

_ONLINE_STATES = {
    PaymentStatus.PENDING: CheckoutState.PAYMENT_LINK_ISSUED,
    PaymentStatus.APPROVED: CheckoutState.PAID,
    PaymentStatus.REJECTED: CheckoutState.PAYMENT_FAILED,
    PaymentStatus.CANCELLED: CheckoutState.PAYMENT_FAILED,
}


class CheckoutError(Exception):
    """The backend could not create the order; the cart is unchanged."""


@dataclass(frozen=True, slots=True)
class Buyer:
    """Payer details required by the online payment provider."""

    email: str
    name: str
    surname: str


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    """Outcome of a successful order creation.

    Attributes:
        state: Checkout state after the submission.
        payment_method: The payment flow chosen.
        order: The backend response.
        totals: The totals the order was placed with.
        external_reference: Reference sent to the payment provider.
        payment_link: Checkout URL for online payment, if one was issued.
        payment_error: Why the online payment could not be set up.
    """

    state: CheckoutState
    payment_method: PaymentMethod
    order: OrderResult
    totals: ReconciledTotals
    external_reference: str = ""
    payment_link: str = ""
    payment_error: str = ""

    @property
    def order_id(self) -> int | None:
        return self.order.order_id

    @property
    def payment_setup_failed(self) -> bool:
        """``True`` when the order exists but no online payment link was issued."""
        return self.payment_method == PaymentMethod.ONLINE and not self.payment_link


def _generate_external_reference(client_id: int) -> str:
    """Generate a payment reference such as ``ORDER-42-A1B2C3D4``."""
    chars = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(chars) for _ in range(8))
    return f"ORDER-{client_id}-{suffix}"


class CheckoutSubmitter:
    """Turn a cart into a backend order.

    Args:
        cart: The cart to submit.
        client: The backend API client; built from the configured
            ``api`` settings when omitted.
        client_id: Backend identifier of the customer placing the order.
        reconciler: Preview reconciler tracking *cart*; a detached one is
            created when omitted.
        branch_id: Branch receiving the order; defaults to the configured
            ``checkout.branch_id``.
        allow_unconfirmed_totals: Submit even when the backend could not
            confirm the totals; defaults to the configured value.
        prefer_sandbox_payment_link: Prefer the provider's sandbox link;
            defaults to the configured value.
    """

    def __init__(
        self,
        cart: CartState,
        client: BistroClient | None = None,
        *,
        client_id: int,
        reconciler: PreviewReconciler | None = None,
        branch_id: int | None = None,
        allow_unconfirmed_totals: bool | None = None,
        prefer_sandbox_payment_link: bool | None = None,
    ) -> None:
        config = get_config().checkout
        self.cart = cart
        self.client = client if client is not None else get_client()
        self.client_id = client_id
        self.reconciler = reconciler or PreviewReconciler(cart, self.client, attach=False)
        self.branch_id = config.branch_id if branch_id is None else branch_id
        self.allow_unconfirmed_totals = (
            config.allow_unconfirmed_totals if allow_unconfirmed_totals is None else allow_unconfirmed_totals
        )
        self.prefer_sandbox_payment_link = (
            config.prefer_sandbox_payment_link if prefer_sandbox_payment_link is None else prefer_sandbox_payment_link
        )
        self.state = CheckoutState.DRAFT
        self.payment_method: PaymentMethod | None = None
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        """``True`` while an order-creation request is outstanding."""
        return self._in_flight

    def validate(
        self,
        payment_method: PaymentMethod,
        *,
        delivery_address_id: int | None = None,
        buyer: Buyer | None = None,
    ) -> None:
        """Check that the cart can be submitted with the given details.

        Raises:
            ValidationError: If the cart is empty, a delivery order has no
                address, or an online payment lacks complete buyer data.
        """
        if self.cart.is_empty:
            raise ValidationError("Cannot check out an empty cart.")
        if self.cart.delivery.mode == DeliveryMode.DELIVERY and not delivery_address_id:
            raise ValidationError("A delivery address is required for delivery orders.")
        if PaymentMethod(payment_method) == PaymentMethod.ONLINE:
            if buyer is None or not all(value.strip() for value in (buyer.email, buyer.name, buyer.surname)):
                raise ValidationError("Buyer email, name and surname are required for online payment.")
            validate_email(buyer.email)

    def build_order_request(
        self,
        payment_method: PaymentMethod,
        *,
        delivery_address_id: int | None = None,
        buyer: Buyer | None = None,
        notes: str = "",
        external_reference: str | None = None,
    ) -> dict[str, Any]:
        """Build the order-creation request body for the current cart."""
        payment_method = PaymentMethod(payment_method)
        lines: list[dict[str, Any]] = []
        for line in self.cart.lines:
            item: dict[str, Any] = {"articleId": line.article_id, "quantity": line.quantity}
            if line.notes:
                item["notes"] = line.notes
            if line.selected_promotion_id is not None:
                item["selectedPromotionId"] = line.selected_promotion_id
            lines.append(item)

        payload: dict[str, Any] = {
            "clientId": self.client_id,
            "branchId": self.branch_id,
            "deliveryMode": self.cart.delivery.mode.value,
            "lines": lines,
            "createPaymentPreference": payment_method == PaymentMethod.ONLINE,
            "externalReference": external_reference or _generate_external_reference(self.client_id),
        }
        if self.cart.delivery.mode == DeliveryMode.DELIVERY and delivery_address_id:
            payload["deliveryAddressId"] = delivery_address_id
        if notes:
            payload["notes"] = notes
        if buyer is not None:
            payload["buyerEmail"] = buyer.email
            payload["buyerName"] = buyer.name
            payload["buyerSurname"] = buyer.surname
        return payload

    async def submit(
        self,
        payment_method: PaymentMethod,
        *,
        delivery_address_id: int | None = None,
        buyer: Buyer | None = None,
        notes: str = "",
    ) -> CheckoutResult:
        """Validate, settle totals and create the order.

        Args:
            payment_method: ``CASH`` or ``ONLINE``.
            delivery_address_id: Required for delivery orders.
            buyer: Required for online payment.
            notes: Order-level notes.

        Returns:
            A :class:`CheckoutResult`.  For online payment without a link the
            order exists but ``payment_setup_failed`` is ``True`` and the cart
            is kept.

        Raises:
            ValidationError: If a submission is already in flight, validation
                fails, or the totals are unconfirmed and unconfirmed totals
                are not allowed.
            CheckoutError: If the backend failed or rejected the order.
        """
        if self._in_flight:
            raise ValidationError("An order submission is already in progress.")
        payment_method = PaymentMethod(payment_method)
        self.validate(payment_method, delivery_address_id=delivery_address_id, buyer=buyer)

        self._in_flight = True
        try:
            totals = await self._settle_totals()
            payload = self.build_order_request(
                payment_method,
                delivery_address_id=delivery_address_id,
                buyer=buyer,
                notes=notes,
            )
            revision = self.cart.revision
            submitted = {line.article_id: line.quantity for line in self.cart.lines}
            try:
                order = await self.client.create_order(payload)
            except BistroAPIError as exc:
                msg = f"Could not create the order: {exc}"
                raise CheckoutError(msg) from exc
            if not order.success:
                msg = order.message or "The order was rejected."
                raise CheckoutError(msg)
        finally:
            self._in_flight = False

        result = self._complete(payment_method, order, totals, payload["externalReference"])
        if result.state != CheckoutState.SUBMITTED:
            self._clear_submitted(submitted, revision)
        logger.info(
            "Submitted order %s (%s, total %s, state %s)",
            result.order_id,
            payment_method,
            totals.final_total,
            result.state,
        )
        await order_submitted.asend(sender=CheckoutSubmitter, result=result, payment_method=payment_method)
        return result

    async def confirm_cash_payment(self, payment_id: int) -> PaymentRecord:
        """Mark a pending cash payment as received.

        Raises:
            CheckoutError: If the backend could not confirm the payment.
        """
        try:
            payment = await self.client.confirm_cash_payment(payment_id)
        except BistroAPIError as exc:
            msg = f"Could not confirm cash payment {payment_id}: {exc}"
            raise CheckoutError(msg) from exc
        self.state = self.state_for_payment_status(PaymentMethod.CASH, payment.status)
        logger.info("Cash payment %s is now %s", payment.id, payment.status)
        await cash_payment_confirmed.asend(sender=CheckoutSubmitter, payment=payment)
        return payment

    @staticmethod
    def state_for_payment_status(payment_method: PaymentMethod, status: PaymentStatus) -> CheckoutState:
        """Map an external payment status onto the checkout state machine."""
        states = _CASH_STATES if PaymentMethod(payment_method) == PaymentMethod.CASH else _ONLINE_STATES
        return states[PaymentStatus(status)]

    def apply_payment_status(self, status: PaymentStatus) -> CheckoutState:
        """Advance the state from a payment status reported by the backend.

        Raises:
            ValidationError: If no order has been submitted yet.
        """
        if self.payment_method is None:
            raise ValidationError("No order has been submitted yet.")
        self.state = self.state_for_payment_status(self.payment_method, status)
        return self.state

    async def has_pending_cash_payments(self, invoice_id: int) -> bool:
        """Return ``True`` if the invoice has a cash payment awaiting confirmation.

        Raises:
            BistroAPIError: If the payments could not be fetched.
        """
        payments = await self.client.fetch_invoice_payments(invoice_id)
        return any(p.method == PaymentMethod.CASH and p.status == PaymentStatus.PENDING for p in payments)

    async def _settle_totals(self) -> ReconciledTotals:
        totals = self.reconciler.state
        if not totals.confirmed:
            totals = await self.reconciler.refresh()
        if not totals.confirmed and not self.allow_unconfirmed_totals:
            msg = "Order totals could not be confirmed. Please try again."
            raise ValidationError(msg)
        return totals

    def _complete(
        self,
        payment_method: PaymentMethod,
        order: OrderResult,
        totals: ReconciledTotals,
        external_reference: str,
    ) -> CheckoutResult:
        self.payment_method = payment_method
        payment_link = ""
        payment_error = ""
        if payment_method == PaymentMethod.CASH:
            state = CheckoutState.CASH_PENDING_CONFIRMATION
        else:
            info = order.payment_info
            if info is not None:
                payment_link = info.link(prefer_sandbox=self.prefer_sandbox_payment_link)
            if payment_link:
                state = CheckoutState.PAYMENT_LINK_ISSUED
            else:
                state = CheckoutState.SUBMITTED
                payment_error = (info.error if info is not None else "") or "No payment link was issued."
                logger.warning("Order %s created but payment setup failed: %s", order.order_id, payment_error)

        self.state = state
        return CheckoutResult(
            state=state,
            payment_method=payment_method,
            order=order,
            totals=totals,
            external_reference=external_reference,
            payment_link=payment_link,
            payment_error=payment_error,
        )

    def _clear_submitted(self, submitted: dict[int, int], revision: int) -> None:
        """Remove the ordered lines, keeping edits made while the order was in flight."""
        if self.cart.revision == revision:
            self.cart.clear()
            return
        logger.info("Cart changed during order submission; keeping lines added meanwhile")
        for article_id, quantity in submitted.items():
            line = self.cart.get_line(article_id)
            if line is not None:
                self.cart.set_quantity(article_id, line.quantity - quantity)
