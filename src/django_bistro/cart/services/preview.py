"""Preview reconciler: local estimate first, server totals when they arrive.

The cart always has a locally computed :class:`PricingResult`.  The reconciler
asks the backend to price the same cart and, when the answer matches the
cart's current revision, lets it supersede the local estimate.  If the backend
cannot be reached the local estimate is kept and marked unconfirmed.

Answers for an older revision are discarded: the cart changed while the
request was in flight, and a newer request is (or will be) on its way.
"""

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from bistro_client import BistroAPIError, BistroClient, PreviewLine, ServerPreview

from django_bistro.cart.debounce import Debouncer
from django_bistro.cart.services.backend import get_client
from django_bistro.cart.services.cart import CartSnapshot, CartState
from django_bistro.cart.services.pricing import PricingResult
from django_bistro.settings import get_config

logger = logging.getLogger(__name__)


class TotalsSource(enum.StrEnum):
    """Where a set of displayed totals came from."""

    SERVER = "SERVER"
    LOCAL = "LOCAL"


@dataclass(frozen=True, slots=True)
class ReconciledTotals:
    """Totals to display for one cart revision.

    Attributes:
        source: ``SERVER`` when the backend confirmed the totals, ``LOCAL``
            for the client-side estimate.
        revision: Cart revision these totals belong to.
        original_subtotal: Sum of unit price times quantity.
        total_discount: Every discount applied.
        discounted_subtotal: Subtotal after discounts.
        delivery_fee: Fee charged for delivery.
        final_total: Amount payable.
        summary: Human-readable discount summary.
        lines: Per-line breakdown from the backend (empty for local totals).
        error: Why the backend totals are missing, if a request failed.
    """

    source: TotalsSource
    revision: int
    original_subtotal: Decimal
    total_discount: Decimal
    discounted_subtotal: Decimal
    delivery_fee: Decimal
    final_total: Decimal
    summary: str = ""
    lines: tuple[PreviewLine, ...] = ()
    error: str = ""

    @property
    def confirmed(self) -> bool:
        """``True`` when the backend priced this revision."""
        return self.source == TotalsSource.SERVER

    @classmethod
    def from_local(cls, revision: int, pricing: PricingResult, *, error: str = "") -> "ReconciledTotals":
        return cls(
            source=TotalsSource.LOCAL,
            revision=revision,
            original_subtotal=pricing.original_subtotal,
            total_discount=pricing.total_discount,
            discounted_subtotal=pricing.discounted_subtotal,
            delivery_fee=pricing.delivery_fee,
            final_total=pricing.final_total,
            summary=pricing.summary,
            error=error,
        )

    @classmethod
    def from_server(cls, revision: int, preview: ServerPreview, *, fallback_summary: str = "") -> "ReconciledTotals":
        """Totals priced by the backend.

        The preview request carries no bundle selection, so a bundle discount
        applied locally is not part of these totals.
        """
        return cls(
            source=TotalsSource.SERVER,
            revision=revision,
            original_subtotal=preview.original_subtotal,
            total_discount=preview.total_discount,
            discounted_subtotal=preview.discounted_subtotal,
            delivery_fee=preview.delivery_fee,
            final_total=preview.final_total,
            summary=preview.promotions_summary or fallback_summary,
            lines=preview.lines,
        )


def build_preview_request(snapshot: CartSnapshot) -> dict[str, Any]:
    """Build the cart-preview request body for a snapshot."""
    lines: list[dict[str, Any]] = []
    for line in snapshot.lines:
        item: dict[str, Any] = {"articleId": line.article_id, "quantity": line.quantity}
        if line.selected_promotion_id is not None:
            item["selectedPromotionId"] = line.selected_promotion_id
        lines.append(item)
    return {"deliveryMode": snapshot.delivery.mode.value, "lines": lines}


class PreviewReconciler:
    """Keep server-confirmed totals in step with a cart.

    While attached, every cart mutation schedules a debounced
    :meth:`refresh`.  The reconciler never mutates the cart.

    Args:
        cart: The cart to price.
        client: The backend API client; built from the configured
            ``api`` settings when omitted.
        debounce_seconds: Delay before a scheduled refresh; defaults to the
            configured ``preview_debounce_seconds``.
        attach: Subscribe to cart mutations immediately.
    """

    def __init__(
        self,
        cart: CartState,
        client: BistroClient | None = None,
        *,
        debounce_seconds: float | None = None,
        attach: bool = True,
    ) -> None:
        self.cart = cart
        self.client = client if client is not None else get_client()
        delay = get_config().preview_debounce_seconds if debounce_seconds is None else debounce_seconds
        self._debouncer = Debouncer(self.refresh, delay)
        self._server: ReconciledTotals | None = None
        self._failure: tuple[int, str] | None = None
        self._attached = False
        if attach:
            self.attach()

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def pending(self) -> bool:
        """``True`` while a debounced refresh is waiting to start."""
        return self._debouncer.pending

    @property
    def state(self) -> ReconciledTotals:
        """Totals for the cart's current revision.

        The server totals when a matching preview arrived, otherwise the local
        estimate carrying the error of the last failed attempt for this
        revision.
        """
        revision = self.cart.revision
        if self._server is not None and self._server.revision == revision:
            return self._server
        error = ""
        if self._failure is not None and self._failure[0] == revision:
            error = self._failure[1]
        return ReconciledTotals.from_local(revision, self.cart.pricing, error=error)

    def attach(self) -> None:
        """Start scheduling refreshes on cart mutations."""
        if not self._attached:
            self.cart.subscribe(self._on_cart_changed)
            self._attached = True

    def detach(self) -> None:
        """Stop tracking the cart.

        Cancels a pending refresh and ignores responses still in flight; the
        requests themselves are not aborted.
        """
        self.cart.unsubscribe(self._on_cart_changed)
        self._debouncer.cancel()
        self._attached = False

    def schedule(self) -> bool:
        """Schedule a debounced refresh.

        Returns:
            ``True`` if a refresh was scheduled; ``False`` when detached or
            when no event loop is running.
        """
        if not self._attached:
            return False
        return self._debouncer.trigger()

    async def flush(self) -> ReconciledTotals:
        """Wait for scheduled refreshes to finish and return :attr:`state`."""
        await self._debouncer.flush()
        return self.state

    async def refresh(self) -> ReconciledTotals:
        """Request server totals for the cart as it is now.

        Returns:
            The server totals on success, or the local estimate (unconfirmed,
            with ``error`` set) when the request failed.  If the cart changed
            while the request was in flight, the answer is discarded and the
            current :attr:`state` is returned instead.
        """
        snapshot = self.cart.snapshot()
        if snapshot.is_empty:
            return ReconciledTotals.from_local(snapshot.revision, snapshot.pricing)

        try:
            preview = await self.client.preview_cart(build_preview_request(snapshot))
        except BistroAPIError as exc:
            logger.warning("Cart preview failed for revision %d, using local totals: %s", snapshot.revision, exc)
            result = ReconciledTotals.from_local(snapshot.revision, snapshot.pricing, error=str(exc))
            failure: tuple[int, str] | None = (snapshot.revision, str(exc))
        else:
            result = ReconciledTotals.from_server(
                snapshot.revision,
                preview,
                fallback_summary=snapshot.pricing.summary,
            )
            failure = None

        if snapshot.revision != self.cart.revision:
            logger.debug(
                "Discarding preview for revision %d; cart is at revision %d",
                snapshot.revision,
                self.cart.revision,
            )
            return self.state
        if not self._attached:
            return result

        if failure is None:
            self._server = result
        else:
            self._failure = failure
        return result

    def _on_cart_changed(self, cart: CartState) -> None:  # noqa: ARG002
        self.schedule()
