"""Promotion catalog accessor.

Wraps :class:`bistro_client.BistroClient` with a per-article cache.  A failing
promotion source never blocks the cart: fetch errors are logged and yield an
empty list.
"""

import logging

from bistro_client import BistroAPIError, BistroClient, BundledPromotion, Promotion

from django_bistro.cart.services.backend import get_client
from django_bistro.cart.services.cart import CartState

logger = logging.getLogger(__name__)


class PromotionCatalog:
    """Read access to promotions, cached per article.

    The cache lives as long as the catalog object; create one per checkout
    session to get a fresh snapshot.

    Args:
        client: The backend API client; built from the configured
            ``api`` settings when omitted.
    """

    def __init__(self, client: BistroClient | None = None) -> None:
        self.client = client if client is not None else get_client()
        self._by_article: dict[int, list[Promotion]] = {}

    async def promotions_for(self, article_id: int, *, refresh: bool = False) -> list[Promotion]:
        """Return the promotions that can attach to an article.

        Args:
            article_id: The article to look up.
            refresh: Bypass and replace the cached snapshot.

        Returns:
            The promotions, or an empty list when the fetch failed.
        """
        if not refresh and article_id in self._by_article:
            return list(self._by_article[article_id])
        try:
            promotions = await self.client.fetch_promotions_for_article(article_id)
        except BistroAPIError as exc:
            logger.warning("Could not load promotions for article %s: %s", article_id, exc)
            return []
        self._by_article[article_id] = promotions
        return list(promotions)

    async def applicable_promotions(self, article_id: int, branch_id: int) -> list[Promotion]:
        """Return promotions applicable to an article at a branch, uncached."""
        try:
            return await self.client.fetch_applicable_promotions(article_id, branch_id)
        except BistroAPIError as exc:
            logger.warning(
                "Could not load applicable promotions for article %s at branch %s: %s",
                article_id,
                branch_id,
                exc,
            )
            return []

    async def current_promotions(self) -> list[Promotion]:
        """Return every currently valid promotion, uncached."""
        try:
            promotions = await self.client.fetch_current_promotions()
        except BistroAPIError as exc:
            logger.warning("Could not load current promotions: %s", exc)
            return []
        return [promotion for promotion in promotions if promotion.is_currently_valid]

    async def bundled_promotions(self) -> list[BundledPromotion]:
        """Return currently valid bundled promotions with their articles."""
        try:
            return await self.client.fetch_bundled_promotions()
        except BistroAPIError as exc:
            logger.warning("Could not load bundled promotions: %s", exc)
            return []

    async def load_into(self, cart: CartState, article_id: int, *, refresh: bool = False) -> list[Promotion]:
        """Fetch an article's promotions and store them on the cart."""
        promotions = await self.promotions_for(article_id, refresh=refresh)
        cart.set_available_promotions(article_id, promotions)
        return promotions

    def invalidate(self, article_id: int | None = None) -> None:
        """Drop the cached snapshot for one article, or for all of them."""
        if article_id is None:
            self._by_article.clear()
        else:
            self._by_article.pop(article_id, None)
