"""Backend client construction from ``DJANGO_BISTRO['api']``."""

import httpx
from bistro_client import BistroClient

from django_bistro.settings import get_config


def get_client(*, transport: httpx.AsyncBaseTransport | None = None) -> BistroClient:
    """Build a :class:`BistroClient` from the configured API settings.

    Args:
        transport: Optional httpx transport, used to inject a mock in tests.

    Returns:
        A client pointing at ``api.base_url`` with the configured token and
        timeout.
    """
    config = get_config()
    return BistroClient(
        config.api.base_url,
        api_token=config.api.token or "",
        timeout=config.api.timeout,
        transport=transport,
    )
