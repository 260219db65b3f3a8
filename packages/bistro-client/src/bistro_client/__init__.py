"""Standalone async Python client for the restaurant backend REST API."""

from bistro_client.client import BistroAPIError, BistroClient
from bistro_client.models import (
    BundleArticle,
    BundledPromotion,
    DeliveryMode,
    DiscountKind,
    OrderResult,
    PaymentInfo,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    PreviewLine,
    Promotion,
    ServerPreview,
)

__all__ = [
    "BistroAPIError",
    "BistroClient",
    "BundleArticle",
    "BundledPromotion",
    "DeliveryMode",
    "DiscountKind",
    "OrderResult",
    "PaymentInfo",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentStatus",
    "PreviewLine",
    "Promotion",
    "ServerPreview",
]
