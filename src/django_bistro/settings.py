"""Typed configuration for django-bistro.

Reads a single ``DJANGO_BISTRO`` dict from Django settings and exposes it as
composed, frozen dataclasses with sensible defaults.

Usage::

    from django_bistro.settings import get_config

    config = get_config()
    config.api.base_url
    config.pricing.delivery_fee
    config.preview_debounce_seconds
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.test.signals import setting_changed


@dataclass(frozen=True, slots=True)
class APIConfig:
    """Restaurant backend API configuration."""

    base_url: str = "http://localhost:8080/api"
    token: str | None = None
    timeout: float = 10.0


@dataclass(frozen=True, slots=True)
class PricingConfig:
    """Pricing policy applied by the local discount calculator.

    Money values may be given as strings, ints or ``Decimal``; they are
    normalized to ``Decimal`` when the config is built.
    """

    take_away_discount_percent: Decimal = Decimal("10")
    delivery_fee: Decimal = Decimal("200")
    currency_symbol: str = "$"


@dataclass(frozen=True, slots=True)
class CheckoutConfig:
    """Checkout behaviour."""

    allow_unconfirmed_totals: bool = True
    prefer_sandbox_payment_link: bool = False
    branch_id: int = 1


@dataclass(frozen=True, slots=True)
class BistroConfig:
    """Top-level django-bistro configuration."""

    api: APIConfig = field(default_factory=APIConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    checkout: CheckoutConfig = field(default_factory=CheckoutConfig)
    preview_debounce_seconds: float = 0.3
    session_key: str = "bistro_cart"


@functools.lru_cache(maxsize=1)
def get_config() -> BistroConfig:
    """Build and return the bistro configuration.

    Reads ``settings.DJANGO_BISTRO`` (a plain dict) and returns a frozen
    :class:`BistroConfig`.  The result is cached; the cache is cleared
    automatically when Django's ``setting_changed`` signal fires (e.g. inside
    ``override_settings``).
    """
    raw = getattr(settings, "DJANGO_BISTRO", {})
    if not isinstance(raw, Mapping):
        msg = "DJANGO_BISTRO must be a mapping (dict-like object)"
        raise TypeError(msg)
    raw_data = dict(raw)

    api_data = raw_data.pop("api", {})
    pricing_data = raw_data.pop("pricing", {})
    checkout_data = raw_data.pop("checkout", {})
    if not isinstance(api_data, Mapping):
        msg = "DJANGO_BISTRO['api'] must be a mapping (dict-like object)"
        raise TypeError(msg)
    if not isinstance(pricing_data, Mapping):
        msg = "DJANGO_BISTRO['pricing'] must be a mapping (dict-like object)"
        raise TypeError(msg)
    if not isinstance(checkout_data, Mapping):
        msg = "DJANGO_BISTRO['checkout'] must be a mapping (dict-like object)"
        raise TypeError(msg)

    pricing_values = dict(pricing_data)
    for key in ("take_away_discount_percent", "delivery_fee"):
        if key in pricing_values:
            pricing_values[key] = _as_decimal(pricing_values[key], f"DJANGO_BISTRO['pricing']['{key}']")

    config = BistroConfig(
        api=APIConfig(**dict(api_data)),
        pricing=PricingConfig(**pricing_values),
        checkout=CheckoutConfig(**dict(checkout_data)),
        **raw_data,
    )
    _validate_bistro_config(config)
    return config


def _as_decimal(value: object, name: str) -> Decimal:
    if isinstance(value, bool):
        msg = f"{name} must be a number"
        raise ValueError(msg)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        msg = f"{name} must be a number"
        raise ValueError(msg) from exc


def _validate_bistro_config(config: BistroConfig) -> None:
    """Validate high-impact configuration values with clear error messages."""
    if not isinstance(config.api.base_url, str) or not config.api.base_url.strip():
        msg = "DJANGO_BISTRO['api']['base_url'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.api.timeout, (int, float)) or config.api.timeout <= 0:
        msg = "DJANGO_BISTRO['api']['timeout'] must be a positive number"
        raise ValueError(msg)
    if not 0 <= config.pricing.take_away_discount_percent <= 100:  # noqa: PLR2004
        msg = "DJANGO_BISTRO['pricing']['take_away_discount_percent'] must be between 0 and 100"
        raise ValueError(msg)
    if config.pricing.delivery_fee < 0:
        msg = "DJANGO_BISTRO['pricing']['delivery_fee'] must not be negative"
        raise ValueError(msg)
    if not isinstance(config.pricing.currency_symbol, str) or not config.pricing.currency_symbol.strip():
        msg = "DJANGO_BISTRO['pricing']['currency_symbol'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.checkout.allow_unconfirmed_totals, bool):
        msg = "DJANGO_BISTRO['checkout']['allow_unconfirmed_totals'] must be a boolean"
        raise TypeError(msg)
    if not isinstance(config.checkout.branch_id, int) or config.checkout.branch_id <= 0:
        msg = "DJANGO_BISTRO['checkout']['branch_id'] must be a positive integer"
        raise ValueError(msg)
    debounce = config.preview_debounce_seconds
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        msg = "DJANGO_BISTRO['preview_debounce_seconds'] must be a non-negative number"
        raise ValueError(msg)
    if not isinstance(config.session_key, str) or not config.session_key.strip():
        msg = "DJANGO_BISTRO['session_key'] must be a non-empty string"
        raise ValueError(msg)


def _clear_config_cache(*, setting: str, **kwargs: object) -> None:  # noqa: ARG001
    """Clear the cached config when Django settings change during tests."""
    if setting == "DJANGO_BISTRO":
        get_config.cache_clear()


setting_changed.connect(_clear_config_cache, dispatch_uid="django_bistro.settings.clear_config_cache")
