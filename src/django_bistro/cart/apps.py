"""Django app configuration for the cart app."""

from django.apps import AppConfig


class DjangoBistroCartConfig(AppConfig):
    """Configuration for the cart app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_bistro.cart"
    label = "bistro_cart"
    verbose_name = "Cart"
