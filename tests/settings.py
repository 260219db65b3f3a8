"""Minimal Django settings for running django-bistro tests."""

DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django_bistro.cart",
]
MIDDLEWARE = [
    "django.contrib.sessions.middleware.SessionMiddleware",
]
SECRET_KEY = "test-secret-key-not-for-production"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
DJANGO_BISTRO = {
    "api": {"base_url": "http://backend.test/api"},
    "pricing": {"take_away_discount_percent": "10", "delivery_fee": "200"},
    "preview_debounce_seconds": 0,
}
