"""
Project-wide pytest configuration.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures live in each app's conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Point side-effecting backends at in-process fakes before tests run."""
    django.setup()

    from django.conf import settings

    # Breakers, settings cache and rate counters must not touch Redis
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "bounce-tests",
        }
    }

    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

    # Test requests are plain http whatever DEBUG says
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False

    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

    # Credentials come from AdminSetting rows or per-test overrides
    settings.STRIPE_SECRET_KEY = ""
    settings.STRIPE_WEBHOOK_SECRET = ""
    settings.TWILIO_ACCOUNT_SID = ""
    settings.TWILIO_AUTH_TOKEN = ""
    settings.TWILIO_FROM_NUMBER = ""


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full cancellation and checkout journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_refund_policy.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_checkout_service.py",
        "test_reconciliation_service.py",
        "test_refund_service.py",
        "test_cancellation_service.py",
        "test_dispatcher.py",
        "test_settings_provider.py",
        "test_circuit_breaker.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_refund_policy.py",
        "test_adapters.py",
        "test_channels.py",
        "test_locks.py",
        "test_email.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _clear_cache():
    """Each test starts with an empty cache."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client; the storefront endpoints are public."""
    from rest_framework.test import APIClient

    return APIClient()
