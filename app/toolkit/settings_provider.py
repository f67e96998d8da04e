"""
Settings Provider: credential lookup with an explicit cache TTL.

Processor and channel credentials are looked up by key, in this order:

1. An AdminSetting row with a non-blank value (operator-editable)
2. The Django setting mapped to the key (deployment environment)
3. None

Resolved values, including misses, are cached in the Django cache under
``admin_setting:<key>`` for ``ttl_seconds``. Saving or deleting an
AdminSetting row invalidates its key (see toolkit.signals).

Services take a provider as an argument. There is no module-level
instance; ``AdminSettingsProvider.from_settings()`` builds one with the
configured TTL.

Usage:
    from toolkit.settings_provider import AdminSettingsProvider

    provider = AdminSettingsProvider.from_settings()
    creds = provider.require("twilio_account_sid", "twilio_auth_token")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache

from core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "admin_setting:"
DEFAULT_TTL_SECONDS = 300

# Cached stand-in for "no value anywhere", so misses are cached too
_MISSING = "__admin_setting_missing__"

# Setting key -> Django settings attribute used as the fallback
SETTING_FALLBACKS: dict[str, str] = {
    "stripe_secret_key": "STRIPE_SECRET_KEY",
    "stripe_webhook_secret": "STRIPE_WEBHOOK_SECRET",
    "twilio_account_sid": "TWILIO_ACCOUNT_SID",
    "twilio_auth_token": "TWILIO_AUTH_TOKEN",
    "twilio_from_number": "TWILIO_FROM_NUMBER",
    "admin_notification_phone": "ADMIN_NOTIFICATION_PHONE",
    "admin_email": "ADMIN_NOTIFICATION_EMAIL",
    "email_from_address": "DEFAULT_FROM_EMAIL",
}


def cache_key(key: str) -> str:
    return f"{CACHE_KEY_PREFIX}{key}"


def invalidate_cached_setting(*keys: str) -> None:
    """Drop cached values for the given keys."""
    cache.delete_many([cache_key(k) for k in keys])


class AdminSettingsProvider:
    """
    Looks up settings by key with a per-provider cache TTL.

    Attributes:
        ttl_seconds: How long a resolved value (or miss) stays cached
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls) -> AdminSettingsProvider:
        """Build a provider with the TTL from ADMIN_SETTINGS_CACHE_TTL_SECONDS."""
        return cls(
            ttl_seconds=getattr(
                settings, "ADMIN_SETTINGS_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS
            )
        )

    def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None when it is unset everywhere."""
        cached = cache.get(cache_key(key))
        if cached is not None:
            return None if cached == _MISSING else cached

        value = self._resolve(key)
        cache.set(
            cache_key(key),
            _MISSING if value is None else value,
            timeout=self.ttl_seconds,
        )
        return value

    def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        return {key: self.get(key) for key in keys}

    def require(self, *keys: str) -> dict[str, str]:
        """
        Return values for every key, or raise ConfigurationError.

        Raises:
            ConfigurationError: Listing every key without a value
        """
        values = self.get_many(keys)
        missing = [key for key, value in values.items() if not value]
        if missing:
            logger.error(
                "Required settings are missing",
                extra={"missing_keys": missing},
            )
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                details={"missing": missing},
            )
        return values

    def invalidate(self, *keys: str) -> None:
        """Forget cached values; with no keys, forget every known key."""
        invalidate_cached_setting(*(keys or tuple(SETTING_FALLBACKS)))

    def _resolve(self, key: str) -> str | None:
        from toolkit.models import AdminSetting

        row_value = (
            AdminSetting.objects.filter(key=key)
            .values_list("value", flat=True)
            .first()
        )
        if row_value:
            return row_value

        setting_name = SETTING_FALLBACKS.get(key)
        if setting_name:
            fallback = getattr(settings, setting_name, None)
            if fallback:
                return str(fallback)
        return None
