"""
Shared base for services that talk to Stripe.

The adapter is built per call from the Settings Provider, so a rotated
key takes effect once its cache entry expires. Tests inject a mock with
``set_stripe_adapter`` instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService
from payments.adapters import StripeAdapter
from toolkit.settings_provider import AdminSettingsProvider

if TYPE_CHECKING:
    from typing import Any


class StripeBackedService(BaseService):
    # Adapter instance override (for testing)
    _stripe_adapter: Any = None

    @classmethod
    def set_stripe_adapter(cls, adapter: Any) -> None:
        """Set the adapter used by every Stripe-backed service (for testing)."""
        StripeBackedService._stripe_adapter = adapter

    @classmethod
    def get_provider(
        cls, provider: AdminSettingsProvider | None = None
    ) -> AdminSettingsProvider:
        return provider or AdminSettingsProvider.from_settings()

    @classmethod
    def get_stripe_adapter(
        cls, provider: AdminSettingsProvider | None = None
    ) -> StripeAdapter:
        """
        Return the injected adapter or one built from the provider.

        Raises:
            ConfigurationError: stripe_secret_key is not configured
        """
        if StripeBackedService._stripe_adapter is not None:
            return StripeBackedService._stripe_adapter
        return StripeAdapter.from_provider(cls.get_provider(provider))
