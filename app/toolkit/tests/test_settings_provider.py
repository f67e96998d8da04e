"""
Tests for AdminSettingsProvider.
"""

import pytest
from django.core.cache import cache
from django.test import override_settings

from core.exceptions import ConfigurationError
from toolkit.models import AdminSetting
from toolkit.settings_provider import AdminSettingsProvider, cache_key


@pytest.fixture
def provider():
    return AdminSettingsProvider(ttl_seconds=60)


@pytest.mark.django_db
class TestLookupOrder:
    def test_row_value_wins_over_django_setting(self, provider):
        AdminSetting.objects.create(key="stripe_secret_key", value="sk_test_row")

        with override_settings(STRIPE_SECRET_KEY="sk_test_env"):
            assert provider.get("stripe_secret_key") == "sk_test_row"

    def test_falls_back_to_django_setting(self, provider):
        with override_settings(TWILIO_FROM_NUMBER="+15550001111"):
            assert provider.get("twilio_from_number") == "+15550001111"

    def test_blank_row_falls_through(self, provider):
        AdminSetting.objects.create(key="admin_email", value="")

        with override_settings(ADMIN_NOTIFICATION_EMAIL="ops@example.com"):
            assert provider.get("admin_email") == "ops@example.com"

    def test_unknown_key_is_none(self, provider):
        assert provider.get("not_a_setting") is None


@pytest.mark.django_db
class TestCaching:
    def test_value_is_cached(self, provider, django_assert_num_queries):
        AdminSetting.objects.create(key="twilio_account_sid", value="AC123")

        assert provider.get("twilio_account_sid") == "AC123"
        with django_assert_num_queries(0):
            assert provider.get("twilio_account_sid") == "AC123"

    def test_miss_is_cached(self, provider, django_assert_num_queries):
        assert provider.get("twilio_auth_token") is None
        with django_assert_num_queries(0):
            assert provider.get("twilio_auth_token") is None

    def test_saving_row_invalidates_cache(self, provider):
        assert provider.get("admin_notification_phone") is None

        AdminSetting.objects.create(key="admin_notification_phone", value="+15551234567")

        assert cache.get(cache_key("admin_notification_phone")) is None
        assert provider.get("admin_notification_phone") == "+15551234567"

    def test_deleting_row_invalidates_cache(self, provider):
        row = AdminSetting.objects.create(key="stripe_webhook_secret", value="whsec_1")
        assert provider.get("stripe_webhook_secret") == "whsec_1"

        row.delete()

        assert provider.get("stripe_webhook_secret") is None

    def test_invalidate_forgets_key(self, provider):
        AdminSetting.objects.create(key="admin_email", value="a@example.com")
        provider.get("admin_email")
        AdminSetting.objects.filter(key="admin_email").update(value="b@example.com")

        provider.invalidate("admin_email")

        assert provider.get("admin_email") == "b@example.com"

    @override_settings(ADMIN_SETTINGS_CACHE_TTL_SECONDS=17)
    def test_from_settings_uses_configured_ttl(self):
        assert AdminSettingsProvider.from_settings().ttl_seconds == 17


@pytest.mark.django_db
class TestRequire:
    def test_returns_all_values(self, provider):
        AdminSetting.objects.create(key="twilio_account_sid", value="AC1")
        AdminSetting.objects.create(key="twilio_auth_token", value="tok")

        values = provider.require("twilio_account_sid", "twilio_auth_token")

        assert values == {"twilio_account_sid": "AC1", "twilio_auth_token": "tok"}

    def test_raises_naming_missing_keys(self, provider):
        AdminSetting.objects.create(key="twilio_account_sid", value="AC1")

        with pytest.raises(ConfigurationError) as exc_info:
            provider.require("twilio_account_sid", "twilio_auth_token", "twilio_from_number")

        assert exc_info.value.details["missing"] == [
            "twilio_auth_token",
            "twilio_from_number",
        ]
        assert exc_info.value.http_status == 500
