"""
Fixtures for notification tests.

Twilio is never called: ``twilio_post`` replaces requests.post in the
SMS channel. Email goes to Django's locmem outbox.

Usage:
    def test_sms(sms_configured, twilio_post):
        twilio_post.return_value = twilio_response(201, {"sid": "SM123"})
"""

from unittest.mock import MagicMock

import pytest

ADMIN_PHONE = "+13135550199"
ADMIN_EMAIL = "ops@bouncepartyclub.com"


def twilio_response(status_code: int = 201, payload: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = (
        payload if payload is not None else {"sid": "SM_test_123", "status": "queued"}
    )
    return response


@pytest.fixture
def operator_targets(settings):
    """Operator alert addresses on both channels."""
    settings.ADMIN_NOTIFICATION_PHONE = ADMIN_PHONE
    settings.ADMIN_NOTIFICATION_EMAIL = ADMIN_EMAIL
    settings.DEFAULT_FROM_EMAIL = "Bounce Party Club <admin@bouncepartyclub.com>"
    return {"sms": ADMIN_PHONE, "email": ADMIN_EMAIL}


@pytest.fixture
def sms_configured(settings):
    settings.TWILIO_ACCOUNT_SID = "AC_test"
    settings.TWILIO_AUTH_TOKEN = "token_test"
    settings.TWILIO_FROM_NUMBER = "+13135550000"
    settings.TWILIO_API_BASE_URL = "https://api.twilio.test"


@pytest.fixture
def twilio_post(mocker):
    return mocker.patch(
        "notifications.channels.requests.post",
        return_value=twilio_response(),
    )
