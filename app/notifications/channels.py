"""
Delivery channels.

Each channel sends one message and returns the provider's message id, or
raises:
    ConfigurationError: credentials missing (Admin > Settings or env)
    DeliveryError: the provider refused the message or could not be reached

Channels know nothing about failure logging or escalation; that is the
dispatcher's job.

Usage:
    from notifications.channels import get_channel

    message_id = get_channel("sms").send("+13135550100", "Your crew is on the way!")
"""

from __future__ import annotations

import logging
import smtplib
import time
from typing import TYPE_CHECKING

import requests
from django.conf import settings
from django.core.mail import make_msgid

from core.exceptions import ConfigurationError
from notifications.exceptions import DeliveryError
from notifications.models import NotificationChannel
from toolkit.services.email import EmailService
from toolkit.settings_provider import AdminSettingsProvider

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

TWILIO_NOT_CONFIGURED = "Twilio not configured. Please add credentials in Admin > Settings."
DEFAULT_EMAIL_SUBJECT = "Bounce Party Club"


class BaseChannel:
    name: str = ""

    def __init__(self, provider: AdminSettingsProvider | None = None):
        self.provider = provider or AdminSettingsProvider.from_settings()

    def send(self, recipient: str, body: str, subject: str = "") -> str:
        raise NotImplementedError


class SmsChannel(BaseChannel):
    """Twilio Programmable Messaging over its REST API."""

    name = NotificationChannel.SMS

    def send(self, recipient: str, body: str, subject: str = "") -> str:
        creds = self._credentials()
        account_sid = creds["twilio_account_sid"]
        base_url = getattr(settings, "TWILIO_API_BASE_URL", "https://api.twilio.com")
        url = f"{base_url.rstrip('/')}/2010-04-01/Accounts/{account_sid}/Messages.json"

        start = time.monotonic()
        try:
            response = requests.post(
                url,
                data={
                    "To": recipient,
                    "From": creds["twilio_from_number"],
                    "Body": body,
                },
                auth=(account_sid, creds["twilio_auth_token"]),
                timeout=getattr(settings, "TWILIO_TIMEOUT_SECONDS", 10),
            )
        except requests.Timeout as e:
            raise DeliveryError(f"Twilio request timed out: {e}", code="timeout") from e
        except requests.RequestException as e:
            raise DeliveryError(
                f"Twilio request failed: {e}", code="connection_error"
            ) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        data = self._json(response)

        if not response.ok:
            code = str(data.get("code") or response.status_code)
            logger.warning(
                "Twilio rejected message",
                extra={
                    "channel": self.name,
                    "status_code": response.status_code,
                    "twilio_code": code,
                    "duration_ms": duration_ms,
                },
            )
            raise DeliveryError(
                f"Twilio API error: {data.get('message') or 'Unknown error'}",
                code=code,
                is_permanent=400 <= response.status_code < 500
                and response.status_code != 429,
            )

        logger.info(
            "SMS sent",
            extra={
                "channel": self.name,
                "message_sid": data.get("sid"),
                "twilio_status": data.get("status"),
                "duration_ms": duration_ms,
            },
        )
        return data.get("sid") or ""

    def _credentials(self) -> dict[str, str]:
        try:
            return self.provider.require(
                "twilio_account_sid", "twilio_auth_token", "twilio_from_number"
            )
        except ConfigurationError as e:
            raise ConfigurationError(TWILIO_NOT_CONFIGURED, details=e.details) from e

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


class EmailChannel(BaseChannel):
    """Django mail backend, via EmailService."""

    name = NotificationChannel.EMAIL

    def send(self, recipient: str, body: str, subject: str = "") -> str:
        message_id = make_msgid(domain="bouncepartyclub.com")
        try:
            sent = EmailService.send_raw(
                to=recipient,
                subject=subject or DEFAULT_EMAIL_SUBJECT,
                body_text=body,
                from_email=self.provider.get("email_from_address") or None,
                headers={"Message-ID": message_id},
            )
        except smtplib.SMTPRecipientsRefused as e:
            raise DeliveryError(f"Email rejected: {e}", code="invalid_recipient") from e
        except ValueError as e:
            # BadHeaderError: newline in an address or the subject
            raise DeliveryError(f"Invalid email header: {e}", code="invalid_recipient") from e
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"Email send failed: {e}", code="email_send_failed") from e

        if not sent:
            raise DeliveryError("Email backend accepted no messages", code="rejected")
        return message_id


CHANNELS: dict[str, type[BaseChannel]] = {
    NotificationChannel.SMS: SmsChannel,
    NotificationChannel.EMAIL: EmailChannel,
}


def get_channel(name: str, provider: AdminSettingsProvider | None = None) -> BaseChannel:
    try:
        channel_class = CHANNELS[name]
    except KeyError:
        raise ValueError(f"Unknown notification channel: {name}") from None
    return channel_class(provider)
