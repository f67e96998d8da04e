"""
Tests for NotificationDispatcher: failure logging, channel health and
one-hop escalation between SMS and email.
"""

import pytest
from django.core import mail

from core.exceptions import NotFoundError
from notifications.models import NotificationFailure
from notifications.services import NotificationDispatcher, channel_breaker, failure_alert
from notifications.tests.conftest import ADMIN_EMAIL, ADMIN_PHONE, twilio_response
from notifications.tests.factories import MessageTemplateFactory

pytestmark = pytest.mark.django_db


class TestSuccessfulSend:
    def test_sms_success(self, sms_configured, twilio_post):
        result = NotificationDispatcher.send("sms", "+13135550100", "On our way!")

        assert result.success
        assert result.channel_message_id == "SM_test_123"
        assert result.to_dict() == {"success": True, "channelMessageId": "SM_test_123"}
        assert NotificationFailure.objects.count() == 0

    def test_success_resets_channel_health(self, sms_configured, twilio_post):
        breaker = channel_breaker("sms")
        breaker.record_failure("earlier")
        breaker.record_failure("earlier")

        NotificationDispatcher.send("sms", "+13135550100", "On our way!")

        assert breaker.get_status()["failure_count"] == 0


class TestFailureEscalation:
    def test_sms_config_error_escalates_once_to_email(self, operator_targets, twilio_post):
        result = NotificationDispatcher.send(
            "sms", "+13135550100", "Your bounce house arrives at 9am", context={"order_id": "abc"}
        )

        assert not result.success
        assert "Twilio not configured" in result.error
        twilio_post.assert_not_called()

        sms_failures = NotificationFailure.objects.filter(channel="sms")
        assert sms_failures.count() == 1
        assert NotificationFailure.objects.filter(channel="email").count() == 0

        failure = sms_failures.get()
        assert failure.recipient == "+13135550100"
        assert failure.preview == "Your bounce house arrives at 9am"
        assert failure.context == {"order_id": "abc"}
        assert failure.fallback_sent is True
        assert failure.fallback_channel == "email"
        assert failure.escalation_chain == []

        assert len(mail.outbox) == 1
        alert = mail.outbox[0]
        assert alert.to == [ADMIN_EMAIL]
        assert alert.body.startswith("[SMS SYSTEM FAILURE]")
        assert "Failed to send SMS to: +13135550100" in alert.body
        assert result.escalation.success
        assert result.escalation.channel == "email"

    def test_email_failure_escalates_to_sms(self, operator_targets, sms_configured, twilio_post, mocker):
        mocker.patch(
            "notifications.channels.EmailService.send_raw",
            side_effect=OSError("Connection refused"),
        )

        result = NotificationDispatcher.send(
            "email", "pat@example.com", "Your receipt", subject="Receipt for order 1A2B3C4D"
        )

        assert not result.success
        twilio_post.assert_called_once()
        data = twilio_post.call_args.kwargs["data"]
        assert data["To"] == ADMIN_PHONE
        assert data["Body"] == (
            "[EMAIL SYSTEM FAILURE]\n\n"
            "Failed to send email to: pat@example.com\n"
            "Subject: Receipt for order 1A2B3C4D\n"
            "Error: Email send failed: Connection refused\n\n"
            "Please check admin dashboard."
        )
        failure = NotificationFailure.objects.get()
        assert failure.channel == "email"
        assert failure.fallback_channel == "sms"

    def test_skip_fallback_records_without_escalating(self, operator_targets, twilio_post):
        result = NotificationDispatcher.send(
            "sms", "+13135550100", "hello", skip_fallback=True
        )

        assert not result.success
        assert result.escalation is None
        assert len(mail.outbox) == 0
        failure = NotificationFailure.objects.get()
        assert failure.fallback_sent is False
        assert failure.fallback_channel == ""

    def test_failing_escalation_does_not_bounce_back(self, operator_targets, mocker):
        # Neither channel works: SMS is unconfigured, email is down
        mocker.patch(
            "notifications.channels.EmailService.send_raw",
            side_effect=OSError("down"),
        )

        result = NotificationDispatcher.send("sms", "+13135550100", "hello")

        assert not result.success
        assert not result.escalation.success
        assert result.escalation.escalation is None
        assert NotificationFailure.objects.filter(channel="sms").count() == 1
        email_failure = NotificationFailure.objects.get(channel="email")
        assert email_failure.recipient == ADMIN_EMAIL
        assert email_failure.escalation_chain == ["sms"]
        assert NotificationFailure.objects.get(channel="sms").fallback_sent is False

    def test_malformed_email_recipient_is_recorded(self, operator_targets, twilio_post):
        result = NotificationDispatcher.send("email", "not an address\nBcc: x@y.z", "hi")

        assert not result.success
        assert result.error.startswith("Invalid email header")
        failure = NotificationFailure.objects.get(channel="email")
        assert failure.pk == result.failure_id

    def test_failure_is_recorded_before_escalating(self, operator_targets, twilio_post, mocker):
        mocker.patch.object(
            NotificationDispatcher, "_escalate", side_effect=RuntimeError("alert crashed")
        )

        with pytest.raises(RuntimeError):
            NotificationDispatcher.send("sms", "+13135550100", "hello")

        failure = NotificationFailure.objects.get()
        assert failure.channel == "sms"
        assert failure.fallback_sent is False

    def test_no_operator_address_skips_escalation(
self, settings, twilio_post):
        settings.ADMIN_NOTIFICATION_EMAIL = ""

        result = NotificationDispatcher.send("sms", "+13135550100", "hello")

        assert result.escalation is None
        assert NotificationFailure.objects.count() == 1

    def test_preview_is_truncated(self, operator_targets, twilio_post):
        NotificationDispatcher.send("sms", "+13135550100", "x" * 500, skip_fallback=True)

        assert len(NotificationFailure.objects.get().preview) == 200

    def test_failures_open_the_channel_breaker(self, settings, twilio_post):
        settings.NOTIFICATION_CHANNEL_FAILURE_THRESHOLD = 2

        for _ in range(2):
            NotificationDispatcher.send("sms", "+13135550100", "hello", skip_fallback=True)

        assert channel_breaker("sms").is_open()

    def test_provider_rejection_is_reported(self, operator_targets, sms_configured, twilio_post):
        twilio_post.return_value = twilio_response(400, {"code": 21610, "message": "Unsubscribed"})

        result = NotificationDispatcher.send("sms", "+13135550100", "hello", skip_fallback=True)

        assert result.to_dict() == {"success": False, "error": "Twilio API error: Unsubscribed"}


class TestNotifyOperator:
    def test_emails_operator(self, operator_targets):
        result = NotificationDispatcher.notify_operator("Order Cancelled: 1A2B3C4D", "Details")

        assert result.success
        assert mail.outbox[0].to == [ADMIN_EMAIL]
        assert mail.outbox[0].subject == "Order Cancelled: 1A2B3C4D"

    def test_unconfigured_operator_returns_none(self, settings):
        settings.ADMIN_NOTIFICATION_EMAIL = ""

        assert NotificationDispatcher.notify_operator("subject", "body") is None


class TestSendTemplate:
    def test_renders_with_order_fields(self, sms_configured, twilio_post):
        from bookings.tests.factories import OrderFactory

        order = OrderFactory(customer_name="Pat Doe")
        MessageTemplateFactory(key="order_reminder", body="Hi {customer_name}! Order {order_id}.")

        result = NotificationDispatcher.send_template("order_reminder", "+13135550100", order=order)

        assert result.success
        body = twilio_post.call_args.kwargs["data"]["Body"]
        assert body == f"Hi Pat Doe! Order {order.short_id}."

    def test_missing_template(self):
        with pytest.raises(NotFoundError):
            NotificationDispatcher.send_template("nope", "+13135550100")


def test_failure_alert_omits_blank_subject():
    subject, body = failure_alert("sms", "+13135550100", "", "Twilio API error: down")

    assert subject == "SMS system failure"
    assert "Subject:" not in body
