"""
Tests for notification Celery tasks.
"""

import pytest
from django.core import mail
from django.core.cache import cache

from bookings.tests.factories import OrderFactory
from notifications.services import channel_breaker
from notifications.tasks import alert_degraded_channels, send_order_alert
from notifications.tests.conftest import ADMIN_EMAIL, ADMIN_PHONE
from notifications.tests.factories import MessageTemplateFactory

pytestmark = pytest.mark.django_db


class TestSendOrderAlert:
    def test_uses_template_channel_and_operator_address(
        self, operator_targets, sms_configured, twilio_post
    ):
        order = OrderFactory(customer_name="Pat Doe")
        MessageTemplateFactory(
            key="booking_received_admin",
            channel="sms",
            body="New booking {order_id} from {customer_name}",
        )

        result = send_order_alert(str(order.pk), "booking_received_admin")

        assert result["status"] == "sent"
        data = twilio_post.call_args.kwargs["data"]
        assert data["To"] == ADMIN_PHONE
        assert data["Body"] == f"New booking {order.short_id} from Pat Doe"

    def test_missing_template_falls_back_to_operator_email(self, operator_targets):
        order = OrderFactory()

        result = send_order_alert(str(order.pk), "booking_received_admin")

        assert result["status"] == "sent"
        assert mail.outbox[0].to == [ADMIN_EMAIL]
        assert order.short_id in mail.outbox[0].subject

    def test_unknown_order_is_skipped(self):
        result = send_order_alert("00000000-0000-0000-0000-000000000000", "x")

        assert result == {"status": "skipped", "reason": "order_not_found"}


class TestAlertDegradedChannels:
    def _open(self, channel):
        breaker = channel_breaker(channel)
        for _ in range(breaker.failure_threshold):
            breaker.record_failure("Twilio API error: Authenticate")

    def test_alerts_on_the_other_channel(self, operator_targets):
        self._open("sms")

        result = alert_degraded_channels()

        assert result == {"alerted": ["sms"]}
        assert mail.outbox[0].to == [ADMIN_EMAIL]
        assert "Twilio API error: Authenticate" in mail.outbox[0].body

    def test_alerts_at_most_once_per_interval(self, operator_targets):
        self._open("sms")

        alert_degraded_channels()
        result = alert_degraded_channels()

        assert result == {"alerted": []}
        assert len(mail.outbox) == 1

    def test_healthy_channels_are_quiet(self, operator_targets):
        assert alert_degraded_channels() == {"alerted": []}
        assert cache.get("notifications:degraded_alert:sms") is None
        assert len(mail.outbox) == 0
