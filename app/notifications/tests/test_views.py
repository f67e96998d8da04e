"""
Tests for POST /api/v1/notifications/send/.
"""

import pytest
from django.contrib.auth import get_user_model
from django.core import mail

from bookings.tests.factories import OrderFactory
from notifications.models import NotificationFailure
from notifications.tests.factories import MessageTemplateFactory

URL = "/api/v1/notifications/send/"


@pytest.fixture
def staff_client(api_client, db):
    user = get_user_model().objects.create_user(
        username="ops", password="pw", is_staff=True
    )
    api_client.force_authenticate(user=user)
    return api_client


@pytest.mark.django_db
class TestSendNotificationView:
    def test_requires_staff(self, api_client):
        response = api_client.post(URL, {"to": "+13135550100", "message": "hi"}, format="json")

        assert response.status_code in (401, 403)

    def test_sends_sms(self, staff_client, sms_configured, twilio_post):
        response = staff_client.post(
            URL, {"to": "+13135550100", "message": "On our way!"}, format="json"
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "channelMessageId": "SM_test_123"}

    def test_missing_message_is_rejected_without_recording(self, staff_client):
        response = staff_client.post(URL, {"to": "+13135550100"}, format="json")

        assert response.status_code == 400
        assert NotificationFailure.objects.count() == 0

    def test_failure_returns_error(self, staff_client, operator_targets, twilio_post):
        response = staff_client.post(
            URL,
            {"to": "+13135550100", "message": "hi", "skipFallback": True},
            format="json",
        )

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert "Twilio not configured" in body["error"]
        assert NotificationFailure.objects.get().context == {"sent_by": "ops"}

    def test_template_with_order(self, staff_client, sms_configured, twilio_post):
        order = OrderFactory(customer_name="Pat Doe")
        MessageTemplateFactory(key="order_reminder", body="Hi {customer_name}")

        response = staff_client.post(
            URL,
            {"to": "+13135550100", "templateKey": "order_reminder", "orderId": str(order.pk)},
            format="json",
        )

        assert response.status_code == 200
        assert twilio_post.call_args.kwargs["data"]["Body"] == "Hi Pat Doe"

    def test_unknown_order(self, staff_client):
        response = staff_client.post(
            URL,
            {
                "to": "+13135550100",
                "templateKey": "order_reminder",
                "orderId": "00000000-0000-0000-0000-000000000000",
            },
            format="json",
        )

        assert response.status_code == 404

    def test_unknown_template(self, staff_client):
        response = staff_client.post(
            URL, {"to": "+13135550100", "templateKey": "missing"}, format="json"
        )

        assert response.status_code == 404

    def test_template_goes_out_on_its_own_channel(self, staff_client, twilio_post):
        MessageTemplateFactory(
            key="reminder_email",
            channel="email",
            subject="Your party is coming up",
            body="Hi {customer_name}",
        )

        response = staff_client.post(
            URL, {"to": "pat@example.com", "templateKey": "reminder_email"}, format="json"
        )

        assert response.status_code == 200
        twilio_post.assert_not_called()
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ["pat@example.com"]

    def test_explicit_channel_overrides_template(self, staff_client, sms_configured, twilio_post):
        MessageTemplateFactory(key="reminder_email", channel="email", body="Hi")

        response = staff_client.post(
            URL,
            {"to": "+13135550100", "templateKey": "reminder_email", "channel": "sms"},
            format="json",
        )

        assert response.status_code == 200
        twilio_post.assert_called_once()
