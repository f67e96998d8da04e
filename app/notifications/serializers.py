"""
DRF serializers for the notifications app.
"""

from __future__ import annotations

from rest_framework import serializers

from notifications.models import NotificationChannel


class SendNotificationSerializer(serializers.Serializer):
    """
    Request body for POST /api/v1/notifications/send/.

    Either ``message`` or ``templateKey`` is required. Templates are
    filled from ``orderId`` when given. Without ``channel`` a template goes
    out on its own channel and a literal message goes out as SMS.

    Example:
        {"to": "+13135550100", "message": "Your crew is on the way!"}
        {"to": "pat@example.com", "channel": "email", "templateKey": "order_reminder",
         "orderId": "2f1c..."}
    """

    to = serializers.CharField(max_length=255, trim_whitespace=True)
    message = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    templateKey = serializers.CharField(required=False, allow_blank=True, max_length=100)
    orderId = serializers.UUIDField(required=False, allow_null=True)
    channel = serializers.ChoiceField(
        choices=NotificationChannel.choices,
        required=False,
        allow_null=True,
    )
    subject = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
    skipFallback = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not (attrs.get("message") or "").strip() and not attrs.get("templateKey"):
            raise serializers.ValidationError("Missing 'to' or 'message' parameter")
        return attrs


class SendNotificationResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    channelMessageId = serializers.CharField(required=False)
    error = serializers.CharField(required=False)

