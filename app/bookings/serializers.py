"""
DRF serializers for the bookings app.
"""

from __future__ import annotations

from rest_framework import serializers


class CancelOrderSerializer(serializers.Serializer):
    """
    Request body for POST /api/v1/bookings/orders/cancel/.

    Length of ``reason`` is checked by CancellationService so every caller
    gets the same rule and message.

    Example:
        {
            "orderId": "2f1c...",
            "reason": "Weather forecast is calling for storms",
            "adminOverrideRefund": true
        }
    """

    orderId = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    adminOverrideRefund = serializers.BooleanField(required=False, allow_null=True, default=None)


class RefundResultSerializer(serializers.Serializer):
    refunded = serializers.BooleanField()
    amount = serializers.IntegerField()
    refundId = serializers.CharField(required=False)
    status = serializers.CharField(required=False)
    error = serializers.CharField(required=False)


class CancelOrderResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    refundPolicy = serializers.ChoiceField(
        choices=["full_refund", "reschedule_credit", "no_refund"]
    )
    refundMessage = serializers.CharField()
    refundResult = RefundResultSerializer(allow_null=True)
    hoursUntilEvent = serializers.FloatField()
