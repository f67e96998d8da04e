"""
DRF serializers for payments app.

Request bodies use the camelCase keys the storefront sends.

Usage:
    serializer = CreateCheckoutIntentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.state_machines import PaymentKind


class CreateCheckoutIntentSerializer(serializers.Serializer):
    """
    Request body for POST /api/v1/payments/checkout/.

    Example:
        {
            "orderId": "2f1c...",
            "amountCents": 5000,
            "tipCents": 500,
            "customerEmail": "pat@example.com",
            "customerName": "Pat Doe",
            "paymentType": "deposit"
        }
    """

    orderId = serializers.UUIDField()
    amountCents = serializers.IntegerField(min_value=1)
    tipCents = serializers.IntegerField(min_value=0, required=False, default=0)
    customerEmail = serializers.EmailField(required=False, allow_blank=True)
    customerName = serializers.CharField(required=False, allow_blank=True, max_length=200)
    paymentType = serializers.ChoiceField(
        choices=[PaymentKind.DEPOSIT, PaymentKind.BALANCE],
        required=False,
        default=PaymentKind.DEPOSIT,
    )


class CheckoutIntentResponseSerializer(serializers.Serializer):
    sessionId = serializers.CharField()
    url = serializers.URLField()


class PaymentStatusRequestSerializer(serializers.Serializer):
    orderId = serializers.UUIDField()


class PaymentStatusResponseSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=["paid", "pending"])
    paymentStatus = serializers.CharField()
    depositPaidCents = serializers.IntegerField()
    balancePaidCents = serializers.IntegerField()


class ChargeSavedCardSerializer(serializers.Serializer):
    """
    Request body for POST /api/v1/payments/charge/.

    Example:
        {"orderId": "2f1c...", "amountCents": 15000, "paymentType": "balance"}
    """

    orderId = serializers.UUIDField()
    amountCents = serializers.IntegerField(min_value=1)
    tipCents = serializers.IntegerField(min_value=0, required=False, default=0)
    paymentType = serializers.ChoiceField(
        choices=[PaymentKind.DEPOSIT, PaymentKind.BALANCE],
        required=False,
        default=PaymentKind.BALANCE,
    )
    description = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class ChargeSavedCardResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    paymentId = serializers.UUIDField()
    paymentIntentId = serializers.CharField(allow_null=True)
    status = serializers.CharField()
