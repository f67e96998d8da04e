"""
Views for payments app.

Endpoints:
    POST /api/v1/payments/checkout/ - Create a checkout session
    GET  /api/v1/payments/checkout/success/ - Success page (pull reconciliation)
    GET  /api/v1/payments/checkout/cancel/ - Cancel page (no mutation)
    POST /api/v1/payments/payment-status/ - Poll and reconcile an order's payment
    POST /api/v1/payments/charge/ - Charge the saved card (staff only)
    POST /api/v1/payments/webhooks/stripe/ - Stripe webhook (payments.webhooks)

Checkout and the status poll are called by the public storefront and
need no authentication; order ids are unguessable UUIDs.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.shortcuts import render
from django.views.decorators.http import require_GET

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Order
from core.exceptions import BaseApplicationError, NotFoundError
from core.views import error_response
from payments.exceptions import PaymentNotFoundError, ReconciliationMissError
from payments.models import Payment
from payments.serializers import (
    ChargeSavedCardResponseSerializer,
    ChargeSavedCardSerializer,
    CheckoutIntentResponseSerializer,
    CreateCheckoutIntentSerializer,
    PaymentStatusRequestSerializer,
    PaymentStatusResponseSerializer,
)
from payments.services import ChargeService, CheckoutService, ReconciliationService
from payments.state_machines import PaymentStatus, ReconciliationSource

logger = logging.getLogger(__name__)


class CreateCheckoutIntentView(APIView):
    """
    Create a Stripe Checkout Session for an order.

    POST /api/v1/payments/checkout/

    Returns:
        200 {"sessionId": "cs_...", "url": "https://checkout.stripe.com/..."}
        4xx/5xx {"error": "..."} before any redirect
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Create checkout session",
        description=(
            "Creates (or reuses) the order's Stripe customer, supersedes any "
            "outstanding session of the same payment type and opens a new "
            "Checkout Session. A tip is charged as a separate line item."
        ),
        tags=["Payments"],
        request=CreateCheckoutIntentSerializer,
        responses={200: CheckoutIntentResponseSerializer},
    )
    def post(self, request):
        serializer = CreateCheckoutIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            intent = CheckoutService.create_intent(
                order_id=data["orderId"],
                amount_cents=data["amountCents"],
                tip_cents=data["tipCents"],
                customer_email=data.get("customerEmail") or None,
                customer_name=data.get("customerName") or None,
                kind=data["paymentType"],
            )
        except BaseApplicationError as e:
            logger.warning(
                "Checkout creation failed",
                extra={"order_id": str(data["orderId"]), "error_code": e.error_code},
            )
            return error_response(e)

        return Response({"sessionId": intent.session_id, "url": intent.url})


@require_GET
def checkout_success(request: HttpRequest) -> HttpResponse:
    """
    Success redirect target.

    Re-fetches the session from Stripe and reconciles it, then always
    renders the confirmation: the money has already moved at Stripe, so a
    reconciliation problem must not hide it from the customer.
    """
    order_id = request.GET.get("orderId", "")
    session_id = request.GET.get("session_id") or request.GET.get("sessionId", "")
    paid = False

    if session_id:
        try:
            outcome = ReconciliationService.reconcile_session(
                session_id, source=ReconciliationSource.SUCCESS_PAGE
            )
            paid = outcome.is_paid
        except (ReconciliationMissError, PaymentNotFoundError) as e:
            logger.warning(
                "Success page could not reconcile session",
                extra={
                    "order_id": order_id,
                    "session_id": session_id,
                    "error_code": e.error_code,
                },
            )
        except Exception:
            logger.exception(
                "Unexpected error reconciling on success page",
                extra={"order_id": order_id, "session_id": session_id},
            )

    return render(
        request,
        "payments/checkout_success.html",
        {"order_id": order_id, "short_id": order_id[:8].upper(), "paid": paid},
    )


@require_GET
def checkout_cancel(request: HttpRequest) -> HttpResponse:
    """Cancel redirect target. Nothing is changed; the pending entry expires at Stripe."""
    order_id = request.GET.get("orderId", "")
    return render(
        request,
        "payments/checkout_cancel.html",
        {"order_id": order_id, "short_id": order_id[:8].upper()},
    )


class PaymentStatusView(APIView):
    """
    Poll an order's payment status.

    POST /api/v1/payments/payment-status/

    Reconciles any outstanding checkout session first, so a dropped webhook
    is healed by the storefront polling.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Check payment status",
        tags=["Payments"],
        request=PaymentStatusRequestSerializer,
        responses={200: PaymentStatusResponseSerializer},
    )
    def post(self, request):
        serializer = PaymentStatusRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_id = serializer.validated_data["orderId"]

        if not Order.objects.filter(pk=order_id).exists():
            return error_response(
                NotFoundError("Order not found", details={"order_id": str(order_id)})
            )

        ReconciliationService.reconcile_order(order_id)

        order = Order.objects.get(pk=order_id)
        paid = Payment.objects.for_order(order).succeeded_charges().exists()
        return Response(
            {
                "status": "paid" if paid else "pending",
                "paymentStatus": order.payment_status,
                "depositPaidCents": order.deposit_paid_cents,
                "balancePaidCents": order.balance_paid_cents,
            }
        )


class ChargeSavedCardView(APIView):
    """
    Charge the card saved at checkout, for staff collecting a balance.

    POST /api/v1/payments/charge/

    Returns:
        200 {"success": true, "paymentId": "...", "paymentIntentId": "pi_...",
             "status": "succeeded" | "pending"}
        4xx/5xx {"error": "..."}; a decline leaves a failed ledger entry
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Charge saved card",
        description=(
            "Creates a pending ledger entry and confirms an off-session "
            "PaymentIntent against the order's saved card. The outcome is "
            "applied the same way payment_intent webhooks apply it."
        ),
        tags=["Payments"],
        request=ChargeSavedCardSerializer,
        responses={200: ChargeSavedCardResponseSerializer},
    )
    def post(self, request):
        serializer = ChargeSavedCardSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            outcome = ChargeService.charge_saved_card(
                order_id=data["orderId"],
                amount_cents=data["amountCents"],
                kind=data["paymentType"],
                tip_cents=data["tipCents"],
                description=data["description"],
            )
        except BaseApplicationError as e:
            logger.warning(
                "Saved card charge failed",
                extra={
                    "order_id": str(data["orderId"]),
                    "error_code": e.error_code,
                    "charged_by": request.user.get_username(),
                },
            )
            return error_response(e)

        payment = outcome.payment
        return Response(
            {
                "success": outcome.status != PaymentStatus.FAILED,
                "paymentId": str(payment.pk),
                "paymentIntentId": payment.stripe_payment_intent_id,
                "status": outcome.status,
            }
        )
