"""
Views for the bookings app.

Endpoints:
    POST /api/v1/bookings/orders/cancel/ - Cancel an order and apply the refund policy

Customers cancel from the link in their invoice without logging in. Only
staff may override the refund policy.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.serializers import CancelOrderResponseSerializer, CancelOrderSerializer
from bookings.services import REASON_REQUIRED_MESSAGE, CancellationService
from core.exceptions import BaseApplicationError, ValidationError
from core.views import error_response

logger = logging.getLogger(__name__)


class CancelOrderView(APIView):
    """
    Cancel an order.

    POST /api/v1/bookings/orders/cancel/

    Returns:
        200 {"success": true, "refundPolicy": ..., "refundResult": ...}
        400/404 {"error": "..."}
        500 {"error": "Failed to cancel order"}
    """

    permission_classes = [AllowAny]

    @extend_schema(
        summary="Cancel order",
        description=(
            "Cancels the order and decides the refund policy: a full refund "
            "72 hours or more before the event, no refund on the event day, "
            "a one-time reschedule credit otherwise. Full refunds are issued "
            "automatically; a refund failure is reported in refundResult and "
            "does not undo the cancellation."
        ),
        tags=["Bookings"],
        request=CancelOrderSerializer,
        responses={200: CancelOrderResponseSerializer},
    )
    def post(self, request):
        serializer = CancelOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(
                ValidationError(REASON_REQUIRED_MESSAGE, details=serializer.errors)
            )
        data = serializer.validated_data

        is_staff = bool(request.user and request.user.is_staff)
        override = data.get("adminOverrideRefund")
        if override is not None and not is_staff:
            logger.warning(
                "Ignoring refund override from non-staff caller",
                extra={"order_id": str(data.get("orderId"))},
            )
            override = None

        try:
            result = CancellationService.cancel(
                data.get("orderId"),
                data.get("reason"),
                admin_override_refund=override,
                cancelled_by=request.user.get_username() if is_staff else "customer",
            )
        except BaseApplicationError as e:
            return error_response(e)
        except Exception:
            logger.exception(
                "Cancel order failed",
                extra={"order_id": str(data.get("orderId"))},
            )
            return Response(
                {"error": "Failed to cancel order"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(result.to_dict())
