"""
Views for the notifications app.

Endpoints:
    POST /api/v1/notifications/send/ - Send one SMS or email (staff only)
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Order
from core.exceptions import BaseApplicationError, NotFoundError
from core.views import error_response
from notifications.models import NotificationChannel
from notifications.serializers import (
    SendNotificationResponseSerializer,
    SendNotificationSerializer,
)
from notifications.services import NotificationDispatcher

logger = logging.getLogger(__name__)


class SendNotificationView(APIView):
    """
    Send a message through the escalation dispatcher.

    POST /api/v1/notifications/send/

    Returns:
        200 {"success": true, "channelMessageId": "SM..."}
        502 {"success": false, "error": "Twilio API error: ..."}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Send notification",
        description=(
            "Sends an SMS or email, either a literal message or a rendered "
            "template. A failed send is logged and, unless skipFallback is "
            "set, escalated once to the operator on the other channel."
        ),
        tags=["Notifications"],
        request=SendNotificationSerializer,
        responses={200: SendNotificationResponseSerializer, 502: SendNotificationResponseSerializer},
    )
    def post(self, request):
        serializer = SendNotificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        context = {"sent_by": request.user.get_username()}
        order = None
        if data.get("orderId"):
            order = Order.objects.filter(pk=data["orderId"]).first()
            if order is None:
                return error_response(
                    NotFoundError("Order not found", details={"order_id": str(data["orderId"])})
                )
            context["order_id"] = str(order.pk)

        try:
            if data.get("templateKey"):
                result = NotificationDispatcher.send_template(
                    data["templateKey"],
                    data["to"],
                    order=order,
                    channel=data.get("channel"),
                    skip_fallback=data["skipFallback"],
                )
            else:
                result = NotificationDispatcher.send(
                    data.get("channel") or NotificationChannel.SMS,
                    data["to"],
                    data["message"],
                    subject=data["subject"],
                    context=context,
                    skip_fallback=data["skipFallback"],
                )
        except BaseApplicationError as e:
            return error_response(e)

        if not result.success:
            logger.warning(
                "Manual notification failed",
                extra={"channel": result.channel, "failure_id": str(result.failure_id)},
            )
            return Response(result.to_dict(), status=status.HTTP_502_BAD_GATEWAY)
        return Response(result.to_dict())
