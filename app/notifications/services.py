"""
Notification Escalation Dispatcher.

Sends one message on one channel. A failed send is always written to the
NotificationFailure audit table. Unless the caller asked to skip fallback,
the failure is also escalated once as an operator alert on the other
channel:

    attempt channel
      ├── success: record channel health, done
      └── failure: record the failure, escalate to the next unvisited
                   channel (one hop), then stamp the escalation outcome

Escalation sends carry the chain of channels already visited and
``skip_fallback=True``; a failing alert is recorded but goes no further.

Usage:
    from notifications.services import NotificationDispatcher

    result = NotificationDispatcher.send(
        channel="sms",
        recipient=order.customer_phone,
        body="Your crew is on the way!",
        context={"order_id": str(order.pk)},
    )
    return Response(result.to_dict())
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.circuit_breaker import CircuitBreaker
from core.exceptions import ConfigurationError, NotFoundError
from core.services import BaseService
from notifications.channels import get_channel
from notifications.exceptions import DeliveryError
from notifications.models import (
    PREVIEW_LIMIT,
    MessageTemplate,
    NotificationChannel,
    NotificationFailure,
)
from payments.refund_policy import get_business_timezone
from toolkit.settings_provider import AdminSettingsProvider

if TYPE_CHECKING:
    from typing import Any

    from bookings.models import Order

logger = logging.getLogger(__name__)

MAX_ESCALATION_HOPS = 1
ALERT_ERROR_LIMIT = 100

# Channel -> the channel an operator alert about its failure goes out on
FALLBACK_CHANNELS: dict[str, str] = {
    NotificationChannel.SMS: NotificationChannel.EMAIL,
    NotificationChannel.EMAIL: NotificationChannel.SMS,
}

# Channel -> Settings Provider key holding the operator's address on it
OPERATOR_TARGETS: dict[str, str] = {
    NotificationChannel.SMS: "admin_notification_phone",
    NotificationChannel.EMAIL: "admin_email",
}


@dataclass
class SendResult:
    """
    Outcome of one dispatcher send.

    ``escalation`` is the result of the operator alert sent because this
    send failed, or None when no alert was attempted.
    """

    success: bool
    channel: str
    channel_message_id: str | None = None
    error: str | None = None
    failure_id: uuid.UUID | None = None
    escalation: SendResult | None = None

    @property
    def fallback_sent(self) -> bool:
        return self.escalation is not None and self.escalation.success

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "channelMessageId": self.channel_message_id}
        return {"success": False, "error": self.error}


def channel_breaker(channel: str) -> CircuitBreaker:
    return CircuitBreaker(
        f"notifications:{channel}",
        failure_threshold=getattr(settings, "NOTIFICATION_CHANNEL_FAILURE_THRESHOLD", 3),
        recovery_timeout=getattr(settings, "NOTIFICATION_CHANNEL_RECOVERY_SECONDS", 900),
    )


def failure_alert(channel: str, recipient: str, subject: str, error: str) -> tuple[str, str]:
    """Operator alert (subject, body) for a failed send on ``channel``."""
    label = "EMAIL" if channel == NotificationChannel.EMAIL else "SMS"
    noun = "email" if channel == NotificationChannel.EMAIL else "SMS"
    lines = [f"[{label} SYSTEM FAILURE]", "", f"Failed to send {noun} to: {recipient}"]
    if subject:
        lines.append(f"Subject: {subject}")
    lines += [f"Error: {error[:ALERT_ERROR_LIMIT]}", "", "Please check admin dashboard."]
    return f"{label} system failure", "\n".join(lines)


class NotificationDispatcher(BaseService):
    """Sends messages with failure logging, channel health and one-hop escalation."""

    @classmethod
    def send(
        cls,
        channel: str,
        recipient: str,
        body: str,
        subject: str = "",
        context: dict[str, Any] | None = None,
        skip_fallback: bool = False,
        escalation_chain: list[str] | None = None,
        provider: AdminSettingsProvider | None = None,
    ) -> SendResult:
        """
        Send ``body`` to ``recipient`` on ``channel``.

        Delivery and configuration failures never raise; they come back as
        ``success=False`` with the failure row id.

        Raises:
            ValueError: Unknown channel
        """
        provider = provider or AdminSettingsProvider.from_settings()
        chain = list(escalation_chain or [])
        breaker = channel_breaker(channel)
        log_context = {"channel": channel, "escalation_chain": chain}

        start = time.monotonic()
        try:
            message_id = get_channel(channel, provider).send(recipient, body, subject)
        except (ConfigurationError, DeliveryError) as e:
            breaker.record_failure(e.message)
            cls.get_logger().warning(
                "Notification send failed",
                extra={**log_context, "error": e.message, "error_code": e.error_code},
            )
            failure = NotificationFailure.objects.create(
                channel=channel,
                recipient=recipient,
                subject=subject,
                preview=body[:PREVIEW_LIMIT],
                error_message=e.message,
                context=context or {},
                escalation_chain=chain,
            )
            escalation = None
            if not skip_fallback and len(chain) < MAX_ESCALATION_HOPS:
                escalation = cls._escalate(
                    channel, recipient, subject, e.message, context, chain, provider
                )
            if escalation is not None:
                failure.record_fallback(escalation.channel, escalation.success)
            return SendResult(
                success=False,
                channel=channel,
                error=e.message,
                failure_id=failure.pk,
                escalation=escalation,
            )

        breaker.record_success()
        cls.get_logger().info(
            "Notification sent",
            extra={
                **log_context,
                "channel_message_id": message_id,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return SendResult(success=True, channel=channel, channel_message_id=message_id)

    @classmethod
    def notify_operator(
        cls,
        subject: str,
        body: str,
        context: dict[str, Any] | None = None,
        channel: str = NotificationChannel.EMAIL,
        provider: AdminSettingsProvider | None = None,
    ) -> SendResult | None:
        """
        Alert the operator on ``channel``, escalating to the other on failure.

        Returns None when no operator address is configured for ``channel``.
        """
        provider = provider or AdminSettingsProvider.from_settings()
        target = provider.get(OPERATOR_TARGETS[channel])
        if not target:
            cls.get_logger().warning(
                "No operator address configured",
                extra={"channel": channel, "setting_key": OPERATOR_TARGETS[channel]},
            )
            return None
        return cls.send(
            channel,
            target,
            body,
            subject=subject,
            context=context,
            provider=provider,
        )

    @classmethod
    def send_template(
        cls,
        template_key: str,
        recipient: str,
        order: Order | None = None,
        channel: str | None = None,
        skip_fallback: bool = False,
        provider: AdminSettingsProvider | None = None,
    ) -> SendResult:
        """
        Render an active MessageTemplate with the order's fields and send it.

        Raises:
            NotFoundError: No active template with ``template_key``
        """
        template = MessageTemplate.objects.active().filter(key=template_key).first()
        if template is None:
            raise NotFoundError(
                "Message template not found",
                details={"template_key": template_key},
            )

        template_context = order_context(order) if order is not None else {}
        context = {"template_key": template_key}
        if order is not None:
            context["order_id"] = str(order.pk)

        return cls.send(
            channel or template.channel,
            recipient,
            template.render(template_context),
            subject=template.render_subject(template_context),
            context=context,
            skip_fallback=skip_fallback,
            provider=provider,
        )

    @classmethod
    def _escalate(
        cls,
        channel: str,
        recipient: str,
        subject: str,
        error: str,
        context: dict[str, Any] | None,
        chain: list[str],
        provider: AdminSettingsProvider,
    ) -> SendResult | None:
        visited = chain + [channel]
        fallback = FALLBACK_CHANNELS.get(channel)
        if fallback is None or fallback in visited:
            return None

        target = provider.get(OPERATOR_TARGETS[fallback])
        if not target:
            cls.get_logger().warning(
                "Escalation skipped, no operator address",
                extra={"channel": channel, "fallback_channel": fallback},
            )
            return None

        alert_subject, alert_body = failure_alert(channel, recipient, subject, error)
        cls.get_logger().info(
            "Escalating failed notification",
            extra={"channel": channel, "fallback_channel": fallback},
        )
        return cls.send(
            fallback,
            target,
            alert_body,
            subject=alert_subject,
            context={**(context or {}), "escalated_from": channel},
            skip_fallback=True,
            escalation_chain=visited,
            provider=provider,
        )


def order_context(order: Order) -> dict[str, Any]:
    """Placeholder values templates may use for an order."""
    return {
        "order_id": order.short_id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "event_date": _event_date(order),
        "status": order.get_status_display(),
        "total": f"${order.total_cents / 100:.2f}",
        "balance_due": f"${order.balance_due_cents / 100:.2f}",
    }


def _event_date(order: Order) -> str:
    if order.event_start_at is None:
        return ""
    return order.event_start_at.astimezone(get_business_timezone()).strftime("%B %d, %Y")
