"""
Celery tasks for notifications.

- send_order_alert: operator alert about an order, from a MessageTemplate
- alert_degraded_channels: periodic check of the channel health breakers

Usage:
    from notifications.tasks import send_order_alert

    send_order_alert.delay(str(order.id), "booking_received_admin")
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.core.cache import cache

from bookings.models import Order
from notifications.models import MessageTemplate, NotificationChannel
from notifications.services import (
    FALLBACK_CHANNELS,
    OPERATOR_TARGETS,
    NotificationDispatcher,
    channel_breaker,
)
from toolkit.settings_provider import AdminSettingsProvider

logger = logging.getLogger(__name__)

DEGRADED_ALERT_INTERVAL_SECONDS = 4 * 60 * 60


@shared_task
def send_order_alert(order_id: str, template_key: str) -> dict:
    """
    Send the operator an alert about an order.

    Uses the active template ``template_key`` on its own channel, or a
    plain email naming the order when the template is missing.
    """
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        logger.warning("Order alert for unknown order", extra={"order_id": order_id})
        return {"status": "skipped", "reason": "order_not_found"}

    provider = AdminSettingsProvider.from_settings()
    template = MessageTemplate.objects.active().filter(key=template_key).first()

    if template is None:
        result = NotificationDispatcher.notify_operator(
            subject=f"Order update: {order.short_id}",
            body=(
                f"Order {order.short_id} for {order.customer_name} "
                f"is now {order.get_status_display()}."
            ),
            context={"order_id": str(order.pk), "template_key": template_key},
            provider=provider,
        )
    else:
        target = provider.get(OPERATOR_TARGETS[template.channel])
        if not target:
            logger.warning(
                "No operator address for order alert",
                extra={"order_id": str(order.pk), "channel": template.channel},
            )
            return {"status": "skipped", "reason": "no_operator_address"}
        result = NotificationDispatcher.send_template(
            template_key, target, order=order, provider=provider
        )

    if result is None:
        return {"status": "skipped", "reason": "no_operator_address"}
    return {"status": "sent" if result.success else "failed", **result.to_dict()}


@shared_task
def alert_degraded_channels() -> dict:
    """
    Tell the operator, over the other channel, that a channel is failing.

    Each channel alerts at most once per DEGRADED_ALERT_INTERVAL_SECONDS.
    """
    provider = AdminSettingsProvider.from_settings()
    alerted = []

    for channel in NotificationChannel.values:
        breaker = channel_breaker(channel)
        if not breaker.is_open():
            continue

        if not cache.add(
            f"notifications:degraded_alert:{channel}",
            True,
            timeout=DEGRADED_ALERT_INTERVAL_SECONDS,
        ):
            continue

        status = breaker.get_status()
        label = NotificationChannel(channel).label
        logger.warning(
            "Notification channel degraded",
            extra={"channel": channel, "failure_count": status["failure_count"]},
        )
        result = NotificationDispatcher.notify_operator(
            subject=f"{label} notifications are failing",
            body=(
                f"{label} delivery has failed {status['failure_count']} times in a row.\n"
                f"Last error: {status['last_error'] or 'unknown'}\n\n"
                "Please check admin dashboard."
            ),
            context={"degraded_channel": channel},
            channel=FALLBACK_CHANNELS[channel],
            provider=provider,
        )
        if result is not None and result.success:
            alerted.append(channel)

    return {"alerted": alerted}
