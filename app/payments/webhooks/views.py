"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the signature when a webhook secret and a Stripe-Signature
   header are both present; otherwise accepts the body unverified and
   flags the event (lower trust, local/dev setups)
2. Creates/retrieves the WebhookEvent record (idempotent by event id)
3. Queues the event for async processing
4. Returns {"received": true}

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from toolkit.settings_provider import AdminSettingsProvider

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive and queue Stripe webhook events.

    Returns:
        - 200 {"received": true}: accepted, duplicate, or queueing failed
          (the stored event is picked up by retry_failed_webhooks)
        - 400 {"error": "Invalid signature"}: signature verification failed
        - 400 {"error": "Invalid payload"}: body is not a Stripe event
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")
    secret = AdminSettingsProvider.from_settings().get("stripe_webhook_secret")

    if secret and signature:
        try:
            event_data = StripeAdapter.verify_webhook_signature(payload, signature, secret)
        except StripeInvalidRequestError as e:
            logger.warning(
                "Webhook signature verification failed",
                extra={"error": e.message},
            )
            return JsonResponse({"error": "Invalid signature"}, status=400)
        signature_verified = True
    else:
        try:
            event_data = json.loads(payload)
        except (UnicodeDecodeError, ValueError):
            return JsonResponse({"error": "Invalid payload"}, status=400)
        signature_verified = False
        logger.warning(
            "Webhook accepted without signature verification",
            extra={"has_secret": bool(secret), "has_signature": bool(signature)},
        )

    stripe_event_id = event_data.get("id") if isinstance(event_data, dict) else None
    event_type = event_data.get("type") if isinstance(event_data, dict) else None

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return JsonResponse({"error": "Invalid payload"}, status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
            "signature_verified": signature_verified,
        },
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "signature_verified": signature_verified,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed",
            extra={"stripe_event_id": stripe_event_id},
        )
        return JsonResponse({"received": True})

    try:
        from payments.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
    except Exception:
        logger.error(
            "Failed to queue webhook",
            extra={"stripe_event_id": stripe_event_id},
            exc_info=True,
        )

    return JsonResponse({"received": True})
