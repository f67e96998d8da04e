"""
Payment Celery tasks.

process_webhook_event runs the handler for one stored Stripe event. The
other three run from CELERY_BEAT_SCHEDULE and sweep up what the push and
pull paths left behind.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.exceptions import PaymentNotFoundError, ReconciliationMissError
from payments.models import ReconciliationMiss, WebhookEvent
from payments.models.webhook_event import MAX_PROCESSING_ATTEMPTS

logger = logging.getLogger(__name__)

STUCK_AFTER = timedelta(minutes=30)
SWEEP_BATCH_SIZE = 100


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": getattr(settings, "STRIPE_MAX_RETRIES", MAX_PROCESSING_ATTEMPTS)},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Dispatch one stored event and record the outcome on the row.

    Handlers run outside any transaction; Stripe lookups come first and
    ledger writes open their own.

    A handler returning a failed ServiceResult marks the row FAILED for the
    retry sweep. An exception marks it FAILED too and is re-raised so Celery
    retries with backoff.
    """
    from payments.webhooks.handlers import dispatch_webhook

    webhook_event_id = str(UUID(str(webhook_event_id)))
    webhook_event = WebhookEvent.objects.filter(pk=webhook_event_id).first()
    if webhook_event is None:
        logger.error("Webhook event not found", extra={"webhook_event_id": webhook_event_id})
        return {"status": "not_found", "webhook_event_id": webhook_event_id}

    log_context = {
        "webhook_event_id": webhook_event_id,
        "stripe_event_id": webhook_event.stripe_event_id,
        "event_type": webhook_event.event_type,
    }
    if webhook_event.is_processed:
        logger.info("Webhook event already processed", extra=log_context)
        return {"status": "already_processed", "webhook_event_id": webhook_event_id}

    webhook_event.mark_processing()
    webhook_event.save(update_fields=["status", "retry_count", "updated_at"])
    logger.info(
        "Processing webhook event",
        extra={
            **log_context,
            "attempt": webhook_event.retry_count,
            "signature_verified": webhook_event.signature_verified,
        },
    )

    try:
        result = dispatch_webhook(webhook_event)
    except Exception as e:
        _fail(webhook_event, f"{type(e).__name__}: {e}")
        logger.exception("Webhook handler raised", extra=log_context)
        raise

    if not result:
        error = result.error or "Handler returned failure"
        _fail(webhook_event, error)
        logger.warning(
            "Webhook handler failed",
            extra={**log_context, "error": error, "error_code": result.error_code},
        )
        return {"status": "handler_failed", "webhook_event_id": webhook_event_id, "error": error}

    webhook_event.mark_processed()
    webhook_event.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
    logger.info("Webhook event processed", extra=log_context)
    return {
        "status": "processed",
        "webhook_event_id": webhook_event_id,
        "stripe_event_id": webhook_event.stripe_event_id,
    }


def _fail(webhook_event: WebhookEvent, error: str) -> None:
    webhook_event.mark_failed(error)
    webhook_event.save(update_fields=["status", "error_message", "updated_at"])


@shared_task
def retry_failed_webhooks() -> dict:
    """Queue FAILED events that have attempts left, oldest first."""
    queued = 0
    for event_id in WebhookEvent.objects.retryable().order_by("created_at").values_list(
        "pk", flat=True
    )[:SWEEP_BATCH_SIZE]:
        try:
            process_webhook_event.delay(str(event_id))
        except Exception:
            # Broker outage; the next sweep picks the row up again
            logger.error(
                "Could not queue webhook retry",
                extra={"webhook_event_id": str(event_id)},
                exc_info=True,
            )
            continue
        queued += 1

    if queued:
        logger.info("Queued failed webhooks", extra={"queued_count": queued})
    return {"queued_count": queued}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """Mark PROCESSING rows abandoned by a dead worker as FAILED."""
    reset = 0
    for webhook_event in WebhookEvent.objects.stuck_since(timezone.now() - STUCK_AFTER):
        _fail(webhook_event, "Processing timed out - reset for retry")
        reset += 1
        logger.warning(
            "Reset stuck webhook event",
            extra={
                "webhook_event_id": str(webhook_event.pk),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
    return {"reset_count": reset}


@shared_task
def retry_reconciliation_misses() -> dict:
    """
    Re-run pull-path reconciliation for sessions Stripe did not answer.

    A failed retry bumps the miss's attempt count; rows at
    MAX_RECONCILIATION_ATTEMPTS stay for an operator.
    """
    from payments.services import ReconciliationService

    resolved = failed = 0
    misses = ReconciliationMiss.objects.retryable().order_by("last_attempt_at")
    for miss in misses[:SWEEP_BATCH_SIZE]:
        try:
            ReconciliationService.reconcile_session(
                miss.stripe_checkout_session_id, source=miss.source
            )
        except ReconciliationMissError:
            failed += 1
            continue
        except PaymentNotFoundError:
            # No ledger entry references the session any more
            miss.mark_resolved()
        resolved += 1

    if resolved or failed:
        logger.info("Retried reconciliation misses", extra={"resolved": resolved, "failed": failed})
    return {"resolved": resolved, "failed": failed}
