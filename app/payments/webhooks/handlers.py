"""
Webhook event handlers for Stripe events.

A small registry maps event types to handler functions. Every handler is
safe to run more than once for the same event: ledger changes go through
ReconciliationService's conditional transitions, and refund audit rows
are keyed by Stripe refund id.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction

from core.exceptions import ConfigurationError
from core.services import ServiceResult
from payments.adapters import StripeAdapter
from payments.exceptions import StripeError
from payments.models import Payment, RefundRecord, WebhookEvent
from payments.services import ReconciliationService
from payments.state_machines import PaymentKind, RefundSource

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================

WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """Register ``func`` as the handler for ``event_type``."""

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run the handler registered for the event's type.

    Unknown event types succeed as no-ops so they are not retried.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


def _outcome_data(outcome) -> dict:
    return {
        "payment_id": str(outcome.payment.pk) if outcome.payment else None,
        "status": outcome.status,
        "transitioned": outcome.transitioned,
    }


def _missing_object_id(webhook_event: WebhookEvent) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: could not extract object id",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return ServiceResult.failure(
        "Could not extract object id from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
    )


# =============================================================================
# Checkout Session Handlers
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Reconcile a completed checkout session.

    Event payloads carry the intent id but not the card; the intent is
    fetched for the card descriptor when Stripe is reachable.
    """
    if not webhook_event.get_object_id():
        return _missing_object_id(webhook_event)

    session = StripeAdapter.session_result(webhook_event.get_object())

    if session.is_paid and session.payment_intent_id and session.payment_method is None:
        try:
            adapter = ReconciliationService.get_stripe_adapter()
            intent = adapter.retrieve_payment_intent(session.payment_intent_id)
            session.payment_method = intent.payment_method
        except (ConfigurationError, StripeError) as e:
            logger.warning(
                "Could not fetch payment method for completed session",
                extra={
                    "stripe_event_id": webhook_event.stripe_event_id,
                    "session_id": session.id,
                    "error": e.message,
                },
            )

    outcome = ReconciliationService.apply_session(session)
    return ServiceResult.success(_outcome_data(outcome))


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        return _missing_object_id(webhook_event)

    logger.info(
        "Processing payment_intent.succeeded",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": payment_intent_id,
        },
    )
    intent = StripeAdapter.payment_intent_result(webhook_event.get_object())
    if intent.payment_method is not None and not intent.payment_method.last4:
        # Event payloads reference the payment method by id only
        intent = _refetch_intent(webhook_event, intent)
    outcome = ReconciliationService.apply_intent_outcome(intent)
    return ServiceResult.success(_outcome_data(outcome))


def _refetch_intent(webhook_event: WebhookEvent, intent):
    try:
        adapter = ReconciliationService.get_stripe_adapter()
        return adapter.retrieve_payment_intent(intent.id)
    except (ConfigurationError, StripeError) as e:
        logger.warning(
            "Could not fetch payment method for intent",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": intent.id,
                "error": e.message,
            },
        )
        return intent


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        return _missing_object_id(webhook_event)

    intent = StripeAdapter.payment_intent_result(webhook_event.get_object())
    logger.info(
        "Processing payment_intent.payment_failed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": payment_intent_id,
            "reason": intent.last_error,
        },
    )
    outcome = ReconciliationService.apply_intent_outcome(intent)
    return ServiceResult.success(_outcome_data(outcome))


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record refunds Stripe reports for one of our charges.

    Refunds issued by the Refund Executor already have a RefundRecord;
    only its processor status is brought up to date. Others (issued from
    the Stripe dashboard, for example) get an audit row with
    source=processor. Neither the ledger nor the order's refunded total
    changes here.
    """
    charge = webhook_event.get_object()
    if not charge.get("id"):
        return _missing_object_id(webhook_event)

    payment_intent_id = charge.get("payment_intent")
    payment = (
        Payment.objects.exclude(kind=PaymentKind.REFUND)
        .filter(stripe_payment_intent_id=payment_intent_id)
        .first()
        if payment_intent_id
        else None
    )
    if payment is None:
        logger.warning(
            "charge.refunded for unknown payment intent",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": payment_intent_id,
            },
        )
        return ServiceResult.success({"recorded": 0})

    refunds = (charge.get("refunds") or {}).get("data") or []
    recorded = 0
    with transaction.atomic():
        for refund in refunds:
            recorded += _record_processor_refund(webhook_event, payment, refund)

    return ServiceResult.success({"recorded": recorded})


def _record_processor_refund(webhook_event: WebhookEvent, payment: Payment, refund: dict) -> int:
    """Insert the audit row or bring its processor status up to date; 1 if inserted."""
    refund_id = refund.get("id")
    if not refund_id:
        return 0

    status = refund.get("status") or "pending"
    record, created = RefundRecord.objects.get_or_create(
        stripe_refund_id=refund_id,
        defaults={
            "order_id": payment.order_id,
            "amount_cents": refund.get("amount") or 0,
            "reason": refund.get("reason") or "refund",
            "stripe_payment_intent_id": payment.stripe_payment_intent_id,
            "status": status,
            "source": RefundSource.PROCESSOR,
        },
    )
    if not created:
        if record.status != status:
            record.status = status
            record.save(update_fields=["status", "updated_at"])
        return 0

    logger.warning(
        "Refund issued outside cancellation flow",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "order_id": str(payment.order_id),
            "stripe_refund_id": refund_id,
        },
    )
    return 1
