"""
Payment adapters for external services.

All Stripe calls go through StripeAdapter for consistent error handling,
timeouts, idempotency and logging.

Usage:
    from payments.adapters import StripeAdapter, IdempotencyKeyGenerator

    adapter = StripeAdapter.from_provider(provider)
    session = adapter.retrieve_checkout_session("cs_123")
"""

from payments.adapters.stripe_adapter import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    CreatePaymentIntentParams,
    CustomerResult,
    IdempotencyKeyGenerator,
    LineItem,
    PaymentIntentResult,
    PaymentMethodDetails,
    RefundResult,
    StripeAdapter,
    parse_cents,
)

__all__ = [
    "CheckoutSessionResult",
    "CreateCheckoutSessionParams",
    "CreatePaymentIntentParams",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "LineItem",
    "PaymentIntentResult",
    "PaymentMethodDetails",
    "RefundResult",
    "StripeAdapter",
    "parse_cents",
]
