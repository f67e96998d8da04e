"""
Payment errors.

    PaymentError
    ├── PaymentNotFoundError       404  order, ledger entry or session unknown
    ├── PaymentValidationError     400  checkout input rejected, nothing written
    ├── ReconciliationMissError    502  success-page pull could not verify
    └── PaymentProcessingError     502
        └── StripeError            is_retryable False unless noted
            ├── StripeCardDeclinedError
            ├── StripeInsufficientFundsError
            ├── StripeAuthenticationError
            ├── StripeInvalidRequestError   also bad webhook signatures
            ├── StripeRateLimitError        retryable
            ├── StripeAPIUnavailableError   retryable
            └── StripeTimeoutError          retryable

    LockAcquisitionError           409  per-order refund lock held
    InvalidStateTransitionError    409  ledger FSM refused a transition
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


class PaymentError(BaseApplicationError):
    default_error_code = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    default_error_code = "PAYMENT_NOT_FOUND"
    http_status = 404


class PaymentValidationError(PaymentError):
    """Non-positive amount, negative tip or an unsupported payment type."""

    default_error_code = "PAYMENT_VALIDATION_ERROR"
    http_status = 400


class ReconciliationMissError(PaymentError):
    """
    The success page could not re-verify its session with Stripe.

    The customer still sees the confirmation; the session is parked as a
    ReconciliationMiss row and retried by a periodic task.
    """

    default_error_code = "RECONCILIATION_MISS"
    http_status = 502


class PaymentProcessingError(PaymentError):
    default_error_code = "PAYMENT_PROCESSING_ERROR"
    http_status = 502


class StripeError(PaymentProcessingError):
    """
    Any failed Stripe call, normalized by StripeAdapter.

    A retryable error may already have taken effect at Stripe, so the retry
    must reuse the original idempotency key.
    """

    default_error_code = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


class StripeCardDeclinedError(StripeError):
    default_error_code = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    default_error_code = "INSUFFICIENT_FUNDS"


class StripeAuthenticationError(StripeError):
    """The stripe_secret_key in admin settings was rejected."""

    default_error_code = "STRIPE_AUTHENTICATION_FAILED"


class StripeInvalidRequestError(StripeError):
    default_error_code = "INVALID_STRIPE_REQUEST"


class StripeRateLimitError(StripeError):
    default_error_code = "STRIPE_RATE_LIMITED"
    is_retryable = True


class StripeAPIUnavailableError(StripeError):
    default_error_code = "STRIPE_UNAVAILABLE"
    is_retryable = True


class StripeTimeoutError(StripeError):
    default_error_code = "STRIPE_TIMEOUT"
    is_retryable = True


class LockAcquisitionError(ConflictError):
    default_error_code = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """django-fsm's TransitionNotAllowed in the application error format."""

    default_error_code = "INVALID_STATE_TRANSITION"
