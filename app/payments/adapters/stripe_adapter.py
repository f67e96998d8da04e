"""
Stripe API adapter for checkout, reconciliation and refunds.

All Stripe calls go through StripeAdapter so that timeouts, error
translation, idempotency keys and logging are handled one way.

An adapter instance is bound to one API key. The key comes from the
Settings Provider (admin settings first, then STRIPE_SECRET_KEY), so an
operator can rotate it without a deploy:

    adapter = StripeAdapter.from_provider(provider)

Configuration (via settings):
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from payments.adapters import StripeAdapter, CreateCheckoutSessionParams

    session = adapter.create_checkout_session(
        CreateCheckoutSessionParams(
            customer_id="cus_123",
            line_items=[LineItem("Payment for Order 1A2B3C4D", 5000)],
            success_url="https://.../checkout/success/?...",
            cancel_url="https://.../checkout/cancel/?...",
            metadata={"order_id": str(order.id), "tip_cents": "0"},
            idempotency_key=key,
        )
    )
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

if TYPE_CHECKING:
    from toolkit.settings_provider import AdminSettingsProvider


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class LineItem:
    """One priced line on the hosted checkout page."""

    name: str
    amount_cents: int
    description: str = ""
    quantity: int = 1


@dataclass
class CreateCheckoutSessionParams:
    """
    Parameters for creating a Stripe Checkout Session in payment mode.

    The PaymentIntent created by the session is flagged for off-session
    reuse so the saved card can be charged for the balance later.
    """

    customer_id: str
    line_items: list[LineItem]
    success_url: str
    cancel_url: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    payment_intent_metadata: dict[str, str] = field(default_factory=dict)
    currency: str = "usd"

    def __post_init__(self) -> None:
        if not self.line_items:
            raise ValueError("at least one line item is required")
        if any(item.amount_cents <= 0 for item in self.line_items):
            raise ValueError("line item amounts must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")

    @property
    def amount_total_cents(self) -> int:
        return sum(item.amount_cents * item.quantity for item in self.line_items)


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for charging a saved card without the customer present.

    Attributes:
        amount_cents: Amount to charge, tip included
        customer_id: Stripe Customer the card is attached to
        payment_method_id: Saved card (pm_xxx)
        idempotency_key: Unique key for idempotent creation
    """

    amount_cents: int
    customer_id: str
    payment_method_id: str
    idempotency_key: str
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    currency: str = "usd"

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.customer_id or not self.payment_method_id:
            raise ValueError("customer_id and payment_method_id are required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class PaymentMethodDetails:
    """Payment method captured when a charge succeeds."""

    id: str = ""
    type: str = ""
    brand: str = ""
    last4: str = ""


@dataclass
class CustomerResult:
    id: str
    email: str | None = None


@dataclass
class CheckoutSessionResult:
    """
    Result from Stripe Checkout Session operations.

    Attributes:
        id: Session ID (cs_xxx)
        url: Hosted checkout URL (None once the session is complete)
        status: open, complete or expired
        payment_status: paid, unpaid or no_payment_required
        payment_intent_id: PaymentIntent ID, once Stripe has assigned one
        amount_total_cents: Total charged, including any tip line
        metadata: Session metadata (order_id, tip_cents)
        payment_method: Card details when the intent was expanded
    """

    id: str
    url: str | None
    status: str
    payment_status: str
    payment_intent_id: str | None = None
    amount_total_cents: int = 0
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    payment_method: PaymentMethodDetails | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def tip_cents(self) -> int:
        return parse_cents(self.metadata.get("tip_cents"))


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent operations.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: requires_payment_method, processing, succeeded, canceled, ...
        amount_cents: Amount in cents
        amount_received_cents: Amount actually captured
        metadata: Attached metadata (order_id, payment_type, tip_cents)
        last_error: Processor failure message for failed intents
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    amount_received_cents: int = 0
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    payment_method: PaymentMethodDetails | None = None
    last_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        status: succeeded, pending, requires_action, failed or canceled
        payment_intent_id: Original PaymentIntent ID
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)


def parse_cents(value: Any) -> int:
    """Parse a metadata cents value; anything unparseable counts as 0."""
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a raw event payload dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _id_of(value: Any) -> str | None:
    """Stripe fields are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def _metadata(obj: Any) -> dict[str, str]:
    metadata = _get(obj, "metadata")
    if not metadata:
        return {}
    return {str(k): str(v) for k, v in metadata.items()}


def _payment_method_details(payment_method: Any) -> PaymentMethodDetails | None:
    if payment_method is None:
        return None
    if isinstance(payment_method, str):
        return PaymentMethodDetails(id=payment_method)

    card = _get(payment_method, "card")
    return PaymentMethodDetails(
        id=_get(payment_method, "id", "") or "",
        type=_get(payment_method, "type", "") or "",
        brand=_get(card, "brand", "") or "",
        last4=_get(card, "last4", "") or "",
    )


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    ``attempt`` distinguishes deliberate repeats (a second checkout for
    the same order, a refund after an earlier partial one) from retries of
    the same request, which must reuse the key.

    Example:
        key = IdempotencyKeyGenerator.generate("refund", order.id, attempt=0)
        # "refund:550e8400-e29b-41d4-a716-446655440000:0:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int | str = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for the Stripe operations the payment core needs.

    Every call is a single request/response round trip. Failures are
    translated into payments.exceptions.StripeError subclasses and are
    never retried inside the adapter.
    """

    def __init__(self, api_key: str, timeout: float | None = None):
        self.api_key = api_key
        self.timeout = timeout or getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)

    @classmethod
    def from_provider(cls, provider: AdminSettingsProvider) -> StripeAdapter:
        """
        Build an adapter from the Settings Provider.

        Raises:
            ConfigurationError: stripe_secret_key is not set anywhere
        """
        creds = provider.require("stripe_secret_key")
        return cls(api_key=creds["stripe_secret_key"])

    def _configure_stripe(self) -> None:
        """Apply the request timeout to the shared HTTP client."""
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _call(self, operation: str, log_context: dict[str, Any], func, *args, **kwargs):
        """Run one Stripe call with timing logs and error translation."""
        self._configure_stripe()
        logger = self.get_logger()
        log_context = {"operation": operation, **log_context}

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = func(*args, api_key=self.api_key, **kwargs)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_object_id": getattr(result, "id", None),
                "duration_ms": duration_ms,
            },
        )
        return result

    # =========================================================================
    # Customers
    # =========================================================================

    def create_customer(
        self,
        email: str,
        name: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> CustomerResult:
        """
        Create a Stripe Customer.

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        customer = self._call(
            "create_customer",
            {"idempotency_key": idempotency_key},
            stripe.Customer.create,
            email=email,
            name=name,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return CustomerResult(id=customer.id, email=getattr(customer, "email", None))

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    def create_checkout_session(
        self,
        params: CreateCheckoutSessionParams,
    ) -> CheckoutSessionResult:
        """
        Create a hosted Checkout Session in payment mode.

        Returns:
            CheckoutSessionResult with the hosted url. payment_intent_id is
            set when Stripe assigns the intent at creation time.
        """
        line_items = [
            {
                "price_data": {
                    "currency": params.currency,
                    "product_data": {
                        "name": item.name,
                        **({"description": item.description} if item.description else {}),
                    },
                    "unit_amount": item.amount_cents,
                },
                "quantity": item.quantity,
            }
            for item in params.line_items
        ]

        session = self._call(
            "create_checkout_session",
            {
                "customer_id": params.customer_id,
                "amount_cents": params.amount_total_cents,
                "idempotency_key": params.idempotency_key,
            },
            stripe.checkout.Session.create,
            mode="payment",
            customer=params.customer_id,
            line_items=line_items,
            success_url=params.success_url,
            cancel_url=params.cancel_url,
            metadata=params.metadata,
            payment_intent_data={
                "setup_future_usage": "off_session",
                "metadata": params.payment_intent_metadata,
            },
            idempotency_key=params.idempotency_key,
        )
        return self.session_result(session)

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionResult:
        """
        Retrieve a Checkout Session with its PaymentIntent and card expanded.

        Raises:
            StripeInvalidRequestError: Unknown session id
        """
        session = self._call(
            "retrieve_checkout_session",
            {"checkout_session_id": session_id},
            stripe.checkout.Session.retrieve,
            session_id,
            expand=["payment_intent.payment_method"],
        )
        return self.session_result(session)

    def expire_checkout_session(self, session_id: str) -> CheckoutSessionResult:
        """Expire an open session so it can no longer be paid."""
        session = self._call(
            "expire_checkout_session",
            {"checkout_session_id": session_id},
            stripe.checkout.Session.expire,
            session_id,
        )
        return self.session_result(session)

    @staticmethod
    def session_result(session: Any) -> CheckoutSessionResult:
        """Build a CheckoutSessionResult from a Stripe object or event payload."""
        payment_intent = _get(session, "payment_intent")
        payment_method = None
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_method = _payment_method_details(_get(payment_intent, "payment_method"))

        return CheckoutSessionResult(
            id=_get(session, "id"),
            url=_get(session, "url"),
            status=_get(session, "status", "") or "",
            payment_status=_get(session, "payment_status", "") or "",
            payment_intent_id=_id_of(payment_intent),
            amount_total_cents=_get(session, "amount_total", 0) or 0,
            customer_id=_id_of(_get(session, "customer")),
            metadata=_metadata(session),
            payment_method=payment_method,
        )

    # =========================================================================
    # Payment Intents
    # =========================================================================

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        """
        Retrieve a PaymentIntent with its payment method expanded.

        Raises:
            StripeInvalidRequestError: PaymentIntent not found
        """
        intent = self._call(
            "retrieve_payment_intent",
            {"payment_intent_id": payment_intent_id},
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
            expand=["payment_method"],
        )
        return self.payment_intent_result(intent)

    def create_off_session_payment_intent(
        self,
        params: CreatePaymentIntentParams,
    ) -> PaymentIntentResult:
        """
        Create and confirm a PaymentIntent against a saved card.

        Returns:
            PaymentIntentResult; status is succeeded, processing, or
            requires_action when the bank wants the customer back

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
        """
        intent = self._call(
            "create_off_session_payment_intent",
            {
                "customer_id": params.customer_id,
                "amount_cents": params.amount_cents,
                "idempotency_key": params.idempotency_key,
            },
            stripe.PaymentIntent.create,
            amount=params.amount_cents,
            currency=params.currency,
            customer=params.customer_id,
            payment_method=params.payment_method_id,
            off_session=True,
            confirm=True,
            description=params.description or None,
            metadata=params.metadata,
            expand=["payment_method"],
            idempotency_key=params.idempotency_key,
        )
        return self.payment_intent_result(intent)

    @staticmethod
    def payment_intent_result(intent: Any) -> PaymentIntentResult:
        """Build a PaymentIntentResult from a Stripe object or event payload."""
        return PaymentIntentResult(
            id=_get(intent, "id"),
            status=_get(intent, "status", "") or "",
            amount_cents=_get(intent, "amount", 0) or 0,
            currency=_get(intent, "currency", "usd") or "usd",
            amount_received_cents=_get(intent, "amount_received", 0) or 0,
            customer_id=_id_of(_get(intent, "customer")),
            metadata=_metadata(intent),
            payment_method=_payment_method_details(_get(intent, "payment_method")),
            last_error=_get(_get(intent, "last_payment_error"), "message"),
        )

    # =========================================================================
    # Refunds
    # =========================================================================

    def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str = "requested_by_customer",
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a PaymentIntent.

        Raises:
            StripeInvalidRequestError: Refund not possible (e.g. amount
                exceeds what is left on the charge)
        """
        refund = self._call(
            "create_refund",
            {
                "payment_intent_id": payment_intent_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            },
            stripe.Refund.create,
            payment_intent=payment_intent_id,
            amount=amount_cents,
            reason=reason,
            metadata=metadata or {},
            idempotency_key=idempotency_key,
        )
        return RefundResult(
            id=refund.id,
            amount_cents=refund.amount,
            currency=getattr(refund, "currency", "usd") or "usd",
            status=refund.status,
            payment_intent_id=_id_of(getattr(refund, "payment_intent", None)) or payment_intent_id,
            metadata=_metadata(refund),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @staticmethod
    def verify_webhook_signature(
        payload: bytes,
        signature: str,
        secret: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)[:200]},
            ) from e
        return json.loads(payload)

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidRequestError: Invalid request parameters
            StripeAuthenticationError: API key rejected
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: Network failure or Stripe 5xx
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error)[:500],
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.StripeError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        # Not a Stripe SDK error: let it propagate unchanged
        logger.error(
            f"Unexpected error during Stripe call: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
