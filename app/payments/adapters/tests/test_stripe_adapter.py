"""
Tests for the Stripe adapter.

Covers request shaping, result parsing, error translation and webhook
verification. The SDK's resource classes are patched; nothing hits the
network.
"""

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe
from django.test import override_settings

from core.exceptions import ConfigurationError
from payments.adapters import (
    CreateCheckoutSessionParams,
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    LineItem,
    StripeAdapter,
    parse_cents,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


def _params(**overrides):
    values = {
        "customer_id": "cus_123",
        "line_items": [LineItem("Payment for Order ABCD1234", 5000, "Bounce Party Club rental payment")],
        "success_url": "https://example.com/success",
        "cancel_url": "https://example.com/cancel",
        "idempotency_key": "checkout:order-1:0:abcd",
        "metadata": {"order_id": "order-1", "tip_cents": "0"},
    }
    values.update(overrides)
    return CreateCheckoutSessionParams(**values)


class TestCreateCheckoutSessionParams:
    def test_total_sums_line_items(self):
        params = _params(
            line_items=[LineItem("Payment", 5000), LineItem("Tip for Crew", 700)]
        )
        assert params.amount_total_cents == 5700

    def test_rejects_empty_line_items(self):
        with pytest.raises(ValueError, match="at least one line item"):
            _params(line_items=[])

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError, match="must be positive"):
            _params(line_items=[LineItem("Payment", 0)])

    def test_requires_idempotency_key(self):
        with pytest.raises(ValueError, match="idempotency_key"):
            _params(idempotency_key="")


class TestIdempotencyKeyGenerator:
    @override_settings(SECRET_KEY="test-secret")
    def test_key_is_stable_for_same_inputs(self):
        first = IdempotencyKeyGenerator.generate("refund", "order-1", 0)
        second = IdempotencyKeyGenerator.generate("refund", "order-1", 0)

        assert first == second
        assert first.startswith("refund:order-1:0:")
        assert len(first.rsplit(":", 1)[1]) == 8

    def test_attempt_changes_key(self):
        assert IdempotencyKeyGenerator.generate(
            "refund", "order-1", 0
        ) != IdempotencyKeyGenerator.generate("refund", "order-1", 20000)


class TestParseCents:
    @pytest.mark.parametrize(
        "value,expected",
        [("500", 500), (250, 250), (None, 0), ("abc", 0), ("-5", 0)],
    )
    def test_parses_metadata_values(self, value, expected):
        assert parse_cents(value) == expected


@pytest.mark.django_db
class TestFromProvider:
    def test_raises_configuration_error_without_key(self):
        from toolkit.settings_provider import AdminSettingsProvider

        with pytest.raises(ConfigurationError):
            StripeAdapter.from_provider(AdminSettingsProvider())

    def test_uses_admin_setting_key(self):
        from toolkit.models import AdminSetting
        from toolkit.settings_provider import AdminSettingsProvider

        AdminSetting.objects.create(key="stripe_secret_key", value="sk_test_row")

        adapter = StripeAdapter.from_provider(AdminSettingsProvider())

        assert adapter.api_key == "sk_test_row"


class TestCheckoutSessions:
    def test_create_sends_payment_mode_request(
        self, adapter, mock_checkout_session, stripe_session_object
    ):
        mock_checkout_session.create.return_value = stripe_session_object()
        params = _params(
            line_items=[
                LineItem("Payment for Order ABCD1234", 5000, "Bounce Party Club rental payment"),
                LineItem("Tip for Crew", 500, "Gratuity for service"),
            ],
            payment_intent_metadata={"order_id": "order-1", "payment_type": "deposit", "tip_cents": "500"},
        )

        result = adapter.create_checkout_session(params)

        kwargs = mock_checkout_session.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["customer"] == "cus_123"
        assert kwargs["api_key"] == "sk_test_adapter"
        assert kwargs["idempotency_key"] == params.idempotency_key
        assert kwargs["payment_intent_data"]["setup_future_usage"] == "off_session"
        assert kwargs["payment_intent_data"]["metadata"]["payment_type"] == "deposit"
        assert [item["price_data"]["unit_amount"] for item in kwargs["line_items"]] == [5000, 500]
        assert kwargs["line_items"][1]["price_data"]["product_data"]["name"] == "Tip for Crew"

        assert result.id == "cs_test_123"
        assert result.url.startswith("https://checkout.stripe.com/")
        assert result.tip_cents == 500
        assert result.is_paid is False

    def test_retrieve_parses_expanded_intent(
        self, adapter, mock_checkout_session, stripe_session_object, card_payment_method
    ):
        mock_checkout_session.retrieve.return_value = stripe_session_object(
            status="complete",
            payment_status="paid",
            payment_intent=SimpleNamespace(id="pi_123", payment_method=card_payment_method),
        )

        result = adapter.retrieve_checkout_session("cs_test_123")

        assert mock_checkout_session.retrieve.call_args.kwargs["expand"] == [
            "payment_intent.payment_method"
        ]
        assert result.is_paid is True
        assert result.payment_intent_id == "pi_123"
        assert result.payment_method.brand == "visa"
        assert result.payment_method.last4 == "4242"

    def test_session_result_accepts_event_payload_dict(self):
        result = StripeAdapter.session_result(
            {
                "id": "cs_1",
                "status": "complete",
                "payment_status": "paid",
                "payment_intent": "pi_1",
                "amount_total": 2500,
                "metadata": {"order_id": "o1", "tip_cents": "500"},
            }
        )

        assert result.payment_intent_id == "pi_1"
        assert result.amount_total_cents == 2500
        assert result.tip_cents == 500
        assert result.payment_method is None


class TestPaymentIntents:
    def test_payment_intent_result_from_payload(self):
        result = StripeAdapter.payment_intent_result(
            {
                "id": "pi_1",
                "status": "requires_payment_method",
                "amount": 5000,
                "currency": "usd",
                "metadata": {"order_id": "o1"},
                "last_payment_error": {"message": "Your card was declined."},
                "payment_method": {"id": "pm_1", "type": "card", "card": {"brand": "amex", "last4": "0005"}},
            }
        )

        assert result.succeeded is False
        assert result.last_error == "Your card was declined."
        assert result.payment_method.brand == "amex"

    def test_retrieve_expands_payment_method(self, adapter, card_payment_method):
        with patch("stripe.PaymentIntent") as mock:
            mock.retrieve.return_value = SimpleNamespace(
                id="pi_1",
                status="succeeded",
                amount=20000,
                currency="usd",
                amount_received=20000,
                customer="cus_1",
                metadata={},
                payment_method=card_payment_method,
                last_payment_error=None,
            )

            result = adapter.retrieve_payment_intent("pi_1")

        assert mock.retrieve.call_args.kwargs["expand"] == ["payment_method"]
        assert result.succeeded is True
        assert result.amount_received_cents == 20000
        assert result.last_error is None


    def test_off_session_charge_confirms_saved_card(self, adapter, card_payment_method):
        params = CreatePaymentIntentParams(
            amount_cents=15000,
            customer_id="cus_1",
            payment_method_id="pm_123",
            idempotency_key="charge_balance:order-1:0:abcd",
            metadata={"order_id": "order-1", "payment_type": "balance", "tip_cents": "0"},
        )
        with patch("stripe.PaymentIntent") as mock:
            mock.create.return_value = SimpleNamespace(
                id="pi_2",
                status="succeeded",
                amount=15000,
                currency="usd",
                amount_received=15000,
                customer="cus_1",
                metadata=params.metadata,
                payment_method=card_payment_method,
                last_payment_error=None,
            )

            result = adapter.create_off_session_payment_intent(params)

        kwargs = mock.create.call_args.kwargs
        assert kwargs["off_session"] is True
        assert kwargs["confirm"] is True
        assert kwargs["customer"] == "cus_1"
        assert kwargs["payment_method"] == "pm_123"
        assert kwargs["amount"] == 15000
        assert kwargs["idempotency_key"] == "charge_balance:order-1:0:abcd"
        assert result.succeeded is True
        assert result.payment_method.last4 == "4242"

    def test_off_session_params_require_saved_card(self):
        with pytest.raises(ValueError):
            CreatePaymentIntentParams(
                amount_cents=100, customer_id="cus_1", payment_method_id="", idempotency_key="k"
            )


class TestRefunds:
    def test_create_refund(self, adapter, mock_stripe_refund):
        result = adapter.create_refund(
            payment_intent_id="pi_123",
            amount_cents=20000,
            idempotency_key="refund:order-1:0:abcd",
            metadata={"order_id": "order-1"},
        )

        kwargs = mock_stripe_refund.create.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_123"
        assert kwargs["amount"] == 20000
        assert kwargs["reason"] == "requested_by_customer"
        assert kwargs["idempotency_key"] == "refund:order-1:0:abcd"
        assert result.id == "re_123"
        assert result.status == "succeeded"


class TestErrorTranslation:
    def test_card_declined(self, adapter, mock_stripe_refund, card_error):
        mock_stripe_refund.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            adapter.create_refund("pi_1", 100, "key")

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds(self, adapter, mock_stripe_refund, card_error):
        mock_stripe_refund.create.side_effect = card_error("insufficient_funds")

        with pytest.raises(StripeInsufficientFundsError):
            adapter.create_refund("pi_1", 100, "key")

    def test_invalid_request(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.InvalidRequestError(
            "Refund amount exceeds charge", "amount", code="amount_too_large"
        )

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            adapter.create_refund("pi_1", 100, "key")

        assert exc_info.value.stripe_code == "amount_too_large"
        assert exc_info.value.http_status == 502

    def test_authentication(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.AuthenticationError("Invalid API Key")

        with pytest.raises(StripeAuthenticationError):
            adapter.create_refund("pi_1", 100, "key")

    def test_rate_limit_is_retryable(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.RateLimitError("Too many requests")

        with pytest.raises(StripeRateLimitError) as exc_info:
            adapter.create_refund("pi_1", 100, "key")

        assert exc_info.value.is_retryable is True

    def test_connection_timeout(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIConnectionError("Request timed out")

        with pytest.raises(StripeTimeoutError):
            adapter.create_refund("pi_1", 100, "key")

    def test_connection_error(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIConnectionError("Connection refused")

        with pytest.raises(StripeAPIUnavailableError):
            adapter.create_refund("pi_1", 100, "key")

    def test_server_error(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIError("Internal error")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            adapter.create_refund("pi_1", 100, "key")

        assert exc_info.value.stripe_code == "api_error"

    def test_non_stripe_error_propagates(self, adapter, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = KeyError("boom")

        with pytest.raises(KeyError):
            adapter.create_refund("pi_1", 100, "key")


class TestWebhookVerification:
    def test_valid_signature_returns_payload(self):
        body = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()

        with patch("stripe.Webhook.construct_event") as construct:
            event = StripeAdapter.verify_webhook_signature(body, "t=1,v1=abc", "whsec_1")

        construct.assert_called_once_with(body, "t=1,v1=abc", "whsec_1")
        assert event["id"] == "evt_1"

    def test_bad_signature_raises(self):
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad", "sig"),
        ):
            with pytest.raises(StripeInvalidRequestError, match="Invalid webhook signature"):
                StripeAdapter.verify_webhook_signature(b"{}", "sig", "whsec_1")
