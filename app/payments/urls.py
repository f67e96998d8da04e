"""
URL configuration for the payments app.

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    path("checkout/", views.CreateCheckoutIntentView.as_view(), name="checkout"),
    path("checkout/success/", views.checkout_success, name="checkout-success"),
    path("checkout/cancel/", views.checkout_cancel, name="checkout-cancel"),
    path("payment-status/", views.PaymentStatusView.as_view(), name="payment-status"),
    path("charge/", views.ChargeSavedCardView.as_view(), name="charge"),
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
]
