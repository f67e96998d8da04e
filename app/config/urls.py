"""
Root URL configuration.

URL Structure:
    /                                   - ReDoc API documentation
    /schema/                            - OpenAPI schema (YAML)
    /admin/                             - Django admin (orders, ledger, settings)
    /health/                            - Health check (load balancers, Docker)
    /api/v1/bookings/
        orders/cancel/                  - Cancel an order (POST)
    /api/v1/payments/
        checkout/                       - Create checkout session (POST)
        checkout/success/               - Success page, pull reconciliation (GET)
        checkout/cancel/                - Cancel page (GET)
        payment-status/                 - Poll and reconcile payment (POST)
        webhooks/stripe/                - Stripe webhook (POST)
    /api/v1/notifications/
        send/                           - Send SMS or email, staff only (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# All routes here are prefixed with /api/v1/
api_v1_patterns = [
    path("bookings/", include("bookings.urls")),
    path("payments/", include("payments.urls")),
    path("notifications/", include("notifications.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Bounce Party Club Admin"
admin.site.site_title = "Bounce Party Club"
admin.site.index_title = "Orders, payments and notifications"
