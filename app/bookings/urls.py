"""
URL configuration for the bookings app.

All routes are prefixed with /api/v1/bookings/ when included in the main URLconf.
"""

from django.urls import path

from bookings.views import CancelOrderView

app_name = "bookings"

urlpatterns = [
    path("orders/cancel/", CancelOrderView.as_view(), name="cancel-order"),
]
