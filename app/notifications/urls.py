"""
URL configuration for the notifications app.

All routes are prefixed with /api/v1/notifications/ when included in the main URLconf.
"""

from django.urls import path

from notifications.views import SendNotificationView

app_name = "notifications"

urlpatterns = [
    path("send/", SendNotificationView.as_view(), name="send"),
]
