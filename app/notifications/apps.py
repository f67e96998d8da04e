from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """Twilio SMS and email delivery, failure log and operator escalation."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "notifications"
    verbose_name = "Notifications"
