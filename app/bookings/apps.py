from django.apps import AppConfig


class BookingsConfig(AppConfig):
    """Orders and the cancellation flow."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "bookings"
    verbose_name = "Bookings"
