"""Payment ledger, checkout, reconciliation, refunds and Stripe webhooks."""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        # Fill the webhook handler registry before the first event arrives
        from payments.webhooks import handlers  # noqa: F401
