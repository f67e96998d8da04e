"""
Payment admin configuration.

Ledger, refund and webhook rows are audit data: they can be inspected but
not added or deleted here. Money movements go through the services.
"""

from django.contrib import admin, messages

from payments.models import Payment, ReconciliationMiss, RefundRecord, WebhookEvent


class ReadOnlyAuditAdmin(admin.ModelAdmin):
    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAuditAdmin):
    list_display = [
        "id",
        "order",
        "kind",
        "amount_display",
        "status",
        "card_descriptor",
        "paid_at",
        "created_at",
    ]
    list_filter = ["kind", "status", "created_at"]
    search_fields = [
        "id",
        "order__id",
        "stripe_checkout_session_id",
        "stripe_payment_intent_id",
        "stripe_refund_id",
    ]
    readonly_fields = [f.name for f in Payment._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.display(description="Amount")
    def amount_display(self, obj: Payment) -> str:
        sign = "-" if obj.amount_cents < 0 else ""
        return f"{sign}${abs(obj.amount_cents) / 100:,.2f}"

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(RefundRecord)
class RefundRecordAdmin(ReadOnlyAuditAdmin):
    list_display = [
        "stripe_refund_id",
        "order",
        "amount_cents",
        "status",
        "source",
        "refunded_by",
        "created_at",
    ]
    list_filter = ["source", "status", "created_at"]
    search_fields = ["stripe_refund_id", "stripe_payment_intent_id", "order__id"]
    readonly_fields = [f.name for f in RefundRecord._meta.fields]
    ordering = ["-created_at"]

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAuditAdmin):
    """Webhook processing status; failed events can be re-queued."""

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "signature_verified",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "signature_verified", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "signature_verified",
        "status",
        "processed_at",
        "retry_count",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["requeue_events"]

    @admin.action(description="Re-queue selected events for processing")
    def requeue_events(self, request, queryset):
        from payments.tasks import process_webhook_event

        count = 0
        for event in queryset.exclude(status="processed"):
            process_webhook_event.delay(str(event.id))
            count += 1
        self.message_user(request, f"Queued {count} event(s).", messages.SUCCESS)


@admin.register(ReconciliationMiss)
class ReconciliationMissAdmin(ReadOnlyAuditAdmin):
    list_display = [
        "stripe_checkout_session_id",
        "order",
        "source",
        "attempts",
        "last_attempt_at",
        "resolved_at",
    ]
    list_filter = ["source", "resolved_at"]
    search_fields = ["stripe_checkout_session_id", "order__id"]
    readonly_fields = [
        "id",
        "order",
        "stripe_checkout_session_id",
        "source",
        "error_message",
        "attempts",
        "last_attempt_at",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    actions = ["retry_misses"]

    @admin.action(description="Retry reconciliation now")
    def retry_misses(self, request, queryset):
        from payments.exceptions import ReconciliationMissError
        from payments.services import ReconciliationService

        resolved = 0
        for miss in queryset.filter(resolved_at__isnull=True):
            try:
                ReconciliationService.reconcile_session(
                    miss.stripe_checkout_session_id, source=miss.source
                )
            except ReconciliationMissError:
                continue
            resolved += 1
        self.message_user(request, f"Reconciled {resolved} session(s).", messages.INFO)
