"""
Order admin configuration.

Money fields and status are read-only here: payments move through the
payments services and status through the FSM transitions.
"""

from django.contrib import admin

from bookings.models import Order
from payments.models import Payment


class PaymentInline(admin.TabularInline):
    model = Payment
    fk_name = "order"
    extra = 0
    can_delete = False
    fields = ["kind", "amount_cents", "status", "stripe_payment_intent_id", "paid_at"]
    readonly_fields = fields
    ordering = ["created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "short_id",
        "customer_name",
        "event_start_at",
        "status",
        "payment_status",
        "total_display",
        "total_refunded_cents",
    ]
    list_filter = ["status", "cancellation_policy", "event_start_at"]
    search_fields = ["id", "customer_email", "customer_name", "customer_phone"]
    date_hierarchy = "event_start_at"
    inlines = [PaymentInline]
    readonly_fields = [
        "status",
        "deposit_paid_cents",
        "balance_paid_cents",
        "tip_cents",
        "total_refunded_cents",
        "stripe_customer_id",
        "stripe_payment_method_id",
        "cancelled_at",
        "cancelled_by",
        "cancellation_reason",
        "cancellation_policy",
        "cancellation_metadata",
        "version",
        "created_at",
        "updated_at",
    ]

    @admin.display(description="Total")
    def total_display(self, obj: Order) -> str:
        return f"${obj.total_cents / 100:,.2f}"
