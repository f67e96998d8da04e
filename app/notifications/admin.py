"""
Django admin configuration for notification models.

Failures are an audit log: operators can only mark them resolved.
"""

from django.contrib import admin, messages

from notifications.models import MessageTemplate, NotificationFailure


@admin.register(NotificationFailure)
class NotificationFailureAdmin(admin.ModelAdmin):
    list_display = [
        "created_at",
        "channel",
        "recipient",
        "subject",
        "fallback_sent",
        "fallback_channel",
        "resolved_at",
    ]
    list_filter = ["channel", "fallback_sent", ("resolved_at", admin.EmptyFieldListFilter)]
    search_fields = ["recipient", "subject", "error_message"]
    readonly_fields = [f.name for f in NotificationFailure._meta.fields]
    date_hierarchy = "created_at"
    actions = ["mark_resolved"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    @admin.action(description="Mark selected failures resolved")
    def mark_resolved(self, request, queryset):
        count = 0
        for failure in queryset.unresolved():
            failure.mark_resolved()
            count += 1
        self.message_user(request, f"Resolved {count} failure(s).", messages.SUCCESS)


@admin.register(MessageTemplate)
class MessageTemplateAdmin(admin.ModelAdmin):
    list_display = ["key", "channel", "subject", "is_active", "updated_at"]
    list_filter = ["channel", "is_active"]
    search_fields = ["key", "subject", "body"]
    ordering = ["key"]
    fieldsets = (
        (None, {"fields": ("key", "channel", "is_active", "description")}),
        ("Content", {"fields": ("subject", "body")}),
    )
