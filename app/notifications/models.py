"""
Notification models.

- NotificationFailure: append-only audit row for every failed send
- MessageTemplate: operator-editable message bodies with {placeholder} fields

Usage:
    from notifications.models import MessageTemplate, NotificationFailure

    template = MessageTemplate.objects.active().get(key="booking_received_admin")
    body = template.render({"customer_name": "Pat Doe", "order_id": "1A2B3C4D"})

    NotificationFailure.objects.unresolved().filter(channel="sms").count()
"""

from __future__ import annotations

import string

from django.db import models
from django.utils import timezone

from core.exceptions import ConflictError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

PREVIEW_LIMIT = 200


class NotificationChannel(models.TextChoices):
    SMS = "sms", "SMS"
    EMAIL = "email", "Email"


# =============================================================================
# Failure audit log
# =============================================================================


class NotificationFailureQuerySet(models.QuerySet):
    def unresolved(self):
        return self.filter(resolved_at__isnull=True)


class NotificationFailure(UUIDPrimaryKeyMixin, BaseModel):
    """
    One failed delivery attempt.

    Rows are written by the dispatcher before any escalation is tried. The
    only later changes are the escalation outcome and an operator setting
    ``resolved_at``; the failure facts stay as recorded.
    """

    MUTABLE_FIELDS = frozenset(
        {"fallback_sent", "fallback_channel", "resolved_at", "updated_at"}
    )

    channel = models.CharField(
        max_length=10,
        choices=NotificationChannel.choices,
        db_index=True,
        help_text="Channel that failed",
    )

    recipient = models.CharField(
        max_length=255,
        help_text="Intended phone number or email address",
    )

    subject = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Email subject, if any",
    )

    preview = models.CharField(
        max_length=PREVIEW_LIMIT,
        blank=True,
        default="",
        help_text="First 200 characters of the message",
    )

    error_message = models.TextField(
        help_text="Provider or configuration error",
    )

    context = models.JSONField(
        default=dict,
        blank=True,
        help_text="Caller context (order_id, event_type, ...)",
    )

    escalation_chain = models.JSONField(
        default=list,
        blank=True,
        help_text="Channels already tried in this escalation, in order",
    )

    fallback_sent = models.BooleanField(
        default=False,
        help_text="Whether an operator alert went out on another channel",
    )

    fallback_channel = models.CharField(
        max_length=10,
        choices=NotificationChannel.choices,
        blank=True,
        default="",
        help_text="Channel used for the operator alert",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When an operator marked the failure handled",
    )

    objects = NotificationFailureQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Notification Failure"
        verbose_name_plural = "Notification Failures"
        indexes = [
            models.Index(fields=["channel", "resolved_at"]),
        ]

    def __str__(self) -> str:
        return f"NotificationFailure({self.channel}, {self.recipient})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= self.MUTABLE_FIELDS:
                raise ConflictError(
                    "Notification failures are append-only",
                    details={"failure_id": str(self.pk)},
                )
        super().save(*args, **kwargs)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def record_fallback(self, channel: str, sent: bool) -> None:
        self.fallback_channel = channel
        self.fallback_sent = sent
        self.save(update_fields=["fallback_channel", "fallback_sent", "updated_at"])

    def mark_resolved(self) -> None:
        """Stamp resolved_at; the recorded failure facts stay as they are."""
        self.resolved_at = timezone.now()
        self.save(update_fields=["resolved_at", "updated_at"])


# =============================================================================
# Message templates
# =============================================================================


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class MessageTemplateQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class MessageTemplate(BaseModel):
    """
    A reusable SMS or email body.

    Templates use Python str.format() placeholders: {customer_name},
    {order_id}, {event_date}, ... Unknown placeholders are left as written
    so a typo in an operator-edited template never blocks a send.
    """

    key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Programmatic identifier (e.g., 'booking_received_admin')",
    )

    channel = models.CharField(
        max_length=10,
        choices=NotificationChannel.choices,
        default=NotificationChannel.SMS,
        help_text="Channel this template is written for",
    )

    subject = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Email subject template (email templates only)",
    )

    body = models.TextField(
        help_text="Message body template",
    )

    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="When this template is sent",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Inactive templates are not used",
    )

    objects = MessageTemplateQuerySet.as_manager()

    class Meta:
        ordering = ["key"]
        verbose_name = "Message Template"
        verbose_name_plural = "Message Templates"

    def __str__(self) -> str:
        return self.key

    @staticmethod
    def _format(template: str, context: dict) -> str:
        return string.Formatter().vformat(template, (), _KeepMissing(context))

    def render(self, context: dict) -> str:
        return self._format(self.body, context)

    def render_subject(self, context: dict) -> str:
        return self._format(self.subject, context)
