"""
Operator-editable key/value settings.

AdminSetting is the store behind toolkit.settings_provider. Operators edit
rows in the Django admin to rotate processor and channel credentials
without a redeploy.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class AdminSetting(UUIDPrimaryKeyMixin, BaseModel):
    """
    One named setting value.

    Secret values (API keys, auth tokens) are flagged so the admin can mask
    them in list views.
    """

    key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Setting name, e.g. stripe_secret_key",
    )
    value = models.TextField(
        blank=True,
        default="",
        help_text="Setting value; blank means unset",
    )
    is_secret = models.BooleanField(
        default=False,
        help_text="Mask this value in admin list views",
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="What this setting controls",
    )

    class Meta:
        ordering = ["key"]
        verbose_name = "Admin setting"
        verbose_name_plural = "Admin settings"

    def __str__(self) -> str:
        return self.key

    @property
    def display_value(self) -> str:
        """Value as shown in list views."""
        if self.is_secret and self.value:
            return f"{'*' * 8}{self.value[-4:]}"
        return self.value
