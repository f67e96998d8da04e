"""Timestamped abstract base for orders, ledger entries and audit rows."""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Adds created_at/updated_at and newest-first default ordering.

    Mixins from core.model_mixins go before BaseModel in the bases:

        class RefundRecord(UUIDPrimaryKeyMixin, BaseModel): ...
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{type(self).__name__} {self.pk}"
