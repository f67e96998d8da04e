"""
Reusable abstract model mixins.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key
    VersionedMixin: Optimistic-locking version counter bumped on every update
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID as primary key.

    Order and payment identifiers appear in customer-facing URLs and
    processor metadata, so they must not be guessable.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Version counter for optimistic concurrency control.

    Every update increments ``version`` in the database with an F()
    expression. Queryset updates that change money fields bump it the
    same way, so a stale copy of the row can be detected by comparing
    versions.
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        update_fields = kwargs.get("update_fields")
        if is_update:
            self.version = F("version") + 1
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version"}
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
