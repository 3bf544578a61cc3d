"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Usage:
    from core.models import BaseModel
    from core.managers import SoftDeleteManager
    from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin

    class Conversation(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = models.Manager()

Note:
    - Always list mixins before BaseModel in inheritance
    - SoftDeleteMixin expects SoftDeleteManager as the default manager
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of an auto-increment integer.

    UUIDs keep identifiers opaque in URLs and websocket payloads and
    sort consistently in both PostgreSQL and SQLite, which the direct
    conversation pair constraint relies on.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of removing rows, marks them deleted so that rows pointing at
    them (thread replies, receipts, reactions) stay valid.

    Fields:
        is_deleted: Boolean flag indicating soft delete status
        deleted_at: Timestamp when the record was soft deleted

    Usage:
        message.soft_delete()
        Message.objects.all()        # excludes the message
        Message.all_objects.all()    # includes it
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def _soft_delete_update_fields(self) -> list[str]:
        fields = ["is_deleted", "deleted_at"]
        if any(f.name == "updated_at" for f in self._meta.concrete_fields):
            fields.append("updated_at")
        return fields

    def soft_delete(self) -> None:
        """
        Mark this record as deleted.

        Idempotent: deleting an already deleted record keeps the original
        deleted_at timestamp.
        """
        if self.is_deleted:
            return
        if hasattr(self, "on_soft_delete"):
            self.on_soft_delete()
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=self._soft_delete_update_fields())
