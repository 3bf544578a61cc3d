"""
Custom QuerySet and Manager classes for soft-deletable models.

Manager vs QuerySet:
    - QuerySet: Defines chainable methods (filter, exclude, etc.)
    - Manager: Attaches QuerySet to model, defines table-level operations

Usage:
    from core.managers import SoftDeleteManager

    class Message(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()  # Default: excludes deleted
        all_objects = models.Manager()  # Includes deleted

    Message.objects.all()            # Only live messages
    Message.all_objects.all()        # Everything

Related:
    - core.model_mixins.SoftDeleteMixin: Model mixin for soft delete fields
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    QuerySet whose bulk delete() soft deletes.

    Note:
        The default filtering of deleted records happens in SoftDeleteManager,
        not in this QuerySet.
    """

    def delete(self) -> tuple[int, dict[str, int]]:
        """
        Soft delete all objects in queryset.

        Calls the on_soft_delete() hook on each live instance before
        marking the rows deleted.

        Returns:
            Tuple of (count, {model_label: count}) matching Django's delete()
        """
        live = self.filter(is_deleted=False)
        for instance in live:
            if hasattr(instance, "on_soft_delete"):
                instance.on_soft_delete()

        count = live.update(is_deleted=True, deleted_at=timezone.now())
        return count, {self.model._meta.label: count}


class SoftDeleteManager(models.Manager):
    """
    Manager that filters out soft-deleted records by default.

    Always pair with a plain Manager (``all_objects``) for code paths that
    must see deleted rows, e.g. resolving a thread root that was deleted.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db).filter(is_deleted=False)
