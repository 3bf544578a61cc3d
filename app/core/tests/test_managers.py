"""
Tests for SoftDeleteManager and SoftDeleteQuerySet.

These tests verify that:
- SoftDeleteManager filters out soft-deleted records by default
- Bulk delete() soft deletes and calls on_soft_delete per instance
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from chat.models import Message
from chat.tests.factories import GroupConversationFactory, MessageFactory


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def conversation(db):
    return GroupConversationFactory()


@pytest.fixture
def messages(conversation):
    """Three live messages in one conversation."""
    return [MessageFactory(conversation=conversation) for _ in range(3)]


# =============================================================================
# Default Filtering
# =============================================================================


@pytest.mark.django_db
class TestSoftDeleteManagerFiltering:
    """Tests for SoftDeleteManager default filtering behavior."""

    def test_objects_excludes_deleted_by_default(self, messages):
        """Default manager should filter out soft-deleted records."""
        message = messages[0]
        assert Message.objects.filter(pk=message.pk).exists()

        message.soft_delete()

        assert not Message.objects.filter(pk=message.pk).exists()
        assert Message.all_objects.filter(pk=message.pk).exists()

    def test_objects_get_raises_for_deleted(self, messages):
        """objects.get() should raise DoesNotExist for deleted records."""
        message = messages[0]
        message.soft_delete()

        with pytest.raises(Message.DoesNotExist):
            Message.objects.get(pk=message.pk)

    def test_all_objects_includes_deleted(self, messages):
        messages[1].soft_delete()

        assert Message.all_objects.count() == 3
        assert Message.objects.count() == 2


# =============================================================================
# QuerySet Operations
# =============================================================================


@pytest.mark.django_db
class TestSoftDeleteQuerySet:
    """
    Tests for bulk soft delete operations.

    Why it matters: a bulk delete through the default manager must keep
    rows that other rows still point at (thread replies, receipts).
    """

    def test_queryset_delete_marks_rows_deleted(self, conversation, messages):
        count, by_model = Message.objects.filter(conversation=conversation).delete()

        assert count == 3
        assert by_model == {"chat.Message": 3}
        assert Message.objects.count() == 0
        assert Message.all_objects.filter(is_deleted=True).count() == 3
        assert all(m.deleted_at is not None for m in Message.all_objects.all())

    def test_queryset_delete_skips_already_deleted(self, messages):
        messages[0].soft_delete()

        count, _ = Message.objects.all().delete()

        assert count == 2

    def test_queryset_delete_calls_hook_per_instance(self, messages):
        with patch.object(Message, "on_soft_delete", create=True) as hook:
            Message.objects.all().delete()

        assert hook.call_count == 3
