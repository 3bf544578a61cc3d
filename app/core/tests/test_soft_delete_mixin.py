"""
Tests for SoftDeleteMixin in core/model_mixins.py.

This module tests:
- soft_delete() method sets is_deleted and deleted_at
- Idempotency of soft_delete
- The on_soft_delete hook is called
- Soft-deleted rows keep the rows pointing at them
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.models import Conversation, Message
from chat.tests.factories import GroupConversationFactory, MessageFactory


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def message(db):
    return MessageFactory()


# =============================================================================
# soft_delete() Tests
# =============================================================================


@pytest.mark.django_db
class TestSoftDelete:
    """Tests for soft_delete() method."""

    def test_soft_delete_sets_flag_and_timestamp(self, message):
        before = timezone.now()

        message.soft_delete()

        assert message.is_deleted is True
        assert message.deleted_at >= before

    def test_soft_delete_persists_to_database(self, message):
        message.soft_delete()

        stored = Message.all_objects.get(pk=message.pk)
        assert stored.is_deleted is True
        assert stored.deleted_at is not None

    def test_soft_delete_is_idempotent(self, message):
        """
        A second soft_delete keeps the first deleted_at.

        Why it matters: deleted_at records when the author deleted the
        message; a repeated request must not move it.
        """
        with freeze_time("2026-01-01 12:00:00"):
            message.soft_delete()
        first_deleted_at = message.deleted_at

        with freeze_time("2026-01-01 13:00:00"):
            message.soft_delete()

        assert Message.all_objects.get(pk=message.pk).deleted_at == first_deleted_at

    def test_soft_delete_calls_hook(self, message):
        with patch.object(Message, "on_soft_delete", create=True) as hook:
            message.soft_delete()

        hook.assert_called_once()

    def test_soft_delete_does_not_call_hook_if_already_deleted(self, message):
        message.soft_delete()

        with patch.object(Message, "on_soft_delete", create=True) as hook:
            message.soft_delete()

        hook.assert_not_called()

    def test_soft_delete_bumps_updated_at(self, message):
        with freeze_time(timezone.now() + timedelta(minutes=5)):
            message.soft_delete()
            expected = timezone.now()

        assert Message.all_objects.get(pk=message.pk).updated_at == expected

    def test_soft_deleted_conversation_keeps_messages(self, db):
        """
        Soft-deleting a conversation leaves its messages in place.

        Why it matters: thread replies, receipts and reactions keep
        pointing at rows of a deleted conversation.
        """
        conversation = GroupConversationFactory()
        message = MessageFactory(conversation=conversation)

        conversation.soft_delete()

        assert not Conversation.objects.filter(pk=conversation.pk).exists()
        assert Message.objects.filter(pk=message.pk).exists()
