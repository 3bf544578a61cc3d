"""
Tests for ConversationService.

This module tests:
- Direct conversation creation and pair deduplication (either side)
- Group conversation creation
- Participant validation (tenant scoping, unknown and inactive users)
- Inbox listing order, last message, unread count and presence
- Retrieval and frequent conversations
- Realtime and audit side effects of creation
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import IntegrityError
from django.utils import timezone
from freezegun import freeze_time

from authentication.tests.factories import UserFactory
from chat.constants import AuditAction, ErrorCode, RealtimeEvent
from chat.models import (
    Conversation,
    DirectConversationPair,
    FrequentConversation,
    Participant,
    PresenceStatus,
)
from chat.services import ConversationService
from chat.tests.factories import (
    DirectConversationFactory,
    GroupConversationFactory,
    MessageFactory,
    ReadReceiptFactory,
    UserPresenceFactory,
)


# =============================================================================
# Direct Conversations
# =============================================================================


@pytest.mark.django_db
class TestCreateDirectConversation:
    """
    Tests for direct conversation creation.

    Why it matters: a pair of users must share exactly one direct
    conversation, no matter who starts it or how often.
    """

    def test_creates_conversation_with_both_participants(self, alice, bob, published):
        result = ConversationService.create_conversation(alice, [bob.id])

        assert result.success
        conversation, created = result.data
        assert created is True
        assert conversation.is_group is False
        assert conversation.tenant_id == alice.tenant_id
        assert conversation.created_by == alice
        assert set(conversation.participants.values_list("user_id", flat=True)) == {
            alice.id,
            bob.id,
        }

    def test_records_sorted_pair(self, alice, bob, published):
        conversation, _ = ConversationService.create_conversation(alice, [bob.id]).data

        pair = DirectConversationPair.objects.get(conversation=conversation)
        assert pair.user_lower_id == min(alice.id, bob.id)
        assert pair.user_higher_id == max(alice.id, bob.id)

    def test_second_create_returns_existing(self, alice, bob, published):
        first, _ = ConversationService.create_conversation(alice, [bob.id]).data

        result = ConversationService.create_conversation(alice, [bob.id])

        conversation, created = result.data
        assert created is False
        assert conversation.id == first.id
        assert Conversation.objects.count() == 1

    def test_reverse_direction_returns_existing(self, alice, bob, published):
        first, _ = ConversationService.create_conversation(alice, [bob.id]).data

        conversation, created = ConversationService.create_conversation(bob, [alice.id]).data

        assert created is False
        assert conversation.id == first.id

    def test_existing_conversation_has_no_side_effects(self, alice, bob, published):
        ConversationService.create_conversation(alice, [bob.id])
        published.calls.clear()

        with patch("chat.services.record_audit_event") as audit:
            ConversationService.create_conversation(bob, [alice.id])

        assert published.calls == []
        audit.assert_not_called()

    def test_requester_in_participant_list_is_ignored(self, alice, bob, published):
        conversation, created = ConversationService.create_conversation(
            alice, [alice.id, bob.id, bob.id]
        ).data

        assert created is True
        assert conversation.participants.count() == 2

    def test_direct_with_only_self_is_rejected(self, alice):
        result = ConversationService.create_conversation(alice, [alice.id])

        assert not result.success
        assert result.error_code == ErrorCode.INVALID_PARTICIPANTS

    def test_direct_with_two_others_is_rejected(self, alice, bob, carol):
        result = ConversationService.create_conversation(alice, [bob.id, carol.id])

        assert not result.success
        assert result.error_code == ErrorCode.INVALID_PARTICIPANTS
        assert Conversation.objects.count() == 0

    def test_soft_deleted_pair_is_replaced(self, alice, bob, published):
        old = DirectConversationFactory(user1=alice, user2=bob)
        old.soft_delete()

        conversation, created = ConversationService.create_conversation(alice, [bob.id]).data

        assert created is True
        assert conversation.id != old.id
        assert DirectConversationPair.objects.get().conversation_id == conversation.id

    def test_concurrent_create_resolves_to_winner(self, alice, bob, published):
        """
        A pair row committed by a concurrent request wins the race.

        Why it matters: two people opening a chat with each other at the
        same moment must land in the same conversation.
        """
        winner = DirectConversationFactory(user1=bob, user2=alice)
        original = ConversationService._existing_direct
        calls = {"count": 0}

        def miss_first_lookup(user_lower_id, user_higher_id):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return original(user_lower_id, user_higher_id)

        with patch.object(
            ConversationService, "_existing_direct", side_effect=miss_first_lookup
        ):
            conversation, created = ConversationService.create_conversation(
                alice, [bob.id]
            ).data

        assert created is False
        assert conversation.id == winner.id
        assert Conversation.objects.count() == 1
        assert Participant.objects.count() == 2

    def test_integrity_error_without_winner_propagates(self, alice, bob, published):
        with patch(
            "chat.services.DirectConversationPair.objects.create",
            side_effect=IntegrityError("boom"),
        ):
            with pytest.raises(IntegrityError):
                ConversationService.create_conversation(alice, [bob.id])

        assert Conversation.objects.count() == 0


# =============================================================================
# Group Conversations
# =============================================================================


@pytest.mark.django_db
class TestCreateGroupConversation:
    """Tests for group conversation creation."""

    def test_creates_group_with_requester(self, alice, bob, carol, published):
        conversation, created = ConversationService.create_conversation(
            alice, [bob.id, carol.id], name="  Launch  ", is_group=True
        ).data

        assert created is True
        assert conversation.is_group is True
        assert conversation.name == "Launch"
        assert conversation.participants.count() == 3

    def test_groups_are_never_deduplicated(self, alice, bob, published):
        first, _ = ConversationService.create_conversation(alice, [bob.id], is_group=True).data
        second, created = ConversationService.create_conversation(
            alice, [bob.id], is_group=True
        ).data

        assert created is True
        assert first.id != second.id

    def test_group_without_others_is_rejected(self, alice):
        result = ConversationService.create_conversation(alice, [], is_group=True)

        assert result.error_code == ErrorCode.INVALID_PARTICIPANTS


# =============================================================================
# Participant Validation
# =============================================================================


@pytest.mark.django_db
class TestParticipantValidation:
    """
    Tests for participant resolution.

    Why it matters: a conversation must never include a user from another
    tenant unless the requester explicitly asked for a cross-tenant one.
    """

    def test_other_tenant_user_is_not_found(self, alice, outsider):
        result = ConversationService.create_conversation(alice, [outsider.id])

        assert result.error_code == ErrorCode.PARTICIPANTS_NOT_FOUND
        assert result.errors == {"participant_ids": [str(outsider.id)]}
        assert Conversation.objects.count() == 0

    def test_cross_tenant_allows_other_tenant(self, alice, outsider, published):
        conversation, created = ConversationService.create_conversation(
            alice, [outsider.id], cross_tenant=True
        ).data

        assert created is True
        assert conversation.cross_tenant is True
        assert conversation.tenant_id == alice.tenant_id

    def test_unknown_id_is_not_found(self, alice, bob):
        missing = uuid.uuid4()

        result = ConversationService.create_conversation(
            alice, [bob.id, missing], is_group=True
        )

        assert result.error_code == ErrorCode.PARTICIPANTS_NOT_FOUND
        assert result.errors == {"participant_ids": [str(missing)]}

    def test_inactive_user_is_not_found(self, alice, tenant):
        inactive = UserFactory(tenant=tenant, is_active=False)

        result = ConversationService.create_conversation(alice, [inactive.id])

        assert result.error_code == ErrorCode.PARTICIPANTS_NOT_FOUND

    def test_requester_without_tenant_is_rejected(self, bob):
        loner = UserFactory(tenant=None)

        result = ConversationService.create_conversation(loner, [bob.id])

        assert result.error_code == ErrorCode.VALIDATION_ERROR


# =============================================================================
# Side Effects
# =============================================================================


@pytest.mark.django_db
class TestCreateSideEffects:
    """Tests for realtime and audit side effects of creation."""

    def test_publishes_conversation_created_to_tenant_room(self, alice, bob, published):
        conversation, _ = ConversationService.create_conversation(alice, [bob.id]).data

        assert published.rooms(RealtimeEvent.CONVERSATION_CREATED) == [
            f"tenant_{alice.tenant_id}"
        ]
        payload = published.events(RealtimeEvent.CONVERSATION_CREATED)[0]
        assert payload["id"] == conversation.id
        assert set(payload["participant_ids"]) == {alice.id, bob.id}
        assert payload["is_group"] is False

    def test_records_audit_event(self, alice, bob, published):
        with patch("chat.services.record_audit_event") as audit:
            conversation, _ = ConversationService.create_conversation(alice, [bob.id]).data

        audit.assert_called_once()
        assert audit.call_args.args[0] == AuditAction.CONVERSATION_CREATED
        assert audit.call_args.kwargs["target_id"] == conversation.id

    def test_publish_failure_does_not_fail_creation(self, alice, bob):
        with patch("chat.services.RealtimeFanout.publish", return_value=False):
            result = ConversationService.create_conversation(alice, [bob.id])

        assert result.success


# =============================================================================
# Listing
# =============================================================================


@pytest.mark.django_db
class TestListConversations:
    """
    Tests for list_conversations.

    Why it matters: the inbox is ordered by recent activity and shows
    what the user has not read yet.
    """

    def test_orders_by_most_recent_activity(self, alice, bob, carol):
        with freeze_time(timezone.now() - timedelta(hours=2)):
            older = DirectConversationFactory(user1=alice, user2=bob)
        with freeze_time(timezone.now() - timedelta(hours=1)):
            newer = DirectConversationFactory(user1=alice, user2=carol)
        Conversation.objects.filter(pk=older.pk).update(updated_at=timezone.now())

        page = ConversationService.list_conversations(alice).data

        assert [c.id for c in page.items] == [older.id, newer.id]

    def test_only_own_conversations(self, alice, bob, carol, direct_conversation):
        GroupConversationFactory(created_by=bob, members=[carol])

        page = ConversationService.list_conversations(alice).data

        assert [c.id for c in page.items] == [direct_conversation.id]
        assert page.total == 1

    def test_excludes_soft_deleted(self, alice, direct_conversation):
        direct_conversation.soft_delete()

        page = ConversationService.list_conversations(alice).data

        assert page.items == []

    def test_last_message_and_unread_count(self, alice, bob, direct_conversation):
        with freeze_time(timezone.now() - timedelta(minutes=3)):
            read = MessageFactory(conversation=direct_conversation, sender=bob)
        with freeze_time(timezone.now() - timedelta(minutes=2)):
            MessageFactory(conversation=direct_conversation, sender=bob)
        with freeze_time(timezone.now() - timedelta(minutes=1)):
            latest = MessageFactory(conversation=direct_conversation, sender=alice)
        ReadReceiptFactory(message=read, user=alice)

        conversation = ConversationService.list_conversations(alice).data.items[0]

        assert conversation.last_message.id == latest.id
        assert conversation.unread_count == 1

    def test_deleted_messages_are_not_last_or_unread(self, alice, bob, direct_conversation):
        with freeze_time(timezone.now() - timedelta(minutes=2)):
            kept = MessageFactory(conversation=direct_conversation, sender=alice)
        deleted = MessageFactory(conversation=direct_conversation, sender=bob)
        deleted.soft_delete()

        conversation = ConversationService.list_conversations(alice).data.items[0]

        assert conversation.last_message.id == kept.id
        assert conversation.unread_count == 0

    def test_participants_carry_presence(self, alice, bob, direct_conversation):
        UserPresenceFactory(user=bob, status=PresenceStatus.AWAY)

        conversation = ConversationService.list_conversations(alice).data.items[0]

        users = {user.id: user for user in conversation.participant_users}
        assert users[bob.id].presence.status == PresenceStatus.AWAY

    def test_pagination(self, alice, tenant):
        for _ in range(3):
            DirectConversationFactory(user1=alice, user2=UserFactory(tenant=tenant))

        page = ConversationService.list_conversations(alice, page=2, page_size=2).data

        assert page.total == 3
        assert len(page.items) == 1
        assert page.has_next is False

    def test_listing_bumps_access_counters(self, alice, direct_conversation):
        ConversationService.list_conversations(alice)
        ConversationService.list_conversations(alice)

        counter = FrequentConversation.objects.get(user=alice, conversation=direct_conversation)
        assert counter.access_count == 2


# =============================================================================
# Retrieval
# =============================================================================


@pytest.mark.django_db
class TestGetConversation:
    """Tests for get_conversation."""

    def test_participant_can_retrieve(self, alice, direct_conversation):
        result = ConversationService.get_conversation(alice, direct_conversation.id)

        assert result.success
        assert result.data.id == direct_conversation.id
        assert result.data.unread_count == 0

    def test_non_participant_is_rejected(self, carol, direct_conversation):
        result = ConversationService.get_conversation(carol, direct_conversation.id)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT

    def test_deleted_conversation_is_not_found(self, alice, direct_conversation):
        direct_conversation.soft_delete()

        result = ConversationService.get_conversation(alice, direct_conversation.id)

        assert result.error_code == ErrorCode.CONVERSATION_NOT_FOUND


@pytest.mark.django_db
class TestFrequentConversations:
    """Tests for get_frequent_conversations."""

    def test_ordered_by_access_count(self, alice, direct_conversation, group_conversation):
        FrequentConversation.objects.create(
            user=alice, conversation=direct_conversation, access_count=2
        )
        FrequentConversation.objects.create(
            user=alice, conversation=group_conversation, access_count=7
        )

        conversations = ConversationService.get_frequent_conversations(alice).data

        assert [c.id for c in conversations] == [group_conversation.id, direct_conversation.id]
        assert conversations[0].access_count == 7

    def test_limit_and_deleted_excluded(self, alice, direct_conversation, group_conversation):
        FrequentConversation.objects.create(
            user=alice, conversation=direct_conversation, access_count=2
        )
        FrequentConversation.objects.create(
            user=alice, conversation=group_conversation, access_count=7
        )
        group_conversation.soft_delete()

        conversations = ConversationService.get_frequent_conversations(alice, limit=5).data

        assert [c.id for c in conversations] == [direct_conversation.id]
