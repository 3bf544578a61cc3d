"""
Tests for ReactionService.

This module tests:
- Toggle add/remove semantics and broadcasts
- Emoji validation
- Membership checks via require_message_access
- Concurrent toggle handling
- Grouped reaction listing
"""

from unittest.mock import patch

import pytest
from django.db import IntegrityError

from chat.constants import ErrorCode, RealtimeEvent
from chat.models import MessageReaction
from chat.services import ReactionService
from chat.tests.factories import MessageReactionFactory


@pytest.mark.django_db
class TestToggleReaction:
    """
    Tests for toggle_reaction.

    Why it matters: a reaction is a switch; tapping it twice must leave
    the message as it was.
    """

    def test_first_toggle_adds(self, bob, message, published):
        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        added, reaction = result.data
        assert added is True
        assert reaction.emoji == "👍"
        assert MessageReaction.objects.filter(message=message, user=bob).count() == 1

    def test_second_toggle_removes(self, bob, message, published):
        ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        assert result.data == (False, None)
        assert not MessageReaction.objects.filter(message=message).exists()

    def test_different_emojis_coexist(self, bob, message, published):
        ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")
        ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="🎉")

        assert set(MessageReaction.objects.values_list("emoji", flat=True)) == {"👍", "🎉"}

    def test_emoji_is_stripped(self, bob, message, published):
        added, reaction = ReactionService.toggle_reaction(
            user=bob, message_id=message.id, emoji=" 👍 "
        ).data

        assert reaction.emoji == "👍"

    def test_add_publishes_reaction_added(self, bob, message, published):
        added, reaction = ReactionService.toggle_reaction(
            user=bob, message_id=message.id, emoji="👍"
        ).data

        assert published.rooms(RealtimeEvent.REACTION_ADDED) == [
            f"conversation_{message.conversation_id}"
        ]
        payload = published.events(RealtimeEvent.REACTION_ADDED)[0]
        assert payload["message_id"] == message.id
        assert payload["reaction"]["id"] == reaction.id
        assert payload["reaction"]["user"]["id"] == bob.id

    def test_remove_publishes_reaction_removed(self, bob, message, published):
        MessageReactionFactory(message=message, user=bob, emoji="👍")

        ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        assert published.events(RealtimeEvent.REACTION_REMOVED) == [
            {
                "message_id": message.id,
                "conversation_id": message.conversation_id,
                "user_id": bob.id,
                "emoji": "👍",
            }
        ]

    def test_concurrent_add_returns_existing(self, bob, message, published):
        """
        A reaction inserted by a concurrent toggle is returned, not duplicated.

        Why it matters: double taps from two tabs race on the unique
        constraint; neither request may fail.
        """
        existing = MessageReactionFactory(message=message, user=bob, emoji="👍")

        with patch(
            "chat.services.MessageReaction.objects.filter",
            return_value=MessageReaction.objects.none(),
        ):
            with patch(
                "chat.services.MessageReaction.objects.create",
                side_effect=IntegrityError("duplicate"),
            ):
                result = ReactionService.toggle_reaction(
                    user=bob, message_id=message.id, emoji="👍"
                )

        added, reaction = result.data
        assert added is True
        assert reaction.pk == existing.pk
        assert MessageReaction.objects.count() == 1


@pytest.mark.django_db
class TestReactionValidation:
    """Tests for emoji validation and access checks."""

    @pytest.mark.parametrize("emoji", ["", "   ", "like", ":)", "👍" * 9])
    def test_invalid_emoji_is_rejected(self, bob, message, published, emoji):
        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji=emoji)

        assert result.error_code == ErrorCode.INVALID_EMOJI
        assert not MessageReaction.objects.exists()
        assert published.calls == []

    @pytest.mark.parametrize("emoji", ["👍", "❤️", "👨‍👩‍👧"])
    def test_valid_emoji_is_accepted(self, bob, message, published, emoji):
        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji=emoji)

        assert result.success

    def test_non_participant_is_rejected(self, carol, message, published):
        result = ReactionService.toggle_reaction(user=carol, message_id=message.id, emoji="👍")

        assert result.error_code == ErrorCode.NOT_PARTICIPANT
        assert not MessageReaction.objects.exists()

    def test_deleted_message_is_not_found(self, bob, message, published):
        message.soft_delete()

        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        assert result.error_code == ErrorCode.MESSAGE_NOT_FOUND

    def test_message_in_deleted_conversation_is_not_found(self, bob, message, published):
        message.conversation.soft_delete()

        result = ReactionService.toggle_reaction(user=bob, message_id=message.id, emoji="👍")

        assert result.error_code == ErrorCode.MESSAGE_NOT_FOUND


@pytest.mark.django_db
class TestGetMessageReactions:
    """Tests for get_message_reactions."""

    def test_groups_by_emoji(self, alice, bob, message):
        MessageReactionFactory(message=message, user=alice, emoji="👍")
        MessageReactionFactory(message=message, user=bob, emoji="👍")
        MessageReactionFactory(message=message, user=bob, emoji="🎉")

        groups = ReactionService.get_message_reactions(user=alice, message_id=message.id).data

        by_emoji = {group["emoji"]: group for group in groups}
        assert by_emoji["👍"]["count"] == 2
        assert by_emoji["👍"]["reacted"] is True
        assert {u.id for u in by_emoji["👍"]["users"]} == {alice.id, bob.id}
        assert by_emoji["🎉"]["count"] == 1
        assert by_emoji["🎉"]["reacted"] is False

    def test_no_reactions(self, alice, message):
        assert ReactionService.get_message_reactions(user=alice, message_id=message.id).data == []

    def test_non_participant_is_rejected(self, carol, message):
        result = ReactionService.get_message_reactions(user=carol, message_id=message.id)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT
