"""
Tests for TypingService.

This module tests:
- Upserting the typing flag and broadcasting it
- Membership checks
- Active typers with TTL expiry
- The stale indicator sweep
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.constants import TYPING_CONFIG, ErrorCode, RealtimeEvent
from chat.models import TypingIndicator
from chat.services import TypingService
from chat.tests.factories import TypingIndicatorFactory


@pytest.mark.django_db
class TestSetTyping:
    """
    Tests for set_typing.

    Why it matters: typing flags are sent on every keystroke burst, so a
    user has exactly one indicator per conversation.
    """

    def test_start_and_stop_typing(self, alice, direct_conversation, published):
        TypingService.set_typing(alice, direct_conversation.id, True)
        TypingService.set_typing(alice, direct_conversation.id, False)

        indicator = TypingIndicator.objects.get(conversation=direct_conversation, user=alice)
        assert indicator.is_typing is False

    def test_broadcasts_each_change(self, alice, direct_conversation, published):
        TypingService.set_typing(alice, direct_conversation.id, True)
        TypingService.set_typing(alice, direct_conversation.id, False)

        assert published.events(RealtimeEvent.TYPING_INDICATOR) == [
            {
                "conversation_id": direct_conversation.id,
                "user_id": alice.id,
                "display_name": "Alice",
                "is_typing": True,
            },
            {
                "conversation_id": direct_conversation.id,
                "user_id": alice.id,
                "display_name": "Alice",
                "is_typing": False,
            },
        ]
        assert published.rooms(RealtimeEvent.TYPING_INDICATOR) == [
            f"conversation_{direct_conversation.id}"
        ] * 2

    def test_refresh_moves_updated_at(self, alice, direct_conversation, published):
        with freeze_time("2026-05-01 09:00:00"):
            TypingService.set_typing(alice, direct_conversation.id, True)
        with freeze_time("2026-05-01 09:00:08"):
            indicator = TypingService.set_typing(alice, direct_conversation.id, True).data

        assert indicator.updated_at.isoformat() == "2026-05-01T09:00:08+00:00"

    def test_non_participant_is_rejected(self, carol, direct_conversation, published):
        result = TypingService.set_typing(carol, direct_conversation.id, True)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT
        assert not TypingIndicator.objects.exists()
        assert published.calls == []


@pytest.mark.django_db
class TestActiveTypers:
    """
    Tests for get_active_typers.

    Why it matters: a client that crashed mid-sentence never sends
    is_typing=false; its indicator must stop showing after the TTL.
    """

    def test_lists_other_typing_users(self, alice, bob, carol, group_conversation):
        TypingIndicatorFactory(conversation=group_conversation, user=bob)
        TypingIndicatorFactory(conversation=group_conversation, user=carol, is_typing=False)
        TypingIndicatorFactory(conversation=group_conversation, user=alice)

        typers = TypingService.get_active_typers(alice, group_conversation.id).data

        assert typers == [bob]

    def test_stale_indicator_is_not_active(self, alice, bob, direct_conversation):
        with freeze_time(timezone.now() - timedelta(seconds=TYPING_CONFIG.TTL_SECONDS + 1)):
            TypingIndicatorFactory(conversation=direct_conversation, user=bob)

        assert TypingService.get_active_typers(alice, direct_conversation.id).data == []

    def test_non_participant_is_rejected(self, carol, direct_conversation):
        result = TypingService.get_active_typers(carol, direct_conversation.id)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT


@pytest.mark.django_db
class TestExpireStaleIndicators:
    """Tests for expire_stale_indicators."""

    def test_clears_only_stale_indicators(self, alice, bob, group_conversation, published):
        with freeze_time("2026-05-01 09:00:00"):
            stale = TypingIndicatorFactory(conversation=group_conversation, user=alice)
        with freeze_time("2026-05-01 09:00:20"):
            fresh = TypingIndicatorFactory(conversation=group_conversation, user=bob)

        with freeze_time("2026-05-01 09:00:25"):
            cleared = TypingService.expire_stale_indicators()

        assert cleared == 1
        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.is_typing is False
        assert fresh.is_typing is True

    def test_broadcasts_stop_for_cleared(self, alice, group_conversation, published):
        with freeze_time("2026-05-01 09:00:00"):
            TypingIndicatorFactory(conversation=group_conversation, user=alice)

        with freeze_time("2026-05-01 09:01:00"):
            TypingService.expire_stale_indicators()

        payloads = published.events(RealtimeEvent.TYPING_INDICATOR)
        assert len(payloads) == 1
        assert payloads[0]["user_id"] == alice.id
        assert payloads[0]["is_typing"] is False

    def test_nothing_to_clear(self, published):
        assert TypingService.expire_stale_indicators() == 0
        assert published.calls == []
