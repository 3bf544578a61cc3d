"""
Tests for chat Celery tasks and the audit hand-off.

This module tests:
- write_audit_entry logging to the audit logger
- expire_stale_typing_indicators delegating to TypingService
- record_audit_event never failing the caller
"""

from unittest.mock import patch

import pytest
from freezegun import freeze_time

from chat.audit import record_audit_event
from chat.constants import AuditAction
from chat.tasks import expire_stale_typing_indicators, write_audit_entry
from chat.tests.factories import TypingIndicatorFactory


class TestWriteAuditEntry:
    def test_logs_entry(self):
        entry = {
            "action": AuditAction.MESSAGE_SENT,
            "user_id": "u1",
            "target_type": "message",
            "target_id": "m1",
        }

        with patch("chat.tasks.audit_logger") as mock_logger:
            write_audit_entry(entry)

        mock_logger.info.assert_called_once()
        message = mock_logger.info.call_args.args[0]
        assert message == "MESSAGE_SENT message:m1 by user u1"
        assert mock_logger.info.call_args.kwargs["extra"] == {"audit": entry}


@pytest.mark.django_db
class TestRecordAuditEvent:
    """
    Tests for record_audit_event.

    Why it matters: audit entries are owned by another service; a broker
    outage must not fail a message send.
    """

    def test_dispatches_entry(self, alice):
        with freeze_time("2026-05-01 10:00:00"):
            with patch("chat.tasks.write_audit_entry.delay") as mock_delay:
                record_audit_event(
                    AuditAction.CONVERSATION_CREATED,
                    user=alice,
                    target_type="conversation",
                    target_id="c1",
                    context={"is_group": False},
                )

        mock_delay.assert_called_once_with(
            {
                "action": "CONVERSATION_CREATED",
                "user_id": str(alice.id),
                "tenant_id": str(alice.tenant_id),
                "target_type": "conversation",
                "target_id": "c1",
                "context": {"is_group": False},
                "occurred_at": "2026-05-01T10:00:00+00:00",
            }
        )

    def test_dispatch_failure_is_swallowed(self, alice):
        with patch(
            "chat.tasks.write_audit_entry.delay",
            side_effect=ConnectionError("broker down"),
        ):
            record_audit_event(
                AuditAction.MESSAGE_SENT,
                user=alice,
                target_type="message",
                target_id="m1",
            )

    def test_runs_eagerly_in_tests(self, alice):
        with patch("chat.tasks.audit_logger") as mock_logger:
            record_audit_event(
                AuditAction.MESSAGE_DELETED,
                user=alice,
                target_type="message",
                target_id="m1",
            )

        entry = mock_logger.info.call_args.kwargs["extra"]["audit"]
        assert entry["action"] == "MESSAGE_DELETED"
        assert entry["context"] == {}


@pytest.mark.django_db
class TestExpireStaleTypingIndicators:
    def test_clears_stale_indicators(self, alice, direct_conversation, published):
        with freeze_time("2026-05-01 09:00:00"):
            TypingIndicatorFactory(conversation=direct_conversation, user=alice)

        with freeze_time("2026-05-01 09:05:00"):
            cleared = expire_stale_typing_indicators()

        assert cleared == 1

    def test_delegates_to_typing_service(self):
        with patch(
            "chat.services.TypingService.expire_stale_indicators", return_value=3
        ) as mock_expire:
            assert expire_stale_typing_indicators() == 3

        mock_expire.assert_called_once_with()
