"""
Tests for authentication signal handlers.

Logging out must take the user offline for the rest of their tenant, and
must never fail the logout itself.
"""

from unittest.mock import patch

from django.contrib.auth.signals import user_logged_out
from django.test import RequestFactory

from authentication.tests.factories import UserFactory
from chat.models import PresenceStatus, UserPresence


class TestMarkOfflineOnLogout:
    """Tests for the user_logged_out presence handler."""

    def test_logout_sets_presence_offline(self, db):
        """
        Given an online user
        When user_logged_out is sent
        Then the stored presence becomes offline
        """
        user = UserFactory()
        UserPresence.objects.create(user=user, status=PresenceStatus.ONLINE)

        with patch("chat.services.RealtimeFanout.publish"):
            user_logged_out.send(sender=user.__class__, request=RequestFactory().get("/"), user=user)

        assert UserPresence.objects.get(user=user).status == PresenceStatus.OFFLINE

    def test_logout_without_user_is_ignored(self, db):
        """Anonymous logouts carry user=None and must not raise."""
        with patch("chat.services.PresenceService.mark_offline") as mark_offline:
            user_logged_out.send(sender=None, request=RequestFactory().get("/"), user=None)

        mark_offline.assert_not_called()

    def test_presence_failure_does_not_break_logout(self, db):
        """
        Why it matters: Logout must succeed even when the presence write
        fails (e.g. database hiccup); the failure is only logged.
        """
        user = UserFactory()

        with patch(
            "chat.services.UserPresence.objects.update_or_create",
            side_effect=RuntimeError("db down"),
        ):
            user_logged_out.send(sender=user.__class__, request=RequestFactory().get("/"), user=user)
