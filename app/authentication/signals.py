"""
Django signals for authentication.

This module defines signal handlers for:
- Forcing presence offline when a user logs out

Related files:
    - apps.py: Signal import in ready()
    - chat/services.py: PresenceService.mark_offline
"""

import logging

from django.contrib.auth.signals import user_logged_out
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(user_logged_out)
def mark_offline_on_logout(sender, request, user, **kwargs):
    """
    Downgrade the user's presence to offline on logout.

    Best-effort: mark_offline logs and swallows its own failures so the
    logout response is never blocked by a presence write.
    """
    if user is None:
        return

    from chat.services import PresenceService

    PresenceService.mark_offline(user)
    logger.debug(f"Presence set offline on logout for user {user.id}")
