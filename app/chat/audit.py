"""
Audit-log sink for chat actions.

Audit entries are owned by the admin service. This module hands them off
to the write_audit_entry Celery task and never blocks or fails the chat
operation that produced them: a broker outage is logged and ignored.

Usage:
    from chat.audit import record_audit_event
    from chat.constants import AuditAction

    record_audit_event(
        AuditAction.MESSAGE_SENT,
        user=sender,
        target_type="message",
        target_id=message.id,
        context={"conversation_id": str(message.conversation_id)},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.utils import timezone

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import User

logger = logging.getLogger(__name__)


def record_audit_event(
    action: str,
    *,
    user: User,
    target_type: str,
    target_id,
    context: dict[str, Any] | None = None,
) -> None:
    """
    Dispatch an audit entry without waiting for it to be written.

    Args:
        action: One of chat.constants.AuditAction
        user: User who performed the action
        target_type: Kind of object acted upon ("conversation", "message")
        target_id: Identifier of that object
        context: Extra JSON-serialisable details
    """
    from chat.tasks import write_audit_entry

    entry = {
        "action": action,
        "user_id": str(user.id),
        "tenant_id": str(user.tenant_id) if user.tenant_id else None,
        "target_type": target_type,
        "target_id": str(target_id),
        "context": context or {},
        "occurred_at": timezone.now().isoformat(),
    }
    try:
        write_audit_entry.delay(entry)
    except Exception:
        logger.warning(f"Could not dispatch audit entry {action} for {target_id}", exc_info=True)
