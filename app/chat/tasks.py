"""
Celery tasks for chat app.

This module defines async tasks for:
- Writing audit entries handed off by chat.audit.record_audit_event
- Expiring typing indicators that were never cleared (celery-beat)

Usage:
    from chat.tasks import expire_stale_typing_indicators

    expire_stale_typing_indicators.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("audit")


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
    ignore_result=True,
)
def write_audit_entry(self, entry: dict) -> None:
    """
    Write one audit entry to the audit log.

    Args:
        entry: Dict built by chat.audit.record_audit_event
            (action, user_id, tenant_id, target_type, target_id,
            context, occurred_at)
    """
    audit_logger.info(
        f"{entry.get('action')} {entry.get('target_type')}:{entry.get('target_id')} "
        f"by user {entry.get('user_id')}",
        extra={"audit": entry},
    )


@shared_task
def expire_stale_typing_indicators() -> int:
    """
    Clear typing indicators not refreshed within the typing TTL.

    Scheduled by celery-beat (see config/celery.py). Clients that drop
    without sending is_typing=false would otherwise show as typing forever.

    Returns:
        Number of indicators cleared
    """
    from chat.services import TypingService

    cleared = TypingService.expire_stale_indicators()
    if cleared:
        logger.info(
            "Expired stale typing indicators",
            extra={"count": cleared},
        )
    return cleared
