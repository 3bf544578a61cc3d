"""
Time budgets for service operations.

Every persistence-bound service operation runs inside ``time_budget``.
The block runs in a transaction; on PostgreSQL the budget is also pushed
down to the server as a transaction-local ``statement_timeout`` so a
stalled statement is cancelled instead of blocking the worker.

Two situations raise OperationTimeoutError:
    - the database cancelled a statement (SQLSTATE 57014, query_canceled)
    - the block finished but overran its budget, in which case the
      transaction is rolled back before the error propagates

Usage:
    from core.timeouts import time_budget

    with time_budget("send_message", MESSAGE_CONFIG.SEND_TIMEOUT_SECONDS):
        message = Message.objects.create(...)
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import DEFAULT_DB_ALIAS, OperationalError, connections, transaction

from core.exceptions import OperationTimeoutError

if TYPE_CHECKING:
    from collections.abc import Generator

logger = logging.getLogger(__name__)

QUERY_CANCELED_SQLSTATE = "57014"


def is_statement_timeout(exc: BaseException) -> bool:
    """Return True if a database error was caused by a cancelled statement."""
    cause = exc.__cause__ or exc
    return getattr(cause, "sqlstate", None) == QUERY_CANCELED_SQLSTATE


def _apply_statement_timeout(using: str, seconds: float) -> None:
    connection = connections[using]
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT set_config('statement_timeout', %s, true)",
            [str(int(seconds * 1000))],
        )


@contextmanager
def time_budget(
    operation: str,
    seconds: float,
    using: str = DEFAULT_DB_ALIAS,
) -> Generator[None, None, None]:
    """
    Run the enclosed block in a transaction bounded by ``seconds``.

    Args:
        operation: Name used in logs and in the error details
        seconds: Budget for the whole block
        using: Database alias

    Raises:
        OperationTimeoutError: The budget was exceeded
    """
    details = {"operation": operation, "budget_seconds": seconds}
    started = time.monotonic()
    try:
        with transaction.atomic(using=using):
            _apply_statement_timeout(using, seconds)
            yield
            elapsed = time.monotonic() - started
            if elapsed > seconds:
                logger.warning(
                    f"{operation} overran its budget ({elapsed:.2f}s > {seconds}s), "
                    "rolling back"
                )
                raise OperationTimeoutError(
                    f"{operation} timed out",
                    details=details,
                )
    except OperationalError as exc:
        if is_statement_timeout(exc):
            logger.warning(f"{operation} cancelled by statement timeout ({seconds}s)")
            raise OperationTimeoutError(
                f"{operation} timed out",
                details=details,
            ) from exc
        raise
