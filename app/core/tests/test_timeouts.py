"""
Tests for core.timeouts.time_budget.

These tests verify that:
- A block that finishes within its budget commits normally
- A block that overruns its budget is rolled back and raises
- A database-cancelled statement surfaces as OperationTimeoutError
- Other database errors propagate unchanged
- PostgreSQL connections receive a transaction-local statement_timeout
"""

from unittest.mock import MagicMock, patch

import pytest
from django.db import OperationalError

from authentication.models import Tenant
from core.exceptions import OperationTimeoutError
from core.timeouts import (
    QUERY_CANCELED_SQLSTATE,
    _apply_statement_timeout,
    is_statement_timeout,
    time_budget,
)


class QueryCanceled(Exception):
    """Stand-in for the driver error PostgreSQL raises on statement_timeout."""

    sqlstate = QUERY_CANCELED_SQLSTATE


# =============================================================================
# Budget Enforcement
# =============================================================================


@pytest.mark.django_db
class TestTimeBudget:
    """
    Tests for time_budget.

    Why it matters: a timed out operation must be distinguishable from a
    rejected one, and an overrun write must not half-commit.
    """

    def test_block_within_budget_commits(self):
        with time_budget("create_tenant", 5):
            Tenant.objects.create(name="Acme", slug="acme")

        assert Tenant.objects.filter(slug="acme").exists()

    def test_overrun_rolls_back_and_raises(self):
        with patch("core.timeouts.time") as clock:
            clock.monotonic.side_effect = [0.0, 10.0]
            with pytest.raises(OperationTimeoutError) as exc_info:
                with time_budget("create_tenant", 5):
                    Tenant.objects.create(name="Acme", slug="acme")

        assert not Tenant.objects.filter(slug="acme").exists()
        assert exc_info.value.details == {"operation": "create_tenant", "budget_seconds": 5}
        assert exc_info.value.error_code == "OPERATION_TIMEOUT"

    def test_cancelled_statement_raises_timeout(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            with time_budget("list_messages", 10):
                raise OperationalError("canceling statement") from QueryCanceled()

        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_other_operational_errors_propagate(self):
        with pytest.raises(OperationalError):
            with time_budget("list_messages", 10):
                raise OperationalError("connection reset")

    def test_application_exceptions_propagate(self):
        with pytest.raises(ValueError):
            with time_budget("send_message", 15):
                raise ValueError("boom")


# =============================================================================
# Helpers
# =============================================================================


class TestIsStatementTimeout:
    """Tests for is_statement_timeout."""

    def test_detects_sqlstate_on_cause(self):
        try:
            raise OperationalError("canceled") from QueryCanceled()
        except OperationalError as exc:
            assert is_statement_timeout(exc) is True

    def test_detects_sqlstate_on_exception_itself(self):
        assert is_statement_timeout(QueryCanceled()) is True

    def test_other_errors_are_not_timeouts(self):
        assert is_statement_timeout(OperationalError("deadlock")) is False


class TestApplyStatementTimeout:
    """Tests for the PostgreSQL statement_timeout push-down."""

    def test_postgresql_sets_transaction_local_timeout(self):
        connection = MagicMock(vendor="postgresql")
        cursor = connection.cursor.return_value.__enter__.return_value

        with patch("core.timeouts.connections", {"default": connection}):
            _apply_statement_timeout("default", 1.5)

        cursor.execute.assert_called_once_with(
            "SELECT set_config('statement_timeout', %s, true)",
            ["1500"],
        )

    def test_other_vendors_are_skipped(self):
        connection = MagicMock(vendor="sqlite")

        with patch("core.timeouts.connections", {"default": connection}):
            _apply_statement_timeout("default", 1.5)

        connection.cursor.assert_not_called()
