"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from views, consumers and
    models. Views and consumers translate transport concerns, models hold
    data, services decide.

Pattern Comparison:
    - ServiceResult: Use for expected failures (validation, authorization,
      missing resources)
    - Exceptions: Use for unexpected failures (database errors, timeouts)

Usage:
    from core.services import BaseService, ServiceResult

    class MessageService(BaseService):
        @classmethod
        def edit_message(cls, user, message_id, body) -> ServiceResult[Message]:
            message = Message.objects.filter(id=message_id).first()
            if message is None:
                return ServiceResult.failure(
                    "Message not found", error_code="MESSAGE_NOT_FOUND"
                )

            with time_budget("edit_message", 5):
                message.body = body
                message.save()

            cls.get_logger().info(f"Message {message.id} edited")
            return ServiceResult.success(message)

Related:
    - core.exceptions: For unexpected/exceptional errors
    - core.timeouts: Time budgets for service operations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = ConversationService.create_conversation(...)
        if result.success:
            conversation = result.data
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Example:
            return ServiceResult.failure(
                "Unknown participants",
                error_code="PARTICIPANTS_NOT_FOUND",
                errors={"participant_ids": [str(missing_id)]},
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )


    def to_response(self) -> dict[str, Any]:
        """
        Convert a failed result to the API error body.

        Returns:
            Dict with error, error_code and (optionally) field errors
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service

    Design Notes:
        - Use @classmethod (no instance state)
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

