"""
Service-level authorization for chat operations.

This module provides centralized membership checks for chat features.
It is distinct from DRF permission classes (in permissions.py) which only
require an authenticated caller with a tenant.

Key Components:
    ChatAuthorizationService: Stateless service class with authorization methods
    require_message_access: Decorator for message-level access with injection

Error Codes:
    NOT_PARTICIPANT: User is not a participant in the conversation
    CONVERSATION_NOT_FOUND: Conversation does not exist or is soft-deleted
    MESSAGE_NOT_FOUND: Message does not exist or is soft-deleted

Usage:
    result = ChatAuthorizationService.get_conversation_for_participant(
        user, conversation_id
    )
    if not result:
        return result
    conversation = result.data

    class ReactionService(BaseService):
        @classmethod
        @require_message_access()
        def toggle_reaction(cls, user, message_id, emoji, _message=None):
            # _message is injected by decorator
            ...
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Callable, TypeVar

from core.services import ServiceResult

from chat.constants import ErrorCode

if TYPE_CHECKING:
    from authentication.models import User
    from chat.models import Conversation, Message


T = TypeVar("T")


class ChatAuthorizationService:
    """
    Stateless service providing authorization checks for chat operations.

    All methods are classmethods and can be called directly without
    instantiation. Existence is checked before membership, so a caller
    asking about a deleted conversation learns it no longer exists.
    """

    @classmethod
    def is_conversation_participant(cls, user: "User", conversation_id) -> bool:
        """
        Check if user is a participant of the conversation.

        Does not check conversation soft-delete status.
        """
        from chat.models import Participant

        return Participant.objects.filter(
            conversation_id=conversation_id,
            user=user,
        ).exists()

    @classmethod
    def get_conversation_for_participant(
        cls,
        user: "User",
        conversation_id,
    ) -> ServiceResult["Conversation"]:
        """
        Load a live conversation the user participates in.

        Returns:
            ServiceResult with the Conversation, or a failure with
            CONVERSATION_NOT_FOUND / NOT_PARTICIPANT
        """
        from chat.models import Conversation

        conversation = Conversation.objects.filter(id=conversation_id).first()
        if conversation is None:
            return ServiceResult.failure(
                "Conversation not found",
                error_code=ErrorCode.CONVERSATION_NOT_FOUND,
            )

        if not cls.is_conversation_participant(user, conversation.id):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code=ErrorCode.NOT_PARTICIPANT,
            )

        return ServiceResult.success(conversation)

    @classmethod
    def get_message_for_participant(
        cls,
        user: "User",
        message_id,
    ) -> ServiceResult["Message"]:
        """
        Load a live message in a live conversation the user participates in.

        Returns:
            ServiceResult with the Message, or a failure with
            MESSAGE_NOT_FOUND / NOT_PARTICIPANT
        """
        from chat.models import Message

        message = (
            Message.objects.select_related("conversation", "sender")
            .filter(id=message_id, conversation__is_deleted=False)
            .first()
        )
        if message is None:
            return ServiceResult.failure(
                "Message not found",
                error_code=ErrorCode.MESSAGE_NOT_FOUND,
            )

        if not cls.is_conversation_participant(user, message.conversation_id):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code=ErrorCode.NOT_PARTICIPANT,
            )

        return ServiceResult.success(message)

    @classmethod
    def get_user_conversation_ids(cls, user: "User") -> list:
        """IDs of every live conversation the user participates in."""
        from chat.models import Participant

        return list(
            Participant.objects.filter(
                user=user,
                conversation__is_deleted=False,
            ).values_list("conversation_id", flat=True)
        )


def require_message_access(
    message_id_param: str = "message_id",
    user_param: str = "user",
) -> Callable:
    """
    Decorator that requires user to have access to a message.

    Checks that the message exists, is not deleted, and that the user
    participates in its conversation. On success, injects the message as
    the ``_message`` kwarg to avoid a second lookup.

    Returns:
        ServiceResult.failure with MESSAGE_NOT_FOUND or NOT_PARTICIPANT
        ServiceResult.failure with VALIDATION_ERROR if required params missing
    """

    def decorator(
        func: Callable[..., ServiceResult[T]],
    ) -> Callable[..., ServiceResult[T]]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult[T]:
            user = kwargs.get(user_param)
            message_id = kwargs.get(message_id_param)

            if user is None or message_id is None:
                return ServiceResult.failure(
                    "Missing required parameters",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )

            result = ChatAuthorizationService.get_message_for_participant(
                user, message_id
            )
            if not result:
                return result

            kwargs["_message"] = result.data
            return func(*args, **kwargs)

        return wrapper

    return decorator
