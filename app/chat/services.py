"""
Chat system service layer.

This module provides the business logic for the messaging and presence
core, encapsulating every operation on conversations, messages, read
receipts, reactions, typing indicators and presence.

Services:
    ConversationService: Create (with direct dedup), list, retrieve, frequent
    MessageService: Send, edit, delete and list messages (threads, replies)
    ReadReceiptService: Mark read and unread counts
    ReactionService: Toggle and list reactions
    TypingService: Typing flags with TTL expiry
    PresenceService: Online/away/busy/offline status with debounced broadcasts

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure() with a chat.constants.ErrorCode
    - Unexpected failures raise exceptions; exceeded time budgets raise
      core.exceptions.OperationTimeoutError
    - Validation and authorization run before any write
    - Unique constraints, not locks, make concurrent writes idempotent
    - Realtime publishes, audit entries, presence activity and recency bumps
      are best-effort and never fail the operation

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.create_conversation(
        requester=user, participant_ids=[other.id], is_group=False
    )
    conversation, created = result.data

    result = MessageService.send_message(
        requester=user, conversation_id=conversation.id, body="Hello!"
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Generic, TypeVar

from django.core.cache import cache
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, Exists, F, OuterRef, Prefetch, Q, Subquery
from django.utils import timezone

from core.services import BaseService, ServiceResult
from core.timeouts import time_budget

from authentication.models import User
from chat.audit import record_audit_event
from chat.authorization import ChatAuthorizationService, require_message_access
from chat.constants import (
    CONVERSATION_CONFIG,
    MESSAGE_CONFIG,
    PRESENCE_CONFIG,
    REACTION_CONFIG,
    TYPING_CONFIG,
    AuditAction,
    ErrorCode,
    RealtimeEvent,
)
from chat.models import (
    Conversation,
    DirectConversationPair,
    FrequentConversation,
    Message,
    MessageKind,
    MessageReaction,
    Participant,
    PresenceStatus,
    ReadReceipt,
    TypingIndicator,
    UserPresence,
)
from chat.realtime import RealtimeFanout, conversation_room, tenant_room
from chat.resolvers import get_file_reference_resolver

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a page-numbered listing."""

    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


def _page_bounds(page: int, page_size: int, max_page_size: int) -> tuple[int, int]:
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or 1), 1), max_page_size)
    return page, page_size


# =============================================================================
# Realtime payloads
# =============================================================================
# Payloads carry only what a client needs to update its state: ids, the
# changed fields and lightweight user summaries.


def user_summary(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "display_name": user.name,
        "avatar_url": user.avatar_url or None,
    }


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender": user_summary(message.sender),
        "kind": message.kind,
        "body": message.body,
        "file_ref": message.file_ref or None,
        "parent_id": message.parent_id,
        "thread_id": message.thread_id,
        "created_at": message.created_at,
    }


def conversation_payload(conversation: Conversation, participant_ids: list) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "tenant_id": conversation.tenant_id,
        "name": conversation.name,
        "is_group": conversation.is_group,
        "cross_tenant": conversation.cross_tenant,
        "created_by": conversation.created_by_id,
        "participant_ids": participant_ids,
        "created_at": conversation.created_at,
    }


def presence_payload(user: User, status: str, last_seen_at) -> dict[str, Any]:
    return {
        "user_id": user.id,
        "display_name": user.name,
        "status": status,
        "last_seen_at": last_seen_at,
    }


def read_payload(user: User, conversation_id, message_ids: list, read_at) -> dict[str, Any]:
    return {
        "user_id": user.id,
        "conversation_id": conversation_id,
        "message_ids": message_ids,
        "read_at": read_at,
    }


# =============================================================================
# Conversations
# =============================================================================


class ConversationService(BaseService):
    """
    Service for conversation lifecycle operations.

    Methods:
        create_conversation: Create a conversation, deduplicating direct pairs
        list_conversations: Inbox page with last message, unread count, presence
        get_conversation: Single conversation with the same annotations
        get_frequent_conversations: Most accessed conversations of a user
    """

    @classmethod
    def create_conversation(
        cls,
        requester: User,
        participant_ids: Iterable,
        name: str = "",
        is_group: bool = False,
        cross_tenant: bool = False,
    ) -> ServiceResult[tuple[Conversation, bool]]:
        """
        Create a conversation, or return the existing direct one.

        Every participant id must resolve to an active user; unless
        cross_tenant is set, they must also belong to the requester's
        tenant. The requester is always a participant and duplicates are
        ignored.

        A direct conversation (is_group=False) takes exactly one other
        participant and is unique per unordered user pair: creating it
        again, from either side, returns the existing conversation without
        side effects.

        Returns:
            ServiceResult with (conversation, created)

        Error codes:
            VALIDATION_ERROR: Requester has no tenant
            PARTICIPANTS_NOT_FOUND: Some ids did not resolve (listed in errors)
            INVALID_PARTICIPANTS: Wrong participant count for the conversation kind
        """
        if requester.tenant_id is None:
            return ServiceResult.failure(
                "Requester does not belong to a tenant",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        other_ids = []
        for participant_id in participant_ids:
            if str(participant_id) == str(requester.id):
                continue
            if str(participant_id) not in {str(i) for i in other_ids}:
                other_ids.append(participant_id)

        if not is_group and len(other_ids) != 1:
            return ServiceResult.failure(
                "A direct conversation needs exactly one other participant",
                error_code=ErrorCode.INVALID_PARTICIPANTS,
            )
        if is_group and not other_ids:
            return ServiceResult.failure(
                "A group conversation needs at least one other participant",
                error_code=ErrorCode.INVALID_PARTICIPANTS,
            )
        if len(other_ids) + 1 > CONVERSATION_CONFIG.MAX_PARTICIPANTS:
            return ServiceResult.failure(
                f"A conversation can have at most {CONVERSATION_CONFIG.MAX_PARTICIPANTS} participants",
                error_code=ErrorCode.INVALID_PARTICIPANTS,
            )

        with time_budget("create_conversation", CONVERSATION_CONFIG.CREATE_TIMEOUT_SECONDS):
            users = User.objects.filter(id__in=other_ids, is_active=True)
            if not cross_tenant:
                users = users.filter(tenant_id=requester.tenant_id)
            users = list(users)

            found = {str(user.id) for user in users}
            missing = [str(i) for i in other_ids if str(i) not in found]
            if missing:
                return ServiceResult.failure(
                    "Some participants could not be found",
                    error_code=ErrorCode.PARTICIPANTS_NOT_FOUND,
                    errors={"participant_ids": missing},
                )

            if is_group:
                conversation = cls._create_with_participants(
                    requester, users, name=name, is_group=True, cross_tenant=cross_tenant
                )
                created = True
            else:
                conversation, created = cls._find_or_create_direct(
                    requester, users[0], name=name, cross_tenant=cross_tenant
                )

        if created:
            participant_ids = [requester.id] + [user.id for user in users]
            RealtimeFanout.publish(
                tenant_room(conversation.tenant_id),
                RealtimeEvent.CONVERSATION_CREATED,
                conversation_payload(conversation, participant_ids),
            )
            record_audit_event(
                AuditAction.CONVERSATION_CREATED,
                user=requester,
                target_type="conversation",
                target_id=conversation.id,
                context={"is_group": conversation.is_group, "participants": len(participant_ids)},
            )
            cls.get_logger().info(
                f"Created {'group' if is_group else 'direct'} conversation "
                f"{conversation.id} by user {requester.id}"
            )

        return ServiceResult.success((conversation, created))

    @classmethod
    def _create_with_participants(
        cls,
        requester: User,
        others: list[User],
        name: str,
        is_group: bool,
        cross_tenant: bool,
    ) -> Conversation:
        conversation = Conversation.objects.create(
            tenant_id=requester.tenant_id,
            name=(name or "").strip()[: CONVERSATION_CONFIG.MAX_NAME_LENGTH],
            is_group=is_group,
            cross_tenant=cross_tenant,
            created_by=requester,
        )
        Participant.objects.bulk_create(
            [Participant(conversation=conversation, user=user) for user in [requester, *others]]
        )
        return conversation

    @classmethod
    def _existing_direct(cls, user_lower_id, user_higher_id) -> Conversation | None:
        pair = (
            DirectConversationPair.objects.select_related("conversation")
            .filter(user_lower_id=user_lower_id, user_higher_id=user_higher_id)
            .first()
        )
        if pair is None:
            return None
        if pair.conversation.is_deleted:
            # Free the pair so a new direct conversation can take its place
            pair.delete()
            return None
        return pair.conversation

    @classmethod
    def _find_or_create_direct(
        cls,
        requester: User,
        other: User,
        name: str,
        cross_tenant: bool,
    ) -> tuple[Conversation, bool]:
        user_lower_id, user_higher_id = DirectConversationPair.canonical(requester.id, other.id)

        existing = cls._existing_direct(user_lower_id, user_higher_id)
        if existing is not None:
            cls.get_logger().debug(
                f"Found existing direct conversation {existing.id} "
                f"between users {user_lower_id} and {user_higher_id}"
            )
            return existing, False

        try:
            with transaction.atomic():
                conversation = cls._create_with_participants(
                    requester, [other], name=name, is_group=False, cross_tenant=cross_tenant
                )
                DirectConversationPair.objects.create(
                    conversation=conversation,
                    user_lower_id=user_lower_id,
                    user_higher_id=user_higher_id,
                )
        except IntegrityError:
            # A concurrent create for the same pair committed first
            winner = cls._existing_direct(user_lower_id, user_higher_id)
            if winner is None:
                raise
            cls.get_logger().info(
                f"Direct conversation race for {user_lower_id}/{user_higher_id} "
                f"resolved to {winner.id}"
            )
            return winner, False

        return conversation, True

    @classmethod
    def _annotate(cls, conversations: list[Conversation], user: User) -> list[Conversation]:
        """
        Attach last_message, unread_count and participant presence.

        Sets on each conversation:
            last_message: newest live message or None
            unread_count: unread messages for ``user``
            participant_users: participants with presence preloaded
        """
        if not conversations:
            return conversations

        ids = [conversation.id for conversation in conversations]
        last_ids = [c.last_message_id for c in conversations if c.last_message_id]
        last_messages = {
            message.id: message
            for message in Message.objects.select_related("sender").filter(id__in=last_ids)
        }
        unread = ReadReceiptService.unread_counts(user, ids)

        for conversation in conversations:
            conversation.last_message = last_messages.get(conversation.last_message_id)
            conversation.unread_count = unread.get(conversation.id, 0)
            conversation.participant_users = [
                participant.user for participant in conversation.participants.all()
            ]
        return conversations

    @classmethod
    def _base_queryset(cls, user: User):
        last_message = (
            Message.objects.filter(conversation=OuterRef("pk"))
            .order_by("-created_at", "-id")
            .values("id")[:1]
        )
        return (
            Conversation.objects.filter(participants__user=user)
            .annotate(last_message_id=Subquery(last_message))
            .prefetch_related(
                Prefetch(
                    "participants",
                    queryset=Participant.objects.select_related("user__presence"),
                )
            )
        )

    @classmethod
    def list_conversations(
        cls,
        user: User,
        page: int = 1,
        page_size: int = CONVERSATION_CONFIG.DEFAULT_PAGE_SIZE,
    ) -> ServiceResult[Page[Conversation]]:
        """
        List the user's conversations, most recently active first.

        Each conversation carries last_message, unread_count and
        participant_users (with presence). Bumps the user's access counter
        for every conversation on the page (best-effort).
        """
        page, page_size = _page_bounds(page, page_size, CONVERSATION_CONFIG.MAX_PAGE_SIZE)
        offset = (page - 1) * page_size

        with time_budget("list_conversations", CONVERSATION_CONFIG.READ_TIMEOUT_SECONDS):
            queryset = cls._base_queryset(user).order_by("-updated_at", "-id")
            total = queryset.count()
            conversations = cls._annotate(list(queryset[offset : offset + page_size]), user)
            cls._record_access(user, [conversation.id for conversation in conversations])

        return ServiceResult.success(
            Page(items=conversations, total=total, page=page, page_size=page_size)
        )

    @classmethod
    def get_conversation(cls, user: User, conversation_id) -> ServiceResult[Conversation]:
        """Retrieve one conversation the user participates in, annotated."""
        with time_budget("get_conversation", CONVERSATION_CONFIG.READ_TIMEOUT_SECONDS):
            result = ChatAuthorizationService.get_conversation_for_participant(
                user, conversation_id
            )
            if not result:
                return result
            conversation = cls._base_queryset(user).get(id=result.data.id)
            cls._annotate([conversation], user)

        return ServiceResult.success(conversation)

    @classmethod
    def get_frequent_conversations(
        cls,
        user: User,
        limit: int = CONVERSATION_CONFIG.FREQUENT_DEFAULT_LIMIT,
    ) -> ServiceResult[list[Conversation]]:
        """Conversations the user opens most, highest access count first."""
        limit = min(max(int(limit or 1), 1), CONVERSATION_CONFIG.MAX_PAGE_SIZE)

        with time_budget("frequent_conversations", CONVERSATION_CONFIG.READ_TIMEOUT_SECONDS):
            counters = (
                FrequentConversation.objects.filter(
                    user=user,
                    conversation__is_deleted=False,
                    conversation__participants__user=user,
                )
                .select_related("conversation")
                .order_by("-access_count", "-last_accessed_at")[:limit]
            )
            conversations = []
            for counter in counters:
                conversation = counter.conversation
                conversation.access_count = counter.access_count
                conversations.append(conversation)

        return ServiceResult.success(conversations)

    @classmethod
    def _record_access(cls, user: User, conversation_ids: list) -> None:
        """Increment access counters. Telemetry only: failures are logged."""
        if not conversation_ids:
            return
        now = timezone.now()
        try:
            with transaction.atomic():
                counters = FrequentConversation.objects.filter(
                    user=user, conversation_id__in=conversation_ids
                )
                seen = set(counters.values_list("conversation_id", flat=True))
                counters.update(access_count=F("access_count") + 1, last_accessed_at=now)
                FrequentConversation.objects.bulk_create(
                    [
                        FrequentConversation(
                            user=user,
                            conversation_id=conversation_id,
                            access_count=1,
                            last_accessed_at=now,
                        )
                        for conversation_id in conversation_ids
                        if conversation_id not in seen
                    ],
                    ignore_conflicts=True,
                )
        except DatabaseError:
            cls.get_logger().warning(
                f"Could not record conversation access for user {user.id}", exc_info=True
            )


# =============================================================================
# Messages
# =============================================================================


class MessageService(BaseService):
    """
    Service for message operations.

    Methods:
        send_message: Validate, persist, self-read, bump recency, broadcast
        edit_message: Author-only body edit
        delete_message: Author-only soft delete
        list_messages: Timeline or thread page; marks the page read
    """

    @classmethod
    def _validate_content(
        cls,
        requester: User,
        kind: str,
        body: str,
        file_ref: str,
    ) -> ServiceResult[tuple[str, str]]:
        body = body or ""
        file_ref = (file_ref or "").strip()

        if kind not in MessageKind.values:
            return ServiceResult.failure(
                f"Unknown message kind: {kind}",
                error_code=ErrorCode.VALIDATION_ERROR,
                errors={"kind": [f"Must be one of: {', '.join(MessageKind.values)}"]},
            )
        if len(body) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code=ErrorCode.CONTENT_TOO_LONG,
            )

        if kind == MessageKind.TEXT:
            if file_ref:
                return ServiceResult.failure(
                    "File references require kind 'file'",
                    error_code=ErrorCode.VALIDATION_ERROR,
                    errors={"file_ref": ["Not allowed for text messages"]},
                )
            if not body.strip():
                return ServiceResult.failure(
                    "Message body cannot be empty",
                    error_code=ErrorCode.EMPTY_CONTENT,
                )
            return ServiceResult.success((body, ""))

        resolved = get_file_reference_resolver().resolve(file_ref, requester)
        if not resolved:
            return ServiceResult.failure(
                "Invalid file reference",
                error_code=ErrorCode.INVALID_FILE_REFERENCE,
            )
        return ServiceResult.success((body, resolved))

    @classmethod
    def send_message(
        cls,
        requester: User,
        conversation_id,
        body: str = "",
        file_ref: str = "",
        kind: str = MessageKind.TEXT,
        parent_id=None,
        thread_id=None,
    ) -> ServiceResult[Message]:
        """
        Send a message to a conversation.

        The message and the sender's own read receipt are written in one
        transaction. The conversation's updated_at is bumped in a savepoint
        so a failure there never loses the message.

        Sends are not idempotent: a retry after a timeout may create a
        duplicate message.

        Args:
            requester: Sender
            conversation_id: Target conversation
            body: Text (required for text messages, caption for files)
            file_ref: Attachment reference (file messages)
            kind: "text" or "file"
            parent_id: Message this one replies to
            thread_id: Thread to post in (any message of the thread)

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT, EMPTY_CONTENT,
            CONTENT_TOO_LONG, INVALID_FILE_REFERENCE, VALIDATION_ERROR,
            PARENT_NOT_FOUND, THREAD_NOT_FOUND

        Raises:
            OperationTimeoutError: The send exceeded its time budget
        """
        with time_budget("send_message", MESSAGE_CONFIG.SEND_TIMEOUT_SECONDS):
            membership = ChatAuthorizationService.get_conversation_for_participant(
                requester, conversation_id
            )
            if not membership:
                return membership
            conversation = membership.data

            content = cls._validate_content(requester, kind, body, file_ref)
            if not content:
                return content
            body, file_ref = content.data

            parent = None
            if parent_id is not None:
                parent = Message.objects.filter(id=parent_id, conversation=conversation).first()
                if parent is None:
                    return ServiceResult.failure(
                        "Replied-to message not found",
                        error_code=ErrorCode.PARENT_NOT_FOUND,
                    )

            thread_root_id = None
            if thread_id is not None:
                # A deleted root still anchors its thread
                anchor = Message.all_objects.filter(
                    id=thread_id, conversation=conversation
                ).first()
                if anchor is None:
                    return ServiceResult.failure(
                        "Thread not found",
                        error_code=ErrorCode.THREAD_NOT_FOUND,
                    )
                # Threads are single level: replies always point at the root
                thread_root_id = anchor.thread_id or anchor.id

            message = Message.objects.create(
                conversation=conversation,
                sender=requester,
                kind=kind,
                body=body,
                file_ref=file_ref,
                parent=parent,
                thread_id=thread_root_id,
            )
            ReadReceipt.objects.create(message=message, user=requester, read_at=message.created_at)
            cls._touch_conversation(conversation, message.created_at)

        cls.get_logger().info(
            f"Message {message.id} sent to conversation {conversation.id} by user {requester.id}"
        )

        RealtimeFanout.publish(
            conversation_room(conversation.id),
            RealtimeEvent.NEW_MESSAGE,
            message_payload(message),
        )
        PresenceService.record_activity(requester)
        record_audit_event(
            AuditAction.MESSAGE_SENT,
            user=requester,
            target_type="message",
            target_id=message.id,
            context={"conversation_id": str(conversation.id), "kind": message.kind},
        )
        return ServiceResult.success(message)

    @classmethod
    def _touch_conversation(cls, conversation: Conversation, at) -> None:
        """Bump inbox recency. Staleness is tolerable, so failures only log."""
        try:
            with transaction.atomic():
                Conversation.objects.filter(pk=conversation.pk).update(updated_at=at)
        except DatabaseError:
            cls.get_logger().warning(
                f"Could not bump recency of conversation {conversation.id}", exc_info=True
            )

    @classmethod
    def _get_own_message(cls, requester: User, message_id) -> ServiceResult[Message]:
        message = (
            Message.objects.select_for_update()
            .filter(id=message_id, conversation__is_deleted=False)
            .first()
        )
        if message is None:
            return ServiceResult.failure(
                "Message not found",
                error_code=ErrorCode.MESSAGE_NOT_FOUND,
            )
        if message.sender_id != requester.id:
            return ServiceResult.failure(
                "You can only modify your own messages",
                error_code=ErrorCode.NOT_AUTHOR,
            )
        return ServiceResult.success(message)

    @classmethod
    def edit_message(cls, requester: User, message_id, body: str) -> ServiceResult[Message]:
        """
        Replace the body of the requester's own message.

        Error codes:
            MESSAGE_NOT_FOUND, NOT_AUTHOR, EMPTY_CONTENT, CONTENT_TOO_LONG
        """
        body = body or ""
        with time_budget("edit_message", MESSAGE_CONFIG.WRITE_TIMEOUT_SECONDS):
            result = cls._get_own_message(requester, message_id)
            if not result:
                return result
            message = result.data

            if len(body) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
                return ServiceResult.failure(
                    f"Message exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                    error_code=ErrorCode.CONTENT_TOO_LONG,
                )
            if message.kind == MessageKind.TEXT and not body.strip():
                return ServiceResult.failure(
                    "Message body cannot be empty",
                    error_code=ErrorCode.EMPTY_CONTENT,
                )

            message.body = body
            message.edited = True
            message.edited_at = timezone.now()
            message.save(update_fields=["body", "edited", "edited_at", "updated_at"])

        RealtimeFanout.publish(
            conversation_room(message.conversation_id),
            RealtimeEvent.MESSAGE_UPDATED,
            {
                "id": message.id,
                "conversation_id": message.conversation_id,
                "body": message.body,
                "edited": message.edited,
                "edited_at": message.edited_at,
            },
        )
        record_audit_event(
            AuditAction.MESSAGE_EDITED,
            user=requester,
            target_type="message",
            target_id=message.id,
        )
        return ServiceResult.success(message)

    @classmethod
    def delete_message(cls, requester: User, message_id) -> ServiceResult[None]:
        """
        Soft-delete the requester's own message.

        The broadcast carries only ids, never content.

        Error codes:
            MESSAGE_NOT_FOUND, NOT_AUTHOR
        """
        with time_budget("delete_message", MESSAGE_CONFIG.WRITE_TIMEOUT_SECONDS):
            result = cls._get_own_message(requester, message_id)
            if not result:
                return result
            message = result.data
            message.soft_delete()

        RealtimeFanout.publish(
            conversation_room(message.conversation_id),
            RealtimeEvent.MESSAGE_DELETED,
            {"message_id": message.id, "conversation_id": message.conversation_id},
        )
        record_audit_event(
            AuditAction.MESSAGE_DELETED,
            user=requester,
            target_type="message",
            target_id=message.id,
        )
        return ServiceResult.success(None)

    @classmethod
    def list_messages(
        cls,
        requester: User,
        conversation_id,
        page: int = 1,
        page_size: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
        thread_id=None,
    ) -> ServiceResult[Page[Message]]:
        """
        List a page of messages, oldest first.

        Page 1 holds the most recent messages. Without thread_id only
        root-level messages are listed; with it, the thread root and its
        replies. A deleted root still anchors its thread, so its live
        replies stay listable by the root id. Every message on the page
        authored by someone else is marked read for the requester in the
        same transaction.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT, THREAD_NOT_FOUND
        """
        page, page_size = _page_bounds(page, page_size, MESSAGE_CONFIG.MAX_PAGE_SIZE)
        offset = (page - 1) * page_size

        with time_budget("list_messages", MESSAGE_CONFIG.READ_TIMEOUT_SECONDS):
            membership = ChatAuthorizationService.get_conversation_for_participant(
                requester, conversation_id
            )
            if not membership:
                return membership
            conversation = membership.data

            queryset = Message.objects.filter(conversation=conversation)
            if thread_id is not None:
                anchor = Message.all_objects.filter(
                    id=thread_id, conversation=conversation
                ).first()
                if anchor is None:
                    return ServiceResult.failure(
                        "Thread not found",
                        error_code=ErrorCode.THREAD_NOT_FOUND,
                    )
                root_id = anchor.thread_id or anchor.id
                queryset = queryset.filter(Q(id=root_id) | Q(thread_id=root_id))
            else:
                queryset = queryset.filter(thread__isnull=True)

            total = queryset.count()
            window = list(
                queryset.select_related("sender")
                .prefetch_related("reactions")
                .order_by("-created_at", "-id")[offset : offset + page_size]
            )
            window.reverse()

            ReadReceiptService.insert_receipts(
                requester,
                [message.id for message in window if message.sender_id != requester.id],
            )

        return ServiceResult.success(
            Page(items=window, total=total, page=page, page_size=page_size)
        )


# =============================================================================
# Read receipts
# =============================================================================


class ReadReceiptService(BaseService):
    """
    Service for per-user read state.

    Receipts are inserted at most once per (message, user): existing pairs
    are skipped up front and the unique constraint absorbs any concurrent
    insert of the same pair.
    """

    @classmethod
    def insert_receipts(cls, user: User, message_ids: list, read_at=None) -> list:
        """
        Insert receipts for the given messages, skipping existing ones.

        Returns:
            Ids of the messages that had no receipt before the call
        """
        if not message_ids:
            return []
        already_read = set(
            ReadReceipt.objects.filter(user=user, message_id__in=message_ids).values_list(
                "message_id", flat=True
            )
        )
        read_at = read_at or timezone.now()
        receipts = [
            ReadReceipt(message_id=message_id, user=user, read_at=read_at)
            for message_id in dict.fromkeys(message_ids)
            if message_id not in already_read
        ]
        ReadReceipt.objects.bulk_create(receipts, ignore_conflicts=True)
        return [receipt.message_id for receipt in receipts]

    @classmethod
    def _broadcast_read(cls, user: User, conversation_id, message_ids: list, read_at) -> None:
        RealtimeFanout.publish(
            conversation_room(conversation_id),
            RealtimeEvent.MESSAGES_READ,
            read_payload(user, conversation_id, message_ids, read_at),
        )

    @classmethod
    def mark_read(cls, user: User, message_ids: list) -> ServiceResult[int]:
        """
        Mark messages as read by the user.

        Ids of messages that do not exist, are deleted, or live in
        conversations the user does not participate in are ignored.
        Newly read messages are announced with one messages-read event
        per conversation.

        Returns:
            ServiceResult with the number of receipts inserted
        """
        message_ids = list(message_ids or [])
        if len(message_ids) > MESSAGE_CONFIG.MAX_MARK_READ_BATCH:
            return ServiceResult.failure(
                f"At most {MESSAGE_CONFIG.MAX_MARK_READ_BATCH} messages per call",
                error_code=ErrorCode.VALIDATION_ERROR,
                errors={"message_ids": ["Too many ids"]},
            )

        with time_budget("mark_read", MESSAGE_CONFIG.WRITE_TIMEOUT_SECONDS):
            conversation_of = dict(
                Message.objects.filter(
                    id__in=message_ids,
                    conversation__is_deleted=False,
                    conversation__participants__user=user,
                ).values_list("id", "conversation_id")
            )
            read_at = timezone.now()
            inserted = cls.insert_receipts(user, list(conversation_of), read_at)

        by_conversation: dict = {}
        for message_id in inserted:
            by_conversation.setdefault(conversation_of[message_id], []).append(message_id)
        for conversation_id, ids in by_conversation.items():
            cls._broadcast_read(user, conversation_id, ids, read_at)

        return ServiceResult.success(len(inserted))

    @classmethod
    def mark_conversation_read(cls, user: User, conversation_id) -> ServiceResult[int]:
        """Mark every unread message of a conversation as read."""
        with time_budget("mark_conversation_read", MESSAGE_CONFIG.WRITE_TIMEOUT_SECONDS):
            membership = ChatAuthorizationService.get_conversation_for_participant(
                user, conversation_id
            )
            if not membership:
                return membership
            conversation = membership.data
            unread_ids = list(
                cls._unread_queryset(user)
                .filter(conversation=conversation)
                .values_list("id", flat=True)
            )
            read_at = timezone.now()
            inserted = cls.insert_receipts(user, unread_ids, read_at)

        if inserted:
            cls._broadcast_read(user, conversation.id, inserted, read_at)
        return ServiceResult.success(len(inserted))

    @classmethod
    def _unread_queryset(cls, user: User):
        return Message.objects.exclude(sender_id=user.id).exclude(
            Exists(ReadReceipt.objects.filter(message=OuterRef("pk"), user=user))
        )

    @classmethod
    def unread_count(cls, user: User, conversation_id) -> int:
        """Live messages in the conversation sent by others and not yet read."""
        return cls._unread_queryset(user).filter(conversation_id=conversation_id).count()

    @classmethod
    def unread_counts(cls, user: User, conversation_ids: list) -> dict:
        """unread_count for several conversations in one query."""
        rows = (
            cls._unread_queryset(user)
            .filter(conversation_id__in=conversation_ids)
            .order_by()
            .values("conversation_id")
            .annotate(count=Count("id"))
        )
        return {row["conversation_id"]: row["count"] for row in rows}


# =============================================================================
# Reactions
# =============================================================================


class ReactionService(BaseService):
    """
    Service for managing message reactions.

    Handles:
    - Toggle reaction (add if absent, remove if present)
    - Grouped reaction listing for a message
    """

    @classmethod
    def _validate_emoji(cls, emoji: str) -> bool:
        """
        Validate that emoji is a valid reaction emoji.

        Args:
            emoji: The emoji string to validate (already stripped)
        """
        if not emoji:
            return False

        # Max length to prevent abuse; compound emojis span several code points
        if len(emoji) > REACTION_CONFIG.MAX_EMOJI_LENGTH:
            return False

        if REACTION_CONFIG.ALLOWED_EMOJIS is not None:
            return emoji in REACTION_CONFIG.ALLOWED_EMOJIS

        # Reject plain words; at least one character must be outside ASCII
        return any(ord(char) > 127 for char in emoji)

    @classmethod
    def toggle_reaction(
        cls,
        user: User,
        message_id,
        emoji: str,
    ) -> ServiceResult[tuple[bool, MessageReaction | None]]:
        """
        Toggle a reaction on a message.

        Returns:
            ServiceResult containing tuple (added: bool, reaction: MessageReaction | None)
            - added=True, reaction=MessageReaction if reaction was added
            - added=False, reaction=None if reaction was removed

        Error codes:
            INVALID_EMOJI, MESSAGE_NOT_FOUND, NOT_PARTICIPANT
        """
        emoji = (emoji or "").strip()
        if not cls._validate_emoji(emoji):
            return ServiceResult.failure(
                "Invalid emoji",
                error_code=ErrorCode.INVALID_EMOJI,
            )
        return cls._toggle(user=user, message_id=message_id, emoji=emoji)

    @classmethod
    @require_message_access()
    def _toggle(
        cls,
        user: User,
        message_id,
        emoji: str,
        _message: Message | None = None,
    ) -> ServiceResult[tuple[bool, MessageReaction | None]]:
        message = _message

        with time_budget("toggle_reaction", REACTION_CONFIG.WRITE_TIMEOUT_SECONDS):
            removed, _ = MessageReaction.objects.filter(
                message=message, user=user, emoji=emoji
            ).delete()

            reaction = None
            if not removed:
                try:
                    with transaction.atomic():
                        reaction = MessageReaction.objects.create(
                            message=message, user=user, emoji=emoji
                        )
                except IntegrityError:
                    # Concurrent toggle from another tab added it first
                    reaction = MessageReaction.objects.get(
                        message=message, user=user, emoji=emoji
                    )

        room = conversation_room(message.conversation_id)
        if removed:
            RealtimeFanout.publish(
                room,
                RealtimeEvent.REACTION_REMOVED,
                {
                    "message_id": message.id,
                    "conversation_id": message.conversation_id,
                    "user_id": user.id,
                    "emoji": emoji,
                },
            )
            return ServiceResult.success((False, None))

        RealtimeFanout.publish(
            room,
            RealtimeEvent.REACTION_ADDED,
            {
                "message_id": message.id,
                "conversation_id": message.conversation_id,
                "reaction": {
                    "id": reaction.id,
                    "emoji": reaction.emoji,
                    "user": user_summary(user),
                },
            },
        )
        return ServiceResult.success((True, reaction))

    @classmethod
    @require_message_access()
    def get_message_reactions(
        cls,
        user: User,
        message_id,
        _message: Message | None = None,
    ) -> ServiceResult[list[dict]]:
        """
        Reactions on a message grouped by emoji.

        Returns:
            ServiceResult with a list of
            {"emoji", "count", "users": [User], "reacted": bool}
            ordered by first use of each emoji
        """
        groups: dict[str, dict] = {}
        reactions = MessageReaction.objects.filter(message=_message).select_related("user")
        for reaction in reactions:
            group = groups.setdefault(
                reaction.emoji,
                {"emoji": reaction.emoji, "count": 0, "users": [], "reacted": False},
            )
            group["count"] += 1
            group["users"].append(reaction.user)
            if reaction.user_id == user.id:
                group["reacted"] = True

        return ServiceResult.success(list(groups.values()))


# =============================================================================
# Typing indicators
# =============================================================================


class TypingService(BaseService):
    """
    Service for typing indicators.

    Clients send is_typing=true while typing and false when they stop.
    Indicators not refreshed within TYPING_CONFIG.TTL_SECONDS read as not
    typing and are cleared by expire_stale_indicators.
    """

    @classmethod
    def set_typing(
        cls,
        user: User,
        conversation_id,
        is_typing: bool,
    ) -> ServiceResult[TypingIndicator]:
        """
        Upsert the user's typing flag and broadcast it.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT
        """
        with time_budget("set_typing", TYPING_CONFIG.WRITE_TIMEOUT_SECONDS):
            membership = ChatAuthorizationService.get_conversation_for_participant(
                user, conversation_id
            )
            if not membership:
                return membership

            indicator, _ = TypingIndicator.objects.update_or_create(
                conversation=membership.data,
                user=user,
                defaults={"is_typing": bool(is_typing)},
            )

        cls._broadcast(indicator, user)
        return ServiceResult.success(indicator)

    @classmethod
    def _broadcast(cls, indicator: TypingIndicator, user: User) -> None:
        RealtimeFanout.publish(
            conversation_room(indicator.conversation_id),
            RealtimeEvent.TYPING_INDICATOR,
            {
                "conversation_id": indicator.conversation_id,
                "user_id": user.id,
                "display_name": user.name,
                "is_typing": indicator.is_typing,
            },
        )

    @classmethod
    def get_active_typers(cls, user: User, conversation_id) -> ServiceResult[list[User]]:
        """Users other than the caller currently typing in the conversation."""
        membership = ChatAuthorizationService.get_conversation_for_participant(
            user, conversation_id
        )
        if not membership:
            return membership

        cutoff = timezone.now() - timedelta(seconds=TYPING_CONFIG.TTL_SECONDS)
        indicators = (
            TypingIndicator.objects.filter(
                conversation=membership.data,
                is_typing=True,
                updated_at__gte=cutoff,
            )
            .exclude(user=user)
            .select_related("user")
        )
        return ServiceResult.success([indicator.user for indicator in indicators])

    @classmethod
    def expire_stale_indicators(cls, now=None) -> int:
        """
        Clear indicators that were not refreshed within the TTL.

        Broadcasts is_typing=false for each cleared indicator.

        Returns:
            Number of indicators cleared
        """
        now = now or timezone.now()
        cutoff = now - timedelta(seconds=TYPING_CONFIG.TTL_SECONDS)

        stale = list(
            TypingIndicator.objects.filter(is_typing=True, updated_at__lt=cutoff).select_related(
                "user"
            )
        )
        if not stale:
            return 0

        # Re-check the cutoff so a refresh racing this sweep is kept
        cleared = TypingIndicator.objects.filter(
            pk__in=[indicator.pk for indicator in stale],
            is_typing=True,
            updated_at__lt=cutoff,
        ).update(is_typing=False)

        for indicator in stale:
            indicator.is_typing = False
            cls._broadcast(indicator, indicator.user)

        cls.get_logger().info(f"Expired {cleared} stale typing indicator(s)")
        return cleared


# =============================================================================
# Presence
# =============================================================================


class PresenceService(BaseService):
    """
    Service for user presence.

    Status changes are persisted in UserPresence and broadcast to the
    user's tenant room. Re-announcing an unchanged status within
    PRESENCE_CONFIG.DEBOUNCE_SECONDS is persisted (last_seen_at moves) but
    not broadcast again. The debounce state lives in the cache; without a
    cache every change is broadcast.
    """

    @staticmethod
    def is_valid_status(status: str) -> bool:
        return status in PresenceStatus.values

    @staticmethod
    def _status_key(user_id) -> str:
        return f"{PRESENCE_CONFIG.KEY_PREFIX_STATUS_DEBOUNCE}:{user_id}"

    @staticmethod
    def _activity_key(user_id) -> str:
        return f"{PRESENCE_CONFIG.KEY_PREFIX_ACTIVITY}:{user_id}"

    @classmethod
    def _should_broadcast(cls, user_id, status: str) -> bool:
        key = cls._status_key(user_id)
        try:
            if cache.get(key) == status:
                return False
            cache.set(key, status, timeout=PRESENCE_CONFIG.DEBOUNCE_SECONDS)
        except Exception:
            logger.warning(f"Presence debounce unavailable for user {user_id}", exc_info=True)
        return True

    @classmethod
    def set_status(cls, user: User, status: str) -> ServiceResult[UserPresence]:
        """
        Set the user's status and broadcast it to their tenant.

        Error codes:
            INVALID_STATUS
        """
        if not cls.is_valid_status(status):
            return ServiceResult.failure(
                f"Invalid status: {status}",
                error_code=ErrorCode.INVALID_STATUS,
                errors={"status": [f"Must be one of: {', '.join(PresenceStatus.values)}"]},
            )

        with time_budget("set_presence", PRESENCE_CONFIG.WRITE_TIMEOUT_SECONDS):
            presence, _ = UserPresence.objects.update_or_create(
                user=user,
                defaults={"status": status, "last_seen_at": timezone.now()},
            )

        if user.tenant_id and cls._should_broadcast(user.id, status):
            RealtimeFanout.publish(
                tenant_room(user.tenant_id),
                RealtimeEvent.USER_STATUS_CHANGED,
                presence_payload(user, presence.status, presence.last_seen_at),
            )
        return ServiceResult.success(presence)

    @classmethod
    def record_activity(cls, user: User) -> bool:
        """
        Note activity from the user (e.g. a sent message).

        Flips away or offline to online. Never touches busy, never
        downgrades online. Checked at most once per
        PRESENCE_CONFIG.ACTIVITY_DEBOUNCE_SECONDS. Best-effort.

        Returns:
            True if the status was changed to online
        """
        try:
            if not cache.add(
                cls._activity_key(user.id), 1, timeout=PRESENCE_CONFIG.ACTIVITY_DEBOUNCE_SECONDS
            ):
                return False
        except Exception:
            logger.warning(f"Activity debounce unavailable for user {user.id}", exc_info=True)

        try:
            presence = UserPresence.objects.filter(user=user).first()
            if presence is not None and presence.status in (
                PresenceStatus.ONLINE,
                PresenceStatus.BUSY,
            ):
                UserPresence.objects.filter(user=user).update(last_seen_at=timezone.now())
                return False
            return bool(cls.set_status(user, PresenceStatus.ONLINE))
        except Exception:
            logger.exception(f"Error recording activity for user {user.id}")
            return False

    @classmethod
    def mark_online(cls, user: User) -> bool:
        """Set online on connect unless the user chose busy. Best-effort."""
        try:
            presence = UserPresence.objects.filter(user=user).first()
            if presence is not None and presence.status == PresenceStatus.BUSY:
                UserPresence.objects.filter(user=user).update(last_seen_at=timezone.now())
                return False
            return bool(cls.set_status(user, PresenceStatus.ONLINE))
        except Exception:
            logger.exception(f"Error setting presence online for user {user.id}")
            return False

    @classmethod
    def mark_offline(cls, user: User) -> bool:
        """
        Force offline on logout or disconnect.

        Never raises: logout and disconnect must not be blocked by a
        failed presence write.
        """
        try:
            return bool(cls.set_status(user, PresenceStatus.OFFLINE))
        except Exception:
            logger.exception(f"Error setting presence offline for user {user.id}")
            return False

    @staticmethod
    def _connections_key(user_id) -> str:
        return f"{PRESENCE_CONFIG.KEY_PREFIX_CONNECTIONS}:{user_id}"

    @classmethod
    def connection_opened(cls, user: User) -> bool:
        """
        Count a newly opened socket of the user and mark them online.

        Returns:
            True if the status was changed to online
        """
        key = cls._connections_key(user.id)
        try:
            cache.add(key, 0, timeout=PRESENCE_CONFIG.CONNECTION_COUNT_TTL_SECONDS)
            cache.incr(key)
            cache.touch(key, PRESENCE_CONFIG.CONNECTION_COUNT_TTL_SECONDS)
        except Exception:
            logger.warning(f"Connection counter unavailable for user {user.id}", exc_info=True)
        return cls.mark_online(user)

    @classmethod
    def connection_closed(cls, user: User) -> bool:
        """
        Forget one socket of the user. Closing the last one marks them offline.

        Without a usable counter every close marks the user offline.

        Returns:
            True if the status was changed to offline
        """
        key = cls._connections_key(user.id)
        try:
            remaining = cache.decr(key)
        except ValueError:
            # Counter expired or was never set
            remaining = 0
        except Exception:
            logger.warning(f"Connection counter unavailable for user {user.id}", exc_info=True)
            remaining = 0

        if remaining > 0:
            logger.debug(f"User {user.id} still has {remaining} open connection(s)")
            return False

        try:
            cache.delete(key)
        except Exception:
            logger.warning(f"Connection counter unavailable for user {user.id}", exc_info=True)
        return cls.mark_offline(user)

    @classmethod
    def get_status(cls, user: User) -> ServiceResult[dict]:
        """Current status of a user; users without a record are offline."""
        presence = UserPresence.objects.filter(user=user).first()
        if presence is None:
            return ServiceResult.success(presence_payload(user, PresenceStatus.OFFLINE, None))
        return ServiceResult.success(
            presence_payload(user, presence.status, presence.last_seen_at)
        )

    @classmethod
    def get_tenant_users(cls, user: User, status: str | None = None) -> ServiceResult[list[User]]:
        """
        Users of the caller's tenant, optionally filtered by status.

        Users without a presence record count as offline.

        Error codes:
            INVALID_STATUS
        """
        if status is not None and not cls.is_valid_status(status):
            return ServiceResult.failure(
                f"Invalid status: {status}",
                error_code=ErrorCode.INVALID_STATUS,
            )

        users = User.objects.in_tenant(user.tenant_id).select_related("presence")
        if status == PresenceStatus.OFFLINE:
            users = users.filter(Q(presence__isnull=True) | Q(presence__status=status))
        elif status is not None:
            users = users.filter(presence__status=status)

        return ServiceResult.success(list(users.order_by("display_name", "email")))

    @classmethod
    def get_participants_with_status(
        cls,
        user: User,
        conversation_id,
    ) -> ServiceResult[list[User]]:
        """
        Participants of a conversation with presence preloaded.

        Error codes:
            CONVERSATION_NOT_FOUND, NOT_PARTICIPANT
        """
        membership = ChatAuthorizationService.get_conversation_for_participant(
            user, conversation_id
        )
        if not membership:
            return membership

        users = (
            User.objects.filter(chat_participations__conversation=membership.data)
            .select_related("presence")
            .order_by("display_name", "email")
        )
        return ServiceResult.success(list(users))


def presence_of(user: User) -> tuple[str, object]:
    """(status, last_seen_at) of a user with presence preloaded."""
    try:
        presence = user.presence
    except UserPresence.DoesNotExist:
        return PresenceStatus.OFFLINE, None
    return presence.status, presence.last_seen_at
