"""
Chat system models.

This module defines the data models for the messaging and presence core:
- Direct (1:1) and group conversations, scoped to a tenant
- Messages with replies (parent) and side-threads (thread root)
- Per-user read receipts, reactions, typing indicators and presence

Models:
    Conversation: Container for messages between participants
    DirectConversationPair: Enforces uniqueness of direct conversations
    Participant: Membership of a user in a conversation
    Message: Individual message within a conversation
    ReadReceipt: A user has viewed a message
    MessageReaction: Emoji reaction on a message
    TypingIndicator: Ephemeral "is typing" flag per (conversation, user)
    UserPresence: Current availability status of a user
    FrequentConversation: Access counter per (user, conversation)

Design Decisions:
    - Uniqueness constraints (pair, participant, receipt, reaction, typing)
      are the concurrency mechanism; services rely on them instead of locks
    - Conversations and messages are soft-deleted so threads, receipts and
      reactions pointing at them stay valid; every read path filters them
    - Thread replies always reference the thread root (single level)
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class MessageKind(models.TextChoices):
    """
    Kind of message content.

    TEXT: Body text is required
    FILE: A file reference is required, body text is an optional caption
    """

    TEXT = "text", "Text"
    FILE = "file", "File"


class PresenceStatus(models.TextChoices):
    """
    Coarse availability of a user.

    ONLINE: Connected and active
    AWAY: Connected but idle (client inactivity heuristic)
    BUSY: Explicitly set by the user, never changed by activity
    OFFLINE: Disconnected or logged out
    """

    ONLINE = "online", "Online"
    AWAY = "away", "Away"
    BUSY = "busy", "Busy"
    OFFLINE = "offline", "Offline"


class Conversation(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    A named channel (direct or group) containing participants and messages.

    Fields:
        tenant: Owning tenant
        name: Display name (may be blank for direct conversations)
        is_group: False for 1:1 conversations
        cross_tenant: Whether participants may come from other tenants
        created_by: Requester that created the conversation
        updated_at: Bumped on every new message, drives inbox ordering
    """

    tenant = models.ForeignKey(
        "authentication.Tenant",
        on_delete=models.CASCADE,
        related_name="conversations",
        help_text="Tenant that owns this conversation",
    )
    name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Display name of the conversation",
    )
    is_group = models.BooleanField(
        default=False,
        help_text="Whether this is a group conversation",
    )
    cross_tenant = models.BooleanField(
        default=False,
        help_text="Whether participants may belong to other tenants",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_conversations",
        help_text="User who created this conversation",
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-updated_at"]
        indexes = [
            models.Index(
                fields=["tenant", "-updated_at"],
                name="chat_conv_tenant_updated_idx",
            ),
        ]

    def __str__(self) -> str:
        kind = "group" if self.is_group else "direct"
        return f"Conversation({self.id}, {kind}, {self.name!r})"


class DirectConversationPair(models.Model):
    """
    Enforces uniqueness of direct conversations between two users.

    Stores the pair in canonical order (lower user id first) so that the
    unique constraint holds regardless of who initiated the conversation.
    A losing concurrent create hits the constraint and re-reads the winner.

    Constraints:
        - UniqueConstraint(user_lower, user_higher): One conversation per pair
        - CheckConstraint(user_lower_id < user_higher_id): Canonical order
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct conversation this pair represents",
    )
    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this conversation pair",
    )
    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this conversation pair",
    )

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_conversation_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="user_lower_less_than_higher",
            ),
        ]

    @staticmethod
    def canonical(user_a_id, user_b_id) -> tuple:
        """Return the two ids ordered (lower, higher)."""
        return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"


class Participant(BaseModel):
    """
    Membership linking a user to a conversation.

    Created with the conversation and never mutated afterwards.

    Constraints:
        - UniqueConstraint(conversation, user)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="The conversation",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_participations",
        help_text="The participating user",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_conversation_participant",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "conversation"], name="chat_part_user_conv_idx"),
        ]

    def __str__(self) -> str:
        return f"Participant({self.user_id} in {self.conversation_id})"


class Message(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    Individual message within a conversation.

    Fields:
        conversation: Owning conversation
        sender: Author of the message
        kind: text or file
        body: Message text (optional for file messages)
        file_ref: Resolved attachment reference (file messages only)
        parent: Message this one replies to (same conversation)
        thread: Root of the side-thread this message belongs to
        edited / edited_at: Set when the body is edited

    Ordering:
        By creation time, ties broken by id. Readers must not rely on
        arrival order.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="chat_messages",
        help_text="User who sent the message",
    )
    kind = models.CharField(
        max_length=10,
        choices=MessageKind.choices,
        default=MessageKind.TEXT,
        help_text="Kind of message content",
    )
    body = models.TextField(
        blank=True,
        help_text="Message text",
    )
    file_ref = models.CharField(
        max_length=1024,
        blank=True,
        help_text="Reference of the attached file",
    )
    parent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
        help_text="Message this one replies to",
    )
    thread = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="thread_messages",
        help_text="Root message of the thread this message belongs to",
    )
    edited = models.BooleanField(
        default=False,
        help_text="Whether the body has been edited",
    )
    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the body was last edited",
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["conversation", "thread", "created_at"],
                name="chat_msg_conv_thread_idx",
            ),
            models.Index(
                fields=["conversation", "created_at"],
                name="chat_msg_conv_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Message({self.id} in {self.conversation_id})"


class ReadReceipt(models.Model):
    """
    Marker that a user has viewed a message.

    Inserted at most once per (message, user), never updated or deleted.
    Bulk inserts use ignore_conflicts so overlapping requests (two tabs on
    the same conversation) cannot create duplicates.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="read_receipts",
        help_text="Message that was read",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_read_receipts",
        help_text="User who read the message",
    )
    read_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the message was first read",
    )

    class Meta:
        db_table = "chat_read_receipt"
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_read_receipt",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "message"], name="chat_receipt_user_msg_idx"),
        ]

    def __str__(self) -> str:
        return f"ReadReceipt({self.user_id} read {self.message_id})"


class MessageReaction(BaseModel):
    """
    Emoji reaction of a user on a message.

    Constraints:
        - UniqueConstraint(message, user, emoji): a user may react with
          several emojis, but each emoji once
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="reactions",
        help_text="Message being reacted to",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_reactions",
        help_text="User who reacted",
    )
    emoji = models.CharField(
        max_length=32,
        help_text="Emoji character(s)",
    )

    class Meta:
        db_table = "chat_message_reaction"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user", "emoji"],
                name="unique_message_user_emoji",
            ),
        ]
        indexes = [
            models.Index(fields=["message", "emoji"], name="chat_reaction_msg_emoji_idx"),
        ]

    def __str__(self) -> str:
        return f"Reaction({self.emoji} by {self.user_id} on {self.message_id})"


class TypingIndicator(models.Model):
    """
    Ephemeral typing flag per (conversation, user).

    Upserted on every client signal. A row that has not been refreshed
    within the TTL reads as not typing and is cleared by the periodic
    expire_stale_typing_indicators task.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="typing_indicators",
        help_text="Conversation the user is typing in",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_typing_indicators",
        help_text="User who is typing",
    )
    is_typing = models.BooleanField(
        default=False,
        help_text="Whether the user is currently typing",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        db_index=True,
        help_text="Last time the client refreshed this flag",
    )

    class Meta:
        db_table = "chat_typing_indicator"
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_typing_indicator",
            ),
        ]

    def is_active(self, ttl_seconds: int, now=None) -> bool:
        """Whether the flag is set and was refreshed within the TTL."""
        if not self.is_typing:
            return False
        now = now or timezone.now()
        return self.updated_at >= now - timedelta(seconds=ttl_seconds)

    def __str__(self) -> str:
        return f"Typing({self.user_id} in {self.conversation_id}: {self.is_typing})"


class UserPresence(models.Model):
    """
    Current availability of a user.

    Continuously overwritten. A user without a row is offline.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="presence",
        help_text="User this presence belongs to",
    )
    status = models.CharField(
        max_length=10,
        choices=PresenceStatus.choices,
        default=PresenceStatus.OFFLINE,
        db_index=True,
        help_text="Current availability status",
    )
    last_seen_at = models.DateTimeField(
        default=timezone.now,
        help_text="Last time the user changed status or showed activity",
    )

    class Meta:
        db_table = "chat_user_presence"

    def __str__(self) -> str:
        return f"Presence({self.user_id}: {self.status})"


class FrequentConversation(models.Model):
    """
    How often a user opens a conversation.

    Best-effort telemetry updated when the conversation list is fetched.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="frequent_conversations",
        help_text="User who accessed the conversation",
    )
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="access_counters",
        help_text="Conversation that was accessed",
    )
    access_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of times the conversation was listed for the user",
    )
    last_accessed_at = models.DateTimeField(
        default=timezone.now,
        help_text="Last time the counter was bumped",
    )

    class Meta:
        db_table = "chat_frequent_conversation"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "conversation"],
                name="unique_frequent_conversation",
            ),
        ]
        indexes = [
            models.Index(
                fields=["user", "-access_count"],
                name="chat_freq_user_count_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Frequent({self.user_id}, {self.conversation_id}: {self.access_count})"
