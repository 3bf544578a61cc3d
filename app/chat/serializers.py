"""
Serializers for chat API.

This module provides serializers for the chat system:
- Conversation serializers (read, create)
- Message serializers (read, send, edit, mark read)
- Reaction, typing and presence serializers

Serializer Hierarchy:
    UserSummarySerializer: id, display name, avatar
    ParticipantUserSerializer: UserSummary plus presence

    ConversationSerializer: Conversation with last message, unread count, participants
    ConversationCreateSerializer: Direct/group conversation creation

    MessageSerializer: Message with sender and grouped reactions
    MessageCreateSerializer: Send a text or file message
    MessageEditSerializer: Replace body
    MarkReadSerializer: Batch of message ids

    ReactionToggleSerializer / ReactionGroupSerializer
    TypingSerializer
    PresenceSerializer / PresenceSetSerializer

Design Decisions:
    - Read and write serializers are separate for clarity
    - Write serializers only check shape; business rules live in services
    - Computed fields read annotations set by the service layer
"""

from __future__ import annotations

from rest_framework import serializers

from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import Conversation, Message, MessageKind, PresenceStatus
from chat.services import presence_of

# =============================================================================
# Users
# =============================================================================


class UserSummarySerializer(serializers.Serializer):
    """Lightweight user representation embedded in chat payloads."""

    id = serializers.UUIDField(read_only=True)
    display_name = serializers.CharField(source="name", read_only=True)
    avatar_url = serializers.SerializerMethodField()

    def get_avatar_url(self, obj) -> str | None:
        return obj.avatar_url or None


class ParticipantUserSerializer(UserSummarySerializer):
    """User summary with current presence."""

    status = serializers.SerializerMethodField()
    last_seen_at = serializers.SerializerMethodField()

    def get_status(self, obj) -> str:
        return presence_of(obj)[0]

    def get_last_seen_at(self, obj):
        last_seen_at = presence_of(obj)[1]
        return serializers.DateTimeField().to_representation(last_seen_at) if last_seen_at else None


# =============================================================================
# Message Serializers
# =============================================================================


def group_reactions(message: Message, user=None) -> list[dict]:
    """
    Group a message's prefetched reactions by emoji.

    Returns:
        [{"emoji", "count", "reacted"}] in order of first use
    """
    groups: dict[str, dict] = {}
    for reaction in sorted(message.reactions.all(), key=lambda r: (r.created_at, r.pk)):
        group = groups.setdefault(
            reaction.emoji, {"emoji": reaction.emoji, "count": 0, "reacted": False}
        )
        group["count"] += 1
        if user is not None and reaction.user_id == user.id:
            group["reacted"] = True
    return list(groups.values())


class MessagePreviewSerializer(serializers.ModelSerializer):
    """
    Minimal message serializer for conversation list preview.

    Used to show the last message in conversation lists.
    """

    sender = UserSummarySerializer(read_only=True, allow_null=True)

    class Meta:
        model = Message
        fields = ["id", "sender", "kind", "body", "created_at"]
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message serializer for message lists.

    Includes sender details, reply/thread links and reactions grouped by
    emoji.
    """

    conversation_id = serializers.UUIDField(read_only=True)
    sender = UserSummarySerializer(read_only=True, allow_null=True)
    file_ref = serializers.SerializerMethodField()
    parent_id = serializers.UUIDField(read_only=True, allow_null=True)
    thread_id = serializers.UUIDField(read_only=True, allow_null=True)
    reactions = serializers.SerializerMethodField(
        help_text="Reactions grouped by emoji"
    )

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender",
            "kind",
            "body",
            "file_ref",
            "parent_id",
            "thread_id",
            "edited",
            "edited_at",
            "reactions",
            "created_at",
        ]
        read_only_fields = fields

    def get_file_ref(self, obj: Message) -> str | None:
        return obj.file_ref or None

    def get_reactions(self, obj: Message) -> list[dict]:
        request = self.context.get("request")
        return group_reactions(obj, getattr(request, "user", None))


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending a message.

    Either body (text) or file_ref (file) carries the content; the service
    layer enforces which combination is valid for the kind.
    """

    kind = serializers.ChoiceField(
        choices=MessageKind.choices,
        default=MessageKind.TEXT,
        help_text="Message kind",
    )
    body = serializers.CharField(
        required=False,
        allow_blank=True,
        trim_whitespace=False,
        default="",
        help_text=f"Message text (max {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters)",
    )
    file_ref = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=MESSAGE_CONFIG.MAX_FILE_REF_LENGTH,
        help_text="Reference to an uploaded file (file messages)",
    )
    parent_id = serializers.UUIDField(
        required=False,
        allow_null=True,
        default=None,
        help_text="Message being replied to",
    )
    thread_id = serializers.UUIDField(
        required=False,
        allow_null=True,
        default=None,
        help_text="Thread to post in",
    )


class MessageEditSerializer(serializers.Serializer):
    """Serializer for editing a message body."""

    body = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text="New message text",
    )


class MarkReadSerializer(serializers.Serializer):
    """Serializer for marking messages as read."""

    message_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=True,
        max_length=MESSAGE_CONFIG.MAX_MARK_READ_BATCH,
        help_text="Messages to mark as read",
    )


class MessageListQuerySerializer(serializers.Serializer):
    """Query parameters of the message list."""

    thread_id = serializers.UUIDField(required=False, allow_null=True, default=None)


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation with the caller's view of it.

    Expects the annotations set by ConversationService (last_message,
    unread_count, participant_users).
    """

    tenant_id = serializers.UUIDField(read_only=True)
    created_by = serializers.UUIDField(source="created_by_id", read_only=True, allow_null=True)
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    participants = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "tenant_id",
            "name",
            "is_group",
            "cross_tenant",
            "created_by",
            "participants",
            "last_message",
            "unread_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_last_message(self, obj: Conversation) -> dict | None:
        last_message = getattr(obj, "last_message", None)
        if last_message is None:
            return None
        return MessagePreviewSerializer(last_message).data

    def get_unread_count(self, obj: Conversation) -> int:
        return getattr(obj, "unread_count", 0)

    def get_participants(self, obj: Conversation) -> list[dict]:
        users = getattr(obj, "participant_users", None)
        if users is None:
            users = [participant.user for participant in obj.participants.all()]
        return ParticipantUserSerializer(users, many=True).data


class FrequentConversationSerializer(serializers.ModelSerializer):
    """Conversation with the caller's access count."""

    access_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Conversation
        fields = ["id", "name", "is_group", "access_count", "updated_at"]
        read_only_fields = fields


class ConversationCreateSerializer(serializers.Serializer):
    """
    Serializer for creating conversations.

    Supports both direct (1:1) and group conversations:
    - Direct: Finds existing or creates new between two users
    - Group: Creates new group with specified participants
    """

    participant_ids = serializers.ListField(
        child=serializers.UUIDField(),
        min_length=1,
        help_text="Users to include (the caller is always included)",
    )
    name = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
        default="",
        help_text="Display name",
    )
    is_group = serializers.BooleanField(
        default=False,
        help_text="Group conversation (otherwise direct)",
    )
    cross_tenant = serializers.BooleanField(
        default=False,
        help_text="Allow participants from other tenants",
    )


# =============================================================================
# Reactions, typing, presence
# =============================================================================


class ReactionToggleSerializer(serializers.Serializer):
    """Serializer for toggling a reaction."""

    emoji = serializers.CharField(
        max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH * 4,
        help_text="Emoji to toggle",
    )


class ReactionGroupSerializer(serializers.Serializer):
    """Reactions of one emoji on a message."""

    emoji = serializers.CharField()
    count = serializers.IntegerField()
    users = UserSummarySerializer(many=True)
    reacted = serializers.BooleanField()


class TypingSerializer(serializers.Serializer):
    """Serializer for setting the typing flag."""

    is_typing = serializers.BooleanField()


class PresenceSerializer(serializers.Serializer):
    """Presence of one user."""

    user_id = serializers.UUIDField()
    display_name = serializers.CharField()
    status = serializers.ChoiceField(choices=PresenceStatus.choices)
    last_seen_at = serializers.DateTimeField(allow_null=True)


class PresenceSetSerializer(serializers.Serializer):
    """Serializer for updating own status."""

    status = serializers.CharField(help_text="online, away, busy or offline")


class PresenceQuerySerializer(serializers.Serializer):
    """Query parameters of the tenant presence listing."""

    status = serializers.CharField(required=False, default=PresenceStatus.ONLINE)
