# Generated manually - Chat core: conversations, messages, receipts, reactions, typing, presence

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def _soft_delete():
    return [
        (
            "is_deleted",
            models.BooleanField(
                db_index=True,
                default=False,
                help_text="Whether this record has been soft deleted",
            ),
        ),
        (
            "deleted_at",
            models.DateTimeField(
                blank=True,
                null=True,
                help_text="Timestamp when this record was soft deleted",
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("authentication", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Conversation",
            fields=[
                *_timestamps(),
                *_soft_delete(),
                _uuid_pk(),
                (
                    "name",
                    models.CharField(
                        blank=True,
                        help_text="Display name of the conversation",
                        max_length=255,
                    ),
                ),
                (
                    "is_group",
                    models.BooleanField(
                        default=False, help_text="Whether this is a group conversation"
                    ),
                ),
                (
                    "cross_tenant",
                    models.BooleanField(
                        default=False,
                        help_text="Whether participants may belong to other tenants",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who created this conversation",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_conversations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        help_text="Tenant that owns this conversation",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="conversations",
                        to="authentication.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "chat_conversation",
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(
                        fields=["tenant", "-updated_at"], name="chat_conv_tenant_updated_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DirectConversationPair",
            fields=[
                (
                    "conversation",
                    models.OneToOneField(
                        help_text="The direct conversation this pair represents",
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="direct_pair",
                        serialize=False,
                        to="chat.conversation",
                    ),
                ),
                (
                    "user_lower",
                    models.ForeignKey(
                        help_text="User with lower ID in this conversation pair",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user_higher",
                    models.ForeignKey(
                        help_text="User with higher ID in this conversation pair",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_direct_conversation_pair",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user_lower", "user_higher"),
                        name="unique_direct_conversation_pair",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(user_lower_id__lt=models.F("user_higher_id")),
                        name="user_lower_less_than_higher",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                *_timestamps(),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="The conversation",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="participants",
                        to="chat.conversation",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="The participating user",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_participations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_participant",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["user", "conversation"], name="chat_part_user_conv_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("conversation", "user"), name="unique_conversation_participant"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                *_timestamps(),
                *_soft_delete(),
                _uuid_pk(),
                (
                    "kind",
                    models.CharField(
                        choices=[("text", "Text"), ("file", "File")],
                        default="text",
                        help_text="Kind of message content",
                        max_length=10,
                    ),
                ),
                ("body", models.TextField(blank=True, help_text="Message text")),
                (
                    "file_ref",
                    models.CharField(
                        blank=True, help_text="Reference of the attached file", max_length=1024
                    ),
                ),
                (
                    "edited",
                    models.BooleanField(
                        default=False, help_text="Whether the body has been edited"
                    ),
                ),
                (
                    "edited_at",
                    models.DateTimeField(
                        blank=True, help_text="When the body was last edited", null=True
                    ),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="Conversation this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.conversation",
                    ),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Message this one replies to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replies",
                        to="chat.message",
                    ),
                ),
                (
                    "sender",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who sent the message",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="chat_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "thread",
                    models.ForeignKey(
                        blank=True,
                        help_text="Root message of the thread this message belongs to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="thread_messages",
                        to="chat.message",
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["conversation", "thread", "created_at"],
                        name="chat_msg_conv_thread_idx",
                    ),
                    models.Index(
                        fields=["conversation", "created_at"], name="chat_msg_conv_created_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReadReceipt",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "read_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the message was first read",
                    ),
                ),
                (
                    "message",
                    models.ForeignKey(
                        help_text="Message that was read",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="read_receipts",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who read the message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_read_receipts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_read_receipt",
                "indexes": [
                    models.Index(fields=["user", "message"], name="chat_receipt_user_msg_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("message", "user"), name="unique_read_receipt"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="MessageReaction",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                *_timestamps(),
                ("emoji", models.CharField(help_text="Emoji character(s)", max_length=32)),
                (
                    "message",
                    models.ForeignKey(
                        help_text="Message being reacted to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reactions",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who reacted",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_reactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message_reaction",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["message", "emoji"], name="chat_reaction_msg_emoji_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("message", "user", "emoji"), name="unique_message_user_emoji"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="TypingIndicator",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "is_typing",
                    models.BooleanField(
                        default=False, help_text="Whether the user is currently typing"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        db_index=True,
                        help_text="Last time the client refreshed this flag",
                    ),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="Conversation the user is typing in",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="typing_indicators",
                        to="chat.conversation",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who is typing",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_typing_indicators",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_typing_indicator",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("conversation", "user"), name="unique_typing_indicator"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="UserPresence",
            fields=[
                (
                    "user",
                    models.OneToOneField(
                        help_text="User this presence belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="presence",
                        serialize=False,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("online", "Online"),
                            ("away", "Away"),
                            ("busy", "Busy"),
                            ("offline", "Offline"),
                        ],
                        db_index=True,
                        default="offline",
                        help_text="Current availability status",
                        max_length=10,
                    ),
                ),
                (
                    "last_seen_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Last time the user changed status or showed activity",
                    ),
                ),
            ],
            options={
                "db_table": "chat_user_presence",
            },
        ),
        migrations.CreateModel(
            name="FrequentConversation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "access_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of times the conversation was listed for the user",
                    ),
                ),
                (
                    "last_accessed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Last time the counter was bumped",
                    ),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="Conversation that was accessed",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="access_counters",
                        to="chat.conversation",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who accessed the conversation",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="frequent_conversations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_frequent_conversation",
                "indexes": [
                    models.Index(
                        fields=["user", "-access_count"], name="chat_freq_user_count_idx"
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "conversation"), name="unique_frequent_conversation"
                    )
                ],
            },
        ),
    ]
