"""
Chat application configuration.

This app provides the messaging and presence core:
- Direct (deduplicated) and group conversations
- Messages with replies and side-threads, edit and soft delete
- Read receipts, reactions, typing indicators and presence
- Realtime fan-out over Django Channels
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
