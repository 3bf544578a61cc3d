"""
Chat app for real-time messaging.

This app handles:
- Conversations (direct and group, optionally cross-tenant)
- Message sending, editing, deletion and history (threads and replies)
- Read receipts and unread counts
- Reactions, typing indicators and presence
- Realtime fan-out to connected WebSocket clients

Related apps:
    - authentication: Tenant and User models

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for the WebSocket handler, realtime.py for publishing,
    and routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.create_conversation(
        requester=user,
        participant_ids=[other_user.id],
        is_group=False,
    )

    result = MessageService.send_message(
        requester=user,
        conversation_id=result.data.id,
        body="Hello!",
    )
"""
