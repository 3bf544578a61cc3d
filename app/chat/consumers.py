"""
WebSocket consumers for the chat application.

This module implements the WebSocket consumer for realtime delivery of
chat events, handling connection management, room membership and the
small set of client actions that are cheaper over the socket than over
REST.

Consumers:
    ChatConsumer: One connection per client session

Authentication:
    Users are authenticated via JWT token passed as query parameter.
    JWTAuthMiddleware attaches the user to self.scope["user"].

Rooms (channel groups):
    tenant_<id>:       joined on connect, where user-activity is announced
    conversation_<id>: one per membership, joined on connect, on
                       join-conversation and when a conversation-created
                       event names the user. Explicit joins and leaves
                       announce user-online / user-offline to the other
                       participants.

Frames (from client):
    {"type": "join-conversation", "conversation_id": ...}
    {"type": "leave-conversation", "conversation_id": ...}
    {"type": "typing", "conversation_id": ..., "is_typing": true}
    {"type": "update-status", "status": "away"}
    {"type": "mark-read", "message_ids": [...]}

Frames (to client):
    {"type": <event name>, "payload": {...}}
    {"type": "error", "error_code": ..., "error": ...}
"""

from __future__ import annotations

import logging
from uuid import UUID

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from chat.authorization import ChatAuthorizationService
from chat.constants import REALTIME_CONFIG, ErrorCode, RealtimeEvent
from chat.realtime import RealtimeFanout, conversation_room, tenant_room
from chat.services import PresenceService, ReadReceiptService, TypingService

logger = logging.getLogger(__name__)


def _parse_uuid(value) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for realtime chat.

    Handles:
        - Connection authentication
        - Joining tenant and conversation rooms
        - Forwarding realtime events to the client
        - Typing, status and read-receipt frames
        - Presence online on connect, offline when the last connection closes

    Attributes:
        user: Authenticated user
        rooms: Channel groups this connection has joined
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user = None
        self.rooms: set[str] = set()

    async def connect(self):
        """
        Handle WebSocket connection.

        Anonymous connections are closed with 4001. Otherwise joins the
        tenant room and every conversation room, accepts, announces the
        user's activity to the tenant and marks the user online.
        """
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            logger.warning("Rejected unauthenticated WebSocket connection")
            await self.close(code=REALTIME_CONFIG.CLOSE_UNAUTHENTICATED)
            return

        self.user = user

        if user.tenant_id:
            await self._join(tenant_room(user.tenant_id))
        for conversation_id in await self._get_conversation_ids():
            await self._join(conversation_room(conversation_id))

        await self.accept()
        if user.tenant_id:
            await RealtimeFanout.apublish(
                tenant_room(user.tenant_id),
                RealtimeEvent.USER_ACTIVITY,
                {"user_id": user.id, "last_active_at": timezone.now()},
            )
        await database_sync_to_async(PresenceService.connection_opened)(user)
        logger.info(f"User {user.id} connected, joined {len(self.rooms)} room(s)")

    async def disconnect(self, close_code):
        """Leave every joined room; the last connection closing marks the user offline."""
        for room in list(self.rooms):
            await self.channel_layer.group_discard(room, self.channel_name)
        self.rooms.clear()

        if self.user is not None:
            await database_sync_to_async(PresenceService.connection_closed)(self.user)
            logger.info(f"User {self.user.id} disconnected ({close_code})")

    async def _join(self, room: str) -> None:
        if room in self.rooms:
            return
        await self.channel_layer.group_add(room, self.channel_name)
        self.rooms.add(room)

    async def _leave(self, room: str) -> bool:
        if room not in self.rooms:
            return False
        await self.channel_layer.group_discard(room, self.channel_name)
        self.rooms.discard(room)
        return True

    # =========================================================================
    # Client frames
    # =========================================================================

    async def receive_json(self, content, **kwargs):
        """Dispatch a client frame by its type."""
        if not isinstance(content, dict):
            await self._send_error(ErrorCode.VALIDATION_ERROR, "Frames must be JSON objects")
            return

        handlers = {
            "join-conversation": self._handle_join,
            "leave-conversation": self._handle_leave,
            "typing": self._handle_typing,
            "update-status": self._handle_update_status,
            "mark-read": self._handle_mark_read,
        }
        frame_type = content.get("type")
        handler = handlers.get(frame_type)
        if handler is None:
            await self._send_error(
                ErrorCode.VALIDATION_ERROR, f"Unknown frame type: {frame_type}"
            )
            return

        try:
            await handler(content)
        except BaseApplicationError as e:
            logger.warning(f"Frame {frame_type} from user {self.user.id} failed: {e}")
            await self._send_error(e.error_code, e.message)

    async def _conversation_id(self, content) -> UUID | None:
        conversation_id = _parse_uuid(content.get("conversation_id"))
        if conversation_id is None:
            await self._send_error(ErrorCode.VALIDATION_ERROR, "conversation_id is required")
        return conversation_id

    async def _handle_join(self, content):
        conversation_id = await self._conversation_id(content)
        if conversation_id is None:
            return

        result = await database_sync_to_async(
            ChatAuthorizationService.get_conversation_for_participant
        )(self.user, conversation_id)
        if not result:
            await self._send_result_error(result)
            return

        room = conversation_room(conversation_id)
        await self._join(room)
        await RealtimeFanout.apublish(
            room,
            RealtimeEvent.USER_ONLINE,
            {
                "user_id": self.user.id,
                "display_name": self.user.name,
                "conversation_id": conversation_id,
            },
        )

    async def _handle_leave(self, content):
        conversation_id = await self._conversation_id(content)
        if conversation_id is None:
            return
        room = conversation_room(conversation_id)
        if await self._leave(room):
            await RealtimeFanout.apublish(
                room,
                RealtimeEvent.USER_OFFLINE,
                {"user_id": self.user.id, "conversation_id": conversation_id},
            )

    async def _handle_typing(self, content):
        conversation_id = await self._conversation_id(content)
        if conversation_id is None:
            return

        result = await database_sync_to_async(TypingService.set_typing)(
            self.user, conversation_id, bool(content.get("is_typing", False))
        )
        if not result:
            await self._send_result_error(result)

    async def _handle_update_status(self, content):
        result = await database_sync_to_async(PresenceService.set_status)(
            self.user, content.get("status")
        )
        if not result:
            await self._send_result_error(result)

    async def _handle_mark_read(self, content):
        raw_ids = content.get("message_ids")
        if not isinstance(raw_ids, list):
            await self._send_error(ErrorCode.VALIDATION_ERROR, "message_ids must be a list")
            return

        message_ids = [_parse_uuid(raw_id) for raw_id in raw_ids]
        result = await database_sync_to_async(ReadReceiptService.mark_read)(
            self.user, [message_id for message_id in message_ids if message_id is not None]
        )
        if not result:
            await self._send_result_error(result)

    async def _send_result_error(self, result: ServiceResult):
        await self._send_error(result.error_code, result.error)

    async def _send_error(self, error_code: str, error: str):
        await self.send_json({"type": "error", "error_code": error_code, "error": error})

    # =========================================================================
    # Channel layer events
    # =========================================================================

    async def realtime_event(self, event):
        """
        Handle realtime.event messages from the channel layer.

        conversation-created arrives on the tenant room; only its
        participants receive it, and they join the new conversation room.
        A connection never echoes its own user's user-online or
        user-offline.
        """
        name = event["event"]
        payload = event["payload"]

        if name == RealtimeEvent.CONVERSATION_CREATED:
            if str(self.user.id) not in {str(i) for i in payload.get("participant_ids", [])}:
                return
            await self._join(conversation_room(payload["id"]))
        elif name in (RealtimeEvent.USER_ONLINE, RealtimeEvent.USER_OFFLINE):
            if payload.get("user_id") == str(self.user.id):
                return

        await self.send_json({"type": name, "payload": payload})

    @database_sync_to_async
    def _get_conversation_ids(self) -> list:
        return ChatAuthorizationService.get_user_conversation_ids(self.user)
