"""
Realtime fan-out for chat events.

Publishes state changes to Django Channels groups ("rooms"):
    conversation_<id>: every connection whose user participates in the
                       conversation
    tenant_<id>:       every connection of the tenant's users

Publishing is fire-and-forget: publish from sync code, apublish from
consumers. A missing channel layer, a slow layer or a delivery failure
is logged and reported as False, never raised: the mutation that
triggered the event has already been persisted.

Which connections belong to which room is tracked by ChatConsumer for the
lifetime of each connection (see consumers.py).

Usage:
    from chat.realtime import RealtimeFanout, conversation_room

    RealtimeFanout.publish(
        conversation_room(message.conversation_id),
        RealtimeEvent.MESSAGE_DELETED,
        {"message_id": message.id, "conversation_id": message.conversation_id},
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder

from chat.constants import REALTIME_CONFIG

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def conversation_room(conversation_id) -> str:
    """Channel group name of a conversation."""
    return f"{REALTIME_CONFIG.CONVERSATION_ROOM_PREFIX}{conversation_id}"


def tenant_room(tenant_id) -> str:
    """Channel group name of a tenant."""
    return f"{REALTIME_CONFIG.TENANT_ROOM_PREFIX}{tenant_id}"


def to_json_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Normalise a payload to JSON primitives.

    UUIDs and datetimes become strings so the payload survives the
    msgpack serialisation of the Redis channel layer unchanged.
    """
    return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))


class RealtimeFanout:
    """
    Publishes named events to channel layer groups.

    Every publish is exactly one group_send, bounded by
    REALTIME_CONFIG.PUBLISH_TIMEOUT_SECONDS.
    """

    @staticmethod
    async def _group_send(channel_layer, room: str, message: dict[str, Any]) -> None:
        await asyncio.wait_for(
            channel_layer.group_send(room, message),
            timeout=REALTIME_CONFIG.PUBLISH_TIMEOUT_SECONDS,
        )

    @classmethod
    def build_message(cls, event: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Build the channel layer message for an event."""
        return {
            "type": REALTIME_CONFIG.CHANNEL_MESSAGE_TYPE,
            "event": event,
            "payload": to_json_payload(payload),
        }

    @classmethod
    def publish(cls, room: str, event: str, payload: dict[str, Any]) -> bool:
        """
        Publish an event to a room from synchronous code.

        Args:
            room: Channel group name (see conversation_room / tenant_room)
            event: Event name from chat.constants.RealtimeEvent
            payload: Minimal JSON-serialisable event data

        Returns:
            True if the event was handed to the channel layer
        """
        return async_to_sync(cls.apublish)(room, event, payload)

    @classmethod
    async def apublish(cls, room: str, event: str, payload: dict[str, Any]) -> bool:
        """Publish an event from async code (consumers). Same contract as publish."""
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.debug(f"No channel layer configured, dropping {event} for {room}")
            return False

        message = cls.build_message(event, payload)
        try:
            await cls._group_send(channel_layer, room, message)
        except asyncio.TimeoutError:
            logger.warning(
                f"Publishing {event} to {room} timed out after "
                f"{REALTIME_CONFIG.PUBLISH_TIMEOUT_SECONDS}s"
            )
            return False
        except Exception:
            logger.warning(f"Failed to publish {event} to {room}", exc_info=True)
            return False

        logger.debug(f"Published {event} to {room}")
        return True
