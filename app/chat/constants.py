"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Conversation and message operations (content limits, page sizes, budgets)
- Reaction management (emoji restrictions)
- Typing indicators and presence (TTL, debounce windows)
- Realtime fan-out (room names, event names, publish budget)
- Error codes returned in ServiceResult failures

Import example:
    from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG, ErrorCode
"""

from typing import Final


# =============================================================================
# Conversation Configuration
# =============================================================================


class CONVERSATION_CONFIG:
    """Configuration for conversation operations."""

    MAX_NAME_LENGTH: Final[int] = 255
    MAX_PARTICIPANTS: Final[int] = 500

    DEFAULT_PAGE_SIZE: Final[int] = 20
    MAX_PAGE_SIZE: Final[int] = 100
    FREQUENT_DEFAULT_LIMIT: Final[int] = 10

    # Time budgets (seconds)
    CREATE_TIMEOUT_SECONDS: Final[float] = 5
    READ_TIMEOUT_SECONDS: Final[float] = 10


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters
    MAX_FILE_REF_LENGTH: Final[int] = 1024

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    # Time budgets (seconds). Sending is the most critical write.
    SEND_TIMEOUT_SECONDS: Final[float] = 15
    WRITE_TIMEOUT_SECONDS: Final[float] = 5
    READ_TIMEOUT_SECONDS: Final[float] = 10

    # Max ids accepted by a single bulk mark-read call
    MAX_MARK_READ_BATCH: Final[int] = 500


# =============================================================================
# Reaction Configuration
# =============================================================================


class REACTION_CONFIG:
    """Configuration for message reactions."""

    # Max characters for a single emoji (handles compound emojis)
    MAX_EMOJI_LENGTH: Final[int] = 8

    # None = allow any emoji
    ALLOWED_EMOJIS: Final[tuple | None] = None

    WRITE_TIMEOUT_SECONDS: Final[float] = 5


# =============================================================================
# Typing Configuration
# =============================================================================


class TYPING_CONFIG:
    """Configuration for typing indicators."""

    # An indicator not refreshed within this window reads as not typing
    TTL_SECONDS: Final[int] = 10

    # How often the beat task clears stale indicators
    SWEEP_INTERVAL_SECONDS: Final[int] = 15

    WRITE_TIMEOUT_SECONDS: Final[float] = 3


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking."""

    # Re-announcing the same status inside this window does not broadcast
    DEBOUNCE_SECONDS: Final[int] = 5

    # Activity signals (message sent) are checked at most once per window
    ACTIVITY_DEBOUNCE_SECONDS: Final[int] = 30

    # Cache key prefixes
    KEY_PREFIX_STATUS_DEBOUNCE: Final[str] = "presence:status"
    KEY_PREFIX_ACTIVITY: Final[str] = "presence:activity"
    KEY_PREFIX_CONNECTIONS: Final[str] = "presence:connections"

    # Open socket counters expire so a crashed worker cannot pin a user online
    CONNECTION_COUNT_TTL_SECONDS: Final[int] = 24 * 60 * 60

    WRITE_TIMEOUT_SECONDS: Final[float] = 3


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Configuration for the realtime fan-out."""

    CONVERSATION_ROOM_PREFIX: Final[str] = "conversation_"
    TENANT_ROOM_PREFIX: Final[str] = "tenant_"

    # Channel layer message type handled by ChatConsumer.realtime_event
    CHANNEL_MESSAGE_TYPE: Final[str] = "realtime.event"

    PUBLISH_TIMEOUT_SECONDS: Final[float] = 3

    # WebSocket close codes
    CLOSE_UNAUTHENTICATED: Final[int] = 4001


class RealtimeEvent:
    """Event names delivered to connected clients."""

    CONVERSATION_CREATED: Final[str] = "conversation-created"
    NEW_MESSAGE: Final[str] = "new-message"
    MESSAGE_UPDATED: Final[str] = "message-updated"
    MESSAGE_DELETED: Final[str] = "message-deleted"
    REACTION_ADDED: Final[str] = "reaction-added"
    REACTION_REMOVED: Final[str] = "reaction-removed"
    TYPING_INDICATOR: Final[str] = "typing-indicator"
    USER_STATUS_CHANGED: Final[str] = "user-status-changed"
    USER_ACTIVITY: Final[str] = "user-activity"
    USER_ONLINE: Final[str] = "user-online"
    USER_OFFLINE: Final[str] = "user-offline"
    MESSAGES_READ: Final[str] = "messages-read"


# =============================================================================
# Audit Actions
# =============================================================================


class AuditAction:
    """Actions recorded in the audit log."""

    CONVERSATION_CREATED: Final[str] = "CONVERSATION_CREATED"
    MESSAGE_SENT: Final[str] = "MESSAGE_SENT"
    MESSAGE_EDITED: Final[str] = "MESSAGE_EDITED"
    MESSAGE_DELETED: Final[str] = "MESSAGE_DELETED"


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode:
    """
    Error codes returned in ServiceResult failures.

    Codes are grouped by kind so transports can map them consistently:
    validation (reject with reason), authorization (reject) and not found
    (the item no longer exists).
    """

    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"
    PARTICIPANTS_NOT_FOUND: Final[str] = "PARTICIPANTS_NOT_FOUND"
    INVALID_PARTICIPANTS: Final[str] = "INVALID_PARTICIPANTS"
    EMPTY_CONTENT: Final[str] = "EMPTY_CONTENT"
    CONTENT_TOO_LONG: Final[str] = "CONTENT_TOO_LONG"
    INVALID_FILE_REFERENCE: Final[str] = "INVALID_FILE_REFERENCE"
    INVALID_EMOJI: Final[str] = "INVALID_EMOJI"
    INVALID_STATUS: Final[str] = "INVALID_STATUS"

    NOT_PARTICIPANT: Final[str] = "NOT_PARTICIPANT"
    NOT_AUTHOR: Final[str] = "NOT_AUTHOR"

    CONVERSATION_NOT_FOUND: Final[str] = "CONVERSATION_NOT_FOUND"
    MESSAGE_NOT_FOUND: Final[str] = "MESSAGE_NOT_FOUND"
    PARENT_NOT_FOUND: Final[str] = "PARENT_NOT_FOUND"
    THREAD_NOT_FOUND: Final[str] = "THREAD_NOT_FOUND"

    AUTHORIZATION_CODES: Final[frozenset] = frozenset({NOT_PARTICIPANT, NOT_AUTHOR})
    NOT_FOUND_CODES: Final[frozenset] = frozenset(
        {CONVERSATION_NOT_FOUND, MESSAGE_NOT_FOUND, PARENT_NOT_FOUND, THREAD_NOT_FOUND}
    )
