"""
Views for chat API.

This module provides REST API endpoints for the chat system:
- ConversationViewSet: Conversations and their nested actions
- MessageViewSet: Message edit/delete, reactions, batch mark-read
- PresenceView / TenantPresenceView: Own status and tenant presence

URL Structure:
    /api/v1/chat/conversations/                              GET, POST
    /api/v1/chat/conversations/frequent/                     GET
    /api/v1/chat/conversations/{id}/                         GET
    /api/v1/chat/conversations/{id}/read/                    POST
    /api/v1/chat/conversations/{id}/typing/                  GET, POST
    /api/v1/chat/conversations/{id}/participants/presence/   GET
    /api/v1/chat/conversations/{id}/messages/                GET, POST
    /api/v1/chat/messages/{id}/                              PATCH, DELETE
    /api/v1/chat/messages/{id}/reactions/                    GET, POST
    /api/v1/chat/messages/read/                              POST
    /api/v1/chat/presence/                                   GET, PUT
    /api/v1/chat/presence/tenant/                            GET

Design Decisions:
    - Views translate HTTP to service calls; all rules live in services
    - Membership is checked by the service layer, not by DRF permissions
    - Service error codes map to 400 (validation), 403 (authorization)
      and 404 (not found); timeouts surface as 504 via the exception handler
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult

from chat.constants import ErrorCode
from chat.pagination import ConversationPagination, MessagePagination
from chat.permissions import IsTenantMember
from chat.serializers import (
    ConversationCreateSerializer,
    ConversationSerializer,
    FrequentConversationSerializer,
    MarkReadSerializer,
    MessageCreateSerializer,
    MessageEditSerializer,
    MessageListQuerySerializer,
    MessageSerializer,
    ParticipantUserSerializer,
    PresenceQuerySerializer,
    PresenceSerializer,
    PresenceSetSerializer,
    ReactionGroupSerializer,
    ReactionToggleSerializer,
    TypingSerializer,
    UserSummarySerializer,
)
from chat.services import (
    ConversationService,
    MessageService,
    PresenceService,
    ReactionService,
    ReadReceiptService,
    TypingService,
    presence_of,
)

UUID_REGEX = "[0-9a-fA-F-]{36}"


def failure_response(result: ServiceResult) -> Response:
    """Render a failed ServiceResult with the status code its error kind maps to."""
    if result.error_code in ErrorCode.AUTHORIZATION_CODES:
        http_status = status.HTTP_403_FORBIDDEN
    elif result.error_code in ErrorCode.NOT_FOUND_CODES:
        http_status = status.HTTP_404_NOT_FOUND
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(result.to_response(), status=http_status)


def presence_list(users) -> list[dict]:
    """PresenceSerializer data for users with presence preloaded."""
    rows = []
    for user in users:
        status_value, last_seen_at = presence_of(user)
        rows.append(
            {
                "user_id": user.id,
                "display_name": user.name,
                "status": status_value,
                "last_seen_at": last_seen_at,
            }
        )
    return PresenceSerializer(rows, many=True).data


# =============================================================================
# Conversations
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_conversations",
        summary="List conversations",
        parameters=[
            OpenApiParameter("page", OpenApiTypes.INT, OpenApiParameter.QUERY),
            OpenApiParameter("page_size", OpenApiTypes.INT, OpenApiParameter.QUERY),
        ],
        responses={200: ConversationSerializer(many=True)},
        tags=["Chat - Conversations"],
    ),
    create=extend_schema(
        operation_id="create_conversation",
        summary="Create conversation",
        request=ConversationCreateSerializer,
        responses={
            201: ConversationSerializer,
            200: OpenApiResponse(
                response=ConversationSerializer,
                description="Existing direct conversation returned",
            ),
        },
        tags=["Chat - Conversations"],
    ),
    retrieve=extend_schema(
        operation_id="get_conversation",
        summary="Get conversation",
        responses={200: ConversationSerializer},
        tags=["Chat - Conversations"],
    ),
)
class ConversationViewSet(viewsets.ViewSet):
    """
    ViewSet for conversation operations.

    list:
        The caller's conversations, most recently active first, with last
        message, unread count and participant presence.

    create:
        Create a conversation. For direct conversations returns the
        existing one (200) if the pair already has one, else 201.

    retrieve:
        One conversation the caller participates in.
    """

    permission_classes = [IsAuthenticated, IsTenantMember]
    lookup_value_regex = UUID_REGEX

    def list(self, request):
        """List conversations."""
        paginator = ConversationPagination()
        page, page_size = paginator.get_page_params(request)

        result = ConversationService.list_conversations(
            user=request.user, page=page, page_size=page_size
        )
        if not result.success:
            return failure_response(result)

        data = ConversationSerializer(
            result.data.items, many=True, context={"request": request}
        ).data
        return paginator.get_paginated_response(result.data, data)

    def create(self, request):
        """Create a conversation (direct or group)."""
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ConversationService.create_conversation(
            requester=request.user,
            participant_ids=data["participant_ids"],
            name=data["name"],
            is_group=data["is_group"],
            cross_tenant=data["cross_tenant"],
        )
        if not result.success:
            return failure_response(result)

        conversation, created = result.data
        detail = ConversationService.get_conversation(request.user, conversation.id)
        output = ConversationSerializer(detail.data, context={"request": request})
        return Response(
            output.data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def retrieve(self, request, pk=None):
        """Get one conversation."""
        result = ConversationService.get_conversation(request.user, pk)
        if not result.success:
            return failure_response(result)

        return Response(ConversationSerializer(result.data, context={"request": request}).data)

    @extend_schema(
        operation_id="list_frequent_conversations",
        summary="Frequent conversations",
        parameters=[OpenApiParameter("limit", OpenApiTypes.INT, OpenApiParameter.QUERY)],
        responses={200: FrequentConversationSerializer(many=True)},
        tags=["Chat - Conversations"],
    )
    @action(detail=False, methods=["get"])
    def frequent(self, request):
        """Conversations the caller opens most."""
        try:
            limit = int(request.query_params.get("limit", 0)) or None
        except ValueError:
            limit = None

        kwargs = {"limit": limit} if limit else {}
        result = ConversationService.get_frequent_conversations(request.user, **kwargs)
        if not result.success:
            return failure_response(result)

        return Response(FrequentConversationSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="mark_conversation_read",
        summary="Mark conversation as read",
        request=None,
        responses={200: OpenApiResponse(description="Number of messages marked read")},
        tags=["Chat - Conversations"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        """Mark every unread message of the conversation as read."""
        result = ReadReceiptService.mark_conversation_read(request.user, pk)
        if not result.success:
            return failure_response(result)

        return Response({"marked": result.data})

    @extend_schema(
        methods=["GET"],
        operation_id="list_typing_users",
        summary="Users currently typing",
        responses={200: UserSummarySerializer(many=True)},
        tags=["Chat - Typing"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="set_typing",
        summary="Set typing indicator",
        request=TypingSerializer,
        responses={200: TypingSerializer},
        tags=["Chat - Typing"],
    )
    @action(detail=True, methods=["get", "post"])
    def typing(self, request, pk=None):
        """Active typers (GET) or set the caller's typing flag (POST)."""
        if request.method == "GET":
            result = TypingService.get_active_typers(request.user, pk)
            if not result.success:
                return failure_response(result)
            return Response(UserSummarySerializer(result.data, many=True).data)

        serializer = TypingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = TypingService.set_typing(
            request.user, pk, serializer.validated_data["is_typing"]
        )
        if not result.success:
            return failure_response(result)

        return Response({"is_typing": result.data.is_typing})

    @extend_schema(
        operation_id="list_participants_with_status",
        summary="Participants with presence",
        responses={200: ParticipantUserSerializer(many=True)},
        tags=["Chat - Presence"],
    )
    @action(detail=True, methods=["get"], url_path="participants/presence")
    def participants_presence(self, request, pk=None):
        """Participants of the conversation with their current status."""
        result = PresenceService.get_participants_with_status(request.user, pk)
        if not result.success:
            return failure_response(result)

        return Response(ParticipantUserSerializer(result.data, many=True).data)

    @extend_schema(
        methods=["GET"],
        operation_id="list_messages",
        summary="List messages",
        description=(
            "Page 1 holds the most recent messages, oldest first within the page. "
            "Listed messages are marked read for the caller."
        ),
        parameters=[
            OpenApiParameter("page", OpenApiTypes.INT, OpenApiParameter.QUERY),
            OpenApiParameter("page_size", OpenApiTypes.INT, OpenApiParameter.QUERY),
            OpenApiParameter("thread_id", OpenApiTypes.UUID, OpenApiParameter.QUERY),
        ],
        responses={200: MessageSerializer(many=True)},
        tags=["Chat - Messages"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="send_message",
        summary="Send message",
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            504: OpenApiResponse(description="Send timed out; retryable"),
        },
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        """List (GET) or send (POST) messages."""
        if request.method == "GET":
            return self._list_messages(request, pk)

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.send_message(
            requester=request.user,
            conversation_id=pk,
            body=data["body"],
            file_ref=data["file_ref"],
            kind=data["kind"],
            parent_id=data["parent_id"],
            thread_id=data["thread_id"],
        )
        if not result.success:
            return failure_response(result)

        return Response(
            MessageSerializer(result.data, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    def _list_messages(self, request, conversation_id):
        query = MessageListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        paginator = MessagePagination()
        page, page_size = paginator.get_page_params(request)

        result = MessageService.list_messages(
            requester=request.user,
            conversation_id=conversation_id,
            page=page,
            page_size=page_size,
            thread_id=query.validated_data["thread_id"],
        )
        if not result.success:
            return failure_response(result)

        data = MessageSerializer(result.data.items, many=True, context={"request": request}).data
        return paginator.get_paginated_response(result.data, data)


# =============================================================================
# Messages
# =============================================================================


@extend_schema_view(
    partial_update=extend_schema(
        operation_id="edit_message",
        summary="Edit message",
        request=MessageEditSerializer,
        responses={200: MessageSerializer},
        tags=["Chat - Messages"],
    ),
    destroy=extend_schema(
        operation_id="delete_message",
        summary="Delete message",
        responses={204: None},
        tags=["Chat - Messages"],
    ),
)
class MessageViewSet(viewsets.ViewSet):
    """
    ViewSet for operations on a single message.

    partial_update:
        Edit the body of the caller's own message.

    destroy:
        Soft delete the caller's own message.

    reactions:
        GET lists reactions grouped by emoji; POST toggles one.

    read:
        Mark a batch of messages as read.
    """

    permission_classes = [IsAuthenticated, IsTenantMember]
    lookup_value_regex = UUID_REGEX

    def partial_update(self, request, pk=None):
        """Edit a message."""
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.edit_message(
            requester=request.user,
            message_id=pk,
            body=serializer.validated_data["body"],
        )
        if not result.success:
            return failure_response(result)

        return Response(MessageSerializer(result.data, context={"request": request}).data)

    def destroy(self, request, pk=None):
        """Delete a message."""
        result = MessageService.delete_message(requester=request.user, message_id=pk)
        if not result.success:
            return failure_response(result)

        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        methods=["GET"],
        operation_id="list_message_reactions",
        summary="List reactions",
        responses={200: ReactionGroupSerializer(many=True)},
        tags=["Chat - Reactions"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="toggle_message_reaction",
        summary="Toggle reaction",
        request=ReactionToggleSerializer,
        responses={
            201: OpenApiResponse(description="Reaction added"),
            200: OpenApiResponse(description="Reaction removed"),
        },
        tags=["Chat - Reactions"],
    )
    @action(detail=True, methods=["get", "post"])
    def reactions(self, request, pk=None):
        """List (GET) or toggle (POST) reactions."""
        if request.method == "GET":
            result = ReactionService.get_message_reactions(user=request.user, message_id=pk)
            if not result.success:
                return failure_response(result)
            return Response(ReactionGroupSerializer(result.data, many=True).data)

        serializer = ReactionToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReactionService.toggle_reaction(
            user=request.user,
            message_id=pk,
            emoji=serializer.validated_data["emoji"],
        )
        if not result.success:
            return failure_response(result)

        added, reaction = result.data
        body = {"added": added, "emoji": serializer.validated_data["emoji"].strip()}
        if reaction is not None:
            body["id"] = reaction.id
        return Response(body, status=status.HTTP_201_CREATED if added else status.HTTP_200_OK)

    @extend_schema(
        operation_id="mark_messages_read",
        summary="Mark messages as read",
        request=MarkReadSerializer,
        responses={200: OpenApiResponse(description="Number of receipts inserted")},
        tags=["Chat - Messages"],
    )
    @action(detail=False, methods=["post"])
    def read(self, request):
        """Mark a batch of messages as read."""
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ReadReceiptService.mark_read(
            request.user, serializer.validated_data["message_ids"]
        )
        if not result.success:
            return failure_response(result)

        return Response({"marked": result.data})


# =============================================================================
# Presence Views
# =============================================================================


class PresenceView(APIView):
    """
    Manage current user's presence.

    GET /api/v1/chat/presence/
        Current status.

    PUT /api/v1/chat/presence/
        Set status: "online" | "away" | "busy" | "offline"
    """

    permission_classes = [IsAuthenticated, IsTenantMember]

    @extend_schema(
        operation_id="get_presence",
        summary="Get own presence",
        responses={200: PresenceSerializer},
        tags=["Chat - Presence"],
    )
    def get(self, request):
        """Get current user's presence status."""
        result = PresenceService.get_status(request.user)
        return Response(PresenceSerializer(result.data).data)

    @extend_schema(
        operation_id="set_presence",
        summary="Set presence status",
        description=(
            "Set the current user's presence status. The change is broadcast to "
            "the user's tenant; repeating the same status within a few seconds "
            "is not broadcast again."
        ),
        request=PresenceSetSerializer,
        responses={
            200: PresenceSerializer,
            400: OpenApiResponse(description="Invalid status value"),
        },
        tags=["Chat - Presence"],
    )
    def put(self, request):
        """Set current user's presence status."""
        serializer = PresenceSetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PresenceService.set_status(request.user, serializer.validated_data["status"])
        if not result.success:
            return failure_response(result)

        presence = result.data
        return Response(
            PresenceSerializer(
                {
                    "user_id": request.user.id,
                    "display_name": request.user.name,
                    "status": presence.status,
                    "last_seen_at": presence.last_seen_at,
                }
            ).data
        )


class TenantPresenceView(APIView):
    """
    Presence of the caller's tenant.

    GET /api/v1/chat/presence/tenant/?status=online
        Users with the given status (online by default).
    """

    permission_classes = [IsAuthenticated, IsTenantMember]

    @extend_schema(
        operation_id="list_tenant_presence",
        summary="Tenant users by status",
        parameters=[
            OpenApiParameter(
                name="status",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="online, away, busy or offline (default online)",
            ),
        ],
        responses={200: PresenceSerializer(many=True)},
        tags=["Chat - Presence"],
    )
    def get(self, request):
        """List tenant users by status."""
        query = PresenceQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = PresenceService.get_tenant_users(request.user, query.validated_data["status"])
        if not result.success:
            return failure_response(result)

        return Response(presence_list(result.data))
