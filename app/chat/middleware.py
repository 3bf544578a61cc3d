"""
WebSocket authentication middleware.

Provides JWT authentication for WebSocket connections using the same
simplejwt access tokens as the REST API.

Related files:
    - routing.py: WebSocket URL patterns
    - consumers.py: WebSocket handlers
    - config/asgi.py: ASGI configuration

Token Passing Methods (in order of precedence):
    1. Query string: ws://host/ws/chat/?token=<jwt_token>
    2. Header: Authorization: Bearer <jwt_token>
    3. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>

Usage in config/asgi.py:
    from chat.middleware import JWTAuthMiddleware

    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        ),
    })
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseMiddleware):
    """
    JWT authentication middleware for WebSocket connections.

    Sets scope["user"] to the token's active user, or AnonymousUser when
    no token is given or it does not validate. Rejecting anonymous
    connections is left to the consumer.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = (
            self._get_token_from_query(scope)
            or self._get_token_from_header(scope)
            or self._get_token_from_subprotocol(scope)
        )

        if token:
            scope["user"] = await self._get_user_from_token(token)
        else:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)

    def _get_token_from_query(self, scope) -> str | None:
        """Extract token from query string."""
        query_string = scope.get("query_string", b"").decode()
        token_list = parse_qs(query_string).get("token", [])
        return token_list[0] if token_list else None

    def _get_token_from_header(self, scope) -> str | None:
        """Extract a Bearer token from the Authorization header."""
        for name, value in scope.get("headers", []):
            if name.lower() != b"authorization":
                continue
            parts = value.decode().split()
            if len(parts) == 2 and parts[0] in settings.SIMPLE_JWT.get(
                "AUTH_HEADER_TYPES", ("Bearer",)
            ):
                return parts[1]
        return None

    def _get_token_from_subprotocol(self, scope) -> str | None:
        """
        Extract token from WebSocket subprotocol.

        Expects: Sec-WebSocket-Protocol: jwt, <token>
        """
        subprotocols = scope.get("subprotocols", [])
        if len(subprotocols) >= 2 and subprotocols[0] == "jwt":
            return subprotocols[1]
        return None

    @database_sync_to_async
    def _get_user_from_token(self, token: str):
        """
        Validate JWT token and get user.

        Returns:
            User instance if valid, AnonymousUser otherwise
        """
        User = get_user_model()
        user_id_claim = settings.SIMPLE_JWT.get("USER_ID_CLAIM", "user_id")

        try:
            access_token = AccessToken(token)
            user = User.objects.select_related("tenant").get(id=access_token[user_id_claim])
        except TokenError as e:
            logger.warning(f"Invalid JWT token on WebSocket connection: {e}")
            return AnonymousUser()
        except (KeyError, User.DoesNotExist):
            logger.warning("User not found for WebSocket token")
            return AnonymousUser()

        if not user.is_active:
            logger.warning(f"Inactive user attempted WebSocket connection: {user.id}")
            return AnonymousUser()

        return user
