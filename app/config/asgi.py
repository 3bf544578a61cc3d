"""
ASGI entry point for the chat service.

Routes plain HTTP to Django and WebSocket connections to the chat
consumer, served by Daphne:

    daphne -b 0.0.0.0 -p 8000 config.asgi:application

WebSocket stack, outermost first:
    AllowedHostsOriginValidator: origin must match ALLOWED_HOSTS
    JWTAuthMiddleware: resolves ?token=<access> to scope["user"]
    URLRouter: ws/chat/ -> ChatConsumer
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Django must be set up before anything imports models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
