"""
URL configuration for the chat service.

URL Structure:
    /                              - ReDoc API documentation
    /health/                       - Health check endpoint (load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/chat/                  - Chat endpoints (see chat/urls.py)
        conversations/             - Conversation list/create
        conversations/frequent/    - Most accessed conversations
        conversations/{id}/        - Conversation detail
        conversations/{id}/read/   - Mark conversation as read
        conversations/{id}/typing/ - Typing indicators
        conversations/{id}/participants/presence/ - Participants with status
        conversations/{id}/messages/ - Message list/send
        messages/{id}/             - Message edit/delete
        messages/{id}/reactions/   - Reaction list/toggle
        messages/read/             - Batch mark read
        presence/                  - Own status
        presence/tenant/           - Tenant users by status

WebSocket routes live in chat/routing.py and are served by config/asgi.py.
"""

from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]
