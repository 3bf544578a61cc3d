"""
URL configuration for chat API.

URL Structure:
    Conversations:
        /conversations/                              GET, POST
        /conversations/frequent/                     GET
        /conversations/{id}/                         GET
        /conversations/{id}/read/                    POST
        /conversations/{id}/typing/                  GET, POST
        /conversations/{id}/participants/presence/   GET
        /conversations/{id}/messages/                GET, POST

    Messages:
        /messages/read/                              POST
        /messages/{id}/                              PATCH, DELETE
        /messages/{id}/reactions/                    GET, POST

    Presence:
        /presence/                                   GET, PUT
        /presence/tenant/                            GET

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import (
    ConversationViewSet,
    MessageViewSet,
    PresenceView,
    TenantPresenceView,
)

router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")
router.register(r"messages", MessageViewSet, basename="message")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    path("presence/", PresenceView.as_view(), name="presence"),
    path("presence/tenant/", TenantPresenceView.as_view(), name="presence-tenant"),
]
