"""
Permission classes for chat API.

Conversation membership is enforced by the service layer (see
authorization.py) because the same checks guard websocket frames. DRF
permissions here only establish the caller context every chat endpoint
needs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsTenantMember(permissions.BasePermission):
    """
    Allows access only to authenticated users that belong to a tenant.

    Every chat operation is scoped to the caller's tenant, so a user
    without one cannot use the API.
    """

    message = "You must belong to a tenant to use chat."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "tenant_id", None))
