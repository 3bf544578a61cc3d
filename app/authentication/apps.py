"""
Django app configuration for authentication.

Holds the Tenant and User models the chat core scopes everything by.
"""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Tenants, users and the logout presence hook."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Authentication"

    def ready(self):
        """Connect the logout handler in signals.py."""
        from authentication import signals  # noqa: F401
