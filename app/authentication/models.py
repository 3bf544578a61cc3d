"""
Authentication models.

This module defines the identity models the chat core depends on:
- Tenant: Organization that owns users and conversations
- User: Custom user model with email-based authentication

Tokens are issued by the external auth service; this service verifies
them (simplejwt) and resolves the requester's (user id, tenant id) from
the User row.

Related files:
    - managers.py: Custom user manager for email-based creation
    - signals.py: Presence downgrade on logout
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Tenant(UUIDPrimaryKeyMixin, BaseModel):
    """
    Organization boundary for users and conversations.

    Provisioned by the admin subsystem; the chat core only reads it to
    scope participant validation and the tenant realtime room.
    """

    name = models.CharField(
        max_length=200,
        help_text="Display name of the organization",
    )
    slug = models.SlugField(
        max_length=100,
        unique=True,
        help_text="URL-safe unique identifier of the organization",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this tenant is active",
    )

    class Meta:
        db_table = "authentication_tenant"
        ordering = ["name"]

    def __str__(self):
        return self.name


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        display_name: Name shown next to messages, reactions and typing
        avatar_url: Avatar shown in sender and reactor summaries
        tenant: Owning organization
        is_active: Whether the user account is active
        is_staff: Whether the user can access staff tooling

    Usage:
        user = User.objects.create_user(
            email="user@example.com",
            password="securepassword",
            tenant=tenant,
            display_name="Ada",
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    display_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Name shown to other users",
    )
    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        help_text="URL of the user's avatar image",
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="users",
        help_text="Organization this user belongs to",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access staff tooling.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]
        indexes = [
            models.Index(fields=["tenant", "is_active"], name="auth_user_tenant_active_idx"),
        ]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.display_name or self.email

    def get_short_name(self):
        return self.display_name or self.email.split("@")[0]

    @property
    def name(self) -> str:
        """Name used in realtime payloads and sender summaries."""
        return self.get_full_name()
