"""
Authentication application.

Identity models the chat core relies on. Token issuance, OAuth and tenant
provisioning belong to the external auth and admin services; this app only
stores tenants and users and verifies access tokens.

Key components:
    - Tenant model: Organization boundary
    - User model: Custom email-based user with display name and avatar

Usage:
    from authentication.models import Tenant, User
"""
