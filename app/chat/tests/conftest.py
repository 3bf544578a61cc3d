"""
Test configuration and fixtures for chat tests.

This module provides:
- A tenant with three users (alice, bob, carol) and an outsider tenant
- Direct and group conversation fixtures
- Message fixtures
- API client helpers for authenticated requests
- A recorder for realtime publishes

Usage:
    def test_example(direct_conversation, alice_client):
        response = alice_client.get(f"/api/v1/chat/conversations/{direct_conversation.id}/")
        assert response.status_code == 200
"""

from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import TenantFactory, UserFactory
from chat.tests.factories import (
    DirectConversationFactory,
    GroupConversationFactory,
    MessageFactory,
)

# =============================================================================
# Tenant / User Fixtures
# =============================================================================


@pytest.fixture
def tenant(db):
    """The tenant most tests run in."""
    return TenantFactory(name="Acme", slug="acme")


@pytest.fixture
def other_tenant(db):
    """A second, unrelated tenant."""
    return TenantFactory(name="Globex", slug="globex")


@pytest.fixture
def alice(tenant):
    return UserFactory(tenant=tenant, display_name="Alice", email="alice@acme.test")


@pytest.fixture
def bob(tenant):
    return UserFactory(tenant=tenant, display_name="Bob", email="bob@acme.test")


@pytest.fixture
def carol(tenant):
    return UserFactory(tenant=tenant, display_name="Carol", email="carol@acme.test")


@pytest.fixture
def outsider(other_tenant):
    """A user in another tenant, not a participant in any test conversation."""
    return UserFactory(tenant=other_tenant, display_name="Oscar", email="oscar@globex.test")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def direct_conversation(alice, bob):
    """Direct conversation between alice and bob."""
    return DirectConversationFactory(user1=alice, user2=bob)


@pytest.fixture
def group_conversation(alice, bob, carol):
    """Group conversation created by alice with bob and carol."""
    return GroupConversationFactory(created_by=alice, members=[bob, carol], name="Project")


# =============================================================================
# Message Fixtures
# =============================================================================


@pytest.fixture
def message(direct_conversation, alice):
    """A text message from alice in the direct conversation."""
    return MessageFactory(conversation=direct_conversation, sender=alice, body="Hello Bob")


@pytest.fixture
def bob_message(direct_conversation, bob):
    """A text message from bob in the direct conversation."""
    return MessageFactory(conversation=direct_conversation, sender=bob, body="Hi Alice")


# =============================================================================
# Realtime
# =============================================================================


class PublishRecorder:
    """Collects (room, event, payload) tuples passed to RealtimeFanout.publish."""

    def __init__(self):
        self.calls = []

    def __call__(self, room, event, payload):
        self.calls.append((room, event, payload))
        return True

    def events(self, name):
        """Payloads published with the given event name."""
        return [payload for _, event, payload in self.calls if event == name]

    def rooms(self, name):
        """Rooms the given event was published to."""
        return [room for room, event, _ in self.calls if event == name]


@pytest.fixture
def published():
    """
    Record realtime publishes instead of sending them to the channel layer.

    Yields a PublishRecorder.
    """
    recorder = PublishRecorder()
    with patch("chat.services.RealtimeFanout.publish", side_effect=recorder):
        yield recorder


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def alice_client(alice):
    return _client_for(alice)


@pytest.fixture
def bob_client(bob):
    return _client_for(bob)


@pytest.fixture
def carol_client(carol):
    return _client_for(carol)


@pytest.fixture
def outsider_client(outsider):
    return _client_for(outsider)
