"""
Pytest configuration for the Django apps.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import django
import pytest


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full user journeys across services)
    - test_views.py, test_services.py, test_tasks.py, test_consumers.py, ... → integration
    - test_models.py, test_serializers.py, test_managers.py, ... → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_managers.py",
        "test_exceptions.py",
        "test_resolvers.py",
        "test_pagination.py",
    ]

    for item in items:
        existing = {marker.name for marker in item.iter_markers()}
        if existing & {"unit", "integration", "e2e"}:
            continue

        filename = item.path.name
        if filename in e2e_patterns:
            item.add_marker(pytest.mark.e2e)
        elif filename in unit_patterns:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clear_cache():
    """Presence debounce state lives in the cache; start every test empty."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
