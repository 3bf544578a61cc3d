"""
Root pytest configuration for the chat service.

Sets the environment the settings module reads before Django is set up:
SQLite in memory, locmem cache, in-memory channel layer and eager Celery.
Values already present in the environment win, so the suite can also run
against PostgreSQL and Redis (e.g. DATABASE_URL=postgres://...).

App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os
import tempfile

TEST_ENVIRONMENT = {
    "SECRET_KEY": "test-secret-key-not-for-production",
    "DEBUG": "False",
    "ALLOWED_HOSTS": "testserver,localhost",
    "DATABASE_URL": "sqlite://:memory:",
    "CACHE_URL": "locmemcache://",
    "CHANNEL_LAYERS_IN_MEMORY": "True",
    "CELERY_TASK_ALWAYS_EAGER": "True",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "SECURE_SSL_REDIRECT": "False",
    "LOG_DIR": os.path.join(tempfile.gettempdir(), "chat-test-logs"),
    "ENV_FILE": os.devnull,
}

for key, value in TEST_ENVIRONMENT.items():
    os.environ.setdefault(key, value)

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
