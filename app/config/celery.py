"""
Celery configuration for the Django application.

Celery runs the chat background work:
- Audit entries handed off by chat operations (chat.tasks.write_audit_entry)
- Periodic expiry of stale typing indicators (celery-beat)

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

Usage:
    # Worker
    celery -A config worker -l info

    # Scheduler
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

from chat.constants import TYPING_CONFIG

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

# Periodic tasks
app.conf.beat_schedule = {
    "expire-stale-typing-indicators": {
        "task": "chat.tasks.expire_stale_typing_indicators",
        "schedule": float(TYPING_CONFIG.SWEEP_INTERVAL_SECONDS),
    },
}
