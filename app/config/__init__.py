# =============================================================================
# Chat Service Configuration Package
# =============================================================================
# Settings, URLs, the ASGI entry point and the Celery application.
#
# The Celery app is imported here so shared_task decorators in the chat app
# bind to it as soon as Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
