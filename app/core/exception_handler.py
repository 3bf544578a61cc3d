"""
DRF exception handler for application errors.

Renders core.exceptions.BaseApplicationError subclasses with their own
status code and error body, so a timed out operation (504, retryable)
stays distinguishable from a rejection (400/403) and from a missing
resource (404). Everything else falls through to DRF's default handler.

Configured in settings:
    REST_FRAMEWORK = {
        "EXCEPTION_HANDLER": "core.exception_handler.api_exception_handler",
    }
"""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError, OperationTimeoutError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        view_name = view.__class__.__name__ if view is not None else "unknown"
        if isinstance(exc, OperationTimeoutError):
            logger.warning(f"{view_name}: {exc}")
        else:
            logger.info(f"{view_name}: {exc}")
        return Response(exc.to_dict(), status=exc.status_code)

    return exception_handler(exc, context)
