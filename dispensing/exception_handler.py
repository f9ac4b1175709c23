"""
Unified exception handler.

Wired into DRF through the EXCEPTION_HANDLER setting. Every error response
has the same shape, so the capture client and the dispenser firmware can
check a single field:

{
    "success": false,
    "type":    "validation_error" | "not_found" | "conflict" | "error",
    "code":    "SESSION_EXPIRED",
    "message": "Session expired",
    "detail":  { ... }  // optional
}
"""

import logging

from django.db import DatabaseError
from django.http import JsonResponse
from rest_framework.exceptions import ParseError
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException, StorageError

logger = logging.getLogger(__name__)


def error_body(exc):
    body = {
        'success': False,
        'type': exc.type,
        'code': exc.code,
        'message': exc.message,
    }
    if exc.detail is not None:
        body['detail'] = exc.detail
    return body


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    Precedence:
    1. DatabaseError → StorageError, logged with traceback
    2. BaseAppException and subclasses → unified body
    3. DRF ValidationError / ParseError (bad JSON) → validation_error 400
    4. anything else → DRF default handling
    """

    if isinstance(exc, DatabaseError):
        view = context.get('view')
        logger.exception("[API] storage failure in %s", type(view).__name__ if view else 'unknown view')
        exc = StorageError('Storage failure')

    if isinstance(exc, BaseAppException):
        if exc.http_status >= 500:
            logger.error("[API] %s: %s", exc.code, exc.message)
        return JsonResponse(error_body(exc), status=exc.http_status)

    if isinstance(exc, (DRFValidationError, ParseError)):
        body = {
            'success': False,
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    return drf_default_handler(exc, context)
