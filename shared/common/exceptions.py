# shared/common/exceptions.py
"""
Exception Handler

Renders DRF errors and service-layer errors in one response envelope:

    {"success": false,
     "error": {"code", "message", "details", "retryable", "request_id"}}
"""

import logging
import traceback
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

STATUS_ERROR_CODES = {
    400: 'VALIDATION_ERROR',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    415: 'UNSUPPORTED_MEDIA_TYPE',
    429: 'THROTTLED',
}


def error_body(
    code: str,
    message: str,
    request_id: Optional[str],
    details: Optional[Dict[str, Any]] = None,
    retryable: bool = False
) -> Dict[str, Any]:
    return {
        'success': False,
        'error': {
            'code': code,
            'message': message,
            'details': details or {},
            'retryable': retryable,
            'request_id': request_id,
        }
    }


def is_domain_error(exc) -> bool:
    """
    Service-layer errors carry their own HTTP status, a ``retryable`` flag
    and a ``to_dict()`` body; they never subclass DRF exceptions.
    """
    return (
        isinstance(getattr(exc, 'status_code', None), int)
        and hasattr(exc, 'retryable')
        and callable(getattr(exc, 'to_dict', None))
    )


def custom_exception_handler(exc, context) -> Optional[Response]:
    request = context.get('request')
    request_id = getattr(request, 'request_id', None)

    if is_domain_error(exc):
        return format_domain_error(exc, request_id)

    response = exception_handler(exc, context)
    if response is not None:
        return format_error_response(exc, response, request_id)

    if isinstance(exc, DjangoValidationError):
        details = exc.message_dict if hasattr(exc, 'message_dict') else {'non_field_errors': exc.messages}
        return Response(
            error_body('VALIDATION_ERROR', 'Validation error', request_id, details),
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.exception(
        f"Unhandled exception: {exc}",
        extra={'request_id': request_id, 'exception_type': type(exc).__name__}
    )
    details = None
    if settings.DEBUG:
        details = {'type': type(exc).__name__, 'traceback': traceback.format_exc().splitlines()}
    return Response(
        error_body('INTERNAL_ERROR', 'An unexpected error occurred. Please try again later.', request_id, details),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def format_domain_error(exc, request_id: Optional[str] = None) -> Response:
    """Render a service-layer error with its own status code."""
    body = exc.to_dict()
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        f"Request rejected: {body['message']}",
        extra={'request_id': request_id, 'error_code': body['error'], 'status_code': exc.status_code}
    )

    response = Response(
        error_body(body['error'], body['message'], request_id, body.get('details'), bool(body.get('retryable'))),
        status=exc.status_code
    )
    if body.get('retryable') and exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        response['Retry-After'] = '1'
    return response


def format_error_response(exc, response: Response, request_id: Optional[str] = None) -> Response:
    """Wrap a response built by DRF's default handler."""
    data = response.data
    if isinstance(data, dict) and 'detail' in data:
        message, details = str(data['detail']), None
    elif isinstance(data, dict):
        # field-level serializer errors
        message, details = 'Invalid input.', data
    else:
        message, details = 'Invalid input.', {'non_field_errors': data}

    response.data = error_body(
        STATUS_ERROR_CODES.get(response.status_code, 'ERROR'), message, request_id, details
    )
    return response
