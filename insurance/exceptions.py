"""
Domain errors and the unified API error envelope.

Every domain error is an ``APIException`` so that services can raise
them directly and DRF maps them to the right HTTP status.  The handler
below renders all errors as ``{"ok": false, "error": {...}}``.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class InvalidArgument(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid argument.'
    default_code = 'invalid_argument'


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflicting state.'
    default_code = 'conflict'


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Operation not allowed.'
    default_code = 'forbidden'


class InvalidState(APIException):
    """A lifecycle transition was requested from the wrong status."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Invalid state transition.'
    default_code = 'invalid_state'


def _error_code(exc, resp) -> str:
    codes = exc.get_codes() if isinstance(exc, APIException) else None
    if isinstance(codes, str):
        return codes
    if isinstance(codes, (dict, list)):
        # serializer errors
        return 'invalid_argument'
    if resp.status_code == status.HTTP_404_NOT_FOUND:
        return 'not_found'
    if resp.status_code == status.HTTP_403_FORBIDDEN:
        return 'forbidden'
    return 'api_error' if resp.status_code < 500 else 'server_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view') if context else None
        logger.exception('Unhandled error in %s', getattr(view, '__name__', view))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response(
        {'ok': False, 'error': {'code': _error_code(exc, resp), 'message': detail}},
        status=resp.status_code,
        headers={k: v for k, v in resp.items() if k in ('WWW-Authenticate', 'Retry-After')},
    )
