"""
Typed API errors and the project-wide DRF exception handler.

Every failure leaves the API as ``{"ok": false, "error": {"code", "message"}}``
with a stable ``code``.  Services raise the subclasses below; DRF's own
validation and authentication errors are folded into the same envelope.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ReferralAPIError(exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'api_error'
    default_detail = 'Request failed'

    def __init__(self, detail=None, code=None, extra=None):
        super().__init__(detail=detail, code=code)
        self.extra = extra or {}


class NotFound(ReferralAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'
    default_detail = 'Resource not found'


class AccessDenied(ReferralAPIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'access_denied'
    default_detail = 'Access denied'


class InvalidArgument(ReferralAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'invalid_argument'
    default_detail = 'Invalid argument'


class PreconditionFailed(ReferralAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'precondition_failed'
    default_detail = 'Operation not allowed in the current state'


class InvalidTransition(PreconditionFailed):
    """Approval or status change from a state that does not allow it."""
    default_detail = 'Invalid state transition'


class Conflict(ReferralAPIError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'
    default_detail = 'Resource already exists'


class DependencyUnavailable(ReferralAPIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = 'dependency_unavailable'
    default_detail = 'A dependent service is unavailable'


_DRF_CODES = {
    status.HTTP_400_BAD_REQUEST: 'invalid_argument',
    status.HTTP_401_UNAUTHORIZED: 'not_authenticated',
    status.HTTP_403_FORBIDDEN: 'access_denied',
    status.HTTP_404_NOT_FOUND: 'not_found',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'method_not_allowed',
    status.HTTP_429_TOO_MANY_REQUESTS: 'throttled',
}


def _message(data):
    if isinstance(data, dict) and set(data) == {'detail'}:
        return str(data['detail'])
    if isinstance(data, dict):
        return {k: [str(v) for v in vs] if isinstance(vs, list) else str(vs) for k, vs in data.items()}
    if isinstance(data, list):
        return [str(v) for v in data]
    return str(data)


def api_exception_handler(exc, context):
    # rest_framework.views loads DEFAULT_PERMISSION_CLASSES, which import the models
    from rest_framework.views import exception_handler as drf_exception_handler

    if isinstance(exc, ReferralAPIError):
        error = {'code': exc.get_codes() if isinstance(exc.detail, str) else exc.default_code,
                 'message': _message(exc.detail)}
        if exc.extra:
            error['detail'] = exc.extra
        return Response({'ok': False, 'error': error}, status=exc.status_code)

    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('Unhandled error in %s', context.get('view'))
        message = str(exc) if settings.DEBUG else 'Internal server error'
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': message}}, status=500)

    if isinstance(exc, Http404):
        code = 'not_found'
    elif isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        code = 'not_authenticated'
    elif isinstance(exc, exceptions.PermissionDenied) and getattr(exc.detail, 'code', None) not in (None, 'permission_denied'):
        code = exc.detail.code
    else:
        code = _DRF_CODES.get(resp.status_code, 'api_error')
    headers = {h: resp[h] for h in ("WWW-Authenticate", "Retry-After") if resp.has_header(h)}
    return Response({'ok': False, 'error': {'code': code, 'message': _message(resp.data)}},
                    status=resp.status_code, headers=headers)
