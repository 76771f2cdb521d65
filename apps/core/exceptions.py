"""
Domain exceptions and the DRF exception handler.
"""
import logging
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


class HaidaException(Exception):
    """Base exception for HAIDA-specific errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'ERROR'

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(HaidaException):
    """Raised when input is malformed (e.g. missing project id, unknown role)."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'VALIDATION_ERROR'


class AuthenticationError(HaidaException):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = 'AUTHENTICATION_FAILED'


class AuthorizationError(HaidaException):
    """Raised when the acting user fails a permission or meta-permission gate."""
    status_code = status.HTTP_403_FORBIDDEN
    code = 'FORBIDDEN'


class NotFoundError(HaidaException):
    """Raised when a user, project or membership does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = 'NOT_FOUND'


class ConflictError(HaidaException):
    """Raised on duplicate email, duplicate membership race or stale version."""
    status_code = status.HTTP_409_CONFLICT
    code = 'CONFLICT'


class TransientError(HaidaException):
    """Raised when the backing store is temporarily unavailable."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'SERVICE_UNAVAILABLE'


def custom_exception_handler(exc, context):
    """
    Custom exception handler that logs errors and returns consistent format.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, HaidaException):
        log_method = logger.error if exc.status_code >= 500 else logger.warning
        log_method(
            f"API Exception: {exc.__class__.__name__}",
            extra={
                'exception': exc.message,
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            }
        )

        if isinstance(exc, AuthorizationError) and request is not None:
            from apps.core.logging import SecurityLogger
            SecurityLogger.log_permission_denied(
                user=getattr(request, 'user', None),
                reason=exc.message,
                ip_address=request.META.get('REMOTE_ADDR', 'unknown'),
                path=request.path,
            )

        return Response(
            {
                'error': exc.message,
                'code': exc.code,
                'details': exc.details,
                'request_id': request_id,
            },
            status=exc.status_code
        )

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    logger.error(
        f"API Exception: {exc.__class__.__name__}",
        extra={
            'exception': str(exc),
            'request_id': request_id,
            'path': request.path if request else None,
            'method': request.method if request else None,
        },
        exc_info=response is None
    )

    # If DRF didn't handle it, return a generic 500 error
    if response is None:
        return Response(
            {
                'error': 'Internal server error',
                'detail': 'An unexpected error occurred',
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    # Add request_id to all error responses
    if request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
