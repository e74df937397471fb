# common/exceptions.py
import logging

from django.conf import settings
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

from .responses import error_response

logger = logging.getLogger(__name__)


class ServiceError(APIException):
    """
    Base for every error the API reports with a stable machine code.

    `code` lands in the `error.code` field of the envelope, `detail` in
    `error.message`, and the optional `details` dict in `error.details`.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "error"
    code = "ERROR"

    def __init__(self, message=None, details=None):
        super().__init__(detail=message)
        self.details = details


class ValidationFailed(ServiceError):
    default_detail = "Invalid request."
    code = "VALIDATION_ERROR"


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"
    code = "UNAUTHORIZED"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You don't have permission to perform this action."
    code = "FORBIDDEN"


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    code = "NOT_FOUND"


class AlreadyExists(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists."
    code = "ALREADY_EXISTS"


class TestLockedElsewhere(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = (
        "You have an active test session on another device. "
        "Please complete or submit the test to continue."
    )
    code = "TEST_LOCKED_ANOTHER_DEVICE"


class UnsupportedLanguage(ServiceError):
    default_detail = "Language is not supported."
    code = "UNSUPPORTED_LANGUAGE"


class ExecutionError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to execute code"
    code = "EXECUTION_ERROR"


class ServiceUnavailable(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service is unavailable"
    code = "SERVICE_UNAVAILABLE"


class RateLimited(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests. Please slow down."
    code = "RATE_LIMITED"


class InternalError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An unexpected error occurred."
    code = "INTERNAL_ERROR"


# DRF's own exceptions → envelope codes
_DRF_CODES = (
    (exceptions.ValidationError,       "VALIDATION_ERROR"),
    (exceptions.ParseError,            "VALIDATION_ERROR"),
    (exceptions.NotAuthenticated,      "UNAUTHORIZED"),
    (exceptions.AuthenticationFailed,  "UNAUTHORIZED"),
    (exceptions.PermissionDenied,      "FORBIDDEN"),
    (exceptions.NotFound,              "NOT_FOUND"),
    (exceptions.Throttled,             "RATE_LIMITED"),
    (exceptions.MethodNotAllowed,      "METHOD_NOT_ALLOWED"),
    (exceptions.UnsupportedMediaType,  "VALIDATION_ERROR"),
)

_PASSTHROUGH_HEADERS = ("WWW-Authenticate", "Retry-After")


def _drf_code(exc):
    for klass, code in _DRF_CODES:
        if isinstance(exc, klass):
            return code
    return str(getattr(exc, "default_code", "error")).upper()


def envelope_exception_handler(exc, context):
    """
    REST_FRAMEWORK["EXCEPTION_HANDLER"]: every failure leaves the API as
    {"success": false, "error": {"code", "message", "details"?}}.
    """
    if isinstance(exc, ServiceError):
        if exc.status_code >= 500:
            logger.warning("%s: %s", exc.code, exc.detail)
        return error_response(exc.code, str(exc.detail), exc.status_code, exc.details)

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", type(view).__name__ if view else "request")
        message = str(exc) if settings.DEBUG else InternalError.default_detail
        return error_response(InternalError.code, message, InternalError.status_code)

    code = _drf_code(exc)
    details = None
    if code == "VALIDATION_ERROR" and isinstance(exc, exceptions.ValidationError):
        message = "Invalid request."
        details = response.data if isinstance(response.data, dict) else {"non_field_errors": response.data}
    else:
        detail = response.data.get("detail") if isinstance(response.data, dict) else response.data
        message = str(detail)

    out = error_response(code, message, response.status_code, details)
    for name in _PASSTHROUGH_HEADERS:
        if name in response:
            out[name] = response[name]
    return out
