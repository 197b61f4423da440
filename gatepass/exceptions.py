"""
=============================================================================
GATEPASS — exceptions.py
=============================================================================
Error taxonomy shared by the engine and the API layer.

Every HTTP-facing error is a DRF APIException so views can simply raise and
let ``api_exception_handler`` render the standard envelope:
    {"success": False, "error": "...", "details": {...}}

Validation outcomes seen by guards (not found / expired / already used) are
NOT exceptions; see gatepass.validation.ValidationResult.
=============================================================================
"""

import logging

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class GatePassError(drf_exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed."
    default_code = "error"


class ValidationError(GatePassError):
    """Malformed input the caller can fix."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid data."
    default_code = "validation_error"


class MissingInput(ValidationError):
    default_detail = "Password or token is required."
    default_code = "missing_input"


class Unauthorized(GatePassError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized."
    default_code = "unauthorized"


class Forbidden(GatePassError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden."
    default_code = "forbidden"


class NotFound(GatePassError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Credential not found."
    default_code = "not_found"


class AlreadyConsumed(GatePassError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This access has already been used."
    default_code = "already_consumed"


class Expired(GatePassError):
    status_code = status.HTTP_410_GONE
    default_detail = "This code has expired."
    default_code = "expired"


class Conflict(GatePassError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Could not generate a unique credential. Try again."
    default_code = "conflict"


class StoreUnavailable(GatePassError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage is temporarily unavailable."
    default_code = "store_unavailable"


class ProviderUnavailable(GatePassError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Federated login is not configured. Use local login instead."
    default_code = "provider_unavailable"


class UniqueConstraint(Exception):
    """Raised by the store when a generated password or token collides."""


# =============================================================================
# DRF EXCEPTION HANDLER
# =============================================================================

def _error_text(detail):
    if isinstance(detail, (list, tuple)) and detail:
        return str(detail[0])
    if isinstance(detail, dict):
        return "Invalid data."
    return str(detail)


def api_exception_handler(exc, context):
    """
    Render every APIException in the standard error envelope.
    Anything DRF does not know about is left to Django (500).
    """
    # rest_framework.views loads DEFAULT_AUTHENTICATION_CLASSES at import time.
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = getattr(exc, "detail", None)
    details = detail if isinstance(detail, (dict, list)) else None
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        code = Unauthorized.default_code
    elif isinstance(exc, drf_exceptions.PermissionDenied):
        code = Forbidden.default_code
    else:
        code = getattr(exc, "default_code", "error")

    if response.status_code >= 500:
        view = context.get("view")
        logger.error("API error in %s: %s", getattr(view, "__name__", view), exc)

    body = {
        "success": False,
        "error": _error_text(detail),
        "code": code,
        "details": details,
    }
    headers = {
        name: response[name]
        for name in ("WWW-Authenticate", "Retry-After")
        if response.has_header(name)
    }
    return Response(body, status=response.status_code, headers=headers)
