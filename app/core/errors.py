"""
Error Handling
==============

Error codes, exception types and the handlers that turn them into JSON.

Two error shapes are served:

- ``{"success": false, "error": {"code", "message"}}`` for the regular API,
  produced by the handlers registered in ``setup_exception_handlers``.
- ``{"error": "<message>"}`` with HTTP 400 for the billing endpoints that
  RevenueCat and the checkout client talk to, see ``billing_error_response``.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    # Accounts and tokens
    AUTH_INVALID_CREDENTIALS = "AUTH_001"
    AUTH_TOKEN_EXPIRED = "AUTH_002"
    AUTH_EMAIL_EXISTS = "AUTH_004"

    # Billing provider
    SUB_NOT_CONFIGURED = "SUB_001"
    SUB_PROVIDER_ERROR = "SUB_002"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"


# =============================================================================
# Exceptions
# =============================================================================

class AppException(HTTPException):
    """
    Exception carrying a structured ``{"code", "message"}`` detail.

    Subclasses pin the HTTP status and supply a default code and message,
    so call sites only pass what differs.
    """

    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = ErrorCodes.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        field: Optional[str] = None,
        status_code: Optional[int] = None,
        **extra,
    ):
        self.code = code or self.default_code
        self.field = field
        self.extra = extra

        detail = {"code": self.code, "message": message or self.default_message}
        if field:
            detail["field"] = field
        detail.update(extra)

        super().__init__(
            status_code=status_code or self.status_code_default,
            detail=detail,
        )


class AuthenticationError(AppException):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    default_code = ErrorCodes.AUTH_INVALID_CREDENTIALS
    default_message = "Authentication failed"


class NotFoundError(AppException):
    status_code_default = status.HTTP_404_NOT_FOUND
    default_code = ErrorCodes.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppException):
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class UpstreamError(AppException):
    """RevenueCat answered with an error or could not be reached."""

    status_code_default = status.HTTP_502_BAD_GATEWAY
    default_code = ErrorCodes.SUB_PROVIDER_ERROR
    default_message = "Upstream service error"


class NotConfiguredError(AppException):
    """A provider credential needed by this endpoint is missing."""

    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = ErrorCodes.SUB_NOT_CONFIGURED
    default_message = "Billing provider not configured"


class BillingError(Exception):
    """
    Failure inside the purchase or webhook pipeline.

    Authentication, validation and RevenueCat failures all use this one type;
    the billing endpoints serialize it as ``{"error": str(exc)}``.
    """


def billing_error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": str(exc)},
    )


# =============================================================================
# Exception Handlers
# =============================================================================

def _envelope(status_code: int, error: dict, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return _envelope(exc.status_code, exc.detail, exc.headers)


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Wrap plain HTTPExceptions, keeping details that are already structured."""
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        error = exc.detail
    else:
        error = {"code": "HTTP_ERROR", "message": str(exc.detail)}
    return _envelope(exc.status_code, error, exc.headers)


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Report the first failing field of a request or Pydantic validation error."""
    errors = exc.errors() if hasattr(exc, "errors") else []
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
    else:
        field = None
        message = str(exc) or "Validation error"

    return _envelope(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"code": ErrorCodes.VALIDATION_ERROR, "message": message, "field": field},
    )


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"code": ErrorCodes.INTERNAL_ERROR, "message": AppException.default_message},
    )


def setup_exception_handlers(app):
    from pydantic import ValidationError as PydanticValidationError
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
