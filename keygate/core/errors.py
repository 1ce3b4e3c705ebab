"""
Standardized errors for the KeyGate API.

Domain exceptions (``KeyGateError`` and subclasses) are raised by the service
layer. They are translated into the standardized API error envelope by the
handlers registered in ``keygate.main``.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication errors (1xxx)
    INVALID_CREDENTIALS = "AUTH_1001"

    # Authorization errors (2xxx)
    PERMISSION_DENIED = "AUTHZ_2001"

    # Validation errors (3xxx)
    VALIDATION_ERROR = "VAL_3001"
    INVALID_INPUT = "VAL_3002"

    # Resource errors (4xxx)
    RESOURCE_NOT_FOUND = "RES_4001"

    # System errors (6xxx)
    INTERNAL_ERROR = "SYS_6001"
    DATABASE_ERROR = "SYS_6002"
    EXTERNAL_SERVICE_ERROR = "SYS_6003"
    RATE_LIMIT_EXCEEDED = "SYS_6004"
    SERVICE_UNAVAILABLE = "SYS_6005"


# =============================================================================
# Domain exceptions
# =============================================================================


class KeyGateError(Exception):
    """Base class for token lifecycle errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(KeyGateError):
    """Malformed device id, token id or callback URL. Not retryable."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.INVALID_INPUT


class UpstreamUnavailableError(KeyGateError):
    """The external redirect gate failed or timed out. Retry by re-issuing."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = ErrorCode.EXTERNAL_SERVICE_ERROR


class StoreUnavailableError(KeyGateError):
    """The token store could not be reached. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = ErrorCode.DATABASE_ERROR


class TokenNotFoundError(KeyGateError):
    """Operator action referenced a token that does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.RESOURCE_NOT_FOUND


# =============================================================================
# API exceptions
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str | None = None


class APIError(BaseModel):
    """Standardized API error response."""

    error: str
    code: ErrorCode
    message: str
    details: list[ErrorDetail] | None = None
    request_id: str | None = None
    timestamp: str | None = None


class APIException(HTTPException):
    """Extended HTTPException with standardized error codes."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: list[ErrorDetail] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message, headers=headers)


class UnauthorizedError(APIException):
    """Operator key missing or wrong."""

    def __init__(self, message: str = "Operator key required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code=ErrorCode.INVALID_CREDENTIALS,
            message=message,
        )


class ForbiddenError(APIException):
    """Permission denied error."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code=ErrorCode.PERMISSION_DENIED,
            message=message,
        )


def create_error_response(
    code: ErrorCode,
    message: str,
    details: list[ErrorDetail] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create a standardized error response dictionary."""
    response = {
        "error": code.name.lower().replace("_", " ").title(),
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if details:
        response["details"] = [d.model_dump(exclude_none=True) for d in details]

    if request_id:
        response["request_id"] = request_id

    return response


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle APIException and return standardized response."""
    request_id = getattr(request.state, "request_id", None)

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ),
        headers=exc.headers,
    )


async def keygate_exception_handler(request: Request, exc: KeyGateError) -> JSONResponse:
    """Translate a domain exception into the standardized error envelope."""
    request_id = getattr(request.state, "request_id", None)

    if exc.status_code >= 500:
        logger.warning(
            "Token operation failed: %s",
            exc.message,
            extra={"event_type": "api.error", "error_code": exc.code.value},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            request_id=request_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle standard HTTPException and convert to standardized response."""
    request_id = getattr(request.state, "request_id", None)

    status_to_code = {
        400: ErrorCode.VALIDATION_ERROR,
        401: ErrorCode.INVALID_CREDENTIALS,
        403: ErrorCode.PERMISSION_DENIED,
        404: ErrorCode.RESOURCE_NOT_FOUND,
        422: ErrorCode.INVALID_INPUT,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }

    code = status_to_code.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "An error occurred"

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            code=code,
            message=message,
            request_id=request_id,
        ),
        headers=getattr(exc, "headers", None),
    )
