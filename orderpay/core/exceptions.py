from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class InvalidSignatureError(AppError):
    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, code="INVALID_SIGNATURE", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class PaymentSessionError(AppError):
    """Processor token or session call failed. Message stays generic for clients."""

    def __init__(self, message: str = "Payment session failed"):
        super().__init__(message, code="PAYMENT_SESSION_FAILED", status_code=status.HTTP_502_BAD_GATEWAY)


class ProcessorError(AppError):
    def __init__(self, message: str = "Payment processor request failed"):
        super().__init__(message, code="PROCESSOR_ERROR", status_code=status.HTTP_502_BAD_GATEWAY)


def _body(request: Request, error: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    error = {
        "message": exc.message,
        "code": exc.code,
        "details": exc.details,
    }
    return ORJSONResponse(status_code=exc.status_code, content=_body(request, error))


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    error = {
        "message": "Validation error",
        "code": "VALIDATION_ERROR",
        "details": {"errors": exc.errors()},
    }
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_body(request, error),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from orderpay.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    error = {
        "message": "Internal server error",
        "code": "INTERNAL_ERROR",
        "details": {},
    }
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_body(request, error),
    )
