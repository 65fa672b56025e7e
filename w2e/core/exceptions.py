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


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND"):
        super().__init__(message, code=code, status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", code: str = "CONFLICT", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", code: str = "BAD_REQUEST", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnavailableError(AppError):
    """Transient collaborator failure; the client should retry."""

    def __init__(self, message: str = "Service unavailable"):
        super().__init__(message, code="UNAVAILABLE", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class InsufficientBalanceError(AppError):
    def __init__(self, message: str = "Insufficient balance", details: dict[str, Any] | None = None):
        super().__init__(
            message,
            code="INSUFFICIENT_BALANCE",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


# Ledger-specific tags


class InvalidAmount(BadRequestError):
    def __init__(self, message: str = "Amount must be greater than zero"):
        super().__init__(message, code="INVALID_AMOUNT")


class InvalidAddress(BadRequestError):
    def __init__(self, message: str = "Invalid address"):
        super().__init__(message, code="INVALID_ADDRESS")


class BelowMinimum(BadRequestError):
    def __init__(self, message: str = "Minimum withdrawal not met", details: dict[str, Any] | None = None):
        super().__init__(message, code="BELOW_MINIMUM", details=details)


class DuplicatePending(ConflictError):
    def __init__(self, message: str = "You already have a pending withdrawal"):
        super().__init__(message, code="DUPLICATE_PENDING")


class AlreadyClaimedToday(ConflictError):
    def __init__(self, message: str = "Already claimed today"):
        super().__init__(message, code="ALREADY_CLAIMED_TODAY")


class DuplicateRequest(ConflictError):
    def __init__(self, message: str = "Request already processed"):
        super().__init__(message, code="DUPLICATE_REQUEST")


class NotFoundOrNotPending(NotFoundError):
    def __init__(self, message: str = "Not found or not pending"):
        super().__init__(message, code="NOT_FOUND_OR_NOT_PENDING")


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from w2e.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
