"""Map domain errors to the JSON error envelope ``{"success": false, "error", "code"}``."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse
from domain.model.errors import (
    AccountLockedError,
    CSRFViolationError,
    DomainError,
    DuplicateError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    InvariantViolationError,
    NotFoundError,
    OAuthExchangeError,
    OAuthStateMissingError,
    ProviderNotConfiguredError,
    RateLimitedError,
    TokenVerificationError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"

# Most specific first; the first isinstance match wins
_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (DuplicateError, status.HTTP_409_CONFLICT),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (AccountLockedError, status.HTTP_423_LOCKED),
    (CSRFViolationError, status.HTTP_400_BAD_REQUEST),
    (OAuthStateMissingError, status.HTTP_400_BAD_REQUEST),
    (OAuthExchangeError, status.HTTP_400_BAD_REQUEST),
    (ProviderNotConfiguredError, status.HTTP_501_NOT_IMPLEMENTED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvariantViolationError, status.HTTP_400_BAD_REQUEST),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (TokenVerificationError, status.HTTP_401_UNAUTHORIZED),
]


def status_for(exc: DomainError) -> int:
    if isinstance(exc, InvalidOrExpiredTokenError):
        if exc.code == InvalidOrExpiredTokenError.REFRESH:
            return status.HTTP_401_UNAUTHORIZED
        return status.HTTP_400_BAD_REQUEST
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, code: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, code=code).model_dump(by_alias=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers for domain, validation and HTTP errors."""

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("Unhandled domain error", extra={
                "path": request.url.path,
                "errorType": type(exc).__name__,
                "error": exc.message,
            })
            return error_response(status_code, GENERIC_ERROR_MESSAGE, DomainError.code)

        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after)}
        logger.info("Request rejected", extra={
            "path": request.url.path, "statusCode": status_code, "code": exc.code,
        })
        return error_response(status_code, exc.message, exc.code, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ())[1:])
            messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "; ".join(messages) or "Invalid request",
            ValidationError.code,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error("HTTP error", extra={"path": request.url.path, "statusCode": exc.status_code})
        return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}", exc.headers)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception("Unhandled exception", extra={
            "path": request.url.path, "errorType": type(exc).__name__,
        })
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE, DomainError.code)
