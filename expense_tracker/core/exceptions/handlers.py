from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from expense_tracker.core.config import request_logger
from expense_tracker.core.exceptions.types import (
    AppException,
    AuthenticationException,
    DatabaseException,
    OTPLockedException,
    RateLimitExceededException,
)

INTERNAL_ERROR_BODY = {
    "error": "internal_error",
    "detail": "An unexpected error occurred. Please try again later.",
}


async def app_exception_handler(request: Request, exc: AppException):
    """
    Handles application exceptions by returning their kind and message.

    Args:
        request: The request object.
        exc (AppException): The exception instance.

    Returns:
        JSONResponse: ``{"error": kind, "detail": message, ...}`` with the exception's status.
    """
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request_logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
        if exc.error_code == "internal_error":
            return JSONResponse(status_code=exc.status_code, content=INTERNAL_ERROR_BODY)
    else:
        request_logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_exception_handler(request: Request, exc: DatabaseException):
    """
    Handles database exceptions without leaking store details to the client.

    Args:
        request: The request object.
        exc (DatabaseException): The database exception instance.

    Returns:
        JSONResponse: A generic internal error with status code 500.
    """
    request_logger.error(f"DatabaseException on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=INTERNAL_ERROR_BODY)


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
):
    """
    Handles authentication exceptions by returning a JSON response.

    Returns:
        JSONResponse: The error body with status code 401 and a WWW-Authenticate header.
    """
    request_logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def rate_limit_exception_handler(
    request: Request, exc: RateLimitExceededException
):
    """
    Handles rate limit exceeded exceptions by returning a JSON response.

    Returns:
        JSONResponse: A response with status code 429 and optional Retry-After header.
    """
    request_logger.warning(f"RateLimitExceededException on {request.url.path}: {exc}")
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


async def otp_locked_exception_handler(request: Request, exc: OTPLockedException):
    """Handles locked challenges; Retry-After is expressed in seconds."""
    request_logger.warning(f"OTPLockedException on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after_minutes * 60)},
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
):
    request_logger.info(f"RequestValidationError on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catches anything that escaped the typed exceptions.

    The full traceback is logged; the client only sees a generic message.
    """
    request_logger.exception(
        f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=INTERNAL_ERROR_BODY,
    )


exception_schema = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {
                "example": INTERNAL_ERROR_BODY,
            }
        },
    },
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "description": "Rate Limit Exceeded",
        "content": {
            "application/json": {
                "example": {
                    "error": "rate_limited",
                    "detail": "Rate limit exceeded. Please try again later.",
                    "retry_after": 30,
                },
            }
        },
    },
}


__all__ = [
    "app_exception_handler",
    "database_exception_handler",
    "authentication_exception_handler",
    "rate_limit_exception_handler",
    "otp_locked_exception_handler",
    "request_validation_exception_handler",
    "unhandled_exception_handler",
    "exception_schema",
]
