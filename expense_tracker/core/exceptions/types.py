from fastapi import status


class AppException(Exception):
    """Base application exception.

    ``error_code`` is the stable, machine-readable kind returned to clients;
    ``details`` carries the kind-specific fields (``retry_after``,
    ``attempts_remaining`` and so on).
    """

    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "detail": self.message, **(self.details or {})}


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    def __init__(self, message: str = "A database error occurred."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ValidationException(AppException):
    """Exception raised when an input is malformed."""

    error_code = "validation_error"

    def __init__(self, message: str = "Invalid input."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AuthenticationException(AppException):
    """Exception raised for authentication-related errors."""

    error_code = "unauthenticated"

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class InvalidCredentialsException(AuthenticationException):
    """Exception raised when provided credentials are invalid."""

    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials."):
        super().__init__(message)


class InvalidTokenException(AuthenticationException):
    """Exception raised when a token is malformed, revoked or already used."""

    error_code = "invalid_token"

    def __init__(self, message: str = "Invalid or revoked token."):
        super().__init__(message)


class TokenExpiredException(AuthenticationException):
    """Exception raised when a token is past its expiry."""

    error_code = "expired"

    def __init__(self, message: str = "Token has expired. Please sign in again."):
        super().__init__(message)


class OTPExpiredException(AppException):
    """Exception raised when OTP has expired."""

    error_code = "expired"

    def __init__(self, message: str = "OTP has expired. Please request a new one."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class OTPInvalidException(AppException):
    """Exception raised when OTP does not match."""

    error_code = "invalid_code"

    def __init__(
        self,
        message: str = "Invalid OTP code.",
        attempts_remaining: int | None = None,
    ):
        details = None
        if attempts_remaining is not None:
            details = {"attempts_remaining": attempts_remaining}
            message = f"{message} {attempts_remaining} attempt(s) remaining."
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)
        self.attempts_remaining = attempts_remaining


class OTPLockedException(AppException):
    """Exception raised while a challenge is locked after too many wrong codes."""

    error_code = "locked"

    def __init__(
        self,
        message: str = "Too many failed attempts.",
        retry_after_minutes: int = 0,
        attempts_remaining: int | None = None,
    ):
        details: dict = {"retry_after_minutes": retry_after_minutes}
        if attempts_remaining is not None:
            details["attempts_remaining"] = attempts_remaining
        super().__init__(
            f"{message} Try again in {retry_after_minutes} minute(s).",
            status.HTTP_429_TOO_MANY_REQUESTS,
            details,
        )
        self.retry_after_minutes = retry_after_minutes
        self.attempts_remaining = attempts_remaining


class RateLimitExceededException(AppException):
    """Exception raised when rate limit is exceeded."""

    error_code = "rate_limited"

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: int | None = None,
    ):
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS, details)
        self.retry_after = retry_after


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    error_code = "not_found"

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UserNotFoundException(NotFoundException):
    """Exception raised when a user is not found."""

    def __init__(self, message: str = "User not found."):
        super().__init__(message)


class OTPNotFoundException(NotFoundException):
    """Exception raised when no live challenge exists for the tuple."""

    def __init__(
        self, message: str = "No active OTP found. Please request a new one."
    ):
        super().__init__(message)


class DeviceNotFoundException(NotFoundException):
    """Exception raised when a trusted device is not registered."""

    def __init__(self, message: str = "Device not found."):
        super().__init__(message)


class ConflictException(AppException):
    """Exception raised when there's a conflict with existing resources."""

    error_code = "conflict"

    def __init__(self, message: str = "Resource conflict."):
        super().__init__(message, status.HTTP_409_CONFLICT)


class UserAlreadyExistsException(ConflictException):
    """Exception raised when a user already exists."""

    def __init__(self, message: str = "An account with this identifier already exists."):
        super().__init__(message)


class DeliveryFailedException(AppException):
    """Exception raised when a one-time code could not be delivered."""

    error_code = "delivery_failed"

    def __init__(
        self, message: str = "Failed to send the verification code. Please try again."
    ):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


__all__ = [
    "AppException",
    "DatabaseException",
    "ValidationException",
    "AuthenticationException",
    "InvalidCredentialsException",
    "InvalidTokenException",
    "TokenExpiredException",
    "OTPExpiredException",
    "OTPInvalidException",
    "OTPLockedException",
    "RateLimitExceededException",
    "NotFoundException",
    "UserNotFoundException",
    "OTPNotFoundException",
    "DeviceNotFoundException",
    "ConflictException",
    "UserAlreadyExistsException",
    "DeliveryFailedException",
]
