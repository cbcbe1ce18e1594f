"""
Test suite for exception handlers.

Run tests:
    pytest tests/core/exceptions/test_handlers.py -v
"""

import json
from unittest.mock import MagicMock, patch

from fastapi import status
from fastapi.exceptions import RequestValidationError

from expense_tracker.core.exceptions.handlers import (
    INTERNAL_ERROR_BODY,
    app_exception_handler,
    authentication_exception_handler,
    database_exception_handler,
    exception_schema,
    otp_locked_exception_handler,
    rate_limit_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from expense_tracker.core.exceptions.types import (
    AppException,
    DatabaseException,
    DeliveryFailedException,
    InvalidCredentialsException,
    OTPInvalidException,
    OTPLockedException,
    RateLimitExceededException,
)


def _body(response) -> dict:
    return json.loads(response.body)


class TestAppExceptionHandler:

    async def test_client_error_returns_kind_and_details(self):
        mock_request = MagicMock()
        exc = OTPInvalidException(attempts_remaining=3)

        with patch("expense_tracker.core.exceptions.handlers.request_logger") as mock_logger:
            response = await app_exception_handler(mock_request, exc)

            mock_logger.warning.assert_called_once()

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert _body(response) == {
            "error": "invalid_code",
            "detail": "Invalid OTP code. 3 attempt(s) remaining.",
            "attempts_remaining": 3,
        }

    async def test_generic_server_error_is_hidden(self):
        mock_request = MagicMock()
        exc = AppException("secret internals")

        with patch("expense_tracker.core.exceptions.handlers.request_logger") as mock_logger:
            response = await app_exception_handler(mock_request, exc)

            mock_logger.error.assert_called_once()

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert _body(response) == INTERNAL_ERROR_BODY

    async def test_delivery_failure_keeps_its_kind(self):
        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await app_exception_handler(MagicMock(), DeliveryFailedException())

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert _body(response)["error"] == "delivery_failed"


class TestDatabaseExceptionHandler:

    async def test_database_exception_does_not_leak_details(self):
        exc = DatabaseException("Connection to 10.0.0.5 lost")

        with patch("expense_tracker.core.exceptions.handlers.request_logger") as mock_logger:
            response = await database_exception_handler(MagicMock(), exc)

            assert "DatabaseException" in str(mock_logger.error.call_args[0][0])

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert b"10.0.0.5" not in response.body


class TestAuthenticationExceptionHandler:

    async def test_sets_www_authenticate(self):
        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await authentication_exception_handler(
                MagicMock(), InvalidCredentialsException()
            )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert _body(response)["error"] == "invalid_credentials"


class TestRateLimitHandlers:

    async def test_rate_limit_sets_retry_after(self):
        exc = RateLimitExceededException(retry_after=30)

        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await rate_limit_exception_handler(MagicMock(), exc)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.headers["Retry-After"] == "30"
        assert _body(response)["retry_after"] == 30
        assert _body(response)["error"] == "rate_limited"

    async def test_rate_limit_without_retry_after(self):
        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await rate_limit_exception_handler(
                MagicMock(), RateLimitExceededException()
            )

        assert "Retry-After" not in response.headers

    async def test_locked_retry_after_is_in_seconds(self):
        exc = OTPLockedException(retry_after_minutes=15, attempts_remaining=0)

        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await otp_locked_exception_handler(MagicMock(), exc)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.headers["Retry-After"] == "900"
        body = _body(response)
        assert body["error"] == "locked"
        assert body["retry_after_minutes"] == 15
        assert body["attempts_remaining"] == 0


class TestOtherHandlers:

    async def test_request_validation_error(self):
        exc = RequestValidationError(
            [{"loc": ("body", "identifier"), "msg": "field required", "type": "missing"}]
        )

        with patch("expense_tracker.core.exceptions.handlers.request_logger"):
            response = await request_validation_exception_handler(MagicMock(), exc)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert _body(response)["error"] == "validation_error"

    async def test_unhandled_exception(self):
        with patch("expense_tracker.core.exceptions.handlers.request_logger") as mock_logger:
            response = await unhandled_exception_handler(MagicMock(), KeyError("boom"))

            mock_logger.exception.assert_called_once()

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert _body(response) == INTERNAL_ERROR_BODY

    def test_exception_schema(self):
        assert status.HTTP_500_INTERNAL_SERVER_ERROR in exception_schema
        assert status.HTTP_429_TOO_MANY_REQUESTS in exception_schema
