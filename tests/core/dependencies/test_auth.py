"""
Test suite for authentication dependencies.

Run tests:
    pytest tests/core/dependencies/test_auth.py -v
"""

from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from expense_tracker.core.db.crud import user_db
from expense_tracker.core.dependencies.auth import (
    get_auth_orchestrator,
    get_current_user,
)
from expense_tracker.core.dependencies.internal import (
    InvalidInternalAPIKeyException,
    verify_internal_api_key,
)
from expense_tracker.core.exceptions.types import (
    AuthenticationException,
    InvalidTokenException,
    TokenExpiredException,
)
from expense_tracker.core.utils import create_jwt_token


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestGetAuthOrchestrator:

    def test_returns_orchestrator_from_app_state(self):
        request = MagicMock()
        request.app.state.auth_orchestrator = sentinel = object()

        assert get_auth_orchestrator(request) is sentinel


class TestGetCurrentUser:

    async def test_valid_token(self, db_session, orchestrator, test_user, auth_headers):
        token = auth_headers["Authorization"].removeprefix("Bearer ")

        user = await get_current_user(_credentials(token), db_session, orchestrator)

        assert user.id == test_user.id

    async def test_missing_credentials(self, db_session, orchestrator):
        with pytest.raises(AuthenticationException) as exc_info:
            await get_current_user(None, db_session, orchestrator)

        assert exc_info.value.message == "Missing access token."

    async def test_invalid_token(self, db_session, orchestrator):
        with pytest.raises(InvalidTokenException):
            await get_current_user(_credentials("garbage"), db_session, orchestrator)

    async def test_expired_token(self, db_session, orchestrator, test_user):
        token = create_jwt_token(
            {"sub": str(test_user.id), "type": "access"},
            expires_delta=timedelta(minutes=-1),
        )

        with pytest.raises(TokenExpiredException):
            await get_current_user(_credentials(token), db_session, orchestrator)

    async def test_unknown_user(self, db_session, orchestrator):
        token = create_jwt_token({"sub": str(uuid4()), "type": "access"})

        with pytest.raises(AuthenticationException) as exc_info:
            await get_current_user(_credentials(token), db_session, orchestrator)

        assert exc_info.value.message == "User not found."

    async def test_deleted_user(self, db_session, orchestrator, test_user, auth_headers):
        await user_db.soft_delete(db_session, test_user.id)
        token = auth_headers["Authorization"].removeprefix("Bearer ")

        with pytest.raises(AuthenticationException):
            await get_current_user(_credentials(token), db_session, orchestrator)


class TestVerifyInternalAPIKey:

    async def test_valid_key(self):
        assert await verify_internal_api_key("test-internal-secret") == "test-internal-secret"

    async def test_missing_key(self):
        with pytest.raises(InvalidInternalAPIKeyException):
            await verify_internal_api_key(None)

    async def test_wrong_key(self):
        with pytest.raises(InvalidInternalAPIKeyException) as exc_info:
            await verify_internal_api_key("wrong")

        assert exc_info.value.status_code == 401
