"""
Test suite for SessionTokenIssuer.

Run all tests:
    pytest tests/services/test_tokens.py -v
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from expense_tracker.core.config import settings
from expense_tracker.core.db.crud import refresh_token_db, user_db
from expense_tracker.core.db.models import RefreshToken
from expense_tracker.core.exceptions.types import (
    InvalidTokenException,
    TokenExpiredException,
)
from expense_tracker.core.services.tokens import SessionTokenIssuer, TokenPair
from expense_tracker.core.utils import create_jwt_token, hash_token


async def _stored_tokens(session, user_id) -> list[RefreshToken]:
    result = await session.execute(
        select(RefreshToken).where(RefreshToken.user_id == user_id)
    )
    return list(result.scalars().all())


async def _stored_hashes(session, user_id) -> set[str]:
    return {t.token_hash for t in await _stored_tokens(session, user_id)}


@pytest.fixture
def issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer()


class TestIssue:

    async def test_issue_returns_pair(self, db_session, issuer, test_user):
        pair = await issuer.issue(db_session, test_user.id, device_info="macOS / Chrome")

        assert isinstance(pair, TokenPair)
        assert pair.token_type == "bearer"
        assert pair.expires_in == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert pair.access_token != pair.refresh_token

    async def test_issue_stores_refresh_token_hash(self, db_session, issuer, test_user):
        pair = await issuer.issue(db_session, test_user.id)

        [stored] = await _stored_tokens(db_session, test_user.id)
        assert stored.token_hash == hash_token(pair.refresh_token)
        assert stored.token_hash != pair.refresh_token
        assert stored.is_valid

    async def test_two_pairs_for_same_user_differ(self, db_session, issuer, test_user):
        first = await issuer.issue(db_session, test_user.id)
        second = await issuer.issue(db_session, test_user.id)

        assert first.refresh_token != second.refresh_token
        tokens = await _stored_tokens(db_session, test_user.id)
        assert len(tokens) == 2


class TestDecode:

    async def test_decode_access_token(self, db_session, issuer, test_user):
        pair = await issuer.issue(db_session, test_user.id)

        assert issuer.decode_access_token(pair.access_token) == test_user.id

    async def test_refresh_token_is_not_an_access_token(
        self, db_session, issuer, test_user
    ):
        pair = await issuer.issue(db_session, test_user.id)

        with pytest.raises(InvalidTokenException):
            issuer.decode_access_token(pair.refresh_token)

    def test_access_secret_with_refresh_type_is_rejected(self, issuer):
        token = create_jwt_token({"sub": str(uuid4()), "type": "refresh"})

        with pytest.raises(InvalidTokenException):
            issuer.decode_access_token(token)

    def test_expired_access_token(self, issuer):
        token = create_jwt_token(
            {"sub": str(uuid4()), "type": "access"},
            expires_delta=timedelta(minutes=-1),
        )

        with pytest.raises(TokenExpiredException):
            issuer.decode_access_token(token)

    def test_garbage_token(self, issuer):
        with pytest.raises(InvalidTokenException):
            issuer.decode_access_token("not.a.token")

    def test_non_uuid_subject(self, issuer):
        token = create_jwt_token({"sub": "alice", "type": "access"})

        with pytest.raises(InvalidTokenException):
            issuer.decode_access_token(token)

    def test_expired_refresh_token_decodes_without_expiry_check(self, issuer):
        user_id = uuid4()
        token = create_jwt_token(
            {"sub": str(user_id), "type": "refresh"},
            expires_delta=timedelta(minutes=-1),
            secret_key=settings.REFRESH_TOKEN_SECRET_KEY,
        )

        with pytest.raises(TokenExpiredException):
            issuer.decode_refresh_token(token)
        assert issuer.decode_refresh_token(token, verify_exp=False) == user_id


class TestRefresh:

    async def test_refresh_rotates_the_token(self, db_session, issuer, test_user):
        pair = await issuer.issue(db_session, test_user.id)

        new_pair = await issuer.refresh(db_session, pair.refresh_token)

        assert new_pair.refresh_token != pair.refresh_token
        assert issuer.decode_access_token(new_pair.access_token) == test_user.id
        assert hash_token(pair.refresh_token) not in await _stored_hashes(
            db_session, test_user.id
        )

    async def test_replayed_refresh_token_is_rejected(
        self, db_session, issuer, test_user
    ):
        pair = await issuer.issue(db_session, test_user.id)
        new_pair = await issuer.refresh(db_session, pair.refresh_token)

        with pytest.raises(InvalidTokenException):
            await issuer.refresh(db_session, pair.refresh_token)

        # The replacement is unaffected by the replay
        await issuer.refresh(db_session, new_pair.refresh_token)

    async def test_expired_refresh_token(self, db_session, issuer, test_user):
        token = create_jwt_token(
            {"sub": str(test_user.id), "type": "refresh"},
            expires_delta=timedelta(seconds=-5),
            secret_key=settings.REFRESH_TOKEN_SECRET_KEY,
        )

        with pytest.raises(TokenExpiredException):
            await issuer.refresh(db_session, token)

    async def test_access_token_cannot_refresh(self, db_session, issuer, test_user):
        pair = await issuer.issue(db_session, test_user.id)

        with pytest.raises(InvalidTokenException):
            await issuer.refresh(db_session, pair.access_token)

    async def test_refresh_for_deleted_user_is_rejected(
        self, db_session, issuer, test_user
    ):
        pair = await issuer.issue(db_session, test_user.id)
        await user_db.soft_delete(db_session, test_user.id)

        with pytest.raises(InvalidTokenException):
            await issuer.refresh(db_session, pair.refresh_token)

    async def test_refresh_token_never_issued_is_rejected(
        self, db_session, issuer, test_user
    ):
        token = create_jwt_token(
            {"sub": str(test_user.id), "type": "refresh"},
            expires_delta=timedelta(days=1),
            secret_key=settings.REFRESH_TOKEN_SECRET_KEY,
        )

        with pytest.raises(InvalidTokenException):
            await issuer.refresh(db_session, token)


class TestRevoke:

    async def test_revoke_one(self, db_session, issuer, test_user):
        first = await issuer.issue(db_session, test_user.id)
        second = await issuer.issue(db_session, test_user.id)

        assert await issuer.revoke_one(db_session, test_user.id, first.refresh_token)
        assert not await issuer.revoke_one(db_session, test_user.id, first.refresh_token)

        with pytest.raises(InvalidTokenException):
            await issuer.refresh(db_session, first.refresh_token)
        await issuer.refresh(db_session, second.refresh_token)

    async def test_revoke_all_invalidates_every_session(
        self, db_session, issuer, test_user
    ):
        pairs = [await issuer.issue(db_session, test_user.id) for _ in range(3)]

        assert await issuer.revoke_all(db_session, test_user.id) == 3

        for pair in pairs:
            with pytest.raises(InvalidTokenException):
                await issuer.refresh(db_session, pair.refresh_token)

    async def test_cleanup_expired(self, db_session, issuer, test_user):
        await refresh_token_db.add(
            db_session,
            user_id=test_user.id,
            token_hash=hash_token("old-token"),
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        await issuer.issue(db_session, test_user.id)

        assert await issuer.cleanup_expired(db_session) == 1
        tokens = await _stored_tokens(db_session, test_user.id)
        assert len(tokens) == 1
