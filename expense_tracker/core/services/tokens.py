"""
Session tokens.

Access tokens are short-lived JWTs that are never stored. Refresh tokens are
JWTs signed with a separate secret; the SHA-256 hash of each valid refresh
token is kept in its owner's list, and a refresh token is only accepted
while it is in that list.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal
from uuid import UUID

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import auth_logger, settings
from expense_tracker.core.db.crud import refresh_token_db, user_db
from expense_tracker.core.db.crud.refresh_token import RefreshTokenDB
from expense_tracker.core.db.crud.user import UserDB
from expense_tracker.core.exceptions.types import (
    InvalidTokenException,
    TokenExpiredException,
)
from expense_tracker.core.utils import create_jwt_token, hash_token

__all__ = ["SessionTokenIssuer", "TokenPair"]


@dataclass
class TokenPair:
    """
    Data class representing an access/refresh token pair.

    Attributes:
        access_token: Short-lived JWT access token.
        refresh_token: Long-lived refresh token for obtaining a new pair.
        token_type: The type of token (always "bearer").
        expires_in: Access token expiration time in seconds.
    """

    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int = 900  # 15 minutes in seconds


class SessionTokenIssuer:
    """
    Issues, rotates and revokes session tokens.

    Example:
        >>> issuer = SessionTokenIssuer()
        >>> pair = await issuer.issue(session, user.id)
        >>> pair = await issuer.refresh(session, pair.refresh_token)
    """

    ACCESS_TOKEN_TYPE = "access"
    REFRESH_TOKEN_TYPE = "refresh"

    def __init__(
        self,
        token_db: RefreshTokenDB = refresh_token_db,
        users: UserDB = user_db,
        access_token_minutes: int | None = None,
        refresh_token_days: int | None = None,
    ):
        self.token_db = token_db
        self.users = users
        self.access_token_ttl = timedelta(
            minutes=access_token_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self.refresh_token_ttl = timedelta(
            days=refresh_token_days or settings.REFRESH_TOKEN_EXPIRE_DAYS
        )

    # =========================================================================
    # Issuing
    # =========================================================================

    async def issue(
        self,
        session: AsyncSession,
        user_id: UUID,
        device_info: str | None = None,
        commit_self: bool = True,
    ) -> TokenPair:
        """
        Create an access/refresh token pair for a user.

        The refresh token's hash is appended to the user's list.

        Args:
            session: The database session.
            user_id: The user to create tokens for.
            device_info: Optional device/client info (user agent).
            commit_self: If True, commits the transaction.

        Returns:
            TokenPair: The new access and refresh tokens.
        """
        access_token = create_jwt_token(
            data={"sub": str(user_id), "type": self.ACCESS_TOKEN_TYPE},
            expires_delta=self.access_token_ttl,
        )
        refresh_token = create_jwt_token(
            data={"sub": str(user_id), "type": self.REFRESH_TOKEN_TYPE},
            expires_delta=self.refresh_token_ttl,
            secret_key=settings.REFRESH_TOKEN_SECRET_KEY,
        )

        await self.token_db.add(
            session,
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            expires_at=datetime.now(timezone.utc) + self.refresh_token_ttl,
            device_info=device_info,
            commit_self=commit_self,
        )

        auth_logger.info(f"Token pair issued: user={user_id}")
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds()),
        )

    # =========================================================================
    # Decoding
    # =========================================================================

    def _decode(
        self,
        token: str,
        secret: str,
        expected_type: str,
        verify_exp: bool = True,
    ) -> UUID:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_exp": verify_exp, "require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredException() from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenException() from e

        if claims.get("type") != expected_type:
            raise InvalidTokenException()

        try:
            return UUID(claims["sub"])
        except (TypeError, ValueError) as e:
            raise InvalidTokenException() from e

    def decode_access_token(self, token: str) -> UUID:
        """
        Validate an access token and return the user id it was issued to.

        Raises:
            TokenExpiredException: If the token is past its expiry.
            InvalidTokenException: If the signature, type or subject is wrong.
        """
        return self._decode(token, settings.JWT_SECRET_KEY, self.ACCESS_TOKEN_TYPE)

    def decode_refresh_token(self, token: str, verify_exp: bool = True) -> UUID:
        return self._decode(
            token,
            settings.REFRESH_TOKEN_SECRET_KEY,
            self.REFRESH_TOKEN_TYPE,
            verify_exp=verify_exp,
        )

    # =========================================================================
    # Rotation & Revocation
    # =========================================================================

    async def refresh(
        self,
        session: AsyncSession,
        refresh_token: str,
        device_info: str | None = None,
    ) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        The presented token is removed from its owner's list and the new one
        appended in the same transaction. Only one of several concurrent
        refreshes with the same token can remove it; the others are rejected.

        Args:
            session: The database session.
            refresh_token: The refresh token to rotate.
            device_info: Optional device/client info for the new token.

        Returns:
            TokenPair: The replacement tokens.

        Raises:
            TokenExpiredException: If the refresh token is past its expiry.
            InvalidTokenException: If the token is malformed, belongs to an
                unknown or deleted user, or is no longer in the user's list.
        """
        user_id = self.decode_refresh_token(refresh_token)

        user = await self.users.get_active_by_id(session, user_id)
        if user is None:
            auth_logger.warning(f"Token refresh for unknown or deleted user={user_id}")
            raise InvalidTokenException()

        removed = await self.token_db.remove(
            session, user_id, hash_token(refresh_token), commit_self=False
        )
        if not removed:
            await session.rollback()
            auth_logger.warning(
                f"Token refresh rejected: token not in list for user={user_id}"
            )
            raise InvalidTokenException(
                "Refresh token has already been used or revoked."
            )

        pair = await self.issue(session, user_id, device_info=device_info)
        auth_logger.info(f"Refresh token rotated: user={user_id}")
        return pair

    async def revoke_one(
        self,
        session: AsyncSession,
        user_id: UUID,
        refresh_token: str,
        commit_self: bool = True,
    ) -> bool:
        """
        Remove a single refresh token (sign out from one device).

        Returns:
            bool: True if the token was in the user's list.
        """
        removed = await self.token_db.remove(
            session, user_id, hash_token(refresh_token), commit_self=commit_self
        )
        auth_logger.info(f"Refresh token revoked: user={user_id}, found={removed}")
        return removed

    async def revoke_all(
        self,
        session: AsyncSession,
        user_id: UUID,
        commit_self: bool = True,
    ) -> int:
        """
        Empty a user's refresh-token list (sign out from all devices).

        Returns:
            int: Number of tokens removed.
        """
        count = await self.token_db.remove_all_for_user(
            session, user_id, commit_self=commit_self
        )
        auth_logger.info(f"All refresh tokens revoked: user={user_id}, count={count}")
        return count

    async def cleanup_expired(self, session: AsyncSession) -> int:
        return await self.token_db.cleanup_expired(session)
