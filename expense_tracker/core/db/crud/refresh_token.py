"""
CRUD operations for RefreshToken model.

The rows for a user form that user's list of currently valid refresh
tokens. Removing a row is what invalidates a token.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.db.crud.base import BaseDB
from expense_tracker.core.db.models.refresh_token import RefreshToken


class RefreshTokenDB(BaseDB[RefreshToken]):
    """
    Database operations for refresh tokens.
    """

    def __init__(self):
        super().__init__(model=RefreshToken)

    async def add(
        self,
        session: AsyncSession,
        user_id: UUID,
        token_hash: str,
        expires_at: datetime,
        device_info: str | None = None,
        commit_self: bool = True,
    ) -> RefreshToken:
        """
        Append a token hash to the user's list.

        Args:
            session: The database session.
            user_id: Owner of the token.
            token_hash: SHA256 hash of the refresh token.
            expires_at: When the token expires.
            device_info: Optional client description.
            commit_self: Whether to commit the transaction.

        Returns:
            The stored RefreshToken row.
        """
        return await self.create(
            session,
            {
                "user_id": user_id,
                "token_hash": token_hash,
                "expires_at": expires_at,
                "device_info": device_info,
            },
            commit_self=commit_self,
        )

    async def remove(
        self,
        session: AsyncSession,
        user_id: UUID,
        token_hash: str,
        commit_self: bool = True,
    ) -> bool:
        """
        Remove one token from the user's list.

        Returns:
            True if this caller removed the token; False if it was not in the
            list (already rotated, revoked or never issued).

        Example:
            >>> removed = await db.remove(session, user.id, "sha256hash...")
        """
        deleted = await self.delete_by_conditions(
            session,
            [self.model.user_id == user_id, self.model.token_hash == token_hash],
            commit_self=commit_self,
        )
        return deleted == 1

    async def remove_all_for_user(
        self,
        session: AsyncSession,
        user_id: UUID,
        commit_self: bool = True,
    ) -> int:
        """
        Empty the user's token list (sign out everywhere).

        Returns:
            The number of tokens that were removed.
        """
        return await self.delete_by_conditions(
            session,
            [self.model.user_id == user_id],
            commit_self=commit_self,
        )

    async def cleanup_expired(
        self,
        session: AsyncSession,
        commit_self: bool = True,
    ) -> int:
        """
        Delete all tokens past their expiry.

        Returns:
            The number of tokens that were cleaned up.
        """
        return await self.delete_by_conditions(
            session,
            [self.model.expires_at < datetime.now(timezone.utc)],
            commit_self=commit_self,
        )


__all__ = ["RefreshTokenDB"]
