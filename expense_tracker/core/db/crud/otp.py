"""
CRUD operations for OTPChallenge model.

Every state change is a single conditional statement, so concurrent
requests for the same challenge cannot both win: attempt counting is a
compare-and-swap on ``attempts`` and consumption is a delete that only one
caller can observe with a rowcount of 1.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.db.crud.base import BaseDB
from expense_tracker.core.db.models.otp import OTPChallenge
from expense_tracker.core.enums import OTPChannel, OTPPurpose


class OTPChallengeDB(BaseDB[OTPChallenge]):
    """
    CRUD operations for OTPChallenge model.
    """

    def __init__(self):
        """Initialize OTPChallengeDB with the OTPChallenge model."""
        super().__init__(model=OTPChallenge)

    def _tuple_conditions(
        self, identifier: str, channel: OTPChannel, purpose: OTPPurpose
    ) -> list:
        return [
            self.model.identifier == identifier,
            self.model.channel == channel,
            self.model.purpose == purpose,
        ]

    async def get_challenge(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
    ) -> OTPChallenge | None:
        """
        Retrieve the challenge for a tuple, expired or not.

        Callers are expected to check ``expires_at`` themselves; the
        sweep job removes expired rows only eventually.

        Args:
            session: The async database session.
            identifier: Normalised email address or phone number.
            channel: Delivery channel.
            purpose: Purpose of the code.

        Returns:
            The OTPChallenge if one exists, None otherwise.

        Raises:
            DatabaseException: If a database error occurs.
        """
        challenge = await self.get_one_by_conditions(
            session, self._tuple_conditions(identifier, channel, purpose)
        )
        if challenge is not None:
            # Conditional writes bypass the identity map; re-read current values
            await session.refresh(challenge)
        return challenge

    async def replace_challenge(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
        code_hash: str,
        sent_at: datetime,
        expires_at: datetime,
        previous: OTPChallenge | None = None,
        commit_self: bool = True,
    ) -> OTPChallenge | None:
        """
        Swap the challenge for a tuple with a freshly issued one.

        The previous challenge (if any) is deleted only if it is still the
        one the caller looked at; if another request replaced it first,
        nothing is written and None is returned. A concurrent insert for the
        same tuple surfaces as ``ConflictException`` from ``create``.

        Args:
            session: The async database session.
            identifier: Normalised email address or phone number.
            channel: Delivery channel.
            purpose: Purpose of the code.
            code_hash: HMAC-SHA256 hash of the new code.
            sent_at: Issue time of the new code.
            expires_at: Expiry of the new code.
            previous: The challenge the caller read, or None if there was none.
            commit_self: Whether to commit after the write.

        Returns:
            The new OTPChallenge, or None if the previous one was already replaced.

        Raises:
            ConflictException: If another request inserted a challenge concurrently.
            DatabaseException: If a database error occurs.
        """
        if previous is not None:
            deleted = await self.delete_by_conditions(
                session,
                [
                    self.model.id == previous.id,
                    self.model.last_sent_at == previous.last_sent_at,
                ],
                commit_self=False,
            )
            if deleted != 1:
                return None
            session.expunge(previous)

        return await self.create(
            session,
            {
                "identifier": identifier,
                "channel": channel,
                "purpose": purpose,
                "code_hash": code_hash,
                "attempts": 0,
                "locked_until": None,
                "last_sent_at": sent_at,
                "expires_at": expires_at,
            },
            commit_self=commit_self,
        )

    async def record_failed_attempt(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        seen_attempts: int,
        locked_until: datetime | None,
        commit_self: bool = True,
    ) -> bool:
        """
        Increment the attempt counter if nobody else has changed it.

        Args:
            session: The async database session.
            challenge_id: The challenge to update.
            seen_attempts: The counter value the caller read.
            locked_until: Lockout end to set along with the increment, if any.
            commit_self: Whether to commit after the write.

        Returns:
            True if this caller's increment was applied, False if the counter
            moved in the meantime (the caller should re-read and retry).

        Raises:
            DatabaseException: If a database error occurs.
        """
        updates: dict = {"attempts": seen_attempts + 1}
        if locked_until is not None:
            updates["locked_until"] = locked_until

        updated = await self.update_by_conditions(
            session,
            [self.model.id == challenge_id, self.model.attempts == seen_attempts],
            updates,
            commit_self=commit_self,
        )
        return updated == 1

    async def consume(
        self,
        session: AsyncSession,
        challenge: OTPChallenge,
        commit_self: bool = True,
    ) -> bool:
        """
        Delete a verified challenge so its code cannot be used again.

        Returns:
            True if this caller removed the row; False if another request
            consumed or replaced it first.
        """
        deleted = await self.delete_by_conditions(
            session,
            [
                self.model.id == challenge.id,
                self.model.code_hash == challenge.code_hash,
            ],
            commit_self=commit_self,
        )
        return deleted == 1

    async def purge_expired(
        self,
        session: AsyncSession,
        now: datetime,
        commit_self: bool = True,
    ) -> int:
        """
        Delete every challenge whose expiry has passed.

        Returns:
            The number of challenges deleted.
        """
        return await self.delete_by_conditions(
            session,
            [self.model.expires_at <= now],
            commit_self=commit_self,
        )

    async def delete_expired(
        self,
        session: AsyncSession,
        challenge_id: UUID,
        now: datetime,
        commit_self: bool = True,
    ) -> int:
        """Delete one challenge if its expiry has passed."""
        return await self.delete_by_conditions(
            session,
            [self.model.id == challenge_id, self.model.expires_at <= now],
            commit_self=commit_self,
        )


__all__ = ["OTPChallengeDB"]
