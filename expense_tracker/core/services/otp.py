"""
One-time code challenges.

A challenge belongs to an (identifier, channel, purpose) tuple. Issuing a
code replaces the previous challenge for the tuple after a short resend
cooldown; verifying consumes the challenge on success and counts failures
towards a temporary lockout.

Example usage:
    from expense_tracker.core.services.otp import OTPChallengeManager

    manager = OTPChallengeManager()
    code = await manager.request(
        session, "alice@example.com", OTPChannel.EMAIL, OTPPurpose.LOGIN
    )
    await manager.verify(
        session, "alice@example.com", OTPChannel.EMAIL, OTPPurpose.LOGIN, code
    )
"""

from datetime import datetime, timedelta, timezone
import math
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import otp_logger, settings
from expense_tracker.core.db.crud import otp_challenge_db
from expense_tracker.core.db.crud.otp import OTPChallengeDB
from expense_tracker.core.enums import OTPChannel, OTPPurpose
from expense_tracker.core.exceptions.types import (
    ConflictException,
    OTPExpiredException,
    OTPInvalidException,
    OTPLockedException,
    OTPNotFoundException,
    RateLimitExceededException,
)
from expense_tracker.core.utils import (
    as_utc,
    generate_otp_code,
    hmac_hash_otp,
    hmac_verify_otp,
    mask_identifier,
    normalize_identifier,
)

__all__ = ["OTPChallengeManager"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPChallengeManager:
    """
    Issues and verifies one-time codes.

    The manager commits its own writes: a failed attempt or an expiry purge
    is persisted before the corresponding exception is raised, so the
    caller's error handling cannot roll it back.

    Attributes:
        code_length: Number of digits in a code.
        expiry: Lifetime of a code.
        resend_cooldown: Minimum gap between two codes for the same tuple.
        max_attempts: Failed attempts that trigger the lockout.
        lockout: Duration of the lockout.
    """

    # Lost compare-and-swap races before giving up on a verification
    MAX_CAS_RETRIES: int = 5

    def __init__(
        self,
        challenge_db: OTPChallengeDB = otp_challenge_db,
        clock: Callable[[], datetime] = _utcnow,
        code_length: int | None = None,
        expiry_minutes: int | None = None,
        resend_cooldown_seconds: int | None = None,
        max_attempts: int | None = None,
        lockout_minutes: int | None = None,
        hmac_secret: str | None = None,
    ):
        self.challenge_db = challenge_db
        self.clock = clock
        self.code_length = code_length or settings.OTP_LENGTH
        self.expiry = timedelta(minutes=expiry_minutes or settings.OTP_EXPIRY_MINUTES)
        self.resend_cooldown = timedelta(
            seconds=resend_cooldown_seconds or settings.OTP_RESEND_COOLDOWN_SECONDS
        )
        self.max_attempts = max_attempts or settings.OTP_MAX_ATTEMPTS
        self.lockout = timedelta(minutes=lockout_minutes or settings.OTP_LOCKOUT_MINUTES)
        self.hmac_secret = hmac_secret or settings.OTP_HMAC_SECRET

    def _describe(self, identifier: str, channel: OTPChannel, purpose: OTPPurpose) -> str:
        return f"{mask_identifier(identifier, channel)} [{channel.value}/{purpose.value}]"

    async def request(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
    ) -> str:
        """
        Issue a new code for the tuple and return it in plain text.

        The code is never stored; only its HMAC is. Once past the resend
        cooldown any previous challenge for the tuple is replaced, locked or
        not, which resets its attempt counter.

        Args:
            session: The database session.
            identifier: Email address or phone number (normalised here).
            channel: Delivery channel the identifier belongs to.
            purpose: What the code will authorise.

        Returns:
            str: The plain-text code, for handing to a notification channel.

        Raises:
            ValidationException: If the identifier is not valid for the channel.
            RateLimitExceededException: If a code was issued less than the resend
                cooldown ago or a concurrent request won.
        """
        identifier = normalize_identifier(identifier, channel)
        now = self.clock()
        label = self._describe(identifier, channel, purpose)

        existing = await self.challenge_db.get_challenge(
            session, identifier, channel, purpose
        )

        if existing is not None:
            if as_utc(existing.expires_at) > now:
                elapsed = now - as_utc(existing.last_sent_at)
                if elapsed < self.resend_cooldown:
                    retry_after = math.ceil(
                        (self.resend_cooldown - elapsed).total_seconds()
                    )
                    otp_logger.info(
                        f"OTP request inside cooldown: {label}, retry_after={retry_after}s"
                    )
                    raise RateLimitExceededException(
                        message=f"Please wait {retry_after} seconds before requesting a new code.",
                        retry_after=retry_after,
                    )

        code = generate_otp_code(self.code_length)

        try:
            challenge = await self.challenge_db.replace_challenge(
                session,
                identifier=identifier,
                channel=channel,
                purpose=purpose,
                code_hash=hmac_hash_otp(code, self.hmac_secret),
                sent_at=now,
                expires_at=now + self.expiry,
                previous=existing,
                commit_self=False,
            )
        except ConflictException as e:
            otp_logger.info(f"OTP request lost a race to a concurrent request: {label}")
            raise RateLimitExceededException(
                message="A code was just sent. Please wait before requesting another.",
                retry_after=math.ceil(self.resend_cooldown.total_seconds()),
            ) from e

        if challenge is None:
            await session.rollback()
            otp_logger.info(f"OTP request lost a race to a concurrent request: {label}")
            raise RateLimitExceededException(
                message="A code was just sent. Please wait before requesting another.",
                retry_after=math.ceil(self.resend_cooldown.total_seconds()),
            )

        await session.commit()
        otp_logger.info(f"OTP issued: {label}, expires_at={challenge.expires_at.isoformat()}")
        return code

    async def verify(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
        code: str,
    ) -> None:
        """
        Check a code against the tuple's challenge and consume it on success.

        Args:
            session: The database session.
            identifier: Email address or phone number (normalised here).
            channel: Delivery channel the identifier belongs to.
            purpose: What the code authorises.
            code: The code the user entered.

        Raises:
            ValidationException: If the identifier is not valid for the channel.
            OTPNotFoundException: If there is no challenge, or another request
                consumed it first.
            OTPExpiredException: If the challenge is past its expiry.
            OTPLockedException: While the challenge is locked, and on the
                failure that triggers the lockout.
            OTPInvalidException: On a wrong code, with the attempts remaining.
        """
        identifier = normalize_identifier(identifier, channel)
        label = self._describe(identifier, channel, purpose)

        for _ in range(self.MAX_CAS_RETRIES):
            challenge = await self.challenge_db.get_challenge(
                session, identifier, channel, purpose
            )
            if challenge is None:
                otp_logger.info(f"OTP verification without a challenge: {label}")
                raise OTPNotFoundException()

            now = self.clock()

            if as_utc(challenge.expires_at) <= now:
                await self.challenge_db.delete_expired(session, challenge.id, now)
                otp_logger.info(f"OTP verification on expired challenge: {label}")
                raise OTPExpiredException()

            if challenge.locked_until and as_utc(challenge.locked_until) > now:
                remaining = as_utc(challenge.locked_until) - now
                otp_logger.warning(f"OTP verification while locked: {label}")
                raise OTPLockedException(
                    retry_after_minutes=math.ceil(remaining.total_seconds() / 60)
                )

            if hmac_verify_otp(code, challenge.code_hash, self.hmac_secret):
                consumed = await self.challenge_db.consume(session, challenge)
                if not consumed:
                    otp_logger.warning(f"OTP already consumed by another request: {label}")
                    raise OTPNotFoundException()
                otp_logger.info(f"OTP verified: {label}")
                return

            attempts = challenge.attempts + 1
            locked_until = now + self.lockout if attempts >= self.max_attempts else None
            applied = await self.challenge_db.record_failed_attempt(
                session,
                challenge.id,
                seen_attempts=challenge.attempts,
                locked_until=locked_until,
            )
            if not applied:
                continue

            if locked_until is not None:
                otp_logger.warning(
                    f"OTP challenge locked after {attempts} failed attempts: {label}"
                )
                raise OTPLockedException(
                    retry_after_minutes=math.ceil(self.lockout.total_seconds() / 60),
                    attempts_remaining=0,
                )

            otp_logger.info(f"OTP mismatch: {label}, attempts={attempts}")
            raise OTPInvalidException(attempts_remaining=self.max_attempts - attempts)

        otp_logger.error(f"OTP verification gave up after repeated races: {label}")
        raise RateLimitExceededException(retry_after=1)

    async def has_challenge(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
    ) -> bool:
        """Whether a challenge record (live or not yet purged) exists for the tuple."""
        challenge = await self.challenge_db.get_challenge(
            session, normalize_identifier(identifier, channel), channel, purpose
        )
        return challenge is not None

    async def purge_expired(self, session: AsyncSession) -> int:
        """
        Delete every expired challenge.

        Returns:
            int: Number of challenges deleted.
        """
        deleted = await self.challenge_db.purge_expired(session, self.clock())
        if deleted:
            otp_logger.info(f"Purged {deleted} expired OTP challenge(s)")
        return deleted
