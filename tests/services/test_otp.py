"""
Test suite for OTPChallengeManager.

- Issuing codes and the resend cooldown
- Single-use verification
- Attempt counting and lockout
- Expiry and the purge sweep
- Compare-and-swap retries on the attempt counter

Run all tests:
    pytest tests/services/test_otp.py -v

Run with coverage:
    pytest tests/services/test_otp.py --cov=expense_tracker.core.services.otp --cov-report=term-missing -v
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from expense_tracker.core.db.crud.otp import OTPChallengeDB
from expense_tracker.core.db.models import OTPChallenge
from expense_tracker.core.enums import OTPChannel, OTPPurpose
from expense_tracker.core.exceptions.types import (
    OTPExpiredException,
    OTPInvalidException,
    OTPLockedException,
    OTPNotFoundException,
    RateLimitExceededException,
    ValidationException,
)
from expense_tracker.core.services.otp import OTPChallengeManager

EMAIL = "alice@example.com"
EMAIL_CHANNEL = OTPChannel.EMAIL
LOGIN = OTPPurpose.LOGIN


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


async def _challenges(session) -> list[OTPChallenge]:
    result = await session.execute(
        select(OTPChallenge).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestRequest:

    async def test_request_returns_numeric_code_of_configured_length(
        self, db_session, otp_manager
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        assert code.isdigit()
        assert len(code) == 6

    async def test_request_stores_only_a_hash(self, db_session, otp_manager):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        [challenge] = await _challenges(db_session)
        assert challenge.code_hash != code
        assert len(challenge.code_hash) == 64
        assert challenge.attempts == 0

    async def test_request_normalizes_identifier(self, db_session, otp_manager):
        await otp_manager.request(db_session, " Alice@Example.COM ", EMAIL_CHANNEL, LOGIN)

        [challenge] = await _challenges(db_session)
        assert challenge.identifier == EMAIL

    async def test_request_rejects_invalid_identifier(self, db_session, otp_manager):
        with pytest.raises(ValidationException):
            await otp_manager.request(db_session, "not-an-email", EMAIL_CHANNEL, LOGIN)

    async def test_request_inside_cooldown_is_rate_limited(
        self, db_session, otp_manager, clock
    ):
        await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        clock.advance(seconds=10)

        with pytest.raises(RateLimitExceededException) as exc_info:
            await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        assert exc_info.value.retry_after == 20

    async def test_request_after_cooldown_replaces_challenge(
        self, db_session, otp_manager, clock
    ):
        first = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        clock.advance(seconds=31)
        second = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        challenges = await _challenges(db_session)
        assert len(challenges) == 1

        if first != second:
            with pytest.raises(OTPInvalidException):
                await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, first)
        await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, second)

    async def test_tuples_are_independent(self, db_session, otp_manager):
        await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        # Same identifier, other purpose: no cooldown applies
        await otp_manager.request(
            db_session, EMAIL, EMAIL_CHANNEL, OTPPurpose.FORGOT_PASSWORD
        )

        assert len(await _challenges(db_session)) == 2

    async def test_request_while_locked_replaces_challenge(
        self, db_session, otp_manager, clock
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        for _ in range(5):
            with pytest.raises((OTPInvalidException, OTPLockedException)):
                await otp_manager.verify(
                    db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
                )

        clock.advance(seconds=31)
        new_code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        [challenge] = await _challenges(db_session)
        assert challenge.attempts == 0
        assert challenge.locked_until is None
        await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, new_code)

    async def test_request_after_lockout_resets_attempts(
        self, db_session, otp_manager, clock
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        for _ in range(5):
            with pytest.raises((OTPInvalidException, OTPLockedException)):
                await otp_manager.verify(
                    db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
                )

        clock.advance(minutes=16)
        new_code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        [challenge] = await _challenges(db_session)
        assert challenge.attempts == 0
        assert challenge.locked_until is None
        await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, new_code)


class TestVerify:

    async def test_verify_without_challenge_raises_not_found(
        self, db_session, otp_manager
    ):
        with pytest.raises(OTPNotFoundException):
            await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, "123456")

    async def test_correct_code_is_single_use(self, db_session, otp_manager):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)

        assert await _challenges(db_session) == []
        with pytest.raises(OTPNotFoundException):
            await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)

    async def test_code_for_other_purpose_is_not_accepted(
        self, db_session, otp_manager
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        with pytest.raises(OTPNotFoundException):
            await otp_manager.verify(
                db_session, EMAIL, EMAIL_CHANNEL, OTPPurpose.REGISTER, code
            )

    async def test_wrong_code_reports_attempts_remaining(
        self, db_session, otp_manager
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        remaining = []
        for _ in range(4):
            with pytest.raises(OTPInvalidException) as exc_info:
                await otp_manager.verify(
                    db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
                )
            remaining.append(exc_info.value.attempts_remaining)

        assert remaining == [4, 3, 2, 1]

    async def test_fifth_failure_locks_and_sixth_stays_locked(
        self, db_session, otp_manager
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        for _ in range(4):
            with pytest.raises(OTPInvalidException):
                await otp_manager.verify(
                    db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
                )

        with pytest.raises(OTPLockedException) as exc_info:
            await otp_manager.verify(
                db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
            )
        assert exc_info.value.attempts_remaining == 0
        assert exc_info.value.retry_after_minutes == 15

        # Even the right code is refused during the lockout
        with pytest.raises(OTPLockedException):
            await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)

        [challenge] = await _challenges(db_session)
        assert challenge.attempts == 5
        assert challenge.locked_until is not None

    async def test_expired_code_raises_and_removes_challenge(
        self, db_session, otp_manager, clock
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        clock.advance(minutes=5, seconds=1)

        with pytest.raises(OTPExpiredException):
            await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)

        assert await _challenges(db_session) == []

    async def test_code_still_valid_just_before_expiry(
        self, db_session, otp_manager, clock
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        clock.advance(minutes=4, seconds=59)

        await otp_manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)

    async def test_lost_race_on_attempt_counter_is_retried(self, db_session, clock):
        challenge_db = OTPChallengeDB()
        manager = OTPChallengeManager(challenge_db=challenge_db, clock=clock)
        code = await manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        with patch.object(
            challenge_db,
            "record_failed_attempt",
            new_callable=AsyncMock,
            side_effect=[False, True],
        ) as mock_record:
            with pytest.raises(OTPInvalidException):
                await manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code))

        assert mock_record.await_count == 2

    async def test_verification_gives_up_after_repeated_races(
        self, db_session, clock
    ):
        challenge_db = OTPChallengeDB()
        manager = OTPChallengeManager(challenge_db=challenge_db, clock=clock)
        code = await manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        with patch.object(
            challenge_db,
            "record_failed_attempt",
            new_callable=AsyncMock,
            return_value=False,
        ) as mock_record:
            with pytest.raises(RateLimitExceededException):
                await manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code))

        assert mock_record.await_count == OTPChallengeManager.MAX_CAS_RETRIES

    async def test_concurrent_consumer_wins(self, db_session, clock):
        challenge_db = OTPChallengeDB()
        manager = OTPChallengeManager(challenge_db=challenge_db, clock=clock)
        code = await manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        with patch.object(
            challenge_db, "consume", new_callable=AsyncMock, return_value=False
        ):
            with pytest.raises(OTPNotFoundException):
                await manager.verify(db_session, EMAIL, EMAIL_CHANNEL, LOGIN, code)


class TestHasChallenge:

    async def test_has_challenge(self, db_session, otp_manager):
        assert not await otp_manager.has_challenge(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)

        assert await otp_manager.has_challenge(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)


class TestPurgeExpired:

    async def test_purge_removes_only_expired_challenges(
        self, db_session, otp_manager, clock
    ):
        await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        clock.advance(minutes=3)
        await otp_manager.request(
            db_session, "bob@example.com", EMAIL_CHANNEL, LOGIN
        )
        clock.advance(minutes=3)

        deleted = await otp_manager.purge_expired(db_session)

        assert deleted == 1
        [remaining] = await _challenges(db_session)
        assert remaining.identifier == "bob@example.com"

    async def test_purge_removes_expired_locked_challenges(
        self, db_session, otp_manager, clock
    ):
        code = await otp_manager.request(db_session, EMAIL, EMAIL_CHANNEL, LOGIN)
        for _ in range(5):
            with pytest.raises((OTPInvalidException, OTPLockedException)):
                await otp_manager.verify(
                    db_session, EMAIL, EMAIL_CHANNEL, LOGIN, _wrong(code)
                )

        clock.advance(minutes=4)
        assert await otp_manager.purge_expired(db_session) == 0

        clock.advance(minutes=2)
        assert await otp_manager.purge_expired(db_session) == 1
