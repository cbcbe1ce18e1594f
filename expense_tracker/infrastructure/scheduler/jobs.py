from expense_tracker.core.config import scheduler_logger
from expense_tracker.core.db import AsyncSessionLocal
from expense_tracker.core.services.otp import OTPChallengeManager
from expense_tracker.core.services.tokens import SessionTokenIssuer


async def purge_expired_otp_challenges() -> int:
    """
    Periodic task to delete OTP challenges past their expiry, locked or not.

    Returns:
        int: Number of challenges deleted.
    """
    async with AsyncSessionLocal() as session:
        scheduler_logger.info("Starting purge of expired OTP challenges")
        deleted_count = await OTPChallengeManager().purge_expired(session)
        scheduler_logger.info(
            f"Completed purge of expired OTP challenges. Deleted {deleted_count} record(s)."
        )
        return deleted_count


async def cleanup_expired_refresh_tokens() -> int:
    """
    Periodic task to delete refresh tokens past their expiry.

    Returns:
        int: Number of tokens deleted.
    """
    async with AsyncSessionLocal() as session:
        scheduler_logger.info("Starting cleanup of expired refresh tokens")
        deleted_count = await SessionTokenIssuer().cleanup_expired(session)
        scheduler_logger.info(
            f"Completed cleanup of expired refresh tokens. Deleted {deleted_count} record(s)."
        )
        return deleted_count


__all__ = ["purge_expired_otp_challenges", "cleanup_expired_refresh_tokens"]
