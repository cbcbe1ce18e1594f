"""
Scheduler Module for the Expense Tracker application.

The API process starts the scheduler in its lifespan when ENABLE_SCHEDULER
is set. It can also run on its own, with ENABLE_SCHEDULER disabled on the
API instances:

Standalone Usage:
    python -m expense_tracker.infrastructure.scheduler.main
"""

import asyncio
import signal
from datetime import timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from expense_tracker.core.config import scheduler_logger, settings


# Jobs are idempotent sweeps re-registered at every start, so nothing needs
# to survive a restart
scheduler = AsyncIOScheduler(
    jobstores={"cleanups": MemoryJobStore()},
    timezone=timezone.utc,
)


def schedule_purge_expired_otp_challenges_job(interval_minutes: int = 10) -> None:
    """
    Schedule the purge_expired_otp_challenges job to run at specified intervals.
    """
    # Import here to avoid circular import issues
    from expense_tracker.infrastructure.scheduler.jobs import (
        purge_expired_otp_challenges,
    )

    scheduler_logger.info(
        f"Scheduling 'purge_expired_otp_challenges' job to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        purge_expired_otp_challenges,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        replace_existing=True,
        id="purge_expired_otp_challenges_job",
        jobstore="cleanups",
        misfire_grace_time=60 * 5,  # 5 minutes grace time
    )
    scheduler_logger.info("'purge_expired_otp_challenges' job scheduled successfully.")


def schedule_cleanup_expired_refresh_tokens_job(interval_minutes: int = 60) -> None:
    """
    Schedule the cleanup_expired_refresh_tokens job to run at specified intervals.
    """
    from expense_tracker.infrastructure.scheduler.jobs import (
        cleanup_expired_refresh_tokens,
    )

    scheduler_logger.info(
        f"Scheduling 'cleanup_expired_refresh_tokens' job to run every {interval_minutes} minutes"
    )
    scheduler.add_job(
        cleanup_expired_refresh_tokens,
        trigger=IntervalTrigger(minutes=interval_minutes, timezone=timezone.utc),
        replace_existing=True,
        id="cleanup_expired_refresh_tokens_job",
        jobstore="cleanups",
        misfire_grace_time=60 * 30,  # 30 minutes grace time
    )
    scheduler_logger.info(
        "'cleanup_expired_refresh_tokens' job scheduled successfully."
    )


def initialize_scheduler() -> None:
    """
    Initialize the scheduler by scheduling all required jobs.

    This function should be called during application startup to ensure
    that all scheduled tasks are registered and ready to run.
    """
    schedule_purge_expired_otp_challenges_job(
        interval_minutes=settings.OTP_CLEANUP_INTERVAL_MINUTES
    )
    schedule_cleanup_expired_refresh_tokens_job(
        interval_minutes=settings.REFRESH_TOKEN_CLEANUP_INTERVAL_MINUTES
    )


async def main() -> None:
    """
    Main entry point for standalone scheduler execution.

    Starts the scheduler and runs until interrupted.
    """
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        scheduler_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    scheduler_logger.info("Starting standalone scheduler...")

    try:
        scheduler.start()
        scheduler_logger.info("Scheduler started successfully. Waiting for jobs...")
        initialize_scheduler()  # Schedule jobs after starting the scheduler
        await shutdown_event.wait()

    except Exception as e:
        scheduler_logger.exception(f"Scheduler error: {e}")
        raise

    finally:
        scheduler_logger.info("Shutting down scheduler...")

        if scheduler.running:
            scheduler.shutdown(wait=True)
            scheduler_logger.info("Scheduler stopped successfully.")

        from expense_tracker.core.db import dispose_db

        await dispose_db()
        scheduler_logger.info("Scheduler shutdown complete.")


if __name__ == "__main__":
    asyncio.run(main())
