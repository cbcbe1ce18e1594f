from expense_tracker.infrastructure.scheduler.jobs import (
    cleanup_expired_refresh_tokens,
    purge_expired_otp_challenges,
)
from expense_tracker.infrastructure.scheduler.main import scheduler, initialize_scheduler

__all__ = [
    "scheduler",
    "cleanup_expired_refresh_tokens",
    "purge_expired_otp_challenges",
    "initialize_scheduler",
]
