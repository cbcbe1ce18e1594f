from expense_tracker.core.config import notification_logger
from expense_tracker.core.enums import OTPPurpose
from expense_tracker.core.services.notifications.base import NotificationChannel


class ConsoleChannel(NotificationChannel):
    """
    Writes codes to the notification log instead of sending them.

    For local development only; production settings refuse to enable it.
    """

    name = "console"

    @property
    def is_configured(self) -> bool:
        return True

    async def send(self, identifier: str, code: str, purpose: OTPPurpose) -> None:
        notification_logger.warning(
            f"[console delivery] OTP for {identifier} ({purpose.value}): {code}"
        )


__all__ = ["ConsoleChannel"]
