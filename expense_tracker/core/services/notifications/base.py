from abc import ABC, abstractmethod

from expense_tracker.core.enums import OTPPurpose

# Subject/intro wording per purpose, shared by email and SMS channels
PURPOSE_TEXT: dict[OTPPurpose, str] = {
    OTPPurpose.LOGIN: "sign in to your account",
    OTPPurpose.REGISTER: "verify your new account",
    OTPPurpose.FORGOT_PASSWORD: "reset your password",
    OTPPurpose.CHANGE_EMAIL: "confirm your new email address",
    OTPPurpose.CHANGE_PHONE: "confirm your new phone number",
}


class NotificationChannel(ABC):
    """
    A way of delivering one-time codes to a user.

    ``send`` either completes (the provider accepted the message) or raises
    ``DeliveryFailedException``.
    """

    name: str = "channel"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the channel has the credentials it needs to send."""

    @abstractmethod
    async def send(self, identifier: str, code: str, purpose: OTPPurpose) -> None:
        """Deliver ``code`` to ``identifier``."""

    async def aclose(self) -> None:
        """Release any network resources held by the channel."""
        return None
