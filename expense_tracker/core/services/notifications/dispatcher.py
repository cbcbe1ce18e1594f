import asyncio

from expense_tracker.core.config import notification_logger, settings
from expense_tracker.core.enums import OTPChannel, OTPPurpose
from expense_tracker.core.exceptions.types import DeliveryFailedException
from expense_tracker.core.services.notifications.base import NotificationChannel
from expense_tracker.core.services.notifications.brevo import BrevoEmailChannel
from expense_tracker.core.services.notifications.console import ConsoleChannel
from expense_tracker.core.services.notifications.twilio import TwilioSMSChannel
from expense_tracker.core.utils import mask_identifier


class NotificationDispatcher:
    """
    Routes a code to the provider for its channel.

    Each attempt is bounded by ``timeout`` seconds. When the provider is
    missing, unconfigured or fails, the ``fallback`` channel (if any) is
    used instead; without a fallback the failure is raised as
    ``DeliveryFailedException``.

    Example:
        >>> dispatcher = NotificationDispatcher.from_settings()
        >>> await dispatcher.send("alice@example.com", OTPChannel.EMAIL, "042137", OTPPurpose.LOGIN)
    """

    def __init__(
        self,
        providers: dict[OTPChannel, NotificationChannel] | None = None,
        fallback: NotificationChannel | None = None,
        timeout: float | None = None,
    ):
        self.providers = providers or {}
        self.fallback = fallback
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    @classmethod
    def from_settings(cls) -> "NotificationDispatcher":
        """Build the dispatcher from the configured providers."""
        providers: dict[OTPChannel, NotificationChannel] = {
            OTPChannel.EMAIL: BrevoEmailChannel(),
            OTPChannel.PHONE: TwilioSMSChannel(),
        }
        for channel, provider in providers.items():
            notification_logger.info(
                f"{channel.value} provider {provider.name}: "
                f"{'configured' if provider.is_configured else 'not configured'}"
            )
        fallback = ConsoleChannel() if settings.OTP_CONSOLE_FALLBACK else None
        return cls(providers=providers, fallback=fallback)

    async def _attempt(
        self,
        provider: NotificationChannel,
        identifier: str,
        code: str,
        purpose: OTPPurpose,
    ) -> None:
        try:
            await asyncio.wait_for(
                provider.send(identifier, code, purpose), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            notification_logger.error(
                f"{provider.name} timed out after {self.timeout}s"
            )
            raise DeliveryFailedException() from e

    async def send(
        self,
        identifier: str,
        channel: OTPChannel,
        code: str,
        purpose: OTPPurpose,
    ) -> str:
        """
        Deliver a code, falling back when the primary provider cannot.

        Args:
            identifier: Normalised email address or phone number.
            channel: Which provider to use.
            code: The plain-text code.
            purpose: What the code is for (selects the wording).

        Returns:
            str: Name of the channel that accepted the message.

        Raises:
            DeliveryFailedException: If no channel could deliver the code.
        """
        masked = mask_identifier(identifier, channel)
        provider = self.providers.get(channel)

        if provider is not None and provider.is_configured:
            try:
                await self._attempt(provider, identifier, code, purpose)
                notification_logger.info(
                    f"OTP delivered via {provider.name} to {masked} ({purpose.value})"
                )
                return provider.name
            except DeliveryFailedException:
                notification_logger.error(
                    f"Delivery via {provider.name} to {masked} failed"
                )
                if self.fallback is None:
                    raise
        else:
            notification_logger.warning(f"No configured {channel.value} provider")

        if self.fallback is None:
            raise DeliveryFailedException(
                f"No {channel.value} delivery channel is available."
            )

        await self._attempt(self.fallback, identifier, code, purpose)
        notification_logger.info(f"OTP delivered via fallback {self.fallback.name} to {masked}")
        return self.fallback.name

    async def aclose(self) -> None:
        for provider in self.providers.values():
            await provider.aclose()
        if self.fallback is not None:
            await self.fallback.aclose()


__all__ = ["NotificationDispatcher"]
