import httpx

from expense_tracker.core.config import notification_logger, settings
from expense_tracker.core.enums import OTPPurpose
from expense_tracker.core.exceptions.types import DeliveryFailedException
from expense_tracker.core.services.notifications.base import NotificationChannel


class TwilioSMSChannel(NotificationChannel):
    """Delivers codes by SMS through the Twilio Messages REST API."""

    name = "twilio"

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._account_sid = (
            settings.TWILIO_ACCOUNT_SID if account_sid is None else account_sid
        )
        self._auth_token = settings.TWILIO_AUTH_TOKEN if auth_token is None else auth_token
        self._from_number = (
            settings.TWILIO_PHONE_NUMBER if from_number is None else from_number
        )
        self._base_url = base_url or settings.TWILIO_BASE_URL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=(self._account_sid, self._auth_token),
                timeout=httpx.Timeout(10.0),
                transport=self._transport,
            )
            notification_logger.info("Twilio HTTP client initialized")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def send(self, identifier: str, code: str, purpose: OTPPurpose) -> None:
        if not self.is_configured:
            raise DeliveryFailedException("SMS delivery is not configured.")

        body = (
            f"Your {settings.APP_NAME} OTP is: {code}. "
            f"Valid for {settings.OTP_EXPIRY_MINUTES} minutes."
        )
        try:
            resp = await self._get_client().post(
                f"/Accounts/{self._account_sid}/Messages.json",
                data={"To": identifier, "From": self._from_number, "Body": body},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            notification_logger.error(
                f"Twilio rejected SMS with {exc.response.status_code}: {exc.response.text}"
            )
            raise DeliveryFailedException() from exc
        except httpx.HTTPError as exc:
            notification_logger.error(f"Twilio request failed: {type(exc).__name__}: {exc}")
            raise DeliveryFailedException() from exc

        notification_logger.info(f"OTP SMS accepted by Twilio: purpose={purpose.value}")


__all__ = ["TwilioSMSChannel"]
