import asyncio
import random
from typing import Any

import httpx
from pydantic import BaseModel

from expense_tracker.core.config import brevo_logger, settings
from expense_tracker.core.enums import OTPPurpose
from expense_tracker.core.exceptions.types import DeliveryFailedException
from expense_tracker.core.services.notifications.base import (
    PURPOSE_TEXT,
    NotificationChannel,
)
from expense_tracker.core.services.template import Renderer


class Contact(BaseModel):
    email: str
    name: str | None = None


class TransactionalEmail(BaseModel):
    sender: Contact
    to: list[Contact]
    subject: str
    htmlContent: str
    textContent: str | None = None


class BrevoEmailChannel(NotificationChannel):
    """
    Delivers codes by email through the Brevo transactional email API.

    Transient failures (5xx, 429, network errors) are retried with a short
    exponential backoff; the dispatcher bounds the total time spent.
    """

    name = "brevo"

    _BACKOFF_BASE: float = 0.5
    _BACKOFF_MAX: float = 4.0
    _JITTER: float = 0.2  # +/-20%

    def __init__(
        self,
        api_key: str | None = None,
        sender_email: str | None = None,
        sender_name: str | None = None,
        base_url: str | None = None,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = settings.BREVO_API_KEY if api_key is None else api_key
        self._sender_email = (
            settings.BREVO_SENDER_EMAIL if sender_email is None else sender_email
        )
        self._sender_name = sender_name or settings.BREVO_SENDER_NAME
        self._base_url = base_url or settings.BREVO_BASE_URL
        self._max_attempts = max_attempts
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._sender_email)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(10.0),
                transport=self._transport,
            )
            brevo_logger.info("Brevo HTTP client initialized")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None
                brevo_logger.info("Brevo HTTP client closed")

    def _compute_backoff(
        self, attempt: int, err_headers: httpx.Headers | None = None
    ) -> float:
        """
        Delay in seconds before retry number ``attempt`` (1-based).

        Brevo's ``x-sib-ratelimit-reset`` header wins when present.
        """
        if err_headers and "x-sib-ratelimit-reset" in err_headers:
            try:
                return min(float(err_headers["x-sib-ratelimit-reset"]), self._BACKOFF_MAX)
            except ValueError:
                pass
        base = min(self._BACKOFF_BASE * (2 ** (attempt - 1)), self._BACKOFF_MAX)
        return base * random.uniform(1 - self._JITTER, 1 + self._JITTER)

    def _auth_headers(self) -> dict[str, str]:
        return {
            "api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self, method: str, endpoint: str, *, json: dict[str, Any]
    ) -> dict[str, Any] | str:
        """
        Perform a Brevo API request with retry/backoff.

        Raises:
            DeliveryFailedException: On a non-retriable 4xx, or once retries
                for 5xx/429/network errors are exhausted.
        """
        client = self._get_client()

        for attempt in range(1, self._max_attempts + 1):
            try:
                resp = await client.request(
                    method, endpoint, headers=self._auth_headers(), json=json
                )
                resp.raise_for_status()
                try:
                    return resp.json()
                except ValueError:
                    return resp.text

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                retriable = status == 429 or 500 <= status < 600
                if retriable and attempt < self._max_attempts:
                    wait = self._compute_backoff(attempt, exc.response.headers)
                    brevo_logger.warning(
                        f"Brevo returned {status}; attempt {attempt}/{self._max_attempts}; wait={wait:.1f}s"
                    )
                    await asyncio.sleep(wait)
                    continue
                brevo_logger.error(f"Brevo request failed with {status}: {exc.response.text}")
                raise DeliveryFailedException() from exc

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt < self._max_attempts:
                    wait = self._compute_backoff(attempt)
                    brevo_logger.warning(
                        f"Brevo transport error; attempt {attempt}/{self._max_attempts}; "
                        f"wait={wait:.1f}s; err={type(exc).__name__}"
                    )
                    await asyncio.sleep(wait)
                    continue
                brevo_logger.error(f"Brevo network error after retries: {exc}")
                raise DeliveryFailedException() from exc

        raise DeliveryFailedException()

    async def send(self, identifier: str, code: str, purpose: OTPPurpose) -> None:
        if not self.is_configured:
            raise DeliveryFailedException("Email delivery is not configured.")

        action = PURPOSE_TEXT[purpose]
        html = await Renderer.render_template(
            "otp_email.html",
            {
                "app_name": settings.APP_NAME,
                "code": code,
                "action": action,
                "expiry_minutes": settings.OTP_EXPIRY_MINUTES,
            },
        )
        email = TransactionalEmail(
            sender=Contact(email=self._sender_email, name=self._sender_name),
            to=[Contact(email=identifier)],
            subject=f"Your {settings.APP_NAME} verification code",
            htmlContent=html,
            textContent=(
                f"Use {code} to {action}. "
                f"It expires in {settings.OTP_EXPIRY_MINUTES} minutes."
            ),
        )
        await self._request(
            "POST", "/smtp/email", json=email.model_dump(exclude_none=True)
        )
        brevo_logger.info(f"OTP email accepted by Brevo: purpose={purpose.value}")


__all__ = ["BrevoEmailChannel", "Contact", "TransactionalEmail"]
