from functools import lru_cache
import logging
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from expense_tracker.core.logger import setup_logger, init_sentry


class Settings(BaseSettings):
    # Application settings
    ENVIRONMENT: str = "development"  # Options: development, production
    APP_NAME: str = "Expense Tracker"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = """
Authentication and identity-verification API for the Expense Tracker.

## Key Capabilities

| Area | Description |
|------|-------------|
| **Registration** | Email or phone sign-up confirmed with a one-time code. |
| **Login** | Password login, with a one-time code challenge on untrusted devices. |
| **Sessions** | Short-lived access tokens and rotating refresh tokens. |
| **Devices** | Trusted devices skip the one-time code on later logins. |
| **Recovery** | Password reset through a one-time code sent to the account. |

## Authentication

Profile endpoints require a **Bearer JWT** obtained via `/auth/login` or `/auth/verify-otp`.
"""
    DEBUG: bool = False
    ROOT_PATH: str = ""

    # CORS settings
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # Cookie settings (trusted-device cookie)
    DEVICE_COOKIE_NAME: str = "device_id"
    DEVICE_COOKIE_MAX_AGE_DAYS: int = 30
    COOKIE_SECURE: bool = False
    COOKIE_SAME_SITE: Literal["lax", "strict", "none"] = "lax"

    # JWT settings
    JWT_SECRET_KEY: str = "access_token_secret_change_in_production"
    REFRESH_TOKEN_SECRET_KEY: str = "refresh_token_secret_change_in_production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Shared secret for server-to-server calls (external identity login)
    INTERNAL_API_SECRET: str = "internal_api_secret_change_in_production"

    # Database settings
    DATABASE_URL: str
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    # Rate limiting settings (per client IP, fixed window)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_OTP_SEND_REQUESTS: int = 5
    RATE_LIMIT_OTP_SEND_WINDOW: int = 600  # seconds
    RATE_LIMIT_OTP_VERIFY_REQUESTS: int = 10
    RATE_LIMIT_OTP_VERIFY_WINDOW: int = 900  # seconds
    RATE_LIMIT_LOGIN_REQUESTS: int = 10
    RATE_LIMIT_LOGIN_WINDOW: int = 900  # seconds

    # OTP settings
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_RESEND_COOLDOWN_SECONDS: int = 30
    OTP_MAX_ATTEMPTS: int = 5
    OTP_LOCKOUT_MINUTES: int = 15
    OTP_HMAC_SECRET: str = "otp_hmac_secret_key_change_in_production"
    # Log codes instead of failing when no provider can deliver them
    OTP_CONSOLE_FALLBACK: bool = False

    # Notification settings
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Brevo settings (email)
    BREVO_API_KEY: str = ""
    BREVO_BASE_URL: str = "https://api.brevo.com/v3"
    BREVO_SENDER_EMAIL: str = ""
    BREVO_SENDER_NAME: str = "Expense Tracker"

    # Twilio settings (SMS)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""
    TWILIO_BASE_URL: str = "https://api.twilio.com/2010-04-01"

    # Infrastructure flags
    ENABLE_SCHEDULER: bool = True
    OTP_CLEANUP_INTERVAL_MINUTES: int = 10
    REFRESH_TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60

    # Sentry settings
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config: SettingsConfigDict = SettingsConfigDict(  # type: ignore
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_production_secrets(self) -> "Settings":
        """Ensure insecure defaults are overridden in production."""
        if self.ENVIRONMENT != "production":
            return self

        insecure_defaults: dict[str, str] = {
            "JWT_SECRET_KEY": "access_token_secret_change_in_production",
            "REFRESH_TOKEN_SECRET_KEY": "refresh_token_secret_change_in_production",
            "OTP_HMAC_SECRET": "otp_hmac_secret_key_change_in_production",
            "INTERNAL_API_SECRET": "internal_api_secret_change_in_production",
        }

        still_default = [
            name
            for name, default_val in insecure_defaults.items()
            if getattr(self, name) == default_val
        ]

        if still_default:
            raise ValueError(
                f"ENVIRONMENT is 'production' but the following secrets still "
                f"have their insecure default values: {', '.join(still_default)}. "
                f"Set them via environment variables or .env file."
            )

        if self.OTP_CONSOLE_FALLBACK:
            raise ValueError(
                "OTP_CONSOLE_FALLBACK must be disabled when ENVIRONMENT is 'production'."
            )

        return self


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore


settings = get_settings()

if not settings.DEBUG:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

# Each component gets its own log file and Sentry tag
app_logger = setup_logger(
    name="app_logger",
    log_file="logs/app.log",
    level=logging.INFO,
    sentry_tag="app",
)
database_logger = setup_logger(
    name="database_logger",
    log_file="logs/database.log",
    level=logging.INFO,
    sentry_tag="database",
)
request_logger = setup_logger(
    name="request_logger",
    log_file="logs/requests.log",
    level=logging.INFO,
    sentry_tag="request",
)
auth_logger = setup_logger(
    name="auth_logger",
    log_file="logs/auth.log",
    level=logging.INFO,
    sentry_tag="auth",
)
otp_logger = setup_logger(
    name="otp_logger",
    log_file="logs/otp.log",
    level=logging.INFO,
    sentry_tag="otp",
)
notification_logger = setup_logger(
    name="notification_logger",
    log_file="logs/notification.log",
    level=logging.INFO,
    sentry_tag="notification",
)
brevo_logger = setup_logger(
    name="brevo_logger",
    log_file="logs/brevo.log",
    level=logging.INFO,
    sentry_tag="email",
)
scheduler_logger = setup_logger(
    name="scheduler_logger",
    log_file="logs/scheduler.log",
    level=logging.INFO,
    sentry_tag="scheduler",
)
utils_logger = setup_logger(
    name="utils_logger",
    log_file="logs/utils.log",
    level=logging.INFO,
    sentry_tag="utils",
)
rate_limit_logger = setup_logger(
    name="rate_limit_logger",
    log_file="logs/rate_limit.log",
    level=logging.INFO,
    sentry_tag="rate_limit",
)

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "app_logger",
    "database_logger",
    "request_logger",
    "auth_logger",
    "otp_logger",
    "notification_logger",
    "brevo_logger",
    "scheduler_logger",
    "utils_logger",
    "rate_limit_logger",
]
