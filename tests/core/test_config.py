"""
Test suite for application settings.

Run tests:
    pytest tests/core/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from expense_tracker.core.config import Settings

PRODUCTION_SECRETS = {
    "JWT_SECRET_KEY": "a" * 32,
    "REFRESH_TOKEN_SECRET_KEY": "b" * 32,
    "OTP_HMAC_SECRET": "c" * 32,
    "INTERNAL_API_SECRET": "d" * 32,
}


class TestProductionValidation:

    def test_development_accepts_defaults(self):
        settings = Settings(ENVIRONMENT="development", OTP_CONSOLE_FALLBACK=True)

        assert settings.OTP_CONSOLE_FALLBACK is True

    def test_production_rejects_default_secrets(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(ENVIRONMENT="production", OTP_CONSOLE_FALLBACK=False)

        assert "JWT_SECRET_KEY" in str(exc_info.value)

    def test_production_rejects_console_fallback(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                ENVIRONMENT="production", OTP_CONSOLE_FALLBACK=True, **PRODUCTION_SECRETS
            )

        assert "OTP_CONSOLE_FALLBACK" in str(exc_info.value)

    def test_production_with_secrets(self):
        settings = Settings(
            ENVIRONMENT="production", OTP_CONSOLE_FALLBACK=False, **PRODUCTION_SECRETS
        )

        assert settings.ENVIRONMENT == "production"
