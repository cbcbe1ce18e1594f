"""
Security and identifier helpers shared by the auth services.

Password hashing uses bcrypt, tokens are signed with PyJWT, and one-time
codes and refresh tokens are only ever stored as hashes.
"""

from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import re
import secrets
from typing import Any
import uuid

import bcrypt
from email_validator import EmailNotValidError, validate_email
import jwt

from expense_tracker.core.config import settings, utils_logger
from expense_tracker.core.enums import OTPChannel
from expense_tracker.core.exceptions.types import ValidationException

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]{7,20}$")

# Checked against unknown identifiers so login timing does not reveal them
_DUMMY_PASSWORD_HASH = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt()).decode()


def hash_password(password: str | None) -> str:
    """
    Hash a password using bcrypt with a secure salt.

    Args:
        password: The plain text password to hash. Cannot be None.

    Returns:
        str: The bcrypt hashed password (60 characters).

    Raises:
        ValueError: If password is None.

    Examples:
        >>> hashed = hash_password("MySecurePassword123")
        >>> hashed.startswith("$2b$")
        True

    Security Notes:
        - Uses bcrypt's default work factor (12 rounds)
        - Each call generates a unique hash due to random salt
        - Passwords longer than 72 bytes are truncated, as bcrypt only reads 72
    """
    if password is None:
        utils_logger.error("Attempted to hash None password")
        raise ValueError("Password cannot be None")

    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password: str | None, hashed_password: str | None) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        password: The plain text password to verify. Can be None.
        hashed_password: The bcrypt hash to verify against. Can be None.

    Returns:
        bool: True if password matches the hash, False otherwise.
              Returns False for any invalid inputs (None, invalid hash format, etc.)

    Examples:
        >>> hashed = hash_password("MyPassword123")
        >>> verify_password("MyPassword123", hashed)
        True
        >>> verify_password(None, hashed)
        False
    """
    if password is None or hashed_password is None:
        return False

    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:72], hashed_password.encode("utf-8")
        )
    except (ValueError, AttributeError) as e:
        utils_logger.warning(
            f"Password verification failed due to invalid hash format: {type(e).__name__}"
        )
        return False


def burn_password_check(password: str | None) -> None:
    """Run a bcrypt comparison whose result is discarded."""
    verify_password(password or "", _DUMMY_PASSWORD_HASH)


def create_jwt_token(
    data: dict[str, Any] | None,
    expires_delta: timedelta | None = None,
    secret_key: str | None = None,
) -> str:
    """
    Create a JWT token with the given data and expiration time.

    The token carries ``exp``, ``iat`` and a unique ``jti`` claim, so two
    tokens issued in the same second for the same subject still differ.

    Args:
        data: Claims to encode. Cannot be None.
        expires_delta: Lifetime of the token. Defaults to 15 minutes.
            Can be negative for immediate expiration (testing only).
        secret_key: Signing key. Defaults to ``JWT_SECRET_KEY``.

    Returns:
        str: Encoded JWT token string in the format: header.payload.signature

    Raises:
        ValueError: If data is None.

    Examples:
        >>> token = create_jwt_token({"sub": "123", "type": "access"})
        >>> len(token.split("."))
        3
    """
    if data is None:
        utils_logger.error("Attempted to create JWT token with None data")
        raise ValueError("Data cannot be None")

    to_encode = data.copy()

    if expires_delta is None:
        expires_delta = timedelta(minutes=15)

    now = datetime.now(timezone.utc)
    to_encode["exp"] = now + expires_delta
    to_encode["iat"] = now
    to_encode["jti"] = str(uuid.uuid4())

    return jwt.encode(
        to_encode,
        secret_key or settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest used to store refresh tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_otp_code(length: int = 6) -> str:
    """
    Generate a numeric One-Time Password (OTP) code of specified length.

    Leading zeros are kept, so every code has exactly ``length`` digits.

    Args:
        length: Length of the OTP code to generate. Default is 6.

    Returns:
        A string representing the numeric OTP code.
    """
    return str(secrets.randbelow(10**length)).zfill(length)


def hmac_hash_otp(otp: str | None, secret: str | None) -> str:
    """
    Hash an OTP using HMAC-SHA256 for storage.

    Args:
        otp: The OTP code to hash. Cannot be None or empty.
        secret: The secret key for HMAC. Cannot be None or empty.

    Returns:
        str: The HMAC-SHA256 hash as a 64-character hexadecimal string.

    Raises:
        ValueError: If otp or secret is None or empty.

    Examples:
        >>> hashed = hmac_hash_otp("123456", "my_secret_key")
        >>> len(hashed)
        64
        >>> hmac_hash_otp("123456", "my_secret_key") == hashed
        True
    """
    if not otp:
        raise ValueError("OTP cannot be None or empty")

    if not secret:
        raise ValueError("Secret cannot be None or empty")

    return hmac.new(
        secret.encode("utf-8"), otp.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hmac_verify_otp(
    otp: str | None, hashed_otp: str | None, secret: str | None
) -> bool:
    """
    Verify an OTP against its HMAC-SHA256 hash using constant-time comparison.

    Args:
        otp: The plain text OTP to verify. Can be None.
        hashed_otp: The HMAC-SHA256 hash to verify against. Can be None.
        secret: The secret key used for hashing. Can be None.

    Returns:
        bool: True if OTP matches the hash, False otherwise (including invalid inputs).

    Examples:
        >>> hashed = hmac_hash_otp("123456", "secret")
        >>> hmac_verify_otp("123456", hashed, "secret")
        True
        >>> hmac_verify_otp("654321", hashed, "secret")
        False
    """
    if not otp or not hashed_otp or not secret:
        return False

    computed_hash = hmac_hash_otp(otp, secret)
    return hmac.compare_digest(computed_hash, hashed_otp)


def detect_channel(identifier: str) -> OTPChannel:
    """
    Work out whether an identifier is an email address or a phone number.

    Raises:
        ValidationException: If the identifier is neither.
    """
    value = (identifier or "").strip()
    if "@" in value:
        return OTPChannel.EMAIL
    if PHONE_PATTERN.match(value):
        return OTPChannel.PHONE
    raise ValidationException("Identifier must be a valid email address or phone number.")


def normalize_identifier(identifier: str, channel: OTPChannel) -> str:
    """
    Validate an identifier for a channel and return its canonical form.

    Emails are validated with ``email-validator`` and lower-cased; phone
    numbers keep an optional leading ``+`` and their digits.

    Args:
        identifier: The raw email address or phone number.
        channel: The channel the identifier must belong to.

    Returns:
        str: The normalised identifier.

    Raises:
        ValidationException: If the identifier is not valid for the channel.

    Examples:
        >>> normalize_identifier(" Alice@Example.com ", OTPChannel.EMAIL)
        'alice@example.com'
        >>> normalize_identifier("+1 (555) 010-9999", OTPChannel.PHONE)
        '+15550109999'
    """
    value = (identifier or "").strip()

    if channel == OTPChannel.EMAIL:
        try:
            result = validate_email(value, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationException("Invalid email address.") from e
        return result.normalized.lower()

    if not PHONE_PATTERN.match(value):
        raise ValidationException("Invalid phone number.")
    digits = re.sub(r"\D", "", value)
    if not 7 <= len(digits) <= 15:
        raise ValidationException("Invalid phone number.")
    return f"+{digits}" if value.startswith("+") else digits


def mask_identifier(identifier: str, channel: OTPChannel) -> str:
    """
    Mask an identifier for display.

    Examples:
        >>> mask_identifier("alice@example.com", OTPChannel.EMAIL)
        'al***@example.com'
        >>> mask_identifier("+15550109999", OTPChannel.PHONE)
        '+15*******99'
    """
    if channel == OTPChannel.EMAIL:
        local, _, domain = identifier.partition("@")
        return f"{local[:2]}***@{domain}"

    if len(identifier) <= 5:
        return "*" * len(identifier)
    return f"{identifier[:3]}{'*' * (len(identifier) - 5)}{identifier[-2:]}"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_device_info(user_agent: str | None) -> str | None:
    """
    Parse user agent string to extract basic device information.

    Args:
        user_agent: User-Agent header string from request

    Returns:
        Parsed device info string or None if user_agent is None

    Examples:
        >>> get_device_info("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120")
        'Windows / Chrome'
    """
    if not user_agent:
        return None

    device_info_parts = []

    if "Windows" in user_agent:
        device_info_parts.append("Windows")
    elif "Mac OS X" in user_agent or "Macintosh" in user_agent:
        device_info_parts.append("macOS")
    elif "Android" in user_agent:
        device_info_parts.append("Android")
    elif "iPhone" in user_agent or "iPad" in user_agent:
        device_info_parts.append("iOS")
    elif "Linux" in user_agent:
        device_info_parts.append("Linux")

    if "Edg/" in user_agent:
        device_info_parts.append("Edge")
    elif "Chrome" in user_agent:
        device_info_parts.append("Chrome")
    elif "Safari" in user_agent:
        device_info_parts.append("Safari")
    elif "Firefox" in user_agent:
        device_info_parts.append("Firefox")

    if device_info_parts:
        return " / ".join(device_info_parts)

    return user_agent[:100]
