"""
Authentication schemas for request validation and response serialization.

- Registration and OTP verification
- Password login with device trust
- Token refresh and logout
- Password reset
- External identity login
"""

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from expense_tracker.core.enums import ExternalProvider, OTPChannel, OTPPurpose

# Email address or phone number; the channel is detected server-side
IdentifierStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=3, max_length=255),
    Field(description="Email address or phone number"),
]

# Password with validation constraints
PasswordStr = Annotated[
    str,
    StringConstraints(min_length=8, max_length=128),
    Field(description="Password (min 8 characters)"),
]

# OTP code with pattern validation
OTPCodeStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^\d{4,10}$"),
    Field(description="Numeric verification code"),
]


def check_password_strength(v: str) -> str:
    """Validate password complexity."""
    if not any(c.isupper() for c in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class MessageResponse(BaseModel):
    """Generic message response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"message": "Operation completed successfully", "success": True}
        }
    )

    message: str
    success: bool = True


class RegisterRequest(BaseModel):
    """Request schema for registration."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "identifier": "alice@example.com",
                "password": "Password123",
                "full_name": "Alice Doe",
            }
        }
    )

    identifier: IdentifierStr
    password: PasswordStr
    full_name: Annotated[
        str | None,
        StringConstraints(strip_whitespace=True, min_length=1, max_length=255),
        Field(description="User's full name"),
    ] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class OTPPendingResponse(BaseModel):
    """Response schema for a flow waiting for a one-time code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "OTP sent for verification.",
                "identifier": "al***@example.com",
                "channel": "email",
                "purpose": "login",
                "requires_otp": True,
            }
        }
    )

    message: str
    identifier: Annotated[str, Field(description="Masked identifier the code went to")]
    channel: OTPChannel
    purpose: OTPPurpose
    requires_otp: Literal[True] = True


class LoginRequest(BaseModel):
    """Request schema for password login."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "identifier": "alice@example.com",
                "password": "Password123",
                "device_id": None,
            }
        }
    )

    identifier: IdentifierStr
    password: Annotated[str, Field(min_length=1, description="User's password")]
    device_id: Annotated[
        str | None,
        StringConstraints(max_length=64),
        Field(description="Trusted device id; read from the device cookie when omitted"),
    ] = None


class OTPVerifyRequest(BaseModel):
    """Request schema for completing login or registration with a code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "identifier": "alice@example.com",
                "otp_code": "042137",
                "purpose": "login",
                "trust_device": True,
                "device_label": "Chrome on macOS",
            }
        }
    )

    identifier: IdentifierStr
    otp_code: OTPCodeStr
    purpose: Annotated[
        OTPPurpose, Field(description="Flow the code completes (login or register)")
    ] = OTPPurpose.LOGIN
    trust_device: Annotated[
        bool, Field(description="Skip the code on later logins from this device")
    ] = False
    device_label: Annotated[
        str | None,
        StringConstraints(strip_whitespace=True, max_length=120),
        Field(description="Name shown in the trusted device list"),
    ] = None


class ResendOTPRequest(BaseModel):
    """Request schema for resending a code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"identifier": "alice@example.com", "purpose": "register"}
        }
    )

    identifier: IdentifierStr
    purpose: Annotated[
        OTPPurpose,
        Field(description="Flow the code belongs to (login, register or forgot-password)"),
    ]


class TokenResponse(BaseModel):
    """Response schema for an issued session."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "refresh_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in": 900,
                "device_id": None,
            }
        }
    )

    access_token: Annotated[str, Field(description="Short-lived JWT access token")]
    refresh_token: Annotated[str, Field(description="Single-use refresh token")]
    token_type: Literal["bearer"] = "bearer"
    expires_in: Annotated[
        int, Field(description="Access token expiration time in seconds")
    ]
    device_id: Annotated[
        str | None,
        Field(description="Newly trusted device id, when trust was requested"),
    ] = None
    requires_otp: Literal[False] = False


class RefreshTokenRequest(BaseModel):
    """Request schema for token refresh and logout."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"refresh_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9..."}
        }
    )

    refresh_token: Annotated[str, Field(min_length=1, description="The refresh token")]


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={"example": {"identifier": "alice@example.com"}}
    )

    identifier: IdentifierStr


class ResetPasswordRequest(BaseModel):
    """Request schema for confirming a password reset with a code."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "identifier": "alice@example.com",
                "otp_code": "042137",
                "new_password": "NewPassword456",
            }
        }
    )

    identifier: IdentifierStr
    otp_code: OTPCodeStr
    new_password: PasswordStr

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class ExternalLoginRequest(BaseModel):
    """
    Request schema for login with an identity a provider already verified.

    Only trusted server-side callers (the OAuth callback handler) reach this.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "provider": "google",
                "external_id": "109876543210987654321",
                "email": "alice@example.com",
                "full_name": "Alice Doe",
            }
        }
    )

    provider: ExternalProvider
    external_id: Annotated[str, StringConstraints(min_length=1, max_length=255)]
    email: Annotated[str | None, StringConstraints(max_length=255)] = None
    full_name: Annotated[str | None, StringConstraints(max_length=255)] = None


__all__ = [
    "check_password_strength",
    "MessageResponse",
    "RegisterRequest",
    "OTPPendingResponse",
    "LoginRequest",
    "OTPVerifyRequest",
    "ResendOTPRequest",
    "TokenResponse",
    "RefreshTokenRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ExternalLoginRequest",
]
