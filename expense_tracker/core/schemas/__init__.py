"""
Schemas for API request validation and response serialization.

"""

from expense_tracker.core.schemas.auth import (
    # Base
    MessageResponse,
    # Registration & OTP
    RegisterRequest,
    OTPPendingResponse,
    OTPVerifyRequest,
    ResendOTPRequest,
    # Login
    LoginRequest,
    ExternalLoginRequest,
    # Tokens
    TokenResponse,
    RefreshTokenRequest,
    # Password
    ForgotPasswordRequest,
    ResetPasswordRequest,
)
from expense_tracker.core.schemas.profile import (
    ProfileResponse,
    ChangePasswordRequest,
    IdentifierChangeRequest,
    IdentifierChangeConfirmRequest,
    TrustedDeviceResponse,
    TrustedDevicesResponse,
)

__all__ = [
    "MessageResponse",
    "RegisterRequest",
    "OTPPendingResponse",
    "OTPVerifyRequest",
    "ResendOTPRequest",
    "LoginRequest",
    "ExternalLoginRequest",
    "TokenResponse",
    "RefreshTokenRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ProfileResponse",
    "ChangePasswordRequest",
    "IdentifierChangeRequest",
    "IdentifierChangeConfirmRequest",
    "TrustedDeviceResponse",
    "TrustedDevicesResponse",
]
