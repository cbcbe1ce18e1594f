"""
Profile schemas: the signed-in user, identifier changes, passwords and
trusted devices.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from expense_tracker.core.schemas.auth import (
    IdentifierStr,
    OTPCodeStr,
    PasswordStr,
    check_password_strength,
)


class ProfileResponse(BaseModel):
    """Response schema for user profile."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "email": "alice@example.com",
                "phone": None,
                "full_name": "Alice Doe",
                "is_verified": True,
                "has_password": True,
                "created_at": "2024-01-15T10:30:00Z",
                "last_active_at": "2024-01-20T15:45:00Z",
            }
        },
    )

    id: UUID
    email: str | None
    phone: str | None
    full_name: str | None
    is_verified: bool
    has_password: Annotated[
        bool,
        Field(description="Whether user has a password set (false for external-only)"),
    ]
    created_at: datetime
    last_active_at: datetime | None = None


class ChangePasswordRequest(BaseModel):
    """Request schema for changing password (authenticated user)."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "current_password": "Password123",
                "new_password": "NewPassword456",
            }
        }
    )

    current_password: Annotated[str, Field(min_length=1, description="Current password")]
    new_password: PasswordStr

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class IdentifierChangeRequest(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={"example": {"new_identifier": "alice.new@example.com"}}
    )

    new_identifier: IdentifierStr


class IdentifierChangeConfirmRequest(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"new_identifier": "alice.new@example.com", "otp_code": "042137"}
        }
    )

    new_identifier: IdentifierStr
    otp_code: OTPCodeStr


class TrustedDeviceResponse(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "device_id": "4b0f2a8e-8f55-4f1e-9d62-0b1f3c2a7e11",
                "label": "Chrome on macOS",
                "added_at": "2024-01-15T10:30:00Z",
            }
        },
    )

    device_id: str
    label: Annotated[str, StringConstraints(max_length=120)]
    added_at: datetime


class TrustedDevicesResponse(BaseModel):
    devices: list[TrustedDeviceResponse]
    total: int


__all__ = [
    "ProfileResponse",
    "ChangePasswordRequest",
    "IdentifierChangeRequest",
    "IdentifierChangeConfirmRequest",
    "TrustedDeviceResponse",
    "TrustedDevicesResponse",
]
