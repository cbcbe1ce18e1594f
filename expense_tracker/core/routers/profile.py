"""
Profile router for the signed-in user.

This module provides endpoints for:
- Reading the profile
- Changing the password
- Changing the email address or phone number with a code
- Managing trusted devices
- Deleting the account

All endpoints are prefixed with /profile and require a bearer access token.
"""

from fastapi import APIRouter, status

from expense_tracker.core.db.models import User
from expense_tracker.core.dependencies.auth import (
    AuthOrchestrator,
    CurrentUser,
    DBSession,
)
from expense_tracker.core.enums import OTPChannel
from expense_tracker.core.schemas.auth import MessageResponse, OTPPendingResponse
from expense_tracker.core.schemas.profile import (
    ChangePasswordRequest,
    IdentifierChangeConfirmRequest,
    IdentifierChangeRequest,
    ProfileResponse,
    TrustedDeviceResponse,
    TrustedDevicesResponse,
)


router = APIRouter()


def _build_profile_response(user: User) -> ProfileResponse:
    """Build a ProfileResponse from a User object with computed fields."""
    return ProfileResponse(
        id=user.id,
        email=user.email,
        phone=user.phone,
        full_name=user.full_name,
        is_verified=user.is_verified,
        has_password=user.password_hash is not None,
        created_at=user.created_at,
        last_active_at=user.last_active_at,
    )


# =============================================================================
# Profile
# =============================================================================


@router.get(
    "",
    response_model=ProfileResponse,
    summary="Get the signed-in user",
)
async def get_me(
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> ProfileResponse:
    user = await orchestrator.get_user(session, user.id)
    return _build_profile_response(user)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
    description="""
## Change Password

Requires the current password. **Every session is signed out**, including
this one; sign in again with the new password.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | The account has no password (external identity only) |
| `401 Unauthorized` | Current password is incorrect |
""",
)
async def change_password(
    request_data: ChangePasswordRequest,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> MessageResponse:
    await orchestrator.change_password(
        session,
        user.id,
        current_password=request_data.current_password,
        new_password=request_data.new_password,
    )
    return MessageResponse(message="Password changed. Please sign in again.")


# =============================================================================
# Email & Phone Changes
# =============================================================================


async def _request_change(
    channel: OTPChannel,
    request_data: IdentifierChangeRequest,
    user: User,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    pending = await orchestrator.request_identifier_change(
        session, user.id, request_data.new_identifier, channel
    )
    return OTPPendingResponse(
        message=pending.message,
        identifier=pending.identifier,
        channel=pending.channel,
        purpose=pending.purpose,
    )


async def _confirm_change(
    channel: OTPChannel,
    request_data: IdentifierChangeConfirmRequest,
    user: User,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> ProfileResponse:
    user = await orchestrator.confirm_identifier_change(
        session,
        user.id,
        request_data.new_identifier,
        channel,
        request_data.otp_code,
    )
    return _build_profile_response(user)


@router.post(
    "/email/request",
    response_model=OTPPendingResponse,
    summary="Send a code to a new email address",
)
async def request_email_change(
    request_data: IdentifierChangeRequest,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    return await _request_change(
        OTPChannel.EMAIL, request_data, user, session, orchestrator
    )


@router.post(
    "/email/confirm",
    response_model=ProfileResponse,
    summary="Switch to the new email address",
)
async def confirm_email_change(
    request_data: IdentifierChangeConfirmRequest,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> ProfileResponse:
    return await _confirm_change(
        OTPChannel.EMAIL, request_data, user, session, orchestrator
    )


@router.post(
    "/phone/request",
    response_model=OTPPendingResponse,
    summary="Send a code to a new phone number",
)
async def request_phone_change(
    request_data: IdentifierChangeRequest,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    return await _request_change(
        OTPChannel.PHONE, request_data, user, session, orchestrator
    )


@router.post(
    "/phone/confirm",
    response_model=ProfileResponse,
    summary="Switch to the new phone number",
)
async def confirm_phone_change(
    request_data: IdentifierChangeConfirmRequest,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> ProfileResponse:
    return await _confirm_change(
        OTPChannel.PHONE, request_data, user, session, orchestrator
    )


# =============================================================================
# Trusted Devices
# =============================================================================


@router.get(
    "/devices",
    response_model=TrustedDevicesResponse,
    summary="List trusted devices",
)
async def list_devices(
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> TrustedDevicesResponse:
    devices = await orchestrator.list_trusted_devices(session, user.id)
    return TrustedDevicesResponse(
        devices=[TrustedDeviceResponse.model_validate(d) for d in devices],
        total=len(devices),
    )


@router.delete(
    "/devices/{device_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop trusting a device",
)
async def revoke_device(
    device_id: str,
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> None:
    """The device will need a code on its next password login."""
    await orchestrator.revoke_trusted_device(session, user.id, device_id)


# =============================================================================
# Account
# =============================================================================


@router.delete(
    "",
    response_model=MessageResponse,
    summary="Delete the account",
)
async def delete_account(
    user: CurrentUser,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> MessageResponse:
    await orchestrator.delete_account(session, user.id)
    return MessageResponse(message="Account deleted.")


__all__ = ["router"]
