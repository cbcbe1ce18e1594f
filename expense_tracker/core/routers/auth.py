"""
Authentication router for handling all auth-related endpoints.

This module provides endpoints for:
- Registration with OTP verification
- Password login, skipping the OTP on trusted devices
- OTP resend
- Token refresh and logout
- Password reset
- Login with an external identity

All endpoints are prefixed with /auth when mounted in the main app.
"""

from fastapi import APIRouter, Cookie, Depends, Request, Response, status

from expense_tracker.core.config import settings
from expense_tracker.core.dependencies.auth import AuthOrchestrator, DBSession
from expense_tracker.core.dependencies.internal import verify_internal_api_key
from expense_tracker.core.schemas.auth import (
    ExternalLoginRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    OTPPendingResponse,
    OTPVerifyRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResendOTPRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from expense_tracker.core.services.auth import AuthSession, PendingOTP
from expense_tracker.core.services.rate_limit import (
    login_rate_limit,
    otp_send_rate_limit,
    otp_verify_rate_limit,
)
from expense_tracker.core.utils import get_device_info


router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================


def _get_device_info_from_request(request: Request) -> str | None:
    """Extract device info from request headers using shared utility."""
    return get_device_info(request.headers.get("User-Agent"))


def _pending_response(pending: PendingOTP) -> OTPPendingResponse:
    return OTPPendingResponse(
        message=pending.message,
        identifier=pending.identifier,
        channel=pending.channel,
        purpose=pending.purpose,
    )


def _token_response(result: AuthSession) -> TokenResponse:
    return TokenResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
        device_id=result.device_id,
    )


def _set_device_cookie(response: Response, device_id: str) -> None:
    response.set_cookie(
        key=settings.DEVICE_COOKIE_NAME,
        value=device_id,
        max_age=settings.DEVICE_COOKIE_MAX_AGE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAME_SITE,
    )


# =============================================================================
# Registration & OTP
# =============================================================================


@router.post(
    "/register",
    response_model=OTPPendingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register with email or phone",
    dependencies=[Depends(otp_send_rate_limit)],
    description="""
## Create a New Account

Register with an email address or phone number and a password. The account
is created **unverified** and a one-time code is sent to the identifier.
Complete the registration with `POST /auth/verify-otp` and `purpose=register`.

### Password Requirements

- Minimum **8 characters**
- At least **one uppercase letter**, **one lowercase letter** and **one digit**

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Identifier is not a valid email address or phone number |
| `409 Conflict` | Identifier already registered |
| `429 Too Many Requests` | Too many code requests from this client |

### Notes

- If the code cannot be delivered, the account is still created; request a
  new code with `POST /auth/resend-otp`.
""",
)
async def register(
    request_data: RegisterRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    pending = await orchestrator.register(
        session,
        identifier=request_data.identifier,
        password=request_data.password,
        full_name=request_data.full_name,
    )
    return _pending_response(pending)


@router.post(
    "/verify-otp",
    response_model=TokenResponse,
    summary="Complete login or registration with a code",
    dependencies=[Depends(otp_verify_rate_limit)],
    description="""
## Verify a One-Time Code

Completes a `login` or `register` flow. On success the account is marked
verified and a session is issued.

With `trust_device=true` on a `login` code the device is remembered: its id is returned in
`device_id` and set as an http-only cookie, and later password logins from
it skip the code.

### Error Responses

| Status | `error` | Reason |
|--------|---------|--------|
| `400` | `invalid_code` | Wrong code; `attempts_remaining` tells how many tries are left |
| `400` | `expired` | Code expired; request a new one |
| `404` | `not_found` | No pending code (never sent, already used, or replaced) |
| `429` | `locked` | Too many wrong codes; `retry_after_minutes` gives the lockout |
""",
)
async def verify_otp(
    request: Request,
    response: Response,
    request_data: OTPVerifyRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> TokenResponse:
    result = await orchestrator.verify_otp(
        session,
        identifier=request_data.identifier,
        code=request_data.otp_code,
        purpose=request_data.purpose,
        trust_device=request_data.trust_device,
        device_label=request_data.device_label
        or _get_device_info_from_request(request),
        device_info=_get_device_info_from_request(request),
    )
    if result.device_id:
        _set_device_cookie(response, result.device_id)
    return _token_response(result)


@router.post(
    "/resend-otp",
    response_model=OTPPendingResponse,
    summary="Resend a one-time code",
    dependencies=[Depends(otp_send_rate_limit)],
    description="""
## Resend a Code

Sends a fresh code for a `login`, `register` or `forgot-password` flow that
is already under way. The previous code stops working.

The response is the same whether or not a code was sent.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Purpose cannot be resent, or identifier is malformed |
| `429 Too Many Requests` | Too many code requests from this client |
""",
)
async def resend_otp(
    request_data: ResendOTPRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    pending = await orchestrator.resend_otp(
        session, identifier=request_data.identifier, purpose=request_data.purpose
    )
    return _pending_response(pending)


# =============================================================================
# Login & Sessions
# =============================================================================


@router.post(
    "/login",
    response_model=TokenResponse | OTPPendingResponse,
    summary="Sign in with password",
    dependencies=[Depends(login_rate_limit)],
    description="""
## Password Login

Checks the password. From a **trusted device** (device id in the body or in
the device cookie) a session is issued directly (`requires_otp=false`).
Otherwise a login code is sent and the response carries the masked
identifier (`requires_otp=true`); finish with `POST /auth/verify-otp`.

### Error Responses

| Status | Reason |
|--------|--------|
| `401 Unauthorized` | Invalid credentials (same for unknown account and wrong password) |
| `429 Too Many Requests` | Too many attempts from this client, or a code was just sent |
""",
)
async def login(
    request: Request,
    request_data: LoginRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
    device_cookie: str | None = Cookie(default=None, alias=settings.DEVICE_COOKIE_NAME),
) -> TokenResponse | OTPPendingResponse:
    result = await orchestrator.login(
        session,
        identifier=request_data.identifier,
        password=request_data.password,
        device_id=request_data.device_id or device_cookie,
        device_info=_get_device_info_from_request(request),
    )
    if isinstance(result, PendingOTP):
        return _pending_response(result)
    return _token_response(result)


@router.post(
    "/external",
    response_model=TokenResponse,
    summary="Sign in with an external identity",
    dependencies=[Depends(verify_internal_api_key)],
    include_in_schema=False,
)
async def external_login(
    request: Request,
    request_data: ExternalLoginRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> TokenResponse:
    result = await orchestrator.external_login(
        session,
        provider=request_data.provider,
        external_id=request_data.external_id,
        email=request_data.email,
        full_name=request_data.full_name,
        device_info=_get_device_info_from_request(request),
    )
    return _token_response(result)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate the refresh token",
    description="""
## Refresh a Session

Exchanges a refresh token for a new access/refresh pair. Each refresh token
works **once**: replaying it returns `401 invalid_token`.
""",
)
async def refresh(
    request: Request,
    request_data: RefreshTokenRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> TokenResponse:
    tokens = await orchestrator.refresh_session(
        session,
        request_data.refresh_token,
        device_info=_get_device_info_from_request(request),
    )
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Sign out this session",
)
async def logout(
    request_data: RefreshTokenRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> MessageResponse:
    """Revoke the presented refresh token. Always succeeds."""
    await orchestrator.logout(session, request_data.refresh_token)
    return MessageResponse(message="Signed out.")


# =============================================================================
# Password Reset
# =============================================================================


@router.post(
    "/forgot-password",
    response_model=OTPPendingResponse,
    summary="Request a password reset code",
    dependencies=[Depends(otp_send_rate_limit)],
    description="""
## Forgot Password

Sends a reset code if the identifier belongs to an account. The response is
identical for unknown identifiers.

### Error Responses

| Status | Reason |
|--------|--------|
| `429 Too Many Requests` | Too many code requests from this client |
| `502 Bad Gateway` | The code could not be delivered |
""",
)
async def forgot_password(
    request_data: ForgotPasswordRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> OTPPendingResponse:
    pending = await orchestrator.forgot_password(session, request_data.identifier)
    return _pending_response(pending)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a reset code",
    dependencies=[Depends(otp_verify_rate_limit)],
    description="""
## Reset Password

Verifies the reset code and sets the new password. **Every session of the
account is signed out**; sign in again with the new password.
""",
)
async def reset_password(
    request_data: ResetPasswordRequest,
    session: DBSession,
    orchestrator: AuthOrchestrator,
) -> MessageResponse:
    await orchestrator.reset_password(
        session,
        identifier=request_data.identifier,
        code=request_data.otp_code,
        new_password=request_data.new_password,
    )
    return MessageResponse(message="Password has been reset. Please sign in again.")


__all__ = ["router"]
