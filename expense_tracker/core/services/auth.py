"""
Login orchestration.

This module composes the credential store, the device trust gate, the OTP
challenge manager and the session token issuer into the account flows:
- Registration confirmed by a one-time code
- Password login, with a one-time code on untrusted devices
- Session refresh and logout
- Password reset through a one-time code
- Profile changes (password, email/phone) and account deletion
- Login with an already verified external identity

Example usage:
    from expense_tracker.core.services.auth import LoginOrchestrator
    from expense_tracker.core.services.notifications import NotificationDispatcher

    orchestrator = LoginOrchestrator(NotificationDispatcher.from_settings())

    pending = await orchestrator.register(
        session, "alice@example.com", "Password123", full_name="Alice"
    )
    result = await orchestrator.verify_otp(
        session, "alice@example.com", code, OTPPurpose.REGISTER
    )
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import auth_logger
from expense_tracker.core.db.crud import linked_identity_db, user_db
from expense_tracker.core.db.crud.user import LinkedIdentityDB, UserDB
from expense_tracker.core.db.models import TrustedDevice, User
from expense_tracker.core.enums import (
    CHANGE_PURPOSE_FOR_CHANNEL,
    LOCAL_IDENTITY_FOR_CHANNEL,
    ExternalProvider,
    IdentityType,
    OTPChannel,
    OTPPurpose,
)
from expense_tracker.core.exceptions.types import (
    ConflictException,
    DeliveryFailedException,
    InvalidCredentialsException,
    InvalidTokenException,
    RateLimitExceededException,
    TokenExpiredException,
    UserAlreadyExistsException,
    UserNotFoundException,
    ValidationException,
)
from expense_tracker.core.services.devices import DeviceTrustGate
from expense_tracker.core.services.notifications import NotificationDispatcher
from expense_tracker.core.services.otp import OTPChallengeManager
from expense_tracker.core.services.tokens import SessionTokenIssuer, TokenPair
from expense_tracker.core.utils import (
    burn_password_check,
    detect_channel,
    hash_password,
    mask_identifier,
    normalize_identifier,
    verify_password,
)

__all__ = ["AuthSession", "LoginOrchestrator", "LoginResult", "PendingOTP"]


@dataclass
class PendingOTP:
    """
    A flow waiting for a one-time code.

    Attributes:
        identifier: Masked identifier the code was (or would have been) sent to.
        channel: Delivery channel.
        purpose: Purpose of the code.
        message: Human-readable status.
    """

    identifier: str
    channel: OTPChannel
    purpose: OTPPurpose
    message: str = "OTP sent."


@dataclass
class AuthSession:
    """
    An issued session.

    Attributes:
        user: The signed-in user.
        tokens: Access and refresh tokens.
        device_id: Newly trusted device id, when the caller asked to trust the device.
    """

    user: User
    tokens: TokenPair
    device_id: str | None = None


# Outcome of a password login: a pending code or an issued session
LoginResult = PendingOTP | AuthSession


class LoginOrchestrator:
    """
    Account flows built on the auth components.

    Collaborators are injected so they are constructed once at start-up;
    the notification dispatcher is the only required one.

    Delivery policy: a failed code delivery is logged and swallowed for
    register, login and their resends, where the user can ask again; it is
    raised for password reset and identifier changes.
    """

    VERIFIABLE_PURPOSES = (OTPPurpose.LOGIN, OTPPurpose.REGISTER)
    RESENDABLE_PURPOSES = (
        OTPPurpose.LOGIN,
        OTPPurpose.REGISTER,
        OTPPurpose.FORGOT_PASSWORD,
    )
    FORGOT_PASSWORD_MESSAGE = "If an account exists for this identifier, an OTP has been sent."

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        otp_manager: OTPChallengeManager | None = None,
        token_issuer: SessionTokenIssuer | None = None,
        device_gate: DeviceTrustGate | None = None,
        users: UserDB = user_db,
        identities: LinkedIdentityDB = linked_identity_db,
    ):
        self.dispatcher = dispatcher
        self.otp_manager = otp_manager or OTPChallengeManager()
        self.token_issuer = token_issuer or SessionTokenIssuer()
        self.device_gate = device_gate or DeviceTrustGate()
        self.users = users
        self.identities = identities

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def resolve_identifier(identifier: str) -> tuple[str, OTPChannel]:
        """Detect the channel of an identifier and normalise it."""
        channel = detect_channel(identifier)
        return normalize_identifier(identifier, channel), channel

    async def _deliver(
        self,
        identifier: str,
        channel: OTPChannel,
        code: str,
        purpose: OTPPurpose,
        strict: bool,
    ) -> None:
        try:
            await self.dispatcher.send(identifier, channel, code, purpose)
        except DeliveryFailedException:
            if strict:
                raise
            auth_logger.warning(
                f"OTP delivery failed for {mask_identifier(identifier, channel)} "
                f"({purpose.value}); the user can request a resend"
            )

    async def _issue_code(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
        strict: bool,
    ) -> None:
        code = await self.otp_manager.request(session, identifier, channel, purpose)
        await self._deliver(identifier, channel, code, purpose, strict=strict)

    async def _issue_code_uniformly(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
        strict: bool,
    ) -> None:
        # A cooldown refusal would tell a caller the account exists
        try:
            await self._issue_code(session, identifier, channel, purpose, strict=strict)
        except RateLimitExceededException as e:
            auth_logger.info(
                f"OTP for {mask_identifier(identifier, channel)} ({purpose.value}) "
                f"not re-sent: {e.message}"
            )

    def _pending(
        self,
        identifier: str,
        channel: OTPChannel,
        purpose: OTPPurpose,
        message: str = "OTP sent.",
    ) -> PendingOTP:
        return PendingOTP(
            identifier=mask_identifier(identifier, channel),
            channel=channel,
            purpose=purpose,
            message=message,
        )

    async def _require_user(self, session: AsyncSession, user_id: UUID) -> User:
        user = await self.users.get_active_by_id(session, user_id)
        if user is None:
            raise UserNotFoundException()
        return user

    async def get_user(self, session: AsyncSession, user_id: UUID) -> User:
        """Return an active user, recording the activity time."""
        user = await self._require_user(session, user_id)
        user.last_active_at = datetime.now(timezone.utc)
        await session.commit()
        return user

    # =========================================================================
    # Registration & Login
    # =========================================================================

    async def register(
        self,
        session: AsyncSession,
        identifier: str,
        password: str,
        full_name: str | None = None,
    ) -> PendingOTP:
        """
        Create an unverified account and send it a register code.

        Args:
            session: The database session.
            identifier: Email address or phone number.
            password: Plain-text password (hashed before storage).
            full_name: Optional display name.

        Returns:
            PendingOTP: Descriptor of the register code that was sent.

        Raises:
            ValidationException: If the identifier or password is malformed.
            UserAlreadyExistsException: If the identifier is already registered.
            RateLimitExceededException: If a register code was sent moments ago.
        """
        identifier, channel = self.resolve_identifier(identifier)
        if not password:
            raise ValidationException("Password is required.")

        existing = await self.users.get_by_identifier(
            session, identifier, channel, include_deleted=True
        )
        if existing is not None:
            raise UserAlreadyExistsException(
                f"{'Email' if channel == OTPChannel.EMAIL else 'Phone'} already registered."
            )

        column = "email" if channel == OTPChannel.EMAIL else "phone"
        try:
            user = await self.users.create_with_identity(
                session,
                {
                    column: identifier,
                    "full_name": full_name,
                    "password_hash": hash_password(password),
                    "is_verified": False,
                },
                identity_type=LOCAL_IDENTITY_FOR_CHANNEL[channel],
                external_id=identifier,
            )
        except ConflictException as e:
            raise UserAlreadyExistsException(
                f"{'Email' if channel == OTPChannel.EMAIL else 'Phone'} already registered."
            ) from e

        auth_logger.info(f"User registered: id={user.id}, channel={channel.value}")

        await self._issue_code(
            session, identifier, channel, OTPPurpose.REGISTER, strict=False
        )
        return self._pending(
            identifier,
            channel,
            OTPPurpose.REGISTER,
            "OTP sent. Verify to complete registration.",
        )

    async def login(
        self,
        session: AsyncSession,
        identifier: str,
        password: str,
        device_id: str | None = None,
        device_info: str | None = None,
    ) -> LoginResult:
        """
        Check a password and either issue a session or start an OTP challenge.

        Args:
            session: The database session.
            identifier: Email address or phone number.
            password: Plain-text password.
            device_id: Device id presented by the client, if any.
            device_info: Optional client description stored with the refresh token.

        Returns:
            AuthSession if the device is trusted, otherwise PendingOTP for a login code.

        Raises:
            ValidationException: If the identifier is malformed.
            InvalidCredentialsException: For an unknown account or a wrong password.
            RateLimitExceededException: If a login code was sent moments ago.
        """
        identifier, channel = self.resolve_identifier(identifier)
        user = await self.users.get_by_identifier(session, identifier, channel)

        if user is None or not user.password_hash:
            burn_password_check(password)
            auth_logger.warning(f"Login failed: no password account for {mask_identifier(identifier, channel)}")
            raise InvalidCredentialsException()

        if not verify_password(password, user.password_hash):
            auth_logger.warning(f"Login failed: wrong password for user={user.id}")
            raise InvalidCredentialsException()

        if await self.device_gate.is_trusted(session, user.id, device_id):
            tokens = await self.token_issuer.issue(
                session, user.id, device_info=device_info
            )
            auth_logger.info(f"Login via trusted device: user={user.id}")
            return AuthSession(user=user, tokens=tokens)

        await self._issue_code(session, identifier, channel, OTPPurpose.LOGIN, strict=False)
        auth_logger.info(f"Login pending OTP: user={user.id}")
        return self._pending(
            identifier, channel, OTPPurpose.LOGIN, "OTP sent for verification."
        )

    async def verify_otp(
        self,
        session: AsyncSession,
        identifier: str,
        code: str,
        purpose: OTPPurpose = OTPPurpose.LOGIN,
        trust_device: bool = False,
        device_label: str | None = None,
        device_info: str | None = None,
    ) -> AuthSession:
        """
        Complete a login or registration with a one-time code.

        On success the user is marked verified, the device is trusted when
        asked on a login code, and a session is issued.

        Raises:
            ValidationException: If the purpose is not login/register or the identifier is malformed.
            OTPNotFoundException, OTPExpiredException, OTPLockedException,
            OTPInvalidException: From the code check.
            UserNotFoundException: If the account no longer exists.
        """
        if purpose not in self.VERIFIABLE_PURPOSES:
            raise ValidationException(
                f"Codes for '{purpose.value}' cannot be used to sign in."
            )

        identifier, channel = self.resolve_identifier(identifier)
        await self.otp_manager.verify(session, identifier, channel, purpose, code)

        user = await self.users.get_by_identifier(session, identifier, channel)
        if user is None:
            raise UserNotFoundException()

        if not user.is_verified:
            user.is_verified = True
            auth_logger.info(f"User verified: id={user.id}")

        device: TrustedDevice | None = None
        # Only a login code proves a second factor on this device
        if trust_device and purpose == OTPPurpose.LOGIN:
            device = await self.device_gate.trust(
                session, user.id, label=device_label, commit_self=False
            )

        tokens = await self.token_issuer.issue(
            session, user.id, device_info=device_info, commit_self=False
        )
        await session.commit()

        auth_logger.info(f"OTP login completed: user={user.id}, purpose={purpose.value}")
        return AuthSession(
            user=user,
            tokens=tokens,
            device_id=device.device_id if device else None,
        )

    async def resend_otp(
        self,
        session: AsyncSession,
        identifier: str,
        purpose: OTPPurpose,
    ) -> PendingOTP:
        """
        Send a fresh code for a flow that is already under way.

        The response is the same whether or not a code was sent, so it does
        not reveal which identifiers have accounts. A login code is only
        re-sent while a login challenge exists (created by a correct
        password); a register code only for an unverified account.

        Raises:
            ValidationException: If the purpose cannot be resent or the identifier is malformed.
            DeliveryFailedException: For forgot-password codes that could not be delivered.
        """
        if purpose not in self.RESENDABLE_PURPOSES:
            raise ValidationException(f"Codes for '{purpose.value}' cannot be resent.")

        identifier, channel = self.resolve_identifier(identifier)
        user = await self.users.get_by_identifier(session, identifier, channel)

        eligible = user is not None
        if eligible and purpose == OTPPurpose.REGISTER:
            eligible = not user.is_verified
        elif eligible and purpose == OTPPurpose.LOGIN:
            eligible = await self.otp_manager.has_challenge(
                session, identifier, channel, purpose
            )

        if eligible:
            await self._issue_code_uniformly(
                session,
                identifier,
                channel,
                purpose,
                strict=purpose == OTPPurpose.FORGOT_PASSWORD,
            )
        else:
            auth_logger.info(
                f"OTP resend skipped for {mask_identifier(identifier, channel)} ({purpose.value})"
            )

        return self._pending(
            identifier, channel, purpose, "If the request is valid, an OTP has been sent."
        )

    async def external_login(
        self,
        session: AsyncSession,
        provider: ExternalProvider,
        external_id: str,
        email: str | None = None,
        full_name: str | None = None,
        device_info: str | None = None,
    ) -> AuthSession:
        """
        Sign in with an identity a provider has already verified.

        The account is found by linked identity, else by matching email (and
        the identity is linked to it), else a verified account is created.
        """
        identity_type = IdentityType(provider.value)
        if not external_id:
            raise ValidationException("External account id is required.")

        normalized_email = (
            normalize_identifier(email, OTPChannel.EMAIL) if email else None
        )

        user: User | None = None
        identity = await self.identities.get_by_external_id(
            session, identity_type, external_id
        )
        if identity is not None:
            user = await self.users.get_active_by_id(session, identity.user_id)
            if user is None:
                raise InvalidCredentialsException("This account has been deleted.")
        elif normalized_email:
            user = await self.users.get_by_identifier(
                session, normalized_email, OTPChannel.EMAIL, include_deleted=True
            )
            if user is not None and user.is_deleted:
                raise InvalidCredentialsException("This account has been deleted.")
            if user is not None:
                await self.identities.create(
                    session,
                    {"user_id": user.id, "type": identity_type, "external_id": external_id},
                    commit_self=False,
                )
                user.is_verified = True
                auth_logger.info(f"Linked {provider.value} identity to user={user.id}")

        if user is None:
            user = await self.users.create_with_identity(
                session,
                {
                    "email": normalized_email,
                    "full_name": full_name,
                    "is_verified": True,
                },
                identity_type=identity_type,
                external_id=external_id,
                commit_self=False,
            )
            auth_logger.info(f"User created from {provider.value} identity: id={user.id}")

        tokens = await self.token_issuer.issue(
            session, user.id, device_info=device_info, commit_self=False
        )
        await session.commit()
        return AuthSession(user=user, tokens=tokens)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def refresh_session(
        self,
        session: AsyncSession,
        refresh_token: str,
        device_info: str | None = None,
    ) -> TokenPair:
        return await self.token_issuer.refresh(
            session, refresh_token, device_info=device_info
        )

    async def logout(self, session: AsyncSession, refresh_token: str | None) -> None:
        """
        Remove the presented refresh token from its owner's list.

        Never fails: an absent, malformed or expired token means there is
        nothing to revoke.
        """
        if not refresh_token:
            return
        try:
            user_id = self.token_issuer.decode_refresh_token(
                refresh_token, verify_exp=False
            )
        except (InvalidTokenException, TokenExpiredException):
            auth_logger.info("Logout with an undecodable refresh token")
            return
        await self.token_issuer.revoke_one(session, user_id, refresh_token)

    # =========================================================================
    # Password Reset
    # =========================================================================

    async def forgot_password(
        self, session: AsyncSession, identifier: str
    ) -> PendingOTP:
        """
        Send a password-reset code if the identifier belongs to an account.

        The response is identical for known and unknown identifiers, and no
        challenge is created for unknown ones.

        Raises:
            ValidationException: If the identifier is malformed.
            DeliveryFailedException: If the code could not be delivered.
        """
        identifier, channel = self.resolve_identifier(identifier)
        user = await self.users.get_by_identifier(session, identifier, channel)

        if user is not None:
            await self._issue_code_uniformly(
                session, identifier, channel, OTPPurpose.FORGOT_PASSWORD, strict=True
            )
            auth_logger.info(f"Password reset requested: user={user.id}")
        else:
            auth_logger.info(
                f"Password reset requested for unknown {mask_identifier(identifier, channel)}"
            )

        return self._pending(
            identifier, channel, OTPPurpose.FORGOT_PASSWORD, self.FORGOT_PASSWORD_MESSAGE
        )

    async def reset_password(
        self,
        session: AsyncSession,
        identifier: str,
        code: str,
        new_password: str,
    ) -> None:
        """
        Set a new password with a forgot-password code.

        Every refresh token of the user is revoked and no session is issued;
        the user signs in again with the new password.
        """
        if not new_password:
            raise ValidationException("Password is required.")

        identifier, channel = self.resolve_identifier(identifier)
        await self.otp_manager.verify(
            session, identifier, channel, OTPPurpose.FORGOT_PASSWORD, code
        )

        user = await self.users.get_by_identifier(session, identifier, channel)
        if user is None:
            raise UserNotFoundException()

        user.password_hash = hash_password(new_password)
        user.is_verified = True
        await self.token_issuer.revoke_all(session, user.id, commit_self=False)
        await session.commit()
        auth_logger.info(f"Password reset: user={user.id}")

    # =========================================================================
    # Profile
    # =========================================================================

    async def change_password(
        self,
        session: AsyncSession,
        user_id: UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change the password of a signed-in user and sign out everywhere.

        Raises:
            ValidationException: If the account has no password (external identity only).
            InvalidCredentialsException: If the current password is wrong.
        """
        user = await self._require_user(session, user_id)
        if not user.password_hash:
            raise ValidationException(
                "This account has no password. Use forgot password to set one."
            )
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsException("Current password is incorrect.")

        user.password_hash = hash_password(new_password)
        await self.token_issuer.revoke_all(session, user.id, commit_self=False)
        await session.commit()
        auth_logger.info(f"Password changed: user={user.id}")

    async def request_identifier_change(
        self,
        session: AsyncSession,
        user_id: UUID,
        new_identifier: str,
        channel: OTPChannel,
    ) -> PendingOTP:
        """
        Send a code to a new email address or phone number.

        Raises:
            ConflictException: If the identifier belongs to another account.
            DeliveryFailedException: If the code could not be delivered.
        """
        user = await self._require_user(session, user_id)
        new_identifier = normalize_identifier(new_identifier, channel)
        await self._ensure_identifier_free(session, user, new_identifier, channel)

        purpose = CHANGE_PURPOSE_FOR_CHANNEL[channel]
        await self._issue_code(session, new_identifier, channel, purpose, strict=True)
        return self._pending(new_identifier, channel, purpose)

    async def confirm_identifier_change(
        self,
        session: AsyncSession,
        user_id: UUID,
        new_identifier: str,
        channel: OTPChannel,
        code: str,
    ) -> User:
        """
        Switch the user to a new email address or phone number with its code.

        The matching ``local-*`` linked identity is replaced.
        """
        user = await self._require_user(session, user_id)
        new_identifier = normalize_identifier(new_identifier, channel)
        purpose = CHANGE_PURPOSE_FOR_CHANNEL[channel]

        await self.otp_manager.verify(session, new_identifier, channel, purpose, code)
        await self._ensure_identifier_free(session, user, new_identifier, channel)

        await self.users.set_identifier(
            session, user.id, channel, new_identifier, commit_self=False
        )
        await self.identities.replace_for_user(
            session,
            user.id,
            LOCAL_IDENTITY_FOR_CHANNEL[channel],
            new_identifier,
            commit_self=False,
        )
        await session.commit()
        await session.refresh(user)
        auth_logger.info(f"{channel.value} changed: user={user.id}")
        return user

    async def _ensure_identifier_free(
        self,
        session: AsyncSession,
        user: User,
        identifier: str,
        channel: OTPChannel,
    ) -> None:
        owner = await self.users.get_by_identifier(
            session, identifier, channel, include_deleted=True
        )
        if owner is not None and owner.id != user.id:
            raise ConflictException(
                f"{'Email' if channel == OTPChannel.EMAIL else 'Phone'} already in use."
            )
        if owner is not None:
            raise ValidationException(
                f"This is already your {'email' if channel == OTPChannel.EMAIL else 'phone'}."
            )

    async def delete_account(self, session: AsyncSession, user_id: UUID) -> None:
        """Soft-delete the account and revoke every session."""
        user = await self._require_user(session, user_id)
        await self.users.soft_delete(session, user.id, commit_self=False)
        await self.token_issuer.revoke_all(session, user.id, commit_self=False)
        await session.commit()
        auth_logger.info(f"Account deleted: user={user.id}")

    # =========================================================================
    # Trusted Devices
    # =========================================================================

    async def list_trusted_devices(
        self, session: AsyncSession, user_id: UUID
    ) -> Sequence[TrustedDevice]:
        await self._require_user(session, user_id)
        return await self.device_gate.list_devices(session, user_id)

    async def revoke_trusted_device(
        self, session: AsyncSession, user_id: UUID, device_id: str
    ) -> None:
        await self._require_user(session, user_id)
        await self.device_gate.revoke(session, user_id, device_id)
