"""
CRUD operations for users, their linked identities and trusted devices.
"""

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.db.crud.base import BaseDB
from expense_tracker.core.db.models import LinkedIdentity, TrustedDevice, User
from expense_tracker.core.enums import IdentityType, OTPChannel
from expense_tracker.core.exceptions.types import ValidationException


def validate_reachable_user(data: dict) -> dict:
    """
    Reject user data that has no way of reaching the account.

    A user needs an email, a phone number, or an external identity
    (passed as ``external_identity``, which is not a column and is removed).
    """
    data = dict(data)
    has_external = bool(data.pop("external_identity", False))
    if not (data.get("email") or data.get("phone") or has_external):
        raise ValidationException(
            "A user needs an email address, a phone number or a linked external account."
        )
    return data


class LinkedIdentityDB(BaseDB[LinkedIdentity]):
    def __init__(self):
        super().__init__(model=LinkedIdentity)

    async def get_by_external_id(
        self,
        session: AsyncSession,
        identity_type: IdentityType,
        external_id: str,
    ) -> LinkedIdentity | None:
        return await self.get_one_by_conditions(
            session,
            [
                self.model.type == identity_type,
                self.model.external_id == external_id,
            ],
        )

    async def replace_for_user(
        self,
        session: AsyncSession,
        user_id: UUID,
        identity_type: IdentityType,
        external_id: str,
        commit_self: bool = True,
    ) -> LinkedIdentity:
        """
        Replace the user's identity of the given type with a new one.

        Used when a user changes their email or phone number, so the old
        ``local-*`` identity stops pointing at the account.
        """
        await self.delete_by_conditions(
            session,
            [self.model.user_id == user_id, self.model.type == identity_type],
            commit_self=False,
        )
        return await self.create(
            session,
            {"user_id": user_id, "type": identity_type, "external_id": external_id},
            commit_self=commit_self,
        )


class UserDB(BaseDB[User]):
    def __init__(self, linked_identity_db: LinkedIdentityDB | None = None):
        super().__init__(model=User)
        self.linked_identity_db = linked_identity_db or LinkedIdentityDB()

    def _identifier_column(self, channel: OTPChannel):
        return self.model.email if channel == OTPChannel.EMAIL else self.model.phone

    async def get_by_identifier(
        self,
        session: AsyncSession,
        identifier: str,
        channel: OTPChannel,
        include_deleted: bool = False,
    ) -> User | None:
        """
        Look a user up by normalised email address or phone number.

        Args:
            session: The async database session.
            identifier: Normalised identifier.
            channel: Which column the identifier belongs to.
            include_deleted: Whether soft-deleted accounts are returned too.

        Returns:
            The matching user, or None.
        """
        conditions = [self._identifier_column(channel) == identifier]
        if not include_deleted:
            conditions.append(self.model.is_deleted.is_(False))
        return await self.get_one_by_conditions(session, conditions)

    async def get_active_by_id(self, session: AsyncSession, user_id: UUID) -> User | None:
        return await self.get_one_by_conditions(
            session,
            [self.model.id == user_id, self.model.is_deleted.is_(False)],
        )

    async def create_with_identity(
        self,
        session: AsyncSession,
        data: dict,
        identity_type: IdentityType,
        external_id: str,
        commit_self: bool = True,
    ) -> User:
        """
        Create a user together with its first linked identity.

        Args:
            session: The async database session.
            data: User column values.
            identity_type: Type of the first linked identity.
            external_id: Identifier of the linked identity (email, phone or provider id).
            commit_self: Whether to commit after the inserts.

        Returns:
            The created user.

        Raises:
            ValidationException: If the user would not be reachable.
            ConflictException: If the identifier is already taken.
        """
        user = await self.create(
            session,
            {**data, "external_identity": identity_type == IdentityType.GOOGLE},
            validate=validate_reachable_user,
            commit_self=False,
        )
        await self.linked_identity_db.create(
            session,
            {"user_id": user.id, "type": identity_type, "external_id": external_id},
            commit_self=commit_self,
        )
        return user

    async def set_identifier(
        self,
        session: AsyncSession,
        user_id: UUID,
        channel: OTPChannel,
        identifier: str,
        commit_self: bool = True,
    ) -> int:
        """Point the user's email or phone column at a new identifier."""
        column = "email" if channel == OTPChannel.EMAIL else "phone"
        return await self.update_by_conditions(
            session,
            [self.model.id == user_id],
            {column: identifier},
            commit_self=commit_self,
        )

    async def soft_delete(
        self, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> int:
        """Flag a user as deleted; the row and its identifiers are kept."""
        return await self.update_by_conditions(
            session,
            [self.model.id == user_id, self.model.is_deleted.is_(False)],
            {"is_deleted": True, "deleted_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )


class TrustedDeviceDB(BaseDB[TrustedDevice]):
    def __init__(self):
        super().__init__(model=TrustedDevice)

    async def get_for_user(
        self, session: AsyncSession, user_id: UUID, device_id: str
    ) -> TrustedDevice | None:
        return await self.get_one_by_conditions(
            session,
            [self.model.user_id == user_id, self.model.device_id == device_id],
        )

    async def list_for_user(
        self, session: AsyncSession, user_id: UUID
    ) -> Sequence[TrustedDevice]:
        return await self.get_by_conditions(
            session,
            [self.model.user_id == user_id],
            order_by=[self.model.added_at.desc()],
        )

    async def remove(
        self,
        session: AsyncSession,
        user_id: UUID,
        device_id: str,
        commit_self: bool = True,
    ) -> int:
        return await self.delete_by_conditions(
            session,
            [self.model.user_id == user_id, self.model.device_id == device_id],
            commit_self=commit_self,
        )


__all__ = [
    "UserDB",
    "LinkedIdentityDB",
    "TrustedDeviceDB",
    "validate_reachable_user",
]
