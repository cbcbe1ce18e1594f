"""
Trusted devices.

A device id is an opaque random value handed to the client (as a cookie)
when it verifies a one-time code with "trust this device" selected. A
password login presenting a trusted device id skips the one-time code.
"""

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import auth_logger
from expense_tracker.core.db.crud import trusted_device_db
from expense_tracker.core.db.crud.user import TrustedDeviceDB
from expense_tracker.core.db.models import TrustedDevice
from expense_tracker.core.exceptions.types import DeviceNotFoundException

__all__ = ["DeviceTrustGate"]


class DeviceTrustGate:
    DEFAULT_LABEL = "Unnamed device"

    def __init__(self, device_db: TrustedDeviceDB = trusted_device_db):
        self.device_db = device_db

    async def is_trusted(
        self, session: AsyncSession, user_id: UUID, device_id: str | None
    ) -> bool:
        if not device_id:
            return False
        device = await self.device_db.get_for_user(session, user_id, device_id)
        return device is not None

    async def trust(
        self,
        session: AsyncSession,
        user_id: UUID,
        label: str | None = None,
        device_id: str | None = None,
        commit_self: bool = True,
    ) -> TrustedDevice:
        """
        Register a device as trusted for a user.

        Args:
            session: The database session.
            user_id: Owner of the device.
            label: Human-readable name shown in the device list.
            device_id: Id to register; a new random id is generated when omitted.
            commit_self: If True, commits the transaction.

        Returns:
            TrustedDevice: The stored device, whose ``device_id`` goes back to the client.
        """
        device = await self.device_db.create(
            session,
            {
                "user_id": user_id,
                "device_id": device_id or str(uuid4()),
                "label": (label or "").strip()[:120] or self.DEFAULT_LABEL,
            },
            commit_self=commit_self,
        )
        auth_logger.info(f"Device trusted: user={user_id}, label={device.label}")
        return device

    async def revoke(
        self,
        session: AsyncSession,
        user_id: UUID,
        device_id: str,
        commit_self: bool = True,
    ) -> None:
        """
        Stop trusting a device.

        Raises:
            DeviceNotFoundException: If the user has no such trusted device.
        """
        removed = await self.device_db.remove(
            session, user_id, device_id, commit_self=commit_self
        )
        if not removed:
            raise DeviceNotFoundException()
        auth_logger.info(f"Device trust revoked: user={user_id}")

    async def list_devices(
        self, session: AsyncSession, user_id: UUID
    ) -> Sequence[TrustedDevice]:
        return await self.device_db.list_for_user(session, user_id)
