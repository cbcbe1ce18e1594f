from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.core.db.models.base import BaseModel, SoftDeleteMixin
from expense_tracker.core.enums import IdentityType

if TYPE_CHECKING:
    from expense_tracker.core.db.models.refresh_token import RefreshToken


class User(SoftDeleteMixin, BaseModel):
    """
    Account holder.

    A user is reachable through at least one of ``email``, ``phone`` or a
    linked external identity. Accounts are soft-deleted only.
    """

    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=True,
    )

    phone: Mapped[str | None] = mapped_column(
        String(32),
        unique=True,
        index=True,
        nullable=True,
    )

    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    linked_identities: Mapped[list["LinkedIdentity"]] = relationship(
        "LinkedIdentity",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    trusted_devices: Mapped[list["TrustedDevice"]] = relationship(
        "TrustedDevice",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, phone={self.phone})>"


class LinkedIdentity(BaseModel):
    """An identity (local email/phone or external provider) tied to a user."""

    __tablename__ = "linked_identities"
    __table_args__ = (
        UniqueConstraint("type", "external_id", name="uq_linked_identity"),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[IdentityType] = mapped_column(
        Enum(IdentityType, native_enum=False, name="identity_type", length=32),
        nullable=False,
    )

    external_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="linked_identities",
    )


class TrustedDevice(BaseModel):
    """A device allowed to skip the OTP step on password login."""

    __tablename__ = "trusted_devices"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_trusted_device"),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    device_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="trusted_devices",
    )


__all__ = ["User", "LinkedIdentity", "TrustedDevice"]
