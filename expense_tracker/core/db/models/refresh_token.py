"""
Refresh Token model for persistent session management.

"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.core.db.models.base import BaseModel
from expense_tracker.core.utils import as_utc

if TYPE_CHECKING:
    from expense_tracker.core.db.models.user import User


class RefreshToken(BaseModel):
    """
    Entry in a user's list of currently valid refresh tokens.

    Only the SHA-256 hash of the token is stored. Rotation deletes the entry
    for the presented token and inserts one for its replacement, so a token
    that is not in the list has been used, revoked or never issued.

    Attributes:
        user_id: Foreign key to the user who owns this token.
        token_hash: SHA256 hash of the refresh token (never store plain tokens).
        expires_at: When this token expires.
        device_info: Optional device/client information (user agent).
        user: Relationship to the User model.
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 produces 64 hex characters
        unique=True,
        index=True,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    device_info: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken(id={self.id}, user_id={self.user_id}, "
            f"expires_at={self.expires_at})>"
        )

    @property
    def is_valid(self) -> bool:
        """Check if the token is still within its lifetime."""
        return as_utc(self.expires_at) > datetime.now(timezone.utc)
