"""
OTP challenge model for one-time verification codes.

"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_tracker.core.db.models.base import BaseModel
from expense_tracker.core.enums import OTPChannel, OTPPurpose


class OTPChallenge(BaseModel):
    """
    A pending one-time code for an (identifier, channel, purpose) tuple.

    Codes are stored as HMAC-SHA256 hashes only. The unique constraint keeps
    at most one challenge per tuple; a successful verification deletes the
    row, so a code can be consumed once.

    Attributes:
        identifier: Normalised email address or phone number.
        channel: Delivery channel (email or phone).
        purpose: What the code authorises (login, register, ...).
        code_hash: HMAC-SHA256 hash of the code.
        attempts: Number of failed verification attempts.
        locked_until: End of the lockout window, if locked.
        last_sent_at: When the current code was issued.
        expires_at: When the current code stops being accepted.
    """

    __tablename__ = "otp_challenges"
    __table_args__ = (
        UniqueConstraint(
            "identifier", "channel", "purpose", name="uq_otp_challenge_tuple"
        ),
    )

    identifier: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    channel: Mapped[OTPChannel] = mapped_column(
        Enum(OTPChannel, native_enum=False, name="otp_channel", length=16),
        nullable=False,
    )

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(OTPPurpose, native_enum=False, name="otp_purpose", length=32),
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 hex digest is 64 characters
        nullable=False,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    last_sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<OTPChallenge(identifier={self.identifier}, channel={self.channel.value}, "
            f"purpose={self.purpose.value}, attempts={self.attempts})>"
        )


__all__ = ["OTPChallenge"]
