from expense_tracker.core.db.models.otp import OTPChallenge
from expense_tracker.core.db.models.refresh_token import RefreshToken
from expense_tracker.core.db.models.user import LinkedIdentity, TrustedDevice, User

__all__ = [
    "LinkedIdentity",
    "OTPChallenge",
    "RefreshToken",
    "TrustedDevice",
    "User",
]
