from expense_tracker.core.db.crud.base import BaseDB
from expense_tracker.core.db.crud.otp import OTPChallengeDB
from expense_tracker.core.db.crud.refresh_token import RefreshTokenDB
from expense_tracker.core.db.crud.user import (
    LinkedIdentityDB,
    TrustedDeviceDB,
    UserDB,
)

# Global CRUD instances - use these instead of creating new instances
linked_identity_db = LinkedIdentityDB()
user_db = UserDB(linked_identity_db=linked_identity_db)
trusted_device_db = TrustedDeviceDB()
otp_challenge_db = OTPChallengeDB()
refresh_token_db = RefreshTokenDB()

__all__ = [
    # Classes (for type hints and subclassing)
    "BaseDB",
    "LinkedIdentityDB",
    "OTPChallengeDB",
    "RefreshTokenDB",
    "TrustedDeviceDB",
    "UserDB",
    # Global instances (for actual usage)
    "linked_identity_db",
    "otp_challenge_db",
    "refresh_token_db",
    "trusted_device_db",
    "user_db",
]
