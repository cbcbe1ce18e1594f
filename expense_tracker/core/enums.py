from enum import Enum


class OTPChannel(str, Enum):
    """Delivery channel of a one-time code."""

    EMAIL = "email"
    PHONE = "phone"


class OTPPurpose(str, Enum):
    """Purpose a one-time code was issued for."""

    LOGIN = "login"
    REGISTER = "register"
    FORGOT_PASSWORD = "forgot-password"
    CHANGE_EMAIL = "change-email"
    CHANGE_PHONE = "change-phone"


class IdentityType(str, Enum):
    """Kind of identity linked to a user account."""

    LOCAL_EMAIL = "local-email"
    LOCAL_PHONE = "local-phone"
    GOOGLE = "google"


class ExternalProvider(str, Enum):
    """Supported external identity providers."""

    GOOGLE = "google"


# Local identity type for each delivery channel
LOCAL_IDENTITY_FOR_CHANNEL: dict[OTPChannel, IdentityType] = {
    OTPChannel.EMAIL: IdentityType.LOCAL_EMAIL,
    OTPChannel.PHONE: IdentityType.LOCAL_PHONE,
}

# Purpose used when changing the identifier of each channel
CHANGE_PURPOSE_FOR_CHANNEL: dict[OTPChannel, OTPPurpose] = {
    OTPChannel.EMAIL: OTPPurpose.CHANGE_EMAIL,
    OTPChannel.PHONE: OTPPurpose.CHANGE_PHONE,
}
