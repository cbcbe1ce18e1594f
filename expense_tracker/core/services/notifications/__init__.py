from expense_tracker.core.services.notifications.base import NotificationChannel
from expense_tracker.core.services.notifications.brevo import BrevoEmailChannel
from expense_tracker.core.services.notifications.console import ConsoleChannel
from expense_tracker.core.services.notifications.dispatcher import (
    NotificationDispatcher,
)
from expense_tracker.core.services.notifications.twilio import TwilioSMSChannel

__all__ = [
    "BrevoEmailChannel",
    "ConsoleChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "TwilioSMSChannel",
]
