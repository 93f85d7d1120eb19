# Booking engine models
from pilates_booking.models.classModel import ClassSession, Booking, WaitlistEntry
from pilates_booking.models.membershipsModel import SubscriptionAccount
from pilates_booking.models.notificationModel import Notification

__all__ = [
    "ClassSession", "Booking", "WaitlistEntry",
    "SubscriptionAccount",
    "Notification",
]
