"""orderstream.notifications - customer notification channels."""

from orderstream.notifications.channels import (
    LoggingNotificationChannel,
    NotificationChannel,
    SentMessage,
    SesNotificationChannel,
)

__all__ = [
    "LoggingNotificationChannel",
    "NotificationChannel",
    "SentMessage",
    "SesNotificationChannel",
]
