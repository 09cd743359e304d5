"""Notifications -- message templates and the dispatcher that records them."""

from gigflow.notifications.dispatcher import NotificationDispatcher
from gigflow.notifications.templates import NotificationTemplates

__all__ = [
    "NotificationDispatcher",
    "NotificationTemplates",
]
