"""
Notification delivery: settings, dispatcher, inbox and sinks.
"""

from leadsync.services.notifications.dispatcher import (
    DispatchOutcome,
    DispatchReport,
    NotificationDispatcher,
)

__all__ = ["DispatchOutcome", "DispatchReport", "NotificationDispatcher"]
