"""
Priority Transfers Notify - Driver Notifications Module
Booking confirmation emails with one-shot pickup reminders.
"""
from .routes import register_notification_routes
from .workflow import (
    BookingConfirmationWorkflow,
    get_workflow,
    init_notification_scheduler,
    shutdown_notification_scheduler,
)

__all__ = [
    "BookingConfirmationWorkflow",
    "get_workflow",
    "register_notification_routes",
    "init_notification_scheduler",
    "shutdown_notification_scheduler",
]
