"""Reminder planning package."""

from src.reminders.planner import (
    DEFAULT_HORIZON_DAYS,
    DEFAULT_REMINDER_DAYS,
    ReminderPlanner,
    urgency_label,
)

__all__ = [
    "DEFAULT_HORIZON_DAYS",
    "DEFAULT_REMINDER_DAYS",
    "ReminderPlanner",
    "urgency_label",
]
