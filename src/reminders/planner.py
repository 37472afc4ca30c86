"""
Reminder Planner

Decides which obligations need a reminder. It only reads obligations and
asks the recurrence calculator for dates; it never touches storage.

"Due" here means on or after today: an occurrence falling today is due in
0 days, not next month. A custom due date that has already passed (but is
still inside the override grace window) makes the obligation overdue.
"""

from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from typing import Optional

from src.models.obligation import Obligation, Reminder, urgency_label
from src.models.recurrence import RecurrencePattern
from src.recurrence.calculator import DEFAULT_OVERRIDE_GRACE_DAYS, next_occurrence


DEFAULT_REMINDER_DAYS = (3, 1, 0)
DEFAULT_HORIZON_DAYS = 7

# Only these patterns are tracked as paid per calendar month
_MONTH_PAID_PATTERNS = (RecurrencePattern.MONTHLY, RecurrencePattern.YEARLY)

__all__ = [
    "DEFAULT_HORIZON_DAYS",
    "DEFAULT_REMINDER_DAYS",
    "ReminderPlanner",
    "urgency_label",
]


class ReminderPlanner:
    """
    Selects obligations to remind about.

    Usage:
        planner = ReminderPlanner(reminder_days=[3, 1, 0])
        for reminder in planner.due_reminders(obligations, today):
            send(reminder)
    """

    def __init__(
        self,
        reminder_days: Optional[Sequence[int]] = None,
        grace_days: int = DEFAULT_OVERRIDE_GRACE_DAYS,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ):
        self._reminder_days = frozenset(
            DEFAULT_REMINDER_DAYS if reminder_days is None else reminder_days
        )
        self._grace_days = grace_days
        self._horizon_days = horizon_days

    def due_date(self, obligation: Obligation, today: date) -> date:
        """Next date the obligation is due, on or after today (or an override)."""
        recurrence = obligation.recurrence
        override = recurrence.custom_override_date
        if override is not None and override >= today - timedelta(days=self._grace_days):
            return override
        due = next_occurrence(recurrence, today - timedelta(days=1))
        if due < today:
            # Biweekly returns a reference date on the cycle itself
            due = next_occurrence(recurrence, today)
        return due

    def _is_paid(self, obligation: Obligation, due: date) -> bool:
        if obligation.recurrence.pattern not in _MONTH_PAID_PATTERNS:
            return False
        return obligation.is_paid_for(due.strftime("%Y-%m"))

    def _build(self, obligation: Obligation, today: date) -> Optional[Reminder]:
        if obligation.ignored:
            return None
        due = self.due_date(obligation, today)
        if self._is_paid(obligation, due):
            return None
        days_until = (due - today).days
        return Reminder(
            obligation_id=obligation.id,
            name=obligation.name,
            kind=obligation.kind,
            amount=obligation.amount,
            due_date=due,
            days_until=days_until,
            overdue=days_until < 0,
        )

    def due_reminders(
        self,
        obligations: Iterable[Obligation],
        today: date,
        include_overdue: bool = True,
    ) -> list[Reminder]:
        """Reminders whose days-until-due is one of the configured offsets."""
        reminders = []
        for obligation in obligations:
            reminder = self._build(obligation, today)
            if reminder is None:
                continue
            if reminder.days_until in self._reminder_days or (
                include_overdue and reminder.overdue
            ):
                reminders.append(reminder)
        reminders.sort(key=lambda r: (r.due_date, r.name))
        return reminders

    def upcoming(self, obligations: Iterable[Obligation], today: date) -> list[Reminder]:
        """
        Everything overdue or due within the horizon.

        Overdue items come first, then by due date.
        """
        horizon = today + timedelta(days=self._horizon_days)
        items = []
        for obligation in obligations:
            reminder = self._build(obligation, today)
            if reminder is None:
                continue
            if reminder.overdue or reminder.due_date <= horizon:
                items.append(reminder)
        items.sort(key=lambda r: (not r.overdue, r.due_date, r.name))
        return items
