"""
Obligation and Reminder Models

An obligation is a bill, recurring income or credit that comes due on a
recurrence pattern. The reminder planner reads these; it never writes them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.recurrence import RecurrenceDescriptor


class ObligationKind(str, Enum):
    """What kind of money movement the obligation represents."""
    BILL = "bill"
    INCOME = "income"
    CREDIT = "credit"
    ONE_TIME = "one_time"


class Obligation(BaseModel):
    """A recurring financial obligation with its recurrence descriptor."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    kind: ObligationKind = ObligationKind.BILL
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    account_id: Optional[str] = None
    recurrence: RecurrenceDescriptor = Field(default_factory=RecurrenceDescriptor)
    ignored: bool = False
    paid_months: list[str] = Field(
        default_factory=list,
        description="Months (YYYY-MM) already marked paid"
    )

    def is_paid_for(self, month: str) -> bool:
        return month in self.paid_months


class Reminder(BaseModel):
    """A reminder the planner decided should be shown or sent."""

    obligation_id: str
    name: str
    kind: ObligationKind
    amount: Decimal
    due_date: date
    days_until: int
    overdue: bool = False

    @property
    def urgency(self) -> str:
        return urgency_label(self.days_until)


def urgency_label(days_until: int) -> str:
    """Short label for how soon something is due."""
    if days_until < 0:
        return "OVERDUE"
    if days_until == 0:
        return "DUE TODAY"
    if days_until == 1:
        return "DUE TOMORROW"
    return f"DUE IN {days_until} DAYS"
