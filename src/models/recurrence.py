"""
Recurrence Models

A RecurrenceDescriptor says how an obligation repeats. It is created and edited
by the obligation forms and is immutable between edits.

DESIGN DECISION: Descriptors are normalized instead of rejected.
Out-of-range days are clamped, fields that do not belong to the pattern are
dropped, and unknown patterns are kept verbatim. Stored obligations must always
load, even after format drift, so the calculator can degrade them to a sane
default rather than fail.
"""

from collections.abc import Mapping
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RecurrencePattern(str, Enum):
    """Supported recurrence patterns."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    YEARLY = "yearly"


class WeeklyRule(str, Enum):
    """Which weekday occurrences of a Weekly obligation are due."""
    EVERY_WEEK = "every_week"
    FIRST_OF_MONTH = "first_of_month"
    SECOND_OF_MONTH = "second_of_month"
    THIRD_OF_MONTH = "third_of_month"
    FOURTH_OF_MONTH = "fourth_of_month"
    LAST_OF_MONTH = "last_of_month"


# Week index (0-based) inside the month for the nth-weekday rules
WEEK_OF_MONTH = {
    WeeklyRule.FIRST_OF_MONTH: 0,
    WeeklyRule.SECOND_OF_MONTH: 1,
    WeeklyRule.THIRD_OF_MONTH: 2,
    WeeklyRule.FOURTH_OF_MONTH: 3,
}

# Pattern -> the only pattern-specific fields allowed to be populated
PATTERN_FIELDS = {
    RecurrencePattern.MONTHLY: {"due_day_of_month"},
    RecurrencePattern.YEARLY: {"due_day_of_month", "due_month"},
    RecurrencePattern.WEEKLY: {"weekly_anchor_date", "weekly_rule"},
    RecurrencePattern.BIWEEKLY: {"biweekly_anchor_date"},
}

ALL_PATTERN_FIELDS = {
    "due_day_of_month",
    "due_month",
    "weekly_anchor_date",
    "weekly_rule",
    "biweekly_anchor_date",
}

# Legacy record vocabulary used by the dashboard's stored obligations
_LEGACY_WEEKLY_SCHEDULE = {
    "every": WeeklyRule.EVERY_WEEK,
    "first": WeeklyRule.FIRST_OF_MONTH,
    "second": WeeklyRule.SECOND_OF_MONTH,
    "third": WeeklyRule.THIRD_OF_MONTH,
    "fourth": WeeklyRule.FOURTH_OF_MONTH,
    "last": WeeklyRule.LAST_OF_MONTH,
}

# 1970-01-04 was a Sunday; legacy weekday numbers count from Sunday = 0
_LEGACY_WEEK_EPOCH = date(1970, 1, 4)

_LEGACY_SUNDAY = 0
_LEGACY_FRIDAY = 5


def _default_legacy_weekday(record: Mapping) -> int:
    """Income records (payDay, no dueDay) are paid on Fridays by default."""
    if "payDay" in record and "dueDay" not in record:
        return _LEGACY_FRIDAY
    return _LEGACY_SUNDAY


def _clamp_int(value: Any, low: int, high: int) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None
    return max(low, min(high, number))


def _coerce_pattern(value: Any) -> Union["RecurrencePattern", str]:
    if isinstance(value, RecurrencePattern):
        return value
    text = str(value or "").strip().lower()
    try:
        return RecurrencePattern(text)
    except ValueError:
        return text


def _coerce_weekly_rule(value: Any) -> WeeklyRule:
    if isinstance(value, WeeklyRule):
        return value
    text = str(value or "").strip().lower()
    try:
        return WeeklyRule(text)
    except ValueError:
        return _LEGACY_WEEKLY_SCHEDULE.get(text, WeeklyRule.EVERY_WEEK)


def parse_date_lenient(value: Any) -> Optional[date]:
    """Parse a date, datetime or ISO string; None when it cannot be read."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


class RecurrenceDescriptor(BaseModel):
    """
    How an obligation repeats.

    Only the fields that belong to `pattern` are kept; everything else is
    dropped on construction so exactly one pattern-specific field set is
    populated. `custom_override_date` applies to every pattern.
    """
    model_config = ConfigDict(frozen=True)

    pattern: Union[RecurrencePattern, str] = Field(
        default=RecurrencePattern.MONTHLY,
        union_mode="left_to_right",
        description="Recurrence pattern; unknown values are kept verbatim"
    )
    due_day_of_month: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month (Monthly/Yearly)"
    )
    due_month: Optional[int] = Field(
        default=None,
        ge=0,
        le=11,
        description="Zero-based month, 0 = January (Yearly)"
    )
    weekly_anchor_date: Optional[date] = Field(
        default=None,
        description="A date on the due weekday (Weekly)"
    )
    weekly_rule: Optional[WeeklyRule] = Field(
        default=None,
        description="Which weekday occurrences are due (Weekly)"
    )
    biweekly_anchor_date: Optional[date] = Field(
        default=None,
        description="First date of the 14-day cycle (Biweekly)"
    )
    custom_override_date: Optional[date] = Field(
        default=None,
        description="One-off due date superseding the calculation"
    )

    @model_validator(mode='before')
    @classmethod
    def normalize(cls, data: Any) -> Any:
        """Clamp ranges and drop fields foreign to the pattern."""
        if not isinstance(data, Mapping):
            return data

        values = dict(data)
        pattern = _coerce_pattern(values.get("pattern", RecurrencePattern.MONTHLY))
        values["pattern"] = pattern

        if "due_day_of_month" in values:
            values["due_day_of_month"] = _clamp_int(values["due_day_of_month"], 1, 31)
        if "due_month" in values:
            values["due_month"] = _clamp_int(values["due_month"], 0, 11)

        if pattern == RecurrencePattern.WEEKLY or values.get("weekly_rule") is not None:
            values["weekly_rule"] = _coerce_weekly_rule(values.get("weekly_rule"))

        allowed = PATTERN_FIELDS.get(pattern, ALL_PATTERN_FIELDS)
        for field_name in ALL_PATTERN_FIELDS - allowed:
            values.pop(field_name, None)

        return values

    @property
    def is_recognized(self) -> bool:
        """True when the pattern is one the calculator understands."""
        return isinstance(self.pattern, RecurrencePattern)

    @classmethod
    def monthly(cls, day: int, **kwargs) -> "RecurrenceDescriptor":
        return cls(pattern=RecurrencePattern.MONTHLY, due_day_of_month=day, **kwargs)

    @classmethod
    def yearly(cls, month: int, day: int, **kwargs) -> "RecurrenceDescriptor":
        return cls(
            pattern=RecurrencePattern.YEARLY,
            due_month=month,
            due_day_of_month=day,
            **kwargs,
        )

    @classmethod
    def weekly(
        cls,
        anchor: date,
        rule: WeeklyRule = WeeklyRule.EVERY_WEEK,
        **kwargs,
    ) -> "RecurrenceDescriptor":
        return cls(
            pattern=RecurrencePattern.WEEKLY,
            weekly_anchor_date=anchor,
            weekly_rule=rule,
            **kwargs,
        )

    @classmethod
    def biweekly(cls, anchor: date, **kwargs) -> "RecurrenceDescriptor":
        return cls(pattern=RecurrencePattern.BIWEEKLY, biweekly_anchor_date=anchor, **kwargs)

    @classmethod
    def from_record(cls, record: Mapping) -> "RecurrenceDescriptor":
        """
        Build a descriptor from a stored bill/income record.

        Understands the dashboard's record keys (frequency, dueDay/payDay,
        yearlyMonth, weeklyDay, weeklySchedule, biweeklyStart, customDueDate).
        Never raises: unreadable fields are ignored and the calculator
        degrades whatever is left.
        """
        pattern = _coerce_pattern(record.get("frequency"))
        day = record.get("dueDay", record.get("payDay"))

        values: dict[str, Any] = {
            "pattern": pattern,
            "custom_override_date": parse_date_lenient(record.get("customDueDate")),
        }

        if pattern in (RecurrencePattern.MONTHLY, RecurrencePattern.YEARLY):
            values["due_day_of_month"] = _clamp_int(day, 1, 31) or 1
        if pattern == RecurrencePattern.YEARLY:
            values["due_month"] = _clamp_int(record.get("yearlyMonth"), 0, 11) or 0
        if pattern == RecurrencePattern.WEEKLY:
            weekday = _clamp_int(record.get("weeklyDay"), 0, 6)
            if weekday is None:
                weekday = _default_legacy_weekday(record)
            values["weekly_anchor_date"] = _LEGACY_WEEK_EPOCH + timedelta(days=weekday)
            values["weekly_rule"] = _coerce_weekly_rule(record.get("weeklySchedule"))
        if pattern == RecurrencePattern.BIWEEKLY:
            values["biweekly_anchor_date"] = parse_date_lenient(record.get("biweeklyStart"))

        return cls(**values)
