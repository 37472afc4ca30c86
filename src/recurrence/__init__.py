"""Recurrence calculation package."""

from src.recurrence.calculator import (
    DEFAULT_OVERRIDE_GRACE_DAYS,
    effective_due_date,
    iter_occurrences,
    next_occurrence,
    occurrences_between,
)

__all__ = [
    "DEFAULT_OVERRIDE_GRACE_DAYS",
    "effective_due_date",
    "iter_occurrences",
    "next_occurrence",
    "occurrences_between",
]
