"""
Calendar Arithmetic Module

Month and payment-interval arithmetic shared by the schedule builder and the
recalculator. Month steps clamp to the last valid day of the target month.
"""

from datetime import date, datetime, timedelta
from typing import Any
import calendar

from .errors import ValidationError
from .rates import PaymentFrequency


def add_months(start_date: date, months: int) -> date:
    """Add (or subtract) months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _next_semimonthly(current_date: date) -> date:
    """The 15th after a 1st, otherwise the 1st of the following month"""
    if current_date.day == 1:
        return current_date.replace(day=15)
    return add_months(current_date.replace(day=1), 1)


def _previous_semimonthly(current_date: date) -> date:
    if current_date.day == 1:
        return add_months(current_date, -1).replace(day=15)
    if current_date.day <= 15:
        return current_date.replace(day=1)
    return current_date.replace(day=15)


def advance(current_date: date, frequency: PaymentFrequency) -> date:
    """Next due date one payment interval after `current_date`"""
    if frequency == PaymentFrequency.SEMIMONTHLY:
        return _next_semimonthly(current_date)
    if frequency.interval_months:
        return add_months(current_date, frequency.interval_months)
    return current_date + timedelta(days=frequency.interval_days)


def step_back(current_date: date, frequency: PaymentFrequency) -> date:
    """Start of the nominal payment period ending on `current_date`"""
    if frequency == PaymentFrequency.SEMIMONTHLY:
        return _previous_semimonthly(current_date)
    if frequency.interval_months:
        return add_months(current_date, -frequency.interval_months)
    return current_date - timedelta(days=frequency.interval_days)


def nominal_period_days(due_date: date, frequency: PaymentFrequency) -> int:
    """Calendar length of the payment period ending on `due_date`"""
    return (due_date - step_back(due_date, frequency)).days


def shift_months(current_date: date, months: int) -> date:
    """Move a due date by whole calendar months (negative moves earlier)"""
    return add_months(current_date, months)


def days_between(start: date, end: date) -> int:
    """Signed number of days from `start` to `end`"""
    return (end - start).days


def resolve_date(value: Any, field_name: str = "date") -> date:
    """Accept a date or an ISO-8601 string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"{field_name} is not a valid ISO date: {value!r}")
    raise ValidationError(f"{field_name} must be a date, got {value!r}")
