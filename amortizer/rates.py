"""
Rate Conversion Module

Converts a nominal annual rate (percent form) into the effective rate for
one payment period, given how often interest compounds and how often
payments are made.
"""

from decimal import Decimal
from enum import Enum
from typing import Type, TypeVar, Union

from .errors import ValidationError
from .precision import ONE, to_decimal


class PaymentFrequency(Enum):
    """Payment frequency options"""
    WEEKLY = "weekly"          # 52 payments per year
    BIWEEKLY = "biweekly"      # 26 payments per year
    SEMIMONTHLY = "semimonthly"  # 24 payments per year, due on the 1st and 15th
    MONTHLY = "monthly"        # 12 payments per year
    QUARTERLY = "quarterly"    # 4 payments per year
    SEMIANNUAL = "semiannual"  # 2 payments per year
    ANNUAL = "annual"          # 1 payment per year

    @property
    def periods_per_year(self) -> int:
        """Number of payments per year"""
        return {
            PaymentFrequency.WEEKLY: 52,
            PaymentFrequency.BIWEEKLY: 26,
            PaymentFrequency.SEMIMONTHLY: 24,
            PaymentFrequency.MONTHLY: 12,
            PaymentFrequency.QUARTERLY: 4,
            PaymentFrequency.SEMIANNUAL: 2,
            PaymentFrequency.ANNUAL: 1
        }[self]

    @property
    def interval_months(self) -> int:
        """Calendar months between payments (0 for day-based and semi-monthly)"""
        return {
            PaymentFrequency.MONTHLY: 1,
            PaymentFrequency.QUARTERLY: 3,
            PaymentFrequency.SEMIANNUAL: 6,
            PaymentFrequency.ANNUAL: 12
        }.get(self, 0)

    @property
    def interval_days(self) -> int:
        """Days between payments (0 for month-based and semi-monthly)"""
        return {
            PaymentFrequency.WEEKLY: 7,
            PaymentFrequency.BIWEEKLY: 14
        }.get(self, 0)


class CompoundingFrequency(Enum):
    """How often interest compounds"""
    DAILY = "daily"            # 365 times per year
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"

    @property
    def periods_per_year(self) -> int:
        """Number of compounding periods per year"""
        return {
            CompoundingFrequency.DAILY: 365,
            CompoundingFrequency.WEEKLY: 52,
            CompoundingFrequency.BIWEEKLY: 26,
            CompoundingFrequency.MONTHLY: 12,
            CompoundingFrequency.QUARTERLY: 4,
            CompoundingFrequency.SEMIANNUAL: 2,
            CompoundingFrequency.ANNUAL: 1
        }[self]


E = TypeVar('E', PaymentFrequency, CompoundingFrequency)


def coerce_frequency(enum_cls: Type[E], value: Union[E, str], field_name: str) -> E:
    """Accept an enum member or its string value; anything else is a ValidationError"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unknown {field_name} {value!r} (expected one of: {valid})")


def periodic_rate(
    nominal_annual_rate: Decimal,
    compounding: CompoundingFrequency,
    payment: PaymentFrequency
) -> Decimal:
    """
    Effective interest rate for one payment period

    Args:
        nominal_annual_rate: Annual rate in percent form (e.g. 12 for 12%)
        compounding: Compounding frequency
        payment: Payment frequency

    Returns:
        i_p = (1 + r/C) ** (C/P) - 1, which is exactly r/C when C == P
    """
    rate = to_decimal(nominal_annual_rate, "nominal_annual_rate") / Decimal('100')
    compounding_periods = compounding.periods_per_year
    payment_periods = payment.periods_per_year

    compounding_rate = rate / Decimal(compounding_periods)

    if compounding_periods == payment_periods:
        return compounding_rate

    exponent = Decimal(compounding_periods) / Decimal(payment_periods)
    return (ONE + compounding_rate) ** exponent - ONE
