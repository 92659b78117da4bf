"""
Loan Terms Module

Immutable, validated loan definition and its structured record.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict

from .config import get_config
from .dates import resolve_date
from .errors import ValidationError
from .precision import ZERO, max_precision, to_decimal
from .rates import CompoundingFrequency, PaymentFrequency, coerce_frequency, periodic_rate
from .schedule import level_payment


@dataclass(frozen=True)
class LoanDefinition:
    """Loan terms; validated on construction and never mutated afterwards"""
    principal: Decimal
    term_years: int
    nominal_annual_rate: Decimal        # percent form, e.g. 7.5 for 7.5%
    payment_frequency: PaymentFrequency
    compounding_frequency: CompoundingFrequency
    origination_date: date
    first_payment_date: date
    precision: int = 2                  # decimal places

    def __post_init__(self):
        object.__setattr__(self, 'principal', to_decimal(self.principal, "principal"))
        object.__setattr__(self, 'nominal_annual_rate',
                           to_decimal(self.nominal_annual_rate, "nominal_annual_rate"))
        object.__setattr__(self, 'payment_frequency',
                           coerce_frequency(PaymentFrequency, self.payment_frequency, "payment_frequency"))
        object.__setattr__(self, 'compounding_frequency',
                           coerce_frequency(CompoundingFrequency, self.compounding_frequency,
                                            "compounding_frequency"))
        object.__setattr__(self, 'origination_date',
                           resolve_date(self.origination_date, "origination_date"))
        object.__setattr__(self, 'first_payment_date',
                           resolve_date(self.first_payment_date, "first_payment_date"))

        if self.principal <= ZERO:
            raise ValidationError(f"principal must be positive, got {self.principal}")
        if self.nominal_annual_rate <= ZERO:
            raise ValidationError(f"nominal_annual_rate must be positive, got {self.nominal_annual_rate}")
        if isinstance(self.term_years, bool) or not isinstance(self.term_years, int) or self.term_years <= 0:
            raise ValidationError(f"term_years must be a positive integer, got {self.term_years!r}")
        if isinstance(self.precision, bool) or not isinstance(self.precision, int) or self.precision < 0:
            raise ValidationError(f"precision must be a non-negative integer, got {self.precision!r}")
        if self.precision > max_precision(self.principal):
            raise ValidationError(
                f"precision {self.precision} is too fine for principal {self.principal} "
                f"(at most {max_precision(self.principal)} decimal places)"
            )
        if self.first_payment_date < self.origination_date:
            raise ValidationError(
                f"first_payment_date {self.first_payment_date.isoformat()} is before "
                f"origination_date {self.origination_date.isoformat()}"
            )

        max_installments = get_config().max_installments
        if self.installment_count > max_installments:
            raise ValidationError(
                f"Loan would have {self.installment_count} installments, "
                f"more than the supported {max_installments}"
            )

    @property
    def payments_per_year(self) -> int:
        return self.payment_frequency.periods_per_year

    @property
    def installment_count(self) -> int:
        """Total number of scheduled installments"""
        return self.term_years * self.payments_per_year

    @property
    def periodic_rate(self) -> Decimal:
        return periodic_rate(self.nominal_annual_rate, self.compounding_frequency, self.payment_frequency)

    @property
    def level_payment(self) -> Decimal:
        """Payment that amortizes the principal over every installment"""
        return level_payment(self.principal, self.periodic_rate, self.installment_count, self.precision)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a structured record (decimals as strings, dates ISO)"""
        return {
            'principal': str(self.principal),
            'term_years': self.term_years,
            'nominal_annual_rate': str(self.nominal_annual_rate),
            'payment_frequency': self.payment_frequency.value,
            'compounding_frequency': self.compounding_frequency.value,
            'origination_date': self.origination_date.isoformat(),
            'first_payment_date': self.first_payment_date.isoformat(),
            'precision': self.precision
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanDefinition':
        """Create instance from a structured record"""
        missing = [key for key in ('principal', 'term_years', 'nominal_annual_rate',
                                   'payment_frequency', 'compounding_frequency',
                                   'origination_date', 'first_payment_date') if key not in data]
        if missing:
            raise ValidationError(f"Loan parameters missing fields: {', '.join(missing)}")

        return cls(
            principal=data['principal'],
            term_years=data['term_years'],
            nominal_annual_rate=data['nominal_annual_rate'],
            payment_frequency=data['payment_frequency'],
            compounding_frequency=data['compounding_frequency'],
            origination_date=data['origination_date'],
            first_payment_date=data['first_payment_date'],
            precision=data.get('precision', get_config().default_precision)
        )
