"""
Schedule Views Module

Read-only projections over a loan's schedule and payment allocations.
Nothing here mutates state.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence

from .dates import days_between, nominal_period_days
from .precision import ZERO, round_amount
from .recalculator import RecalculationResult
from .schedule import Schedule, ScheduledInstallment
from .terms import LoanDefinition


class ScheduleMode(Enum):
    """Which rows a schedule query returns"""
    SCHEDULED = "scheduled"    # Original schedule, ledger ignored
    ACTUAL = "actual"          # One row per recorded payment
    COMBINED = "combined"      # Actual rows, then the current unpaid schedule


@dataclass(frozen=True)
class ScheduleRow:
    """One line of a schedule projection"""
    sequence_number: int
    date: date
    payment: Decimal
    principal: Decimal
    interest: Decimal
    ending_balance: Decimal
    is_actual: bool = False

    @classmethod
    def from_installment(cls, installment: ScheduledInstallment) -> 'ScheduleRow':
        return cls(
            sequence_number=installment.sequence_number,
            date=installment.due_date,
            payment=installment.scheduled_payment_amount,
            principal=installment.scheduled_principal,
            interest=installment.scheduled_interest,
            ending_balance=installment.projected_ending_balance
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence_number': self.sequence_number,
            'date': self.date.isoformat(),
            'payment': str(self.payment),
            'principal': str(self.principal),
            'interest': str(self.interest),
            'ending_balance': str(self.ending_balance),
            'is_actual': self.is_actual
        }

    def to_string(self) -> str:
        """Format for display"""
        kind = "actual" if self.is_actual else "scheduled"
        return (
            f"pmt number {self.sequence_number} ({kind}), date {self.date.isoformat()}, "
            f"payment ${self.payment:,}, interest paid ${self.interest:,}, "
            f"ending balance ${self.ending_balance:,}"
        )


def format_schedule(rows: Sequence[ScheduleRow]) -> str:
    """Amortization table as text, one installment per line"""
    return "\n".join(row.to_string() for row in rows)


class ScheduleView:
    """
    Projections over the original schedule and the latest replay result
    """

    def __init__(self, definition: LoanDefinition, base_schedule: Schedule, result: RecalculationResult):
        self.definition = definition
        self.base_schedule = base_schedule
        self.result = result

    def scheduled_only(self) -> List[ScheduleRow]:
        """Rows exactly as built from the loan terms"""
        return [ScheduleRow.from_installment(row) for row in self.base_schedule.installments]

    def actual_only(self) -> List[ScheduleRow]:
        """One row per recorded payment with its actual date and allocation (payoff excess left out)"""
        return [
            ScheduleRow(
                sequence_number=allocation.sequence_number,
                date=allocation.payment_date,
                payment=allocation.applied_amount,
                principal=allocation.principal_paid,
                interest=allocation.interest_paid,
                ending_balance=allocation.resulting_balance,
                is_actual=True
            )
            for allocation in self.result.allocations
        ]

    def combined(self) -> List[ScheduleRow]:
        """Actual rows for paid installments, current scheduled rows for the rest"""
        actual = {row.sequence_number: row for row in self.actual_only()}
        rows = []
        for installment in self.result.schedule.installments:
            if installment.sequence_number in actual:
                rows.append(actual[installment.sequence_number])
            else:
                rows.append(ScheduleRow.from_installment(installment))
        return rows

    def rows(self, mode: ScheduleMode) -> List[ScheduleRow]:
        if mode == ScheduleMode.SCHEDULED:
            return self.scheduled_only()
        if mode == ScheduleMode.ACTUAL:
            return self.actual_only()
        return self.combined()

    def current_balance(self, as_of_date: date) -> Decimal:
        """
        Outstanding balance after the highest-numbered payment

        Between that payment and the next scheduled due date the interest
        accrued so far is added for display. With no payments the balance is
        the principal, accruing from the origination date.
        """
        schedule = self.result.schedule
        if self.result.allocations:
            latest = self.result.allocations[-1]
            balance = latest.resulting_balance
            reference_date = latest.payment_date
            next_installment = schedule.get(latest.sequence_number + 1)
        else:
            balance = self.definition.principal
            reference_date = self.definition.origination_date
            next_installment = schedule.get(1)

        if balance <= ZERO or next_installment is None:
            return balance

        if reference_date < as_of_date < next_installment.due_date:
            elapsed_days = days_between(reference_date, as_of_date)
            period_days = nominal_period_days(next_installment.due_date, self.definition.payment_frequency)
            accrued = round_amount(
                balance * self.definition.periodic_rate * Decimal(elapsed_days) / Decimal(period_days),
                self.definition.precision
            )
            return balance + accrued

        return balance
