"""
Schedule Module

Level-payment amortization schedule generation and the Schedule aggregate:
an immutable paid prefix plus a replaceable unpaid suffix.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .dates import advance
from .precision import ONE, ZERO, round_amount
from .rates import PaymentFrequency


@dataclass(frozen=True)
class ScheduledInstallment:
    """Single entry in amortization schedule"""
    sequence_number: int
    due_date: date
    scheduled_interest: Decimal
    scheduled_principal: Decimal
    scheduled_payment_amount: Decimal
    projected_ending_balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence_number': self.sequence_number,
            'due_date': self.due_date.isoformat(),
            'scheduled_interest': str(self.scheduled_interest),
            'scheduled_principal': str(self.scheduled_principal),
            'scheduled_payment_amount': str(self.scheduled_payment_amount),
            'projected_ending_balance': str(self.projected_ending_balance)
        }


@dataclass(frozen=True)
class Schedule:
    """
    Ordered installments split at the latest actual payment.

    Recalculation never edits an installment; it builds a new suffix and a
    new Schedule around it, so earlier snapshots stay inspectable.
    """
    prefix: Tuple[ScheduledInstallment, ...] = ()
    suffix: Tuple[ScheduledInstallment, ...] = ()

    @property
    def installments(self) -> Tuple[ScheduledInstallment, ...]:
        return self.prefix + self.suffix

    def __len__(self) -> int:
        return len(self.prefix) + len(self.suffix)

    def __iter__(self):
        return iter(self.installments)

    def get(self, sequence_number: int) -> Optional[ScheduledInstallment]:
        """Installment by sequence number, or None when outside the schedule"""
        if 1 <= sequence_number <= len(self):
            return self.installments[sequence_number - 1]
        return None

    def split_after(self, sequence_number: int) -> 'Schedule':
        """Same installments with the prefix ending at `sequence_number`"""
        rows = self.installments
        return Schedule(prefix=rows[:sequence_number], suffix=rows[sequence_number:])

    def replace_suffix(self, suffix: Sequence[ScheduledInstallment]) -> 'Schedule':
        return Schedule(prefix=self.prefix, suffix=tuple(suffix))

    @property
    def final_balance(self) -> Decimal:
        rows = self.installments
        return rows[-1].projected_ending_balance if rows else ZERO


def level_payment(principal: Decimal, rate: Decimal, count: int, precision: int) -> Decimal:
    """
    Level payment for an amortizing loan

    Standard loan payment formula: P * i / (1 - (1 + i)^-n), or P / n when
    the loan is interest free.
    """
    if rate == ZERO:
        payment = principal / Decimal(count)
    else:
        payment = principal * rate / (ONE - (ONE + rate) ** -count)
    return round_amount(payment, precision)


def due_dates(first_due_date: date, frequency: PaymentFrequency, count: int) -> List[date]:
    """`count` consecutive due dates starting at `first_due_date`"""
    dates = [first_due_date]
    while len(dates) < count:
        dates.append(advance(dates[-1], frequency))
    return dates


def amortize(
    opening_balance: Decimal,
    dates: Sequence[date],
    start_sequence: int,
    payment_amount: Decimal,
    rate: Decimal,
    precision: int
) -> Tuple[ScheduledInstallment, ...]:
    """
    Amortize `opening_balance` over the given due dates with a level payment.

    The last installment absorbs any rounding residue so the projected ending
    balance is exactly zero. If the level payment retires the balance before
    the last date, that installment becomes the final one.
    """
    rows = []
    balance = opening_balance
    last_index = len(dates) - 1

    for index, due_date in enumerate(dates):
        interest = round_amount(balance * rate, precision)
        principal = payment_amount - interest

        if index == last_index or principal >= balance:
            # Balloon correction: pay exactly what's left
            principal = balance
            rows.append(ScheduledInstallment(
                sequence_number=start_sequence + index,
                due_date=due_date,
                scheduled_interest=interest,
                scheduled_principal=principal,
                scheduled_payment_amount=principal + interest,
                projected_ending_balance=round_amount(ZERO, precision)
            ))
            break

        balance = balance - principal
        rows.append(ScheduledInstallment(
            sequence_number=start_sequence + index,
            due_date=due_date,
            scheduled_interest=interest,
            scheduled_principal=principal,
            scheduled_payment_amount=payment_amount,
            projected_ending_balance=balance
        ))

    return tuple(rows)


def build_schedule(
    principal: Decimal,
    rate: Decimal,
    count: int,
    first_payment_date: date,
    frequency: PaymentFrequency,
    precision: int
) -> Schedule:
    """Initial schedule for a loan: a pure function of its terms"""
    payment_amount = level_payment(principal, rate, count, precision)
    rows = amortize(
        opening_balance=principal,
        dates=due_dates(first_payment_date, frequency, count),
        start_sequence=1,
        payment_amount=payment_amount,
        rate=rate,
        precision=precision
    )
    return Schedule(suffix=rows)
