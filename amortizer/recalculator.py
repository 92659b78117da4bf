"""
Recalculation Module

Replays the payment ledger against the original schedule. Each payment's
interest accrues on the balance left by the installment before it, for the
days actually elapsed, so payments are always applied in ascending sequence
order. A payment landing far from its due date re-dates every later
installment by one calendar month, and the later installments are always
re-amortized from the new balance with the loan's level payment.

Replay builds new values only. A failure leaves whatever the caller holds
untouched, so a rejected mutation can simply be retried.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import logging

from .config import get_config
from .dates import days_between, nominal_period_days, shift_months
from .errors import SequenceError
from .ledger import ActualPayment, PaymentLedger
from .precision import ZERO, round_amount
from .schedule import Schedule, amortize
from .terms import LoanDefinition

logger = logging.getLogger("amortizer.recalculator")


@dataclass(frozen=True)
class AllocationResult:
    """How one actual payment split between interest and principal"""
    sequence_number: int
    principal_paid: Decimal
    interest_paid: Decimal
    resulting_balance: Decimal
    payment_date: date
    amount: Decimal
    reference_date: date          # Date interest accrued from
    reference_balance: Decimal    # Balance interest accrued on
    date_shift: int = 0           # Months later installments moved (-1 earlier, +1 later)
    excess: Decimal = ZERO        # Part of a payoff payment beyond balance plus interest

    @property
    def is_payoff(self) -> bool:
        return self.resulting_balance == ZERO

    @property
    def applied_amount(self) -> Decimal:
        """Amount split between interest and principal"""
        return self.principal_paid + self.interest_paid

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence_number': self.sequence_number,
            'payment_date': self.payment_date.isoformat(),
            'amount': str(self.amount),
            'principal_paid': str(self.principal_paid),
            'interest_paid': str(self.interest_paid),
            'resulting_balance': str(self.resulting_balance),
            'date_shift': self.date_shift,
            'excess': str(self.excess)
        }


@dataclass(frozen=True)
class RecalculationResult:
    """Schedule and allocations produced by one full replay"""
    schedule: Schedule
    allocations: Tuple[AllocationResult, ...] = ()

    def allocation_for(self, sequence_number: int) -> Optional[AllocationResult]:
        for allocation in self.allocations:
            if allocation.sequence_number == sequence_number:
                return allocation
        return None

    @property
    def is_paid_off(self) -> bool:
        return bool(self.allocations) and self.allocations[-1].is_payoff and not self.schedule.suffix


class Recalculator:
    """
    Applies actual payments to a schedule
    """

    def __init__(self, definition: LoanDefinition, shift_threshold_days: Optional[int] = None):
        self.definition = definition
        self.rate = definition.periodic_rate
        self.payment_amount = definition.level_payment
        if shift_threshold_days is None:
            shift_threshold_days = get_config().date_shift_threshold_days
        self.shift_threshold_days = shift_threshold_days

    def replay(self, base_schedule: Schedule, ledger: PaymentLedger) -> RecalculationResult:
        """
        Fold every ledger entry, in ascending sequence order, over the original schedule

        Args:
            base_schedule: Schedule exactly as built from the loan terms
            ledger: Actual payments

        Returns:
            RecalculationResult with the new schedule and one allocation per payment
        """
        schedule = Schedule(suffix=base_schedule.installments)
        allocations: Dict[int, AllocationResult] = {}

        for payment in ledger.entries:
            schedule, allocation = self.apply(schedule, payment, allocations)
            allocations[payment.sequence_number] = allocation

        return RecalculationResult(
            schedule=schedule,
            allocations=tuple(allocations[key] for key in sorted(allocations))
        )

    def apply(
        self,
        schedule: Schedule,
        payment: ActualPayment,
        allocations: Dict[int, AllocationResult]
    ) -> Tuple[Schedule, AllocationResult]:
        """Apply one payment; `allocations` holds results for lower sequence numbers"""
        installment = schedule.get(payment.sequence_number)
        if installment is None:
            raise SequenceError(
                f"Installment {payment.sequence_number} is outside the current schedule "
                f"(1..{len(schedule)})"
            )

        precision = self.definition.precision
        reference_date, reference_balance = self._reference_state(
            schedule, payment.sequence_number, allocations
        )

        # Interest for the days actually elapsed, as a share of the nominal period
        elapsed_days = max(days_between(reference_date, payment.payment_date), 0)
        period_days = nominal_period_days(installment.due_date, self.definition.payment_frequency)
        interest_due = round_amount(
            reference_balance * self.rate * Decimal(elapsed_days) / Decimal(period_days),
            precision
        )

        # Principal may be negative when the payment doesn't cover interest
        principal_paid = payment.amount - interest_due
        resulting_balance = reference_balance - principal_paid
        split = schedule.split_after(payment.sequence_number)

        if resulting_balance <= ZERO:
            # The payment is capped at balance plus interest; the rest is reported as excess
            allocation = AllocationResult(
                sequence_number=payment.sequence_number,
                principal_paid=reference_balance,
                interest_paid=interest_due,
                resulting_balance=round_amount(ZERO, precision),
                payment_date=payment.payment_date,
                amount=payment.amount,
                reference_date=reference_date,
                reference_balance=reference_balance,
                excess=payment.amount - interest_due - reference_balance
            )
            logger.info(
                f"Installment {payment.sequence_number} pays off the loan "
                f"({allocation.excess} over the outstanding balance); "
                f"{len(split.suffix)} later installments dropped"
            )
            return split.replace_suffix(()), allocation

        delta_days = days_between(payment.payment_date, installment.due_date)
        shift = 0
        if delta_days > self.shift_threshold_days:
            shift = -1
        elif delta_days < -self.shift_threshold_days:
            shift = 1

        allocation = AllocationResult(
            sequence_number=payment.sequence_number,
            principal_paid=principal_paid,
            interest_paid=interest_due,
            resulting_balance=resulting_balance,
            payment_date=payment.payment_date,
            amount=payment.amount,
            reference_date=reference_date,
            reference_balance=reference_balance,
            date_shift=shift,
            excess=round_amount(ZERO, precision)
        )
        logger.debug(
            f"Installment {payment.sequence_number}: interest {interest_due} over "
            f"{elapsed_days}/{period_days} days, principal {principal_paid}, balance {resulting_balance}"
        )

        if shift:
            logger.info(
                f"Payment for installment {payment.sequence_number} is {abs(delta_days)} days "
                f"{'early' if shift < 0 else 'late'}; moving {len(split.suffix)} later "
                f"installments one month {'earlier' if shift < 0 else 'later'}"
            )

        if not split.suffix:
            if resulting_balance > ZERO:
                logger.warning(
                    f"Final installment {payment.sequence_number} leaves {resulting_balance} outstanding"
                )
            return split, allocation

        due_dates = [
            shift_months(row.due_date, shift) if shift else row.due_date
            for row in split.suffix
        ]
        suffix = amortize(
            opening_balance=resulting_balance,
            dates=due_dates,
            start_sequence=payment.sequence_number + 1,
            payment_amount=self.payment_amount,
            rate=self.rate,
            precision=precision
        )
        return split.replace_suffix(suffix), allocation

    def _reference_state(
        self,
        schedule: Schedule,
        sequence_number: int,
        allocations: Dict[int, AllocationResult]
    ) -> Tuple[date, Decimal]:
        """Date and balance interest accrues from for `sequence_number`"""
        previous = sequence_number - 1
        if previous in allocations:
            allocation = allocations[previous]
            return allocation.payment_date, allocation.resulting_balance

        installment = schedule.get(previous)
        if installment is not None:
            return installment.due_date, installment.projected_ending_balance

        return self.definition.origination_date, self.definition.principal
