"""
Test suite for payment recalculation

Tests interest allocation for actual payment dates, due-date shifting for
payments far from their due date, re-amortization of later installments and
deterministic full-ledger replay.
"""

import pytest
from decimal import Decimal
from datetime import date

from amortizer.errors import SequenceError
from amortizer.ledger import PaymentLedger
from amortizer.precision import ZERO
from amortizer.recalculator import Recalculator
from amortizer.schedule import build_schedule
from amortizer.terms import LoanDefinition


class TestRecalculator:
    """Test replay of actual payments against the original schedule"""

    def setup_method(self):
        """Set up test fixtures"""
        self.definition = LoanDefinition(
            principal=Decimal('10000'),
            term_years=1,
            nominal_annual_rate=Decimal('12'),
            payment_frequency="monthly",
            compounding_frequency="monthly",
            origination_date=date(2024, 1, 1),
            first_payment_date=date(2024, 2, 1),
            precision=2
        )
        self.recalculator = Recalculator(self.definition, shift_threshold_days=30)
        self.base = build_schedule(
            principal=self.definition.principal,
            rate=self.recalculator.rate,
            count=self.definition.installment_count,
            first_payment_date=self.definition.first_payment_date,
            frequency=self.definition.payment_frequency,
            precision=self.definition.precision
        )

    def replay(self, *payments):
        ledger = PaymentLedger()
        for sequence_number, payment_date, amount in payments:
            ledger.record(sequence_number, payment_date, amount)
        return self.recalculator.replay(self.base, ledger)

    def test_empty_ledger_returns_base_schedule(self):
        """Test replaying nothing reproduces the original schedule"""
        result = self.replay()
        assert result.schedule.installments == self.base.installments
        assert result.allocations == ()
        assert not result.is_paid_off

    def test_on_time_scheduled_payment(self):
        """Test an on-time payment of the scheduled amount matches the schedule"""
        result = self.replay((1, date(2024, 2, 1), Decimal('888.49')))
        allocation = result.allocation_for(1)

        assert allocation.interest_paid == Decimal('100.00')
        assert allocation.principal_paid == Decimal('788.49')
        assert allocation.resulting_balance == Decimal('9211.51')
        assert allocation.date_shift == 0
        assert allocation.reference_date == date(2024, 1, 1)
        assert allocation.reference_balance == Decimal('10000')
        assert result.schedule.installments == self.base.installments
        assert len(result.schedule.prefix) == 1

    def test_every_installment_on_time_retires_loan(self):
        """Test paying the schedule exactly brings the balance to zero"""
        payments = [
            (row.sequence_number, row.due_date, row.scheduled_payment_amount)
            for row in self.base.installments
        ]
        result = self.replay(*payments)

        for row in self.base.installments:
            allocation = result.allocation_for(row.sequence_number)
            assert allocation.interest_paid == row.scheduled_interest
            assert allocation.principal_paid == row.scheduled_principal
            assert allocation.resulting_balance == row.projected_ending_balance

        assert result.is_paid_off
        assert result.schedule.final_balance == ZERO

    def test_late_payment_shifts_later_installments(self):
        """Test a payment more than 30 days late moves later due dates one month"""
        result = self.replay((1, date(2024, 3, 5), Decimal('888.49')))
        allocation = result.allocation_for(1)

        # 64 days elapsed against a 31-day period
        assert allocation.interest_paid == Decimal('206.45')
        assert allocation.principal_paid == Decimal('682.04')
        assert allocation.resulting_balance == Decimal('9317.96')
        assert allocation.date_shift == 1

        schedule = result.schedule
        assert schedule.get(1).due_date == date(2024, 2, 1)
        assert schedule.get(2).due_date == date(2024, 4, 1)
        assert schedule.get(12).due_date == date(2025, 2, 1)
        assert schedule.get(2).scheduled_interest == Decimal('93.18')
        assert schedule.get(2).scheduled_principal == Decimal('795.31')
        assert schedule.get(2).projected_ending_balance == Decimal('8522.65')
        assert schedule.final_balance == ZERO

    def test_late_within_threshold_keeps_dates(self):
        """Test a payment late by less than the threshold accrues interest but keeps dates"""
        result = self.replay((1, date(2024, 2, 20), Decimal('888.49')))
        allocation = result.allocation_for(1)

        # 50 days elapsed against a 31-day period
        assert allocation.interest_paid == Decimal('161.29')
        assert allocation.date_shift == 0
        assert result.schedule.get(2).due_date == date(2024, 3, 1)

    def test_threshold_is_exclusive(self):
        """Test exactly 30 days late doesn't shift"""
        result = self.replay((1, date(2024, 3, 2), Decimal('888.49')))
        assert result.allocation_for(1).date_shift == 0
        assert result.schedule.get(2).due_date == date(2024, 3, 1)

    def test_early_payment_shifts_later_installments_earlier(self):
        """Test a payment more than 30 days early moves later due dates back a month"""
        result = self.replay(
            (1, date(2024, 2, 1), Decimal('888.49')),
            (3, date(2024, 2, 21), Decimal('888.49'))
        )
        allocation = result.allocation_for(3)

        # Paid before the reference date: no interest accrues
        assert allocation.reference_date == date(2024, 3, 1)
        assert allocation.reference_balance == Decimal('8415.14')
        assert allocation.interest_paid == ZERO
        assert allocation.principal_paid == Decimal('888.49')
        assert allocation.resulting_balance == Decimal('7526.65')
        assert allocation.date_shift == -1

        schedule = result.schedule
        assert schedule.get(2).due_date == date(2024, 3, 1)
        assert schedule.get(3).due_date == date(2024, 4, 1)
        assert schedule.get(4).due_date == date(2024, 4, 1)
        assert schedule.get(12).due_date == date(2024, 12, 1)
        assert schedule.get(4).scheduled_interest == Decimal('75.27')

    def test_shifts_compound(self):
        """Test two late payments move the remaining installments two months"""
        result = self.replay(
            (1, date(2024, 3, 5), Decimal('888.49')),
            (2, date(2024, 5, 10), Decimal('888.49'))
        )
        second = result.allocation_for(2)

        assert second.reference_date == date(2024, 3, 5)
        assert second.reference_balance == Decimal('9317.96')
        # 66 days elapsed against the 31-day period ending 2024-04-01
        assert second.interest_paid == Decimal('198.38')
        assert second.resulting_balance == Decimal('8627.85')
        assert second.date_shift == 1

        assert result.schedule.get(3).due_date == date(2024, 6, 1)
        assert result.schedule.get(12).due_date == date(2025, 3, 1)

    def test_underpayment_grows_balance(self):
        """Test a payment smaller than interest due produces negative principal"""
        result = self.replay((1, date(2024, 2, 1), Decimal('50')))
        allocation = result.allocation_for(1)

        assert allocation.interest_paid == Decimal('100.00')
        assert allocation.principal_paid == Decimal('-50.00')
        assert allocation.resulting_balance == Decimal('10050.00')
        assert result.schedule.get(2).scheduled_interest == Decimal('100.50')
        assert result.schedule.final_balance == ZERO

    def test_overpayment_pays_off_loan(self):
        """Test a payment covering the balance ends the schedule"""
        result = self.replay((1, date(2024, 2, 1), Decimal('20000')))
        allocation = result.allocation_for(1)

        assert allocation.interest_paid == Decimal('100.00')
        assert allocation.principal_paid == Decimal('10000')
        assert allocation.resulting_balance == ZERO
        assert allocation.excess == Decimal('9900.00')
        assert allocation.applied_amount == Decimal('10100.00')
        assert allocation.is_payoff
        assert len(result.schedule) == 1
        assert result.schedule.suffix == ()
        assert result.is_paid_off

    @pytest.mark.parametrize("amount", ['888.49', '50.00', '10100.00', '20000', '10100.01'])
    def test_allocation_parts_add_up_to_amount(self, amount):
        """Test principal, interest and excess always sum to the payment"""
        allocation = self.replay((1, date(2024, 2, 1), Decimal(amount))).allocation_for(1)

        assert allocation.principal_paid + allocation.interest_paid + allocation.excess == Decimal(amount)
        assert allocation.excess >= ZERO

    def test_exact_payoff_has_no_excess(self):
        """Test paying balance plus interest exactly leaves nothing over"""
        allocation = self.replay((1, date(2024, 2, 1), Decimal('10100.00'))).allocation_for(1)

        assert allocation.is_payoff
        assert allocation.excess == ZERO
        assert str(allocation.excess) == '0.00'

    def test_payment_after_payoff_is_rejected(self):
        """Test ledger entries beyond a payoff raise SequenceError"""
        with pytest.raises(SequenceError):
            self.replay(
                (1, date(2024, 2, 1), Decimal('20000')),
                (2, date(2024, 3, 1), Decimal('888.49'))
            )

    def test_sequence_outside_schedule(self):
        """Test sequence numbers beyond the schedule raise SequenceError"""
        with pytest.raises(SequenceError):
            self.replay((13, date(2025, 2, 1), Decimal('888.49')))

    def test_partial_prepayment_reamortizes_and_shortens(self):
        """Test a large payment keeps the level payment and retires the loan sooner"""
        result = self.replay((1, date(2024, 2, 1), Decimal('5000')))

        assert result.allocation_for(1).resulting_balance == Decimal('5100.00')
        assert len(result.schedule) < 12
        assert result.schedule.get(2).scheduled_payment_amount == Decimal('888.49')
        assert result.schedule.final_balance == ZERO

    def test_replay_is_order_independent(self):
        """Test insertion order of ledger entries doesn't change the result"""
        payments = [
            (1, date(2024, 2, 3), Decimal('888.49')),
            (3, date(2024, 4, 20), Decimal('700')),
            (5, date(2024, 6, 1), Decimal('1200')),
        ]
        forward = self.replay(*payments)
        backward = self.replay(*reversed(payments))

        assert forward.schedule == backward.schedule
        assert forward.allocations == backward.allocations

    def test_replay_is_deterministic(self):
        """Test replaying the same ledger twice gives equal results"""
        ledger = PaymentLedger()
        ledger.record(1, date(2024, 2, 10), Decimal('888.49'))
        ledger.record(2, date(2024, 4, 15), Decimal('888.49'))

        first = self.recalculator.replay(self.base, ledger)
        second = self.recalculator.replay(self.base, ledger)
        assert first == second

    def test_unpaid_previous_installment_uses_projection(self):
        """Test a payment after an unpaid installment accrues from its projected balance"""
        result = self.replay((2, date(2024, 3, 1), Decimal('888.49')))
        allocation = result.allocation_for(2)

        assert allocation.reference_date == date(2024, 2, 1)
        assert allocation.reference_balance == Decimal('9211.51')
        assert allocation.interest_paid == Decimal('92.12')
        assert allocation.resulting_balance == Decimal('8415.14')

    def test_custom_threshold(self):
        """Test the shift threshold is configurable"""
        recalculator = Recalculator(self.definition, shift_threshold_days=10)
        ledger = PaymentLedger()
        ledger.record(1, date(2024, 2, 20), Decimal('888.49'))
        result = recalculator.replay(self.base, ledger)

        assert result.allocation_for(1).date_shift == 1
        assert result.schedule.get(2).due_date == date(2024, 4, 1)

    def test_allocation_to_dict(self):
        """Test allocation record fields"""
        result = self.replay((1, date(2024, 3, 5), Decimal('888.49')))
        assert result.allocation_for(1).to_dict() == {
            'sequence_number': 1,
            'payment_date': '2024-03-05',
            'amount': '888.49',
            'principal_paid': '682.04',
            'interest_paid': '206.45',
            'resulting_balance': '9317.96',
            'date_shift': 1,
            'excess': '0.00'
        }
