"""
Test suite for schedule generation

Tests the level payment formula, the original amortization table and the
Schedule aggregate. All financial math must be precise.
"""

import pytest
from decimal import Decimal
from datetime import date

from amortizer.precision import ZERO
from amortizer.rates import CompoundingFrequency, PaymentFrequency
from amortizer.schedule import (
    Schedule, ScheduledInstallment, amortize, build_schedule, due_dates, level_payment
)
from amortizer.terms import LoanDefinition


def make_definition(**overrides):
    terms = {
        'principal': Decimal('10000'),
        'term_years': 1,
        'nominal_annual_rate': Decimal('12'),
        'payment_frequency': PaymentFrequency.MONTHLY,
        'compounding_frequency': CompoundingFrequency.MONTHLY,
        'origination_date': date(2024, 1, 1),
        'first_payment_date': date(2024, 2, 1),
        'precision': 2
    }
    terms.update(overrides)
    return LoanDefinition(**terms)


def schedule_for(definition):
    return build_schedule(
        principal=definition.principal,
        rate=definition.periodic_rate,
        count=definition.installment_count,
        first_payment_date=definition.first_payment_date,
        frequency=definition.payment_frequency,
        precision=definition.precision
    )


class TestLevelPayment:
    """Test the level payment formula"""

    def test_one_year_monthly(self):
        """Test 10,000 at 12% over 12 monthly payments"""
        assert level_payment(Decimal('10000'), Decimal('0.01'), 12, 2) == Decimal('888.49')

    def test_interest_free(self):
        """Test zero rate divides principal evenly"""
        assert level_payment(Decimal('1200'), ZERO, 12, 2) == Decimal('100.00')

    @pytest.mark.parametrize("payment,compounding,expected", [
        (PaymentFrequency.MONTHLY, CompoundingFrequency.MONTHLY, Decimal('1797.66')),
        (PaymentFrequency.WEEKLY, CompoundingFrequency.MONTHLY, Decimal('413.92')),
        (PaymentFrequency.MONTHLY, CompoundingFrequency.QUARTERLY, Decimal('1793.14')),
        (PaymentFrequency.QUARTERLY, CompoundingFrequency.QUARTERLY, Decimal('5410.67')),
        (PaymentFrequency.MONTHLY, CompoundingFrequency.ANNUAL, Decimal('1773.70')),
        (PaymentFrequency.ANNUAL, CompoundingFrequency.ANNUAL, Decimal('21958.92')),
        (PaymentFrequency.SEMIMONTHLY, CompoundingFrequency.DAILY, Decimal('898.62')),
        (PaymentFrequency.SEMIMONTHLY, CompoundingFrequency.MONTHLY, Decimal('897.52')),
    ])
    def test_fifteen_year_loan(self, payment, compounding, expected):
        """Test 200,000 at 7% over 15 years across frequency combinations"""
        definition = make_definition(
            principal=Decimal('200000'),
            term_years=15,
            nominal_annual_rate=Decimal('7'),
            payment_frequency=payment,
            compounding_frequency=compounding
        )
        payment_amount = level_payment(
            definition.principal, definition.periodic_rate, definition.installment_count, 2
        )
        assert payment_amount == expected


class TestBuildSchedule:
    """Test the original amortization table"""

    def setup_method(self):
        self.definition = make_definition()
        self.schedule = schedule_for(self.definition)

    def test_installment_count_and_dates(self):
        """Test one installment per period starting at the first payment date"""
        rows = self.schedule.installments
        assert len(rows) == 12
        assert [row.sequence_number for row in rows] == list(range(1, 13))
        assert rows[0].due_date == date(2024, 2, 1)
        assert rows[1].due_date == date(2024, 3, 1)
        assert rows[-1].due_date == date(2025, 1, 1)

    def test_first_rows(self):
        """Test interest and principal split of the first two installments"""
        first, second = self.schedule.installments[:2]
        assert first.scheduled_payment_amount == Decimal('888.49')
        assert first.scheduled_interest == Decimal('100.00')
        assert first.scheduled_principal == Decimal('788.49')
        assert first.projected_ending_balance == Decimal('9211.51')

        assert second.scheduled_interest == Decimal('92.12')
        assert second.scheduled_principal == Decimal('796.37')
        assert second.projected_ending_balance == Decimal('8415.14')

    def test_final_balance_is_zero(self):
        """Test balloon correction clears the balance on the last installment"""
        final = self.schedule.installments[-1]
        assert final.projected_ending_balance == ZERO
        assert self.schedule.final_balance == ZERO
        assert final.scheduled_payment_amount == final.scheduled_principal + final.scheduled_interest

    def test_principal_sums_to_loan_amount(self):
        """Test scheduled principal adds up to the principal exactly"""
        total = sum((row.scheduled_principal for row in self.schedule), ZERO)
        assert total == Decimal('10000')

    def test_balance_never_increases(self):
        """Test ending balances decrease monotonically"""
        balances = [row.projected_ending_balance for row in self.schedule]
        assert balances == sorted(balances, reverse=True)

    def test_four_decimal_precision(self):
        """Test first rows of a 200,000 loan at four decimal places"""
        definition = make_definition(
            principal=Decimal('200000'), term_years=15, nominal_annual_rate=Decimal('7'), precision=4
        )
        rows = schedule_for(definition).installments
        assert len(rows) == 180
        assert rows[0].scheduled_payment_amount == Decimal('1797.6565')
        assert rows[0].scheduled_interest == Decimal('1166.6667')
        assert rows[0].projected_ending_balance == Decimal('199369.0102')
        assert rows[1].scheduled_interest == Decimal('1162.9859')
        assert rows[1].projected_ending_balance == Decimal('198734.3396')
        assert rows[-1].projected_ending_balance == ZERO

    def test_quarterly_compounding_first_row(self):
        """Test monthly payments with quarterly compounding"""
        definition = make_definition(
            principal=Decimal('200000'), term_years=15, nominal_annual_rate=Decimal('7'),
            compounding_frequency=CompoundingFrequency.QUARTERLY, precision=4
        )
        first = schedule_for(definition).installments[0]
        assert first.scheduled_interest == Decimal('1159.9265')
        assert first.projected_ending_balance == Decimal('199366.7888')

    @pytest.mark.parametrize("payment", list(PaymentFrequency))
    @pytest.mark.parametrize("compounding", list(CompoundingFrequency))
    def test_every_frequency_combination_amortizes(self, payment, compounding):
        """Test every frequency pair retires exactly the principal"""
        definition = make_definition(
            principal=Decimal('25000'), term_years=3, nominal_annual_rate=Decimal('6.5'),
            payment_frequency=payment, compounding_frequency=compounding
        )
        schedule = schedule_for(definition)
        rows = schedule.installments

        assert [row.sequence_number for row in rows] == list(range(1, len(rows) + 1))
        assert len(rows) <= definition.installment_count
        assert schedule.final_balance == ZERO
        assert sum((row.scheduled_principal for row in rows), ZERO) == Decimal('25000')
        assert all(row.due_date > prev.due_date for prev, row in zip(rows, rows[1:]))

    def test_semimonthly_schedule_dates(self):
        """Test semi-monthly installments alternate between the 1st and the 15th"""
        definition = make_definition(payment_frequency=PaymentFrequency.SEMIMONTHLY)
        rows = schedule_for(definition).installments

        assert len(rows) == 24
        assert [row.due_date for row in rows[:4]] == [
            date(2024, 2, 1), date(2024, 2, 15), date(2024, 3, 1), date(2024, 3, 15)
        ]
        assert rows[-1].due_date == date(2025, 1, 15)

    def test_level_payment_retires_balance_early(self):
        """Test the schedule ends once the level payment covers the remaining balance"""
        definition = make_definition(principal=Decimal('10'), precision=0)
        schedule = schedule_for(definition)
        # Payment rounds to 1 and interest on a balance under 50 rounds to 0
        assert len(schedule) == 10
        assert schedule.final_balance == ZERO
        assert all(row.scheduled_interest == ZERO for row in schedule)

    def test_interest_free_schedule(self):
        """Test zero rate schedules carry no interest"""
        rows = amortize(
            opening_balance=Decimal('1200'),
            dates=due_dates(date(2024, 2, 1), PaymentFrequency.MONTHLY, 12),
            start_sequence=1,
            payment_amount=Decimal('100.00'),
            rate=ZERO,
            precision=2
        )
        assert len(rows) == 12
        assert all(row.scheduled_interest == ZERO for row in rows)
        assert rows[-1].projected_ending_balance == ZERO

    def test_amortize_numbers_from_start_sequence(self):
        """Test suffix rows continue the sequence they replace"""
        rows = amortize(
            opening_balance=Decimal('9211.51'),
            dates=[date(2024, 3, 1), date(2024, 4, 1)],
            start_sequence=2,
            payment_amount=Decimal('888.49'),
            rate=Decimal('0.01'),
            precision=2
        )
        assert [row.sequence_number for row in rows] == [2, 3]
        assert rows[0].scheduled_interest == Decimal('92.12')
        # Last date absorbs the remaining balance
        assert rows[1].projected_ending_balance == ZERO
        assert rows[1].scheduled_principal == Decimal('8415.14')


class TestScheduleAggregate:
    """Test the prefix/suffix Schedule value"""

    def setup_method(self):
        self.schedule = schedule_for(make_definition())

    def test_get(self):
        """Test lookup by sequence number"""
        assert self.schedule.get(1).due_date == date(2024, 2, 1)
        assert self.schedule.get(12).sequence_number == 12
        assert self.schedule.get(0) is None
        assert self.schedule.get(13) is None

    def test_split_after(self):
        """Test splitting keeps every installment in order"""
        split = self.schedule.split_after(4)
        assert len(split.prefix) == 4
        assert len(split.suffix) == 8
        assert split.installments == self.schedule.installments

    def test_replace_suffix_returns_new_schedule(self):
        """Test replacing the suffix leaves the original untouched"""
        split = self.schedule.split_after(4)
        truncated = split.replace_suffix(())
        assert len(truncated) == 4
        assert len(split) == 12
        assert len(self.schedule) == 12

    def test_installment_is_immutable(self):
        """Test installments cannot be edited in place"""
        installment = self.schedule.get(1)
        with pytest.raises(AttributeError):
            installment.scheduled_interest = Decimal('0')

    def test_installment_to_dict(self):
        """Test installment record uses strings for amounts and ISO dates"""
        record = self.schedule.get(1).to_dict()
        assert record == {
            'sequence_number': 1,
            'due_date': '2024-02-01',
            'scheduled_interest': '100.00',
            'scheduled_principal': '788.49',
            'scheduled_payment_amount': '888.49',
            'projected_ending_balance': '9211.51'
        }

    def test_empty_schedule(self):
        """Test an empty schedule has zero final balance"""
        empty = Schedule()
        assert len(empty) == 0
        assert empty.final_balance == ZERO
        assert isinstance(self.schedule.get(1), ScheduledInstallment)
