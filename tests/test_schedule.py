"""
Test suite for amortization schedule generation

Level-payment math, final-installment rounding correction and calendar-month
due dates. Every schedule must amortize to exactly zero.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from lending_core.errors import ValidationError
from lending_core.schedule import (
    add_months, as_date, generate_schedule, level_payment, monthly_rate, schedule_totals
)


class TestAddMonths:
    """Test calendar-month date arithmetic"""

    def test_same_day_of_month(self):
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)
        assert add_months(date(2024, 1, 15), 0) == date(2024, 1, 15)

    def test_year_rollover(self):
        assert add_months(date(2024, 11, 10), 3) == date(2025, 2, 10)
        assert add_months(date(2024, 1, 1), 24) == date(2026, 1, 1)

    def test_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)  # Leap year
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 1, 31), 3) == date(2024, 4, 30)


class TestLevelPayment:
    """Test annuity payment formula"""

    def test_monthly_rate(self):
        assert monthly_rate(Decimal('12')) == Decimal('0.01')

    def test_standard_annuity(self):
        # 1200 at 1% per month over 12 months
        assert level_payment(Decimal('1200.00'), Decimal('0.01'), 12) == Decimal('106.62')

    def test_zero_rate_divides_evenly(self):
        assert level_payment(Decimal('1200.00'), Decimal('0'), 12) == Decimal('100.00')
        assert level_payment(Decimal('1000.00'), Decimal('0'), 3) == Decimal('333.33')


class TestGenerateSchedule:
    """Test full schedule generation"""

    def test_reference_scenario_first_installment(self):
        """1200 at 12% over 12 months: 1% monthly, first interest 12.00"""
        schedule = generate_schedule(Decimal('1200.00'), Decimal('12'), 12, date(2024, 1, 1))

        assert len(schedule) == 12
        first = schedule[0]
        assert first.installment_number == 1
        assert first.due_date == date(2024, 1, 1)
        assert first.payment_amount == Decimal('106.62')
        assert first.interest_component == Decimal('12.00')
        assert first.principal_component == Decimal('94.62')
        assert first.remaining_balance == Decimal('1105.38')

        second = schedule[1]
        assert second.interest_component == Decimal('11.05')
        assert second.principal_component == Decimal('95.57')
        assert second.remaining_balance == Decimal('1009.81')

    def test_fully_amortizes_to_zero(self):
        schedule = generate_schedule(Decimal('1200.00'), Decimal('12'), 12, date(2024, 1, 1))

        assert schedule[-1].remaining_balance == Decimal('0.00')
        totals = schedule_totals(schedule)
        assert totals['total_principal'] == Decimal('1200.00')
        assert totals['total_payment'] == totals['total_principal'] + totals['total_interest']

    @pytest.mark.parametrize("principal,rate,months", [
        ('1000.00', '0', 3),
        ('5000.00', '7.5', 36),
        ('10000.00', '6.25', 60),
        ('999.99', '19.99', 7),
        ('250000.00', '4.5', 360),
        ('0.05', '3', 4),
    ])
    def test_principal_recovered_to_the_cent(self, principal, rate, months):
        schedule = generate_schedule(principal, rate, months, date(2024, 3, 15))

        assert len(schedule) == months
        assert sum(i.principal_component for i in schedule) == Decimal(principal)
        assert schedule[-1].remaining_balance == Decimal('0.00')

    def test_balance_chain_is_consistent(self):
        principal = Decimal('5000.00')
        schedule = generate_schedule(principal, Decimal('7.5'), 36, date(2024, 1, 1))

        previous = principal
        for installment in schedule:
            assert previous - installment.principal_component == installment.remaining_balance
            previous = installment.remaining_balance

    def test_components_add_up_and_stay_non_negative(self):
        schedule = generate_schedule(Decimal('10000.00'), Decimal('6.25'), 60, date(2024, 1, 1))

        for installment in schedule:
            assert installment.principal_component + installment.interest_component == installment.payment_amount
            assert installment.principal_component >= 0
            assert installment.interest_component >= 0

    def test_zero_rate_schedule(self):
        """Zero interest: equal principal-only installments except the adjusted last one"""
        schedule = generate_schedule(Decimal('1000.00'), Decimal('0'), 3, date(2024, 1, 1))

        assert [i.payment_amount for i in schedule] == [
            Decimal('333.33'), Decimal('333.33'), Decimal('333.34')
        ]
        assert all(i.interest_component == Decimal('0.00') for i in schedule)
        assert schedule[-1].principal_component == Decimal('333.34')

    def test_zero_rate_even_split(self):
        schedule = generate_schedule(Decimal('1200.00'), Decimal('0'), 12, date(2024, 1, 1))

        assert all(i.payment_amount == Decimal('100.00') for i in schedule)

    def test_single_installment(self):
        """One month: principal plus one period of interest"""
        schedule = generate_schedule(Decimal('1000.00'), Decimal('12'), 1, date(2024, 1, 1))

        assert len(schedule) == 1
        only = schedule[0]
        assert only.interest_component == Decimal('10.00')
        assert only.principal_component == Decimal('1000.00')
        assert only.payment_amount == Decimal('1010.00')
        assert only.remaining_balance == Decimal('0.00')

    def test_due_dates_follow_calendar_months(self):
        schedule = generate_schedule(Decimal('400.00'), Decimal('5'), 4, date(2024, 1, 31))

        assert [i.due_date for i in schedule] == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]

    def test_deterministic(self):
        first = generate_schedule('7500.00', '9.9', 24, date(2024, 6, 1))
        second = generate_schedule('7500.00', '9.9', 24, date(2024, 6, 1))

        assert first == second

    def test_accepts_numeric_strings_and_ints(self):
        schedule = generate_schedule(1200, 12, 12, date(2024, 1, 1))

        assert schedule[0].payment_amount == Decimal('106.62')


class TestScheduleValidation:
    """Test input validation"""

    @pytest.mark.parametrize("principal", ['0', '-100.00', 'abc', '10.001'])
    def test_invalid_principal(self, principal):
        with pytest.raises(ValidationError):
            generate_schedule(principal, '5', 12, date(2024, 1, 1))

    def test_negative_rate(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            generate_schedule('1000.00', '-1', 12, date(2024, 1, 1))

    @pytest.mark.parametrize("months", [0, -3, 1.5, True])
    def test_invalid_term(self, months):
        with pytest.raises(ValidationError):
            generate_schedule('1000.00', '5', months, date(2024, 1, 1))

    def test_datetime_start_reduced_to_date(self):
        schedule = generate_schedule('1200.00', '12', 12, datetime(2024, 1, 31, 23, 59))

        assert schedule[0].due_date == date(2024, 1, 31)
        assert type(schedule[0].due_date) is date

    def test_non_date_start_rejected(self):
        with pytest.raises(ValidationError, match="start_date"):
            generate_schedule('1200.00', '12', 12, "2024-01-31")

    def test_as_date(self):
        assert as_date(date(2024, 5, 3)) == date(2024, 5, 3)
        assert as_date(datetime(2024, 5, 3, 17, 30)) == date(2024, 5, 3)
        with pytest.raises(ValidationError, match="due"):
            as_date(None, "due")

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            generate_schedule('1000.00', '5', 0, date(2024, 1, 1))
