"""
Amortization Schedule Module

Level-payment (annuity) schedule generation. Pure functions: the same terms
always produce the same plan, and the plan always amortizes to exactly zero.
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Dict, List
import calendar

from .errors import ValidationError
from .models import Installment
from .money import Numeric, ZERO, parse_amount, round_money, to_decimal


def as_date(value, field_name: str = "date") -> date:
    """Reduce a datetime to its calendar date; reject anything that is not a date"""
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise ValidationError(f"{field_name} must be a date, got {value!r}")
    return value


def add_months(start_date: date, months: int) -> date:
    """Add calendar months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual percentage rate to a monthly fraction"""
    return annual_rate_percent / Decimal('100') / Decimal('12')


def level_payment(principal: Decimal, rate: Decimal, months: int) -> Decimal:
    """
    Fixed periodic payment that retires principal over months at rate.

    Rounded to cents; this is the amount every installment except possibly
    the last one pays.
    """
    if rate == 0:
        payment = principal / Decimal(months)
    else:
        payment = principal * rate / (Decimal('1') - (Decimal('1') + rate) ** -months)
    return round_money(payment)


def validate_terms(principal: Numeric, annual_rate_percent: Numeric, months: int):
    """Coerce and validate loan terms, returning (principal, rate_percent, months)"""
    principal = parse_amount(principal, "principal")
    annual_rate_percent = to_decimal(annual_rate_percent, "annual_rate_percent")

    if annual_rate_percent < 0:
        raise ValidationError(f"annual_rate_percent must not be negative, got {annual_rate_percent}")
    if isinstance(months, bool) or not isinstance(months, int):
        raise ValidationError(f"term months must be an integer, got {months!r}")
    if months <= 0:
        raise ValidationError(f"term months must be positive, got {months}")

    return principal, annual_rate_percent, months


def generate_schedule(
    principal: Numeric,
    annual_rate_percent: Numeric,
    months: int,
    start_date: date
) -> List[Installment]:
    """
    Generate a level-payment amortization schedule.

    Args:
        principal: Amount borrowed (positive, cents)
        annual_rate_percent: Nominal annual rate in percent, e.g. 12 for 12%
        months: Number of monthly installments
        start_date: Due date of the first installment; later installments
            fall on the same day-of-month

    Returns:
        Installments numbered 1..months. Each remaining_balance is the loan
        balance after that installment; the last one is always zero.
    """
    principal, annual_rate_percent, months = validate_terms(principal, annual_rate_percent, months)
    start_date = as_date(start_date, "start_date")

    rate = monthly_rate(annual_rate_percent)
    payment = level_payment(principal, rate, months)

    schedule = []
    balance = principal

    for number in range(1, months + 1):
        interest = round_money(balance * rate)
        principal_component = round_money(payment - interest)
        balance = round_money(balance - principal_component)
        installment_payment = payment

        if number == months and balance != 0:
            # Absorb cumulative rounding drift into the final installment
            principal_component = principal_component + balance
            installment_payment = principal_component + interest
            balance = ZERO

        schedule.append(Installment(
            installment_number=number,
            due_date=add_months(start_date, number - 1),
            payment_amount=installment_payment,
            principal_component=principal_component,
            interest_component=interest,
            remaining_balance=balance
        ))

    return schedule


def schedule_totals(schedule: List[Installment]) -> Dict[str, Decimal]:
    """Sum the payment, principal and interest columns of a plan"""
    return {
        'total_payment': sum((i.payment_amount for i in schedule), ZERO),
        'total_principal': sum((i.principal_component for i in schedule), ZERO),
        'total_interest': sum((i.interest_component for i in schedule), ZERO),
    }
