"""
Reconciliation Engine Module

Keeps a loan's outstanding balance and schedule state aligned with its
payment history. Two strategies coexist:

- incremental: O(1) balance decrement applied at payment time; it never
  touches per-installment state.
- full recalculation: rebuilds the schedule from the original terms and
  replays the whole ledger. It is the source of truth when the two disagree
  and repairs drift from backdated payments or manual corrections.

Overpayment beyond the outstanding balance is not refunded or carried as a
credit: the balance clamps at zero and the excess is dropped.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List

from .models import Installment, Loan, Payment
from .money import ZERO, round_money
from .schedule import generate_schedule


@dataclass
class ReconciliationResult:
    """Outcome of a full recalculation"""
    schedule: List[Installment]
    outstanding_balance: Decimal
    previous_balance: Decimal
    total_paid: Decimal
    unallocated: Decimal
    payments_replayed: int

    @property
    def drift(self) -> Decimal:
        """How far the stored balance was from the ledger-derived one"""
        return round_money(self.previous_balance - self.outstanding_balance)

    @property
    def should_close(self) -> bool:
        return self.outstanding_balance <= 0


class ReconciliationEngine:
    """
    Stateless balance and schedule reconciliation for a single loan.

    Methods mutate the Loan object they are given; persisting it and applying
    any resulting status transition is the caller's job.
    """

    def apply_payment(self, loan: Loan, amount: Decimal) -> bool:
        """
        Incremental update for one new payment

        Returns:
            True if the balance reached zero and the loan must close
        """
        balance = round_money(loan.outstanding_balance - amount)
        if balance <= 0:
            loan.outstanding_balance = ZERO
            return True
        loan.outstanding_balance = balance
        return False

    def allocate(self, schedule: List[Installment], payments: List[Payment]) -> Decimal:
        """
        Replay payments against installment balances in place.

        Each payment walks installments in number order, skipping settled
        ones, and takes at most one installment payment from each.

        Returns:
            Total amount no installment could absorb
        """
        ordered_payments = sorted(payments, key=lambda p: (p.payment_date, p.sequence))
        ordered_installments = sorted(schedule, key=lambda i: i.installment_number)
        unallocated = ZERO

        for payment in ordered_payments:
            remaining = payment.amount
            for installment in ordered_installments:
                if remaining <= 0:
                    break
                if installment.remaining_balance <= 0:
                    continue
                applied = min(remaining, installment.payment_amount)
                installment.remaining_balance = round_money(installment.remaining_balance - applied)
                remaining = round_money(remaining - applied)
            unallocated = unallocated + remaining

        return unallocated

    def recalculate(self, loan: Loan, payments: List[Payment]) -> ReconciliationResult:
        """
        Full recalculation from original terms and the complete ledger.

        Idempotent: the same loan terms and ledger always give the same
        schedule and balance.
        """
        schedule = generate_schedule(
            loan.principal,
            loan.annual_rate_percent,
            loan.term_months,
            loan.start_date
        )
        unallocated = self.allocate(schedule, payments)

        total_paid = sum((p.amount for p in payments), ZERO)
        outstanding = self.expected_balance(loan, payments)

        result = ReconciliationResult(
            schedule=schedule,
            outstanding_balance=outstanding,
            previous_balance=loan.outstanding_balance,
            total_paid=total_paid,
            unallocated=unallocated,
            payments_replayed=len(payments)
        )

        loan.schedule = schedule
        loan.outstanding_balance = outstanding
        return result

    def expected_balance(self, loan: Loan, payments: List[Payment]) -> Decimal:
        """Ledger-derived balance without touching the loan"""
        total_paid = sum((p.amount for p in payments), ZERO)
        return min(max(round_money(loan.principal - total_paid), ZERO), loan.principal)
