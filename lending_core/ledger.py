"""
Payment Ledger Module

Append-only store of repayment events. Payments are never updated or
deleted; the ledger does not know about loan status, callers decide whether
a payment is allowed. Appends for one loan must be linearized by the caller
(LoanLifecycle records payments while holding that loan's lock).
"""

from datetime import datetime, timezone, date
from decimal import Decimal
from typing import List, Optional
import uuid

from .errors import NotFoundError, ValidationError
from .logging_config import get_logger
from .models import Payment
from .money import Numeric, ZERO, parse_amount
from .schedule import as_date
from .storage import RecordStore


class PaymentLedger:
    """
    Append-only payment ledger backed by a record store
    """

    def __init__(self, storage: RecordStore, table_name: str = "payments"):
        self.storage = storage
        self.table_name = table_name
        self.logger = get_logger("lending.ledger")

    def record(
        self,
        loan_id: str,
        payer_id: str,
        amount: Numeric,
        payment_date: Optional[date] = None,
        note: Optional[str] = None
    ) -> Payment:
        """
        Append a payment to the ledger

        Args:
            loan_id: Loan the payment is applied to
            payer_id: Identity that made the payment
            amount: Positive payment amount
            payment_date: Value date of the payment (defaults to today)
            note: Optional free-text note

        Returns:
            The stored Payment
        """
        if not loan_id:
            raise ValidationError("loan_id is required")
        if not payer_id:
            raise ValidationError("payer_id is required")
        amount = parse_amount(amount)
        payment_date = date.today() if payment_date is None else as_date(payment_date, "payment_date")

        now = datetime.now(timezone.utc)
        # Ledger-wide counter; monotonic within one loan because its appends are serialized
        sequence = self.storage.count(self.table_name) + 1
        payment = Payment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            payer_id=payer_id,
            amount=amount,
            payment_date=payment_date,
            sequence=sequence,
            note=note
        )
        self.storage.put(self.table_name, payment.id, payment.to_dict())

        self.logger.debug(f"Payment {payment.id} recorded for loan {loan_id}: {amount}")
        return payment

    def list_for_loan(self, loan_id: str) -> List[Payment]:
        """Get payments for a loan, oldest payment date first"""
        records = self.storage.list(self.table_name, {"loan_id": loan_id})
        payments = [Payment.from_dict(data) for data in records]
        payments.sort(key=lambda p: (p.payment_date, p.sequence))
        return payments

    def get_payment(self, payment_id: str) -> Payment:
        """Get a single payment by ID"""
        data = self.storage.get(self.table_name, payment_id)
        if not data:
            raise NotFoundError(f"Payment {payment_id} not found")
        return Payment.from_dict(data)

    def total_paid(self, loan_id: str) -> Decimal:
        """Sum of all payment amounts recorded for a loan"""
        return sum((p.amount for p in self.list_for_loan(loan_id)), ZERO)
