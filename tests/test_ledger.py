"""
Test suite for the payment ledger

Append-only recording, date ordering and validation of payment events.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from lending_core.errors import NotFoundError, ValidationError
from lending_core.ledger import PaymentLedger
from lending_core.storage import InMemoryStore


@pytest.fixture
def storage():
    return InMemoryStore()


@pytest.fixture
def ledger(storage):
    return PaymentLedger(storage)


class TestRecord:
    """Test appending payments"""

    def test_record_payment(self, ledger):
        payment = ledger.record("LOAN001", "CUST001", Decimal('106.62'), date(2024, 2, 1), note="February")

        assert payment.id
        assert payment.loan_id == "LOAN001"
        assert payment.payer_id == "CUST001"
        assert payment.amount == Decimal('106.62')
        assert payment.payment_date == date(2024, 2, 1)
        assert payment.note == "February"
        assert payment.sequence == 1

    def test_payment_date_defaults_to_today(self, ledger):
        payment = ledger.record("LOAN001", "CUST001", "50.00")

        assert payment.payment_date == date.today()

    def test_datetime_is_reduced_to_date(self, ledger):
        payment = ledger.record("LOAN001", "CUST001", "50.00", datetime(2024, 5, 3, 17, 30, tzinfo=timezone.utc))

        assert payment.payment_date == date(2024, 5, 3)

    def test_persisted_round_trip(self, ledger):
        payment = ledger.record("LOAN001", "CUST001", "75.10", date(2024, 1, 5))

        loaded = ledger.get_payment(payment.id)
        assert loaded == payment

    def test_sequence_is_ledger_wide(self, ledger):
        first = ledger.record("LOAN001", "CUST001", "10.00", date(2024, 1, 1))
        ledger.record("LOAN002", "CUST002", "10.00", date(2024, 1, 1))
        third = ledger.record("LOAN001", "CUST001", "10.00", date(2024, 1, 1))

        assert third.sequence == 3
        assert third.sequence > first.sequence

    def test_record_does_not_scan_payments(self):
        """Appending costs the same no matter how many payments exist"""
        class ListCountingStore(InMemoryStore):
            def __init__(self):
                super().__init__()
                self.list_calls = []

            def list(self, table, filters=None):
                records = super().list(table, filters)
                self.list_calls.append(table)
                return records

        storage = ListCountingStore()
        ledger = PaymentLedger(storage)
        for _ in range(20):
            ledger.record("LOAN001", "CUST001", "10.00", date(2024, 1, 1))
        storage.list_calls.clear()

        payment = ledger.record("LOAN002", "CUST002", "10.00", date(2024, 1, 1))

        assert storage.list_calls == []
        assert payment.sequence == 21

    @pytest.mark.parametrize("amount", [0, '-5.00', '0.00', '12.345', 'ten'])
    def test_rejects_invalid_amount(self, ledger, storage, amount):
        with pytest.raises(ValidationError):
            ledger.record("LOAN001", "CUST001", amount, date(2024, 1, 1))

        assert storage.count("payments") == 0

    def test_rejects_missing_references(self, ledger):
        with pytest.raises(ValidationError, match="loan_id"):
            ledger.record("", "CUST001", "10.00")
        with pytest.raises(ValidationError, match="payer_id"):
            ledger.record("LOAN001", "", "10.00")

    def test_rejects_non_date(self, ledger):
        with pytest.raises(ValidationError, match="payment_date"):
            ledger.record("LOAN001", "CUST001", "10.00", "2024-01-01")


class TestListForLoan:
    """Test ordered retrieval"""

    def test_sorted_by_payment_date(self, ledger):
        ledger.record("LOAN001", "CUST001", "30.00", date(2024, 3, 1))
        ledger.record("LOAN001", "CUST001", "10.00", date(2024, 1, 1))
        ledger.record("LOAN001", "CUST001", "20.00", date(2024, 2, 1))

        payments = ledger.list_for_loan("LOAN001")
        assert [p.amount for p in payments] == [Decimal('10.00'), Decimal('20.00'), Decimal('30.00')]

    def test_same_day_keeps_recording_order(self, ledger):
        first = ledger.record("LOAN001", "CUST001", "1.00", date(2024, 1, 1))
        second = ledger.record("LOAN001", "CUST001", "2.00", date(2024, 1, 1))

        payments = ledger.list_for_loan("LOAN001")
        assert [p.id for p in payments] == [first.id, second.id]

    def test_scoped_to_loan(self, ledger):
        ledger.record("LOAN001", "CUST001", "10.00", date(2024, 1, 1))
        ledger.record("LOAN002", "CUST002", "99.00", date(2024, 1, 1))

        assert len(ledger.list_for_loan("LOAN001")) == 1
        assert ledger.list_for_loan("LOAN404") == []

    def test_total_paid(self, ledger):
        ledger.record("LOAN001", "CUST001", "10.10", date(2024, 1, 1))
        ledger.record("LOAN001", "CUST001", "20.20", date(2024, 2, 1))

        assert ledger.total_paid("LOAN001") == Decimal('30.30')
        assert ledger.total_paid("LOAN404") == Decimal('0.00')


class TestAppendOnly:
    """The ledger exposes no update or delete"""

    def test_no_mutation_api(self, ledger):
        assert not hasattr(ledger, "update")
        assert not hasattr(ledger, "delete")

    def test_unknown_payment(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_payment("missing")
