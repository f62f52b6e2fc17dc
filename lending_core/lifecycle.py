"""
Loan Lifecycle Module

State machine for loan applications: apply, approve/reject, disburse,
repay and recalculate. Every mutating operation on a loan runs inside that
loan's exclusive lock and computes the complete new state before writing,
so a failed call leaves the stored loan exactly as it was.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, date
from typing import Dict, FrozenSet, List, Optional
import uuid

from .audit import AuditTrail, AuditEventType
from .config import LendingConfig, get_config
from .errors import InvalidStateError, NotFoundError, ValidationError
from .ledger import PaymentLedger
from .locks import KeyedLock
from .logging_config import get_logger, log_action
from .models import Actor, Loan, LoanStatus, Payment
from .money import Numeric, format_money, parse_amount, to_decimal
from .permissions import Operation, is_allowed, require
from .reconciliation import ReconciliationEngine, ReconciliationResult
from .schedule import as_date, generate_schedule, validate_terms
from .storage import RecordStore


# Allowed status moves; terminal states have none
TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.APPLIED: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.DISBURSED}),
    LoanStatus.DISBURSED: frozenset({LoanStatus.CLOSED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.CLOSED: frozenset(),
}

MIN_PURPOSE_LENGTH = 3


@dataclass
class PaymentOutcome:
    """Result of a repayment: the ledger entry and the updated loan"""
    payment: Payment
    loan: Loan

    @property
    def closed(self) -> bool:
        return self.loan.status == LoanStatus.CLOSED


class LoanLifecycle:
    """
    Manages loans from application through closure
    """

    def __init__(
        self,
        storage: RecordStore,
        ledger: PaymentLedger,
        reconciliation: ReconciliationEngine,
        audit_trail: AuditTrail,
        config: Optional[LendingConfig] = None,
        locks: Optional[KeyedLock] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.reconciliation = reconciliation
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.locks = locks or KeyedLock()
        self.table_name = "loans"
        self.logger = get_logger("lending.lifecycle")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply(
        self,
        actor: Actor,
        principal: Numeric,
        annual_rate_percent: Numeric,
        term_months: int,
        purpose: str,
        start_date: Optional[date] = None
    ) -> Loan:
        """
        Create a loan application and its amortization schedule

        Args:
            actor: Applicant (must be a customer)
            principal: Amount requested
            annual_rate_percent: Nominal annual rate in percent
            term_months: Number of monthly installments
            purpose: What the loan is for
            start_date: First due date (defaults to today)

        Returns:
            Loan in APPLIED status with outstanding balance equal to principal
        """
        require(actor, Operation.APPLY)

        principal, annual_rate_percent, term_months = validate_terms(
            principal, annual_rate_percent, term_months
        )
        if principal > to_decimal(self.config.max_principal, "max_principal"):
            raise ValidationError(f"principal exceeds maximum of {self.config.max_principal}")
        if term_months > self.config.max_term_months:
            raise ValidationError(f"term exceeds maximum of {self.config.max_term_months} months")
        purpose = (purpose or "").strip()
        if len(purpose) < MIN_PURPOSE_LENGTH:
            raise ValidationError(f"purpose must be at least {MIN_PURPOSE_LENGTH} characters")

        now = datetime.now(timezone.utc)
        start_date = now.date() if start_date is None else as_date(start_date, "start_date")
        schedule = generate_schedule(principal, annual_rate_percent, term_months, start_date)

        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            applicant_id=actor.user_id,
            principal=principal,
            annual_rate_percent=annual_rate_percent,
            term_months=term_months,
            purpose=purpose,
            start_date=start_date,
            schedule=schedule,
            outstanding_balance=principal,
            status=LoanStatus.APPLIED,
            applied_at=now
        )

        with self.locks.hold(loan.id):
            self._save_loan(loan)

        log_action(
            self.logger, "info", "Loan application received",
            user_id=actor.user_id, action="apply", resource=f"loan:{loan.id}",
            extra={
                "principal": format_money(principal),
                "annual_rate_percent": str(annual_rate_percent),
                "term_months": term_months,
                "scheduled_payment": format_money(loan.scheduled_payment)
            }
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLIED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "applicant_id": actor.user_id,
                "principal": format_money(principal),
                "annual_rate_percent": str(annual_rate_percent),
                "term_months": term_months,
                "start_date": start_date
            },
            user_id=actor.user_id
        )
        return loan

    def approve(self, actor: Actor, loan_id: str, comment: Optional[str] = None) -> Loan:
        """Approve an applied loan"""
        return self._decide(actor, loan_id, LoanStatus.APPROVED, comment)

    def reject(self, actor: Actor, loan_id: str, comment: Optional[str] = None) -> Loan:
        """Reject an applied loan"""
        return self._decide(actor, loan_id, LoanStatus.REJECTED, comment)

    def decide(self, actor: Actor, loan_id: str, approve: bool, comment: Optional[str] = None) -> Loan:
        """Approve or reject in one call"""
        if approve:
            return self.approve(actor, loan_id, comment)
        return self.reject(actor, loan_id, comment)

    def disburse(self, actor: Actor, loan_id: str) -> Loan:
        """
        Mark an approved loan as disbursed

        The outstanding balance is reset to the full principal; repayments
        are accepted from this point on.
        """
        require(actor, Operation.DISBURSE)

        with self.locks.hold(loan_id):
            loan = self._load_loan(loan_id)
            now = datetime.now(timezone.utc)

            self._transition(loan, LoanStatus.DISBURSED)
            loan.disbursed_at = now
            loan.outstanding_balance = loan.principal
            loan.updated_at = now
            self._save_loan(loan)

            log_action(
                self.logger, "info", "Loan disbursed",
                user_id=actor.user_id, action="disburse", resource=f"loan:{loan_id}",
                extra={"principal": format_money(loan.principal)}
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DISBURSED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"amount": format_money(loan.principal), "disbursed_at": now},
                user_id=actor.user_id
            )
        return loan

    def pay(
        self,
        actor: Actor,
        loan_id: str,
        amount: Numeric,
        payment_date: Optional[date] = None,
        note: Optional[str] = None
    ) -> PaymentOutcome:
        """
        Record a repayment against a disbursed loan

        The payment is appended to the ledger and the outstanding balance is
        decremented incrementally. A balance at or below zero closes the
        loan; any excess is not carried as credit.

        Args:
            actor: Payer
            loan_id: Loan being repaid
            amount: Positive payment amount
            payment_date: Value date (defaults to today)
            note: Optional free-text note

        Returns:
            PaymentOutcome with the new Payment and the updated Loan
        """
        amount = parse_amount(amount)
        if payment_date is not None:
            payment_date = as_date(payment_date, "payment_date")

        with self.locks.hold(loan_id):
            loan = self._load_loan(loan_id)
            require(actor, Operation.PAY, owner_id=loan.applicant_id)
            if loan.status != LoanStatus.DISBURSED:
                raise InvalidStateError(
                    f"Loan {loan_id} is {loan.status.value}; payments require a disbursed loan"
                )

            previous_balance = loan.outstanding_balance
            now = datetime.now(timezone.utc)
            if self.reconciliation.apply_payment(loan, amount):
                self._close(loan, now)
            loan.updated_at = now

            with self.storage.atomic():
                payment = self.ledger.record(
                    loan_id=loan_id,
                    payer_id=actor.user_id,
                    amount=amount,
                    payment_date=payment_date,
                    note=note
                )
                self._save_loan(loan)

            # Audit under the loan lock so the chain follows balance order
            log_action(
                self.logger, "info", "Payment recorded",
                user_id=actor.user_id, action="pay", resource=f"loan:{loan_id}",
                extra={
                    "payment_id": payment.id,
                    "amount": format_money(amount),
                    "outstanding_balance": format_money(loan.outstanding_balance)
                }
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "payment_id": payment.id,
                    "amount": format_money(amount),
                    "payment_date": payment.payment_date,
                    "previous_balance": format_money(previous_balance),
                    "outstanding_balance": format_money(loan.outstanding_balance)
                },
                user_id=actor.user_id
            )
            if loan.status == LoanStatus.CLOSED:
                self._log_closure(actor, loan, reason="paid_in_full")

        return PaymentOutcome(payment=payment, loan=loan)

    def recalculate(self, actor: Actor, loan_id: str) -> Loan:
        """
        Rebuild schedule state and balance from the full payment ledger

        Maintenance operation; repairs any drift left by the incremental
        path. Running it twice on the same ledger gives the same result.
        """
        require(actor, Operation.RECALCULATE)

        with self.locks.hold(loan_id):
            loan = self._load_loan(loan_id)
            payments = self.ledger.list_for_loan(loan_id)

            now = datetime.now(timezone.utc)
            result = self.reconciliation.recalculate(loan, payments)
            closing = result.should_close and loan.status == LoanStatus.DISBURSED
            if closing:
                self._close(loan, now)
            loan.updated_at = now
            self._save_loan(loan)

            self._log_recalculation(actor, loan, result)
            if closing:
                self._log_closure(actor, loan, reason="recalculated")
        return loan

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_loan(self, actor: Actor, loan_id: str) -> Loan:
        """Get a loan; customers may only see their own"""
        loan = self._load_loan(loan_id)
        require(actor, Operation.VIEW_LOAN, owner_id=loan.applicant_id)
        return loan

    def list_loans(
        self,
        actor: Actor,
        status: Optional[LoanStatus] = None,
        applicant_id: Optional[str] = None
    ) -> List[Loan]:
        """
        List loans visible to actor

        Customers only ever see their own loans; staff see all loans and may
        filter by applicant.
        """
        require(actor, Operation.VIEW_LOAN)

        filters = {}
        if not is_allowed(actor.role, Operation.LIST_ALL_LOANS):
            if applicant_id and applicant_id != actor.user_id:
                return []
            filters["applicant_id"] = actor.user_id
        elif applicant_id:
            filters["applicant_id"] = applicant_id
        if status:
            filters["status"] = status.value

        return [Loan.from_dict(data) for data in self.storage.list(self.table_name, filters)]

    def list_payments(self, actor: Actor, loan_id: str) -> List[Payment]:
        """Payment history of a loan, oldest first"""
        self.get_loan(actor, loan_id)
        return self.ledger.list_for_loan(loan_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _decide(self, actor: Actor, loan_id: str, target: LoanStatus, comment: Optional[str]) -> Loan:
        operation = Operation.APPROVE if target == LoanStatus.APPROVED else Operation.REJECT
        require(actor, operation)

        with self.locks.hold(loan_id):
            loan = self._load_loan(loan_id)
            now = datetime.now(timezone.utc)

            self._transition(loan, target)
            loan.approved_by = actor.user_id
            loan.approved_at = now
            loan.decision_comment = comment
            loan.updated_at = now
            self._save_loan(loan)

            event_type = AuditEventType.LOAN_APPROVED if target == LoanStatus.APPROVED else AuditEventType.LOAN_REJECTED
            log_action(
                self.logger, "info", f"Loan {target.value}",
                user_id=actor.user_id, action=operation.value, resource=f"loan:{loan_id}"
            )
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"decided_by": actor.user_id, "comment": comment},
                user_id=actor.user_id
            )
        return loan

    def _transition(self, loan: Loan, target: LoanStatus) -> None:
        """Move loan to target status or raise InvalidStateError"""
        if target not in TRANSITIONS[loan.status]:
            raise InvalidStateError(
                f"Cannot move loan {loan.id} from {loan.status.value} to {target.value}"
            )
        loan.status = target

    def _close(self, loan: Loan, when: datetime) -> None:
        self._transition(loan, LoanStatus.CLOSED)
        loan.closed_at = when

    def _log_recalculation(self, actor: Actor, loan: Loan, result: ReconciliationResult) -> None:
        level = "warning" if result.drift != 0 else "info"
        log_action(
            self.logger, level, "Loan recalculated from ledger",
            user_id=actor.user_id, action="recalculate", resource=f"loan:{loan.id}",
            extra={
                "payments_replayed": result.payments_replayed,
                "previous_balance": format_money(result.previous_balance),
                "outstanding_balance": format_money(result.outstanding_balance),
                "drift": format_money(result.drift),
                "unallocated": format_money(result.unallocated)
            }
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_RECALCULATED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "payments_replayed": result.payments_replayed,
                "total_paid": format_money(result.total_paid),
                "previous_balance": format_money(result.previous_balance),
                "outstanding_balance": format_money(result.outstanding_balance)
            },
            user_id=actor.user_id
        )

    def _log_closure(self, actor: Actor, loan: Loan, reason: str) -> None:
        log_action(
            self.logger, "info", "Loan closed",
            user_id=actor.user_id, action="close", resource=f"loan:{loan.id}",
            extra={"reason": reason}
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_CLOSED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"reason": reason, "closed_at": loan.closed_at},
            user_id=actor.user_id
        )

    def _load_loan(self, loan_id: str) -> Loan:
        data = self.storage.get(self.table_name, loan_id)
        if not data:
            raise NotFoundError(f"Loan {loan_id} not found")
        return Loan.from_dict(data)

    def _save_loan(self, loan: Loan) -> None:
        self.storage.put(self.table_name, loan.id, loan.to_dict())
