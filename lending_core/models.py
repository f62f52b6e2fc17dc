"""
Lending Data Model

Loan, Installment, Payment and User records, plus the Actor supplied by the
identity provider. Records serialize to JSON-compatible dicts for the record
store: Decimal as strings, dates and datetimes as ISO strings.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Any

from .money import format_money


class LoanStatus(Enum):
    """Loan lifecycle states"""
    APPLIED = "applied"        # Customer applied, waiting for a decision
    APPROVED = "approved"      # Officer/admin approved
    REJECTED = "rejected"      # Application rejected (terminal)
    DISBURSED = "disbursed"    # Funds disbursed, in repayment
    CLOSED = "closed"          # Balance repaid (terminal)

    @property
    def is_terminal(self) -> bool:
        return self in (LoanStatus.REJECTED, LoanStatus.CLOSED)


class Role(Enum):
    """Roles supplied by the identity provider"""
    CUSTOMER = "customer"
    OFFICER = "officer"
    ADMIN = "admin"


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as reported by the identity provider"""
    user_id: str
    role: Role


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime


@dataclass
class Installment:
    """One period of an amortization schedule"""
    installment_number: int
    due_date: date
    payment_amount: Decimal
    principal_component: Decimal
    interest_component: Decimal
    remaining_balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'installment_number': self.installment_number,
            'due_date': self.due_date.isoformat(),
            'payment_amount': format_money(self.payment_amount),
            'principal_component': format_money(self.principal_component),
            'interest_component': format_money(self.interest_component),
            'remaining_balance': format_money(self.remaining_balance),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            installment_number=data['installment_number'],
            due_date=date.fromisoformat(data['due_date']),
            payment_amount=Decimal(data['payment_amount']),
            principal_component=Decimal(data['principal_component']),
            interest_component=Decimal(data['interest_component']),
            remaining_balance=Decimal(data['remaining_balance']),
        )


@dataclass
class Loan(StorageRecord):
    """Loan application with its terms, schedule and current status"""
    applicant_id: str
    principal: Decimal
    annual_rate_percent: Decimal
    term_months: int
    purpose: str
    start_date: date
    schedule: List[Installment] = field(default_factory=list)
    outstanding_balance: Decimal = Decimal('0.00')
    status: LoanStatus = LoanStatus.APPLIED

    applied_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    decision_comment: Optional[str] = None
    disbursed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def scheduled_payment(self) -> Decimal:
        """Level payment of the plan (first installment)"""
        return self.schedule[0].payment_amount if self.schedule else Decimal('0.00')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'applicant_id': self.applicant_id,
            'principal': format_money(self.principal),
            'annual_rate_percent': str(self.annual_rate_percent),
            'term_months': self.term_months,
            'purpose': self.purpose,
            'start_date': self.start_date.isoformat(),
            'schedule': [installment.to_dict() for installment in self.schedule],
            'outstanding_balance': format_money(self.outstanding_balance),
            'status': self.status.value,
            'applied_at': _iso(self.applied_at),
            'approved_by': self.approved_by,
            'approved_at': _iso(self.approved_at),
            'decision_comment': self.decision_comment,
            'disbursed_at': _iso(self.disbursed_at),
            'closed_at': _iso(self.closed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            applicant_id=data['applicant_id'],
            principal=Decimal(data['principal']),
            annual_rate_percent=Decimal(data['annual_rate_percent']),
            term_months=data['term_months'],
            purpose=data['purpose'],
            start_date=date.fromisoformat(data['start_date']),
            schedule=[Installment.from_dict(item) for item in data.get('schedule', [])],
            outstanding_balance=Decimal(data['outstanding_balance']),
            status=LoanStatus(data['status']),
            applied_at=_parse_datetime(data.get('applied_at')),
            approved_by=data.get('approved_by'),
            approved_at=_parse_datetime(data.get('approved_at')),
            decision_comment=data.get('decision_comment'),
            disbursed_at=_parse_datetime(data.get('disbursed_at')),
            closed_at=_parse_datetime(data.get('closed_at')),
        )


@dataclass
class Payment(StorageRecord):
    """Immutable record of a single repayment"""
    loan_id: str
    payer_id: str
    amount: Decimal
    payment_date: date
    sequence: int
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'loan_id': self.loan_id,
            'payer_id': self.payer_id,
            'amount': format_money(self.amount),
            'payment_date': self.payment_date.isoformat(),
            'sequence': self.sequence,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            payer_id=data['payer_id'],
            amount=Decimal(data['amount']),
            payment_date=date.fromisoformat(data['payment_date']),
            sequence=data['sequence'],
            note=data.get('note'),
        )


@dataclass
class User(StorageRecord):
    """Person known to the lending system"""
    name: str
    email: str
    role: Role

    def actor(self) -> Actor:
        return Actor(user_id=self.id, role=self.role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'name': self.name,
            'email': self.email,
            'email_key': self.email.lower(),
            'role': self.role.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            email=data['email'],
            role=Role(data['role']),
        )
