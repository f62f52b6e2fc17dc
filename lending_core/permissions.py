"""
Permission Module

Single capability table keyed by (role, operation). Lifecycle guards consult
it once per call instead of checking role strings ad hoc.
"""

from enum import Enum
from typing import Dict, FrozenSet

from .errors import PermissionDeniedError
from .models import Actor, Role


class Operation(Enum):
    """Guarded lending operations"""
    APPLY = "apply"
    APPROVE = "approve"
    REJECT = "reject"
    DISBURSE = "disburse"
    PAY = "pay"
    RECALCULATE = "recalculate"
    VIEW_LOAN = "view_loan"
    LIST_ALL_LOANS = "list_all_loans"
    MANAGE_USERS = "manage_users"


# Operations a customer may only perform on loans they applied for
OWNER_SCOPED: FrozenSet[Operation] = frozenset({
    Operation.PAY,
    Operation.VIEW_LOAN,
})

_STAFF = frozenset({
    Operation.APPROVE,
    Operation.REJECT,
    Operation.DISBURSE,
    Operation.PAY,
    Operation.RECALCULATE,
    Operation.VIEW_LOAN,
    Operation.LIST_ALL_LOANS,
})

CAPABILITIES: Dict[Role, FrozenSet[Operation]] = {
    Role.CUSTOMER: frozenset({
        Operation.APPLY,
        Operation.PAY,
        Operation.VIEW_LOAN,
    }),
    Role.OFFICER: _STAFF,
    Role.ADMIN: _STAFF | {Operation.MANAGE_USERS},
}


def is_allowed(role: Role, operation: Operation) -> bool:
    """Check the capability table"""
    return operation in CAPABILITIES.get(role, frozenset())


def require(actor: Actor, operation: Operation, owner_id: str = None) -> None:
    """
    Raise PermissionDeniedError unless actor may perform operation.

    Args:
        actor: Caller from the identity provider
        operation: Operation being attempted
        owner_id: Applicant of the loan involved, for owner-scoped checks
    """
    if not is_allowed(actor.role, operation):
        raise PermissionDeniedError(
            f"Role {actor.role.value} may not perform {operation.value}"
        )
    if (actor.role == Role.CUSTOMER and operation in OWNER_SCOPED
            and owner_id is not None and owner_id != actor.user_id):
        raise PermissionDeniedError(
            f"User {actor.user_id} may not {operation.value} another applicant's loan"
        )
