"""
User Directory Module

User records for applicants and staff. Authentication itself (passwords,
tokens) belongs to the identity provider; this module only keeps the
identities and roles the lending engine refers to.
"""

from datetime import datetime, timezone
from typing import List, Optional
import re
import threading
import uuid

from .audit import AuditTrail, AuditEventType
from .errors import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .models import Actor, Role, User
from .permissions import Operation, require
from .storage import RecordStore


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserDirectory:
    """
    Registers and looks up users
    """

    def __init__(self, storage: RecordStore, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "users"
        self.logger = get_logger("lending.users")
        self._register_lock = threading.Lock()

    def register_customer(self, name: str, email: str) -> User:
        """Self-service registration; always yields a customer"""
        return self._create_user(name, email, Role.CUSTOMER, created_by=None)

    def create_staff_user(self, actor: Actor, name: str, email: str, role: Role = Role.OFFICER) -> User:
        """Create an officer or admin account (admin only)"""
        require(actor, Operation.MANAGE_USERS)
        if role == Role.CUSTOMER:
            raise ValidationError("Use register_customer for customer accounts")
        return self._create_user(name, email, role, created_by=actor.user_id)

    def get_user(self, user_id: str) -> User:
        """Get user by ID"""
        data = self.storage.get(self.table_name, user_id)
        if not data:
            raise NotFoundError(f"User {user_id} not found")
        return User.from_dict(data)

    def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup by e-mail address"""
        matches = self.storage.list(self.table_name, {"email_key": email.strip().lower()})
        return User.from_dict(matches[0]) if matches else None

    def list_users(self, actor: Actor, role: Optional[Role] = None) -> List[User]:
        """List users, optionally by role (admin only)"""
        require(actor, Operation.MANAGE_USERS)
        filters = {"role": role.value} if role else None
        return [User.from_dict(data) for data in self.storage.list(self.table_name, filters)]

    def _create_user(self, name: str, email: str, role: Role, created_by: Optional[str]) -> User:
        name = (name or "").strip()
        email = (email or "").strip()
        if len(name) < 2:
            raise ValidationError("name must be at least 2 characters")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(f"Invalid email address: {email!r}")

        with self._register_lock:
            if self.find_by_email(email):
                raise ValidationError(f"Email {email} already registered")

            now = datetime.now(timezone.utc)
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                name=name,
                email=email,
                role=role
            )
            self.storage.put(self.table_name, user.id, user.to_dict())

        log_action(
            self.logger, "info", f"User registered: {role.value}",
            user_id=created_by, action="register_user", resource=f"user:{user.id}"
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user.id,
            metadata={"role": role.value, "email": email},
            user_id=created_by
        )
        return user
