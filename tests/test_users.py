"""
Test suite for the user directory
"""

import pytest

from lending_core.audit import AuditTrail, AuditEventType
from lending_core.errors import NotFoundError, PermissionDeniedError, ValidationError
from lending_core.models import Actor, Role
from lending_core.storage import InMemoryStore
from lending_core.users import UserDirectory


@pytest.fixture
def storage():
    return InMemoryStore()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def directory(storage, audit_trail):
    return UserDirectory(storage, audit_trail)


@pytest.fixture
def admin():
    return Actor(user_id="ADMIN001", role=Role.ADMIN)


class TestRegistration:
    """Test self-service registration"""

    def test_register_customer(self, directory):
        user = directory.register_customer("Alice Borrower", "alice@example.com")

        assert user.role == Role.CUSTOMER
        assert user.name == "Alice Borrower"
        assert directory.get_user(user.id) == user

    def test_actor_carries_identity(self, directory):
        user = directory.register_customer("Alice Borrower", "alice@example.com")

        assert user.actor() == Actor(user_id=user.id, role=Role.CUSTOMER)

    def test_duplicate_email_case_insensitive(self, directory):
        directory.register_customer("Alice Borrower", "alice@example.com")

        with pytest.raises(ValidationError, match="already registered"):
            directory.register_customer("Alice Again", "ALICE@Example.com")

    @pytest.mark.parametrize("name,email", [
        ("A", "a@example.com"),
        ("Alice", "not-an-email"),
        ("Alice", ""),
        ("", "alice@example.com"),
    ])
    def test_invalid_registration(self, directory, storage, name, email):
        with pytest.raises(ValidationError):
            directory.register_customer(name, email)

        assert storage.count("users") == 0

    def test_registration_audited(self, directory, audit_trail):
        user = directory.register_customer("Alice Borrower", "alice@example.com")

        events = audit_trail.get_events_for_entity("user", user.id)
        assert [e.event_type for e in events] == [AuditEventType.USER_REGISTERED]
        assert events[0].metadata['role'] == "customer"


class TestStaffAccounts:
    """Test admin-created officer and admin accounts"""

    def test_admin_creates_officer(self, directory, admin):
        officer = directory.create_staff_user(admin, "Olivia Officer", "olivia@bank.example")

        assert officer.role == Role.OFFICER

    def test_officer_cannot_create_staff(self, directory):
        officer = Actor(user_id="OFF001", role=Role.OFFICER)

        with pytest.raises(PermissionDeniedError):
            directory.create_staff_user(officer, "Mallory", "mallory@bank.example", Role.ADMIN)

    def test_staff_path_rejects_customer_role(self, directory, admin):
        with pytest.raises(ValidationError):
            directory.create_staff_user(admin, "Carl", "carl@example.com", Role.CUSTOMER)


class TestLookup:
    """Test queries"""

    def test_unknown_user(self, directory):
        with pytest.raises(NotFoundError):
            directory.get_user("missing")

    def test_find_by_email(self, directory):
        user = directory.register_customer("Alice Borrower", "Alice@Example.com")

        assert directory.find_by_email(" alice@example.com ") == user
        assert directory.find_by_email("bob@example.com") is None

    def test_list_users_by_role(self, directory, admin):
        directory.register_customer("Alice Borrower", "alice@example.com")
        directory.create_staff_user(admin, "Olivia Officer", "olivia@bank.example")

        assert len(directory.list_users(admin)) == 2
        assert [u.name for u in directory.list_users(admin, Role.OFFICER)] == ["Olivia Officer"]

    def test_customer_cannot_list_users(self, directory):
        with pytest.raises(PermissionDeniedError):
            directory.list_users(Actor(user_id="CUST001", role=Role.CUSTOMER))
