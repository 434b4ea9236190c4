"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["CRON_SECRET_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opshub.auth.utils import get_password_hash
from opshub.db.models import (
    Base,
    Department,
    Organization,
    Role,
    User,
    UserRole,
    UserStatus,
)

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    # Import here to ensure env vars are set
    from opshub.dependencies import get_db
    from opshub.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(
    db: Session,
    email: str,
    role: UserRole,
    organization: Organization | None,
    full_name: str,
    role_id: str | None = None,
) -> User:
    user = User(
        id=str(uuid4()),
        organization_id=organization.id if organization else None,
        email=email,
        password_hash=get_password_hash("password123"),
        full_name=full_name,
        role=role,
        role_id=role_id,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def organization(db: Session) -> Organization:
    """Create the main test organization."""
    org = Organization(id=str(uuid4()), name="Acme Support", slug="acme-support", is_active=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def other_organization(db: Session) -> Organization:
    """Create a second organization for scoping tests."""
    org = Organization(id=str(uuid4()), name="Globex", slug="globex", is_active=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def agent_role(db: Session, organization: Organization) -> Role:
    """Create a role without invite capabilities."""
    role = Role(
        id=str(uuid4()),
        organization_id=organization.id,
        name="Agent",
        permissions={"tickets": {"read": True, "write": True}},
    )
    db.add(role)
    db.commit()
    db.refresh(role)
    return role


@pytest.fixture
def manager_role(db: Session, organization: Organization) -> Role:
    """Create a role granting the invite capability."""
    role = Role(
        id=str(uuid4()),
        organization_id=organization.id,
        name="Team Lead",
        permissions={"invite_users": True, "tickets": {"read": True}},
    )
    db.add(role)
    db.commit()
    db.refresh(role)
    return role


@pytest.fixture
def admin_user(db: Session, organization: Organization) -> User:
    """Create an organization admin."""
    return _make_user(db, "admin@acme.test", UserRole.ADMIN, organization, "Alice Admin")


@pytest.fixture
def super_admin(db: Session) -> User:
    """Create a platform super admin without an organization."""
    return _make_user(db, "root@opshub.test", UserRole.SUPER_ADMIN, None, "Root Operator")


@pytest.fixture
def member_user(db: Session, organization: Organization, agent_role: Role) -> User:
    """Create a plain member whose role grants no invite capability."""
    return _make_user(
        db, "member@acme.test", UserRole.MEMBER, organization, "Mo Member", agent_role.id
    )


@pytest.fixture
def lead_user(db: Session, organization: Organization, manager_role: Role) -> User:
    """Create a member whose role grants the invite capability."""
    user = _make_user(
        db, "lead@acme.test", UserRole.MEMBER, organization, "Lee Lead", manager_role.id
    )
    user.department = Department.CUSTOMER_SUPPORT
    db.commit()
    return user


def _client_as(client: TestClient, user: User) -> Generator[TestClient, None, None]:
    from opshub.dependencies import get_current_user
    from opshub.main import app

    def override_get_current_user():
        return user

    app.dependency_overrides[get_current_user] = override_get_current_user
    yield client
    if get_current_user in app.dependency_overrides:
        del app.dependency_overrides[get_current_user]


@pytest.fixture
def admin_client(client: TestClient, admin_user: User) -> Generator[TestClient, None, None]:
    """Create an admin-authenticated test client."""
    yield from _client_as(client, admin_user)


@pytest.fixture
def member_client(client: TestClient, member_user: User) -> Generator[TestClient, None, None]:
    """Create a member-authenticated test client."""
    yield from _client_as(client, member_user)


@pytest.fixture
def super_admin_client(client: TestClient, super_admin: User) -> Generator[TestClient, None, None]:
    """Create a super-admin-authenticated test client."""
    yield from _client_as(client, super_admin)
