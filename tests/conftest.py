import pytest
import os
from datetime import date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app.database import Base, get_db, get_session_factory
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Fixed "today" for service-level tests; scenario dates are in September 2025
TODAY = date(2025, 8, 25)


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test; services commit and roll back freely."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()

@pytest.fixture(scope="function")
def leave_types(db_session):
    """casual and health as seeded in production, plus a non-throttled vacation type."""
    from app.models.leave_type import LeaveType
    from app.services.leave_types import LeaveTypeRegistry

    registry = LeaveTypeRegistry(db_session)
    registry.seed_defaults()
    vacation = LeaveType(
        code="vacation",
        name="Vacation",
        annual_days=12,
        max_consecutive_days=10,
        notice_period_days=0,
        carry_forward_days=5,
    )
    db_session.add(vacation)
    db_session.commit()
    return {lt.code: lt for lt in registry.list()}

def _make_user(db_session, email, role, manager=None, department="Engineering", full_name=None):
    from app.models.user import User

    user = User(
        email=email,
        full_name=full_name or email.split("@")[0].title(),
        role=role,
        manager_id=manager.id if manager else None,
        department=department,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user

@pytest.fixture(scope="function")
def admin_user(db_session):
    from app.models.user import UserRole
    return _make_user(db_session, "admin@example.com", UserRole.ADMIN, department="HR")

@pytest.fixture(scope="function")
def manager_user(db_session):
    from app.models.user import UserRole
    return _make_user(db_session, "manager@example.com", UserRole.MANAGER)

@pytest.fixture(scope="function")
def employee_user(db_session, manager_user):
    from app.models.user import UserRole
    return _make_user(db_session, "employee@example.com", UserRole.EMPLOYEE, manager=manager_user)

@pytest.fixture(scope="function")
def other_employee(db_session, manager_user):
    from app.models.user import UserRole
    return _make_user(db_session, "other@example.com", UserRole.EMPLOYEE, manager=manager_user, department="Sales")

@pytest.fixture(scope="function")
def other_manager(db_session):
    from app.models.user import UserRole
    return _make_user(db_session, "other.manager@example.com", UserRole.MANAGER, department="Sales")

@pytest.fixture(scope="function")
def make_user(db_session):
    def _factory(email, role, manager=None, department="Engineering"):
        return _make_user(db_session, email, role, manager=manager, department=department)
    return _factory

@pytest.fixture(scope="function")
def lifecycle(db_session, leave_types, admin_user):
    from app.services.leave_lifecycle import LeaveLifecycleService
    return LeaveLifecycleService(db_session, today=lambda: TODAY)

@pytest.fixture(scope="function")
def ledger(db_session):
    from app.services.leave_balance import BalanceLedger
    return BalanceLedger(db_session)

@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create bearer headers for a user."""
    from app.services.auth import create_access_token

    def _get_token(user):
        token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return _get_token

@pytest.fixture(scope="function")
def client(engine, db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    # Background notifications open their own sessions on the same test engine
    background_sessions = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: background_sessions
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
