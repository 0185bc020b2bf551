import pytest
import os
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["PTO_TIMEZONE"] = "UTC"
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)

import pto_service.models  # noqa: F401
from pto_service.database import Base, configure_sqlite, get_db
from pto_service.main import app
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.pto_policy import PtoPolicy
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User, UserRole
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = configure_sqlite(create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))


TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, join_transaction_mode="create_savepoint"
)

# Wednesday; leave dates in the tests sit in March 2030
NOW = datetime(2030, 1, 16, 9, 0, tzinfo=timezone.utc)
YEAR = 2030


class FakeClock:
    """Injectable clock; tests move it with `set`."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, now: datetime):
        self.current = now


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Session joined to an outer transaction; service commits only release savepoints."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


def _user(db, email, role, manager=None, **kwargs):
    user = User(
        email=email,
        full_name=email.split("@")[0].replace(".", " ").title(),
        role=role,
        reports_to_user_id=manager.id if manager else None,
        is_active=True,
        **kwargs
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def hr_admin(db_session):
    return _user(db_session, "hr.admin@example.com", UserRole.HR_ADMIN)


@pytest.fixture(scope="function")
def senior_manager(db_session):
    return _user(db_session, "senior.manager@example.com", UserRole.MANAGER)


@pytest.fixture(scope="function")
def manager(db_session, senior_manager):
    return _user(db_session, "line.manager@example.com", UserRole.MANAGER, manager=senior_manager)


@pytest.fixture(scope="function")
def employee(db_session, manager):
    return _user(
        db_session, "jane.doe@example.com", UserRole.EMPLOYEE, manager=manager, start_date=date(2027, 1, 1)
    )


@pytest.fixture(scope="function")
def colleague(db_session, manager):
    return _user(db_session, "john.roe@example.com", UserRole.EMPLOYEE, manager=manager)


@pytest.fixture(scope="function")
def make_type(db_session):
    def _make_type(code="VAC", **kwargs):
        pto_type = PtoType(name=kwargs.pop("name", code.title()), code=code, **kwargs)
        db_session.add(pto_type)
        db_session.commit()
        return pto_type
    return _make_type


@pytest.fixture(scope="function")
def vacation(make_type):
    return make_type("VAC", name="Vacation", carryover_allowed=True)


@pytest.fixture(scope="function")
def give_balance(db_session):
    """Active policy plus an opening balance row for (user, type, year)."""
    def _give_balance(user, pto_type, amount="10", year=YEAR, **policy_fields):
        policy = PtoPolicy(
            user_id=user.id,
            pto_type_id=pto_type.id,
            initial_days=Decimal(amount),
            annual_accrual_amount=policy_fields.pop("annual_accrual_amount", Decimal(amount)),
            **policy_fields
        )
        balance = PtoBalance(
            user_id=user.id,
            pto_type_id=pto_type.id,
            year=year,
            balance=Decimal(amount),
            pending_balance=Decimal("0"),
            used_balance=Decimal("0"),
        )
        db_session.add_all([policy, balance])
        db_session.commit()
        return balance
    return _give_balance


@pytest.fixture(scope="function")
def vacation_balance(employee, vacation, give_balance):
    return give_balance(employee, vacation, "10")


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def as_user():
    """Headers the identity gateway would forward for `user`."""
    def _as_user(user):
        return {"X-User-ID": str(user.id)}
    return _as_user
