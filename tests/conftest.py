import pytest
import os
import threading
import uuid
from datetime import date

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-kpi-review-suite"
os.environ["SCHEDULER_ENABLED"] = "false"

from app.database import Base, get_db
from app.dependencies import get_effect_runner
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite needs explicit BEGIN for SAVEPOINTs to nest inside the test transaction
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    join_transaction_mode="create_savepoint",
)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def connection():
    """One outer transaction per test; everything below it is rolled back."""
    connection = engine.connect()
    transaction = connection.begin()
    yield connection
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def session_factory(connection):
    """Factory for extra sessions (scheduler, effects) on the test transaction."""
    def _factory():
        return TestingSessionLocal(bind=connection)
    return _factory


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Service commits only release a savepoint inside the test transaction."""
    session = session_factory()
    yield session
    session.close()


# ---------------------------------------------------------------------------
# Tenants and people
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def make_company(db_session):
    from app.models.company import Company

    def _make(name=None):
        company = Company(name=name or f"Acme {uuid.uuid4().hex[:8]}")
        db_session.add(company)
        db_session.commit()
        return company
    return _make


@pytest.fixture(scope="function")
def make_user(db_session):
    from app.models.user import User, UserRole

    def _make(company, role=UserRole.EMPLOYEE, name=None, manager=None, email="auto", **extra):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            name=name or f"{role.value.title()} {suffix}",
            email=f"{role.value}.{suffix}@example.com" if email == "auto" else email,
            role=role,
            company_id=company.id if company is not None else None,
            manager_id=manager.id if manager is not None else None,
            is_active=True,
            **extra,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope="function")
def company(make_company):
    return make_company("Alpha Corp")


@pytest.fixture(scope="function")
def hr_user(make_user, company):
    from app.models.user import UserRole
    return make_user(company, UserRole.HR, name="Hannah HR")


@pytest.fixture(scope="function")
def manager(make_user, company):
    from app.models.user import UserRole
    return make_user(company, UserRole.MANAGER, name="Mark Manager")


@pytest.fixture(scope="function")
def employee(make_user, company, manager):
    from app.models.user import UserRole
    return make_user(company, UserRole.EMPLOYEE, name="Eve Employee", manager=manager, payroll_number="PR-001")


@pytest.fixture(scope="function")
def annual_period(db_session, company):
    from app.models.kpi_period_setting import KpiPeriodSetting
    period = KpiPeriodSetting(
        company_id=company.id,
        period_type="annual",
        quarter=None,
        year=2026,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        is_active=True,
    )
    db_session.add(period)
    db_session.commit()
    return period


@pytest.fixture(scope="function")
def actor_for():
    from app.services.access import Actor

    def _actor(user, company_id="home"):
        return Actor(
            user_id=user.id,
            role=user.role,
            company_id=user.company_id if company_id == "home" else company_id,
        )
    return _actor


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens with company_id."""
    from app.core.security import create_access_token

    def _get_token(user, company_id="home"):
        return create_access_token(
            subject=user.email or str(user.id),
            user_id=user.id,
            role=user.role.value,
            company_id=user.company_id if company_id == "home" else company_id,
        )
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _headers(user, company_id="home"):
        return {"Authorization": f"Bearer {get_token(user, company_id)}"}
    return _headers


# ---------------------------------------------------------------------------
# Delivery doubles
# ---------------------------------------------------------------------------

class RecordingDispatcher:
    """Stands in for NotificationDispatcher; records every send."""

    def __init__(self, fail_for=(), raise_for=()):
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.sent = []
        self._lock = threading.Lock()

    def send(self, company_id, recipient, template_type, variables=None):
        from app.services.dispatcher import DeliveryResult
        with self._lock:
            self.sent.append((company_id, recipient, template_type, dict(variables or {})))
        if recipient in self.raise_for:
            raise RuntimeError(f"transport exploded for {recipient}")
        if recipient in self.fail_for:
            return DeliveryResult(False, "smtp", recipient, error="mailbox unavailable")
        return DeliveryResult(True, "webhook", recipient)

    def recipients(self, template_type=None):
        return [r for _, r, t, _ in self.sent if template_type is None or t == template_type]


class RecordingRunner:
    """Replaces the EffectRunner in API tests so effects can be asserted on."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, background_tasks, effects):
        self.scheduled.extend(effects)


@pytest.fixture(scope="function")
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture(scope="function")
def make_dispatcher():
    return RecordingDispatcher


@pytest.fixture(scope="function")
def recording_runner():
    return RecordingRunner()


@pytest.fixture(scope="function")
def client(db_session, recording_runner):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_effect_runner] = lambda: recording_runner
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
