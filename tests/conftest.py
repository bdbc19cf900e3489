"""Shared test fixtures for all test modules."""

import contextlib
from datetime import timedelta
from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import modelpass.models  # noqa: F401
from modelpass.core import database as db_module
from modelpass.core.config import settings
from modelpass.core.database import Base, get_db
from modelpass.models.plan import DurationUnit
from modelpass.models.settled_payment import SettledPaymentRecord
from modelpass.models.shared import utc_now
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.repositories.resource_repository import ResourceRepository
from modelpass.schemas.plan import PlanCreate, ResourceCreate

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def client():
    """Create test client."""
    from modelpass.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Build Authorization headers carrying a caller token."""

    def _headers(caller_id: str) -> dict[str, str]:
        token = jwt.encode(
            {"sub": caller_id}, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def resource(db_session):
    """A resource "m1" owned by "owner-1"."""
    return ResourceRepository(db_session).create(
        ResourceCreate(id="m1", owner_id="owner-1", name="Sentiment model")
    )


@pytest.fixture
def day_plan(db_session, resource):
    """An $8 plan billed per day, 60 requests per minute."""
    return PlanRepository(db_session).create(
        PlanCreate(
            id="p1",
            resource_id=resource.id,
            name="Day pass",
            base_price=Decimal("8"),
            period_unit=DurationUnit.DAY,
            requests_per_minute=60,
            requests_per_month=10000,
        )
    )


@pytest.fixture
def age_claim(db_session):
    """Backdate a settlement claim so it is older than the claim lease."""

    def _age(settlement_ref: str) -> None:
        lease = timedelta(seconds=settings.SETTLEMENT_CLAIM_LEASE_SECONDS)
        db_session.execute(
            update(SettledPaymentRecord)
            .where(SettledPaymentRecord.settlement_ref == settlement_ref)
            .values(updated_at=utc_now() - lease - timedelta(minutes=1))
        )
        db_session.commit()
        db_session.expire_all()

    return _age
