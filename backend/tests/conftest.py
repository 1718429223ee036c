"""Pytest configuration and fixtures for bottleworks tests.

Tests run against an in-memory SQLite database (aiosqlite) through the
real SqlStore / SqlAuditSink; the status validator, notifier and payment
gateway are fakes.
"""

from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bottleworks.database import Base, get_db
from bottleworks.deps import get_notifier, get_validator
from bottleworks.main import app
from bottleworks.models import AuditLog, SalesOrder
from bottleworks.schemas.order import ValidationResult
from bottleworks.schemas.payment import CaptureConfirmation
from bottleworks.services.audit import SqlAuditSink
from bottleworks.services.ledger import QuantityLedger
from bottleworks.services.orders import OrderStateMachine
from bottleworks.services.payments import PaymentService
from bottleworks.services.store import SqlStore
from bottleworks.services.workflow import BatchWorkflowEngine
from bottleworks.utils.numbering import CodeGenerator


# ── Fakes ────────────────────────────────────────────────────────

class FakeValidator:
    """Stand-in for ``validate_order_status_transition``.

    Answers from ``results`` keyed by target status; anything else is an
    allowed transition without warnings.  ``before_answer`` runs inside
    ``validate`` to simulate a concurrent writer.
    """

    def __init__(self):
        self.results: dict[str, ValidationResult] = {}
        self.calls: list[tuple[str, str]] = []
        self.before_answer: Callable[[], Awaitable[None]] | None = None

    def answer(self, new_status: str, *, warnings=(), blockers=()) -> None:
        self.results[new_status] = ValidationResult(
            valid=not blockers,
            new_status=new_status,
            warnings=list(warnings),
            blockers=list(blockers),
            requires_override=bool(warnings or blockers),
        )

    async def validate(self, order_id: str, new_status: str) -> ValidationResult:
        self.calls.append((order_id, new_status))
        if self.before_answer is not None:
            await self.before_answer()
        return self.results.get(
            new_status, ValidationResult(valid=True, new_status=new_status),
        )


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, dict]] = []

    async def notify(self, event: str, payload: dict) -> None:
        self.sent.append((event, payload))


class FakeGateway:
    def __init__(self, status: str = "COMPLETED"):
        self.status = status
        self.captures: list[tuple[str, str, float]] = []

    async def capture(self, order_id: str, payment_type: str, amount: float) -> CaptureConfirmation:
        self.captures.append((order_id, payment_type, amount))
        return CaptureConfirmation(
            capture_id=f"CAP-{len(self.captures):04d}",
            amount=amount,
            status=self.status,
            method="paypal",
            payer_email="buyer@example.com",
        )


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own BEGIN handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ── Services ─────────────────────────────────────────────────────

@pytest.fixture
def validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(db_session: AsyncSession) -> SqlStore:
    return SqlStore(db_session)


@pytest.fixture
def ledger(store: SqlStore) -> QuantityLedger:
    return QuantityLedger(store)


@pytest.fixture
def machine(db_session, store, validator, notifier) -> OrderStateMachine:
    return OrderStateMachine(
        store, validator, SqlAuditSink(db_session), notifier, CodeGenerator(db_session),
    )


@pytest.fixture
def workflow(db_session, store) -> BatchWorkflowEngine:
    return BatchWorkflowEngine(
        store, SqlAuditSink(db_session), CodeGenerator(db_session), strict_step_order=False,
    )


@pytest.fixture
def payments(db_session, store) -> PaymentService:
    return PaymentService(store, SqlAuditSink(db_session))


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def order(machine: OrderStateMachine) -> SalesOrder:
    """Draft order that needs labels and a 250.00 deposit."""
    return await machine.create_order(
        actor="staff-1", subtotal=1000.0, deposit_required=True, deposit_amount=250.0,
    )


@pytest.fixture
def set_status(store: SqlStore):
    """Force an order into a status without going through the validator."""
    async def _set(order_id: str, status: str) -> SalesOrder:
        return await store.update(SalesOrder, order_id, {"status": status})
    return _set


@pytest.fixture
def audit_entries(db_session: AsyncSession):
    async def _entries(entity_id: str, action: str | None = None) -> list[AuditLog]:
        stmt = select(AuditLog).where(AuditLog.entity_id == entity_id)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        result = await db_session.execute(stmt.order_by(AuditLog.created_at))
        return list(result.scalars().all())
    return _entries


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(db_session, validator, notifier) -> AsyncGenerator[AsyncClient, None]:
    """API client with the DB session, validator and notifier overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_validator] = lambda: validator
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers() -> dict:
    return {"X-Actor-Id": "staff-1"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
