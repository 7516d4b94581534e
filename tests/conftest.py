"""
Pytest fixtures for the colony kernel test suite.

Provides:
- Database sessions with per-test rollback
- Identities for the admin, a manager and a read-only viewer
- Builders for colonies, properties and plots
- Captured structured logs

Environment Variables:
- DATABASE_URL: connection URL.  If not set, an in-memory SQLite database
  is used.  Tests marked ``postgres`` (real concurrent sessions) are
  skipped unless the URL points at PostgreSQL.
"""

import json
import logging
import os
import threading
from io import StringIO
from typing import Callable, Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from colony_config import reset_config
from colony_kernel.db.base import Base
from colony_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
)
from colony_kernel.domain.clock import DeterministicClock
from colony_kernel.domain.permissions import Identity, Permission, RoleGrant
from colony_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from colony_kernel.models.city import City
from colony_kernel.services.booking_service import BookingService
from colony_kernel.services.colony_service import ColonyInfo, ColonyService
from colony_kernel.services.plot_service import PlotInfo, PlotService
from colony_kernel.services.property_service import PropertyInfo, PropertyService
from colony_kernel.services.sequence_service import SequenceService
from colony_kernel.services.settings_service import SettingsService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_TEST_URL = "sqlite://"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _fresh_config():
    """Each test resolves configuration from scratch."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def captured_logs():
    """
    Capture colony_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, plot_service):
            plot_service.create_plot(...)
            logs = captured_logs()
            assert any(r["message"] == "plot_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("colony_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=20, max_overflow=10, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


def _truncate_all_tables(engine):
    """Remove committed rows left by tests that use real commits."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    with engine.connect() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
        else:
            for name in table_names:
                conn.execute(text(f"DELETE FROM {name}"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_block`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Savepoints opened by the services nest inside it
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Provide a tracked session factory for concurrent threads (PostgreSQL only).

    Each thread creates its own session and commits for real.  On teardown
    every tracked session is closed and all data is truncated.
    """
    if not is_postgres():
        pytest.skip("requires PostgreSQL (set DATABASE_URL)")

    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()
    _truncate_all_tables(db_engine)


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# =============================================================================
# Identities
# =============================================================================


@pytest.fixture
def admin_identity(test_actor_id) -> Identity:
    return Identity(user_id=test_actor_id, role=RoleGrant("Admin"))


@pytest.fixture
def manager_identity() -> Identity:
    """A non-admin role that may run the plot and booking workflows."""
    return Identity(
        user_id=uuid4(),
        role=RoleGrant(
            "Colony Manager",
            (
                Permission.PLOT_CREATE,
                Permission.PLOT_UPDATE,
                Permission.PLOT_DELETE,
                Permission.BOOKING_CREATE,
                Permission.BOOKING_UPDATE,
            ),
        ),
    )


@pytest.fixture
def viewer_identity() -> Identity:
    return Identity(user_id=uuid4(), role=RoleGrant("Viewer"))


# =============================================================================
# Clock and services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def sequence_service(session) -> SequenceService:
    return SequenceService(session, max_attempts=3)


@pytest.fixture
def colony_service(session) -> ColonyService:
    return ColonyService(session)


@pytest.fixture
def booking_service(session, deterministic_clock) -> BookingService:
    return BookingService(session, clock=deterministic_clock)


@pytest.fixture
def settings_service(session) -> SettingsService:
    return SettingsService(session)


@pytest.fixture
def plot_service(session, deterministic_clock) -> PlotService:
    return PlotService(session, clock=deterministic_clock)


# =============================================================================
# Data builders
# =============================================================================


@pytest.fixture
def city(session) -> City:
    city = City(name="Jaipur", state="Rajasthan", is_active=True)
    session.add(city)
    session.flush()
    return city


@pytest.fixture
def create_colony(colony_service, admin_identity) -> Callable[..., ColonyInfo]:
    """Factory creating colonies through ColonyService."""

    def _create(name: str = "Green Valley", **fields) -> ColonyInfo:
        return colony_service.create_colony({"name": name, **fields}, admin_identity)

    return _create


@pytest.fixture
def colony(create_colony) -> ColonyInfo:
    return create_colony()


@pytest.fixture
def create_property(session, admin_identity) -> Callable[..., PropertyInfo]:
    """Factory creating properties through PropertyService."""

    def _create(colony_id: UUID | None, name: str = "Phase 1", **fields) -> PropertyInfo:
        return PropertyService(session).create_property(
            {"name": name, "colony_id": colony_id, **fields},
            admin_identity,
        )

    return _create


@pytest.fixture
def colony_property(colony, create_property) -> PropertyInfo:
    return create_property(colony.id)


@pytest.fixture
def create_plot(plot_service, colony, colony_property, admin_identity) -> Callable[..., PlotInfo]:
    """
    Factory creating plots in the default colony and property.

    Usage::

        plot = create_plot(area="1000", price_per_sqft="500")
        sold = create_plot(status="sold", identity=admin_identity)
    """

    def _create(
        area: str = "1000",
        price_per_sqft: str = "500",
        identity: Identity | None = None,
        colony_id: UUID | None = None,
        property_id: UUID | None = None,
        **fields,
    ) -> PlotInfo:
        return plot_service.create_plot(
            colony_id or colony.id,
            property_id or colony_property.id,
            {"area": area, "price_per_sqft": price_per_sqft, **fields},
            identity or admin_identity,
        )

    return _create
