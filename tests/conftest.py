"""
Pytest fixtures for the register engine.

One engine and schema per test run; each test gets a session inside an
outer transaction that is rolled back afterwards, so tests never see each
other's sheets or events.  Set DATABASE_URL to a postgresql:// URL to run
against PostgreSQL (required by the tests marked ``postgres``); the
default is in-memory SQLite.

Dates are fixed: the clock reads TODAY, which falls inside the bovine
sheet opened by the ``open_sheet`` fixture.
"""

import json
import logging
import os
from datetime import date
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from contralor_config import get_active_config
from contralor_kernel.db.base import Base
from contralor_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from contralor_kernel.domain.clock import DeterministicClock
from contralor_kernel.domain.dtos import EventSubmission
from contralor_kernel.domain.event_types import EventScope, EventType
from contralor_kernel.logging_config import (
    LOGGER_NAMESPACE,
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from contralor_kernel.models.reference import Animal, Category, Herd
from contralor_kernel.selectors.ledger_selector import LedgerSelector
from contralor_kernel.services.orchestrator import ContralorOrchestrator

TEST_ACTOR_ID = uuid4()

TODAY = date(2024, 9, 30)
SHEET_START = date(2024, 7, 1)
SHEET_END = date(2025, 6, 30)
REGISTRATION_NUMBER = "210-045-117"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite+pysqlite:///:memory:")


def pytest_collection_modifyitems(config, items):
    """PostgreSQL-only tests are skipped on SQLite."""
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires PostgreSQL (set DATABASE_URL)")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# -- logging -----------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _structured_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Engine log records of the current test, parsed from JSON.

        def test_approval_is_logged(captured_logs, approve_event):
            approve_event(EventType.BIRTH, qty_heads=1)
            assert "event_approved" in [r["message"] for r in captured_logs()]
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    engine_logger = logging.getLogger(LOGGER_NAMESPACE)
    engine_logger.addHandler(handler)

    def records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield records

    engine_logger.removeHandler(handler)


# -- database ----------------------------------------------------------------


@pytest.fixture(scope="session")
def db_engine():
    """Engine and schema for the whole run; the ORM guards stay installed."""
    engine = init_engine_from_url(get_database_url())
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """
    Session bound to an outer transaction that is rolled back at teardown.

    ``session.commit()`` inside a test only releases a savepoint.
    """
    connection = db_engine.connect()
    outer = connection.begin()
    sess = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield sess
    finally:
        sess.close()
        outer.rollback()
        connection.close()


@pytest.fixture
def pg_session_factory(db_engine):
    """Factory of sessions that really commit; tables are emptied afterwards."""
    yield get_session_factory()

    with db_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


# -- clock, rules, identities --------------------------------------------------


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at noon register time on TODAY."""
    return DeterministicClock.on(TODAY)


@pytest.fixture
def rules():
    """The bundled DICOSE rule set."""
    return get_active_config()


@pytest.fixture
def firm_id() -> UUID:
    return uuid4()


@pytest.fixture
def premise_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_premise_id() -> UUID:
    """The counterpart premise of a sale or purchase."""
    return uuid4()


# -- reference data ----------------------------------------------------------


@pytest.fixture
def create_category(session, test_actor_id):
    """Factory for catalog categories."""

    def _create(code: str, species: str = "BOVINO", name: str | None = None) -> Category:
        category = Category(
            code=code,
            name=name or code.title(),
            species=species,
            created_by_id=test_actor_id,
        )
        session.add(category)
        session.flush()
        return category

    return _create


@pytest.fixture
def categories(create_category) -> dict[str, Category]:
    """Standard bovine categories."""
    return {
        "VACAS": create_category("VACAS", name="Vacas de cria"),
        "NOVILLOS": create_category("NOVILLOS", name="Novillos 1 a 2 anos"),
        "TERNEROS": create_category("TERNEROS", name="Terneros/as"),
    }


@pytest.fixture
def create_animal(session, test_actor_id, premise_id):
    """Factory for individually identified animals."""

    def _create(
        category: Category | None = None,
        species: str = "BOVINO",
        withdraw_until: date | None = None,
        tag: str | None = None,
    ) -> Animal:
        animal = Animal(
            premise_id=premise_id,
            species=species,
            visual_tag=tag or f"UY-{uuid4().hex[:8]}",
            current_category_id=category.id if category is not None else None,
            withdraw_until=withdraw_until,
            status="ACTIVE",
            created_by_id=test_actor_id,
        )
        session.add(animal)
        session.flush()
        return animal

    return _create


@pytest.fixture
def create_herd(session, test_actor_id, premise_id):
    """Factory for herds."""

    def _create(
        category: Category | None = None,
        species: str = "BOVINO",
        premise: UUID | None = None,
    ) -> Herd:
        herd = Herd(
            premise_id=premise or premise_id,
            species=species,
            name=f"Rodeo {uuid4().hex[:4]}",
            category_id=category.id if category is not None else None,
            created_by_id=test_actor_id,
        )
        session.add(herd)
        session.flush()
        return herd

    return _create


@pytest.fixture
def herd(create_herd, categories) -> Herd:
    """Bovine herd whose default category is NOVILLOS."""
    return create_herd(categories["NOVILLOS"])


# -- services ------------------------------------------------------------------


@pytest.fixture
def orchestrator(session, rules, deterministic_clock) -> ContralorOrchestrator:
    return ContralorOrchestrator(session, rules, deterministic_clock)


@pytest.fixture
def auditor_service(orchestrator):
    return orchestrator.auditor


@pytest.fixture
def guide_registry(orchestrator):
    return orchestrator.guides


@pytest.fixture
def sheet_service(orchestrator):
    return orchestrator.sheets


@pytest.fixture
def balance_service(orchestrator):
    return orchestrator.balances


@pytest.fixture
def approval_service(orchestrator):
    return orchestrator.approvals


@pytest.fixture
def correction_service(orchestrator):
    return orchestrator.corrections


@pytest.fixture
def compliance_service(orchestrator):
    return orchestrator.compliance


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def open_sheet(orchestrator, premise_id, firm_id, test_actor_id):
    """OPEN bovine sheet (type A) for the DICOSE year 2024/25."""
    return orchestrator.open_sheet(
        premise_id,
        firm_id,
        "BOVINO",
        SHEET_START,
        SHEET_END,
        REGISTRATION_NUMBER,
        test_actor_id,
    )


@pytest.fixture
def submit_event(orchestrator, firm_id, premise_id, herd, test_actor_id):
    """
    Submit an event and return its id.

    Defaults: HERD scope on the ``herd`` fixture, BOVINO, dated TODAY.
    """

    def _submit(event_type: EventType | str, **overrides) -> UUID:
        fields = {
            "firm_id": firm_id,
            "premise_id": premise_id,
            "event_type": event_type,
            "scope": EventScope.HERD,
            "event_date": TODAY,
            "species": "BOVINO",
            "herd_id": herd.id,
        }
        fields.update(overrides)
        if fields["scope"] == EventScope.ANIMAL and "herd_id" not in overrides:
            fields["herd_id"] = None
        return orchestrator.submit_event(EventSubmission(**fields), test_actor_id)

    return _submit


@pytest.fixture
def approve_event(submit_event, orchestrator, test_actor_id):
    """Submit and approve an event; returns the ApprovalResult."""

    def _approve(event_type: EventType | str, **overrides):
        event_id = submit_event(event_type, **overrides)
        return orchestrator.approve(event_id, test_actor_id)

    return _approve
