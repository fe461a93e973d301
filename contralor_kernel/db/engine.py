"""
Module: contralor_kernel.db.engine
Responsibility: Engine and session factory for the register database, and
    the commit-or-rollback scope callers wrap engine operations in.
Architecture position: Kernel > DB.  MUST NOT import from services/ or
    selectors/ (table creation imports the models package so Base.metadata
    is complete).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED; approvals, corrections and
      closing serialize on explicit ``SELECT ... FOR UPDATE`` of the sheet.
    - SQLite (tests, single-user installs) runs with foreign keys on and an
      explicit BEGIN so the SAVEPOINTs behind every atomic unit work.
    - Unless explicitly disabled, initializing the engine installs the ORM
      guards that keep decided events and the register append-only.

Failure modes:
    - RuntimeError if a session is requested before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from contralor_kernel.db.immutability import register_immutability_listeners
from contralor_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_engine(url: URL, echo: bool) -> Engine:
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise each session gets an empty database
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite's implicit BEGIN breaks SAVEPOINT; SQLAlchemy emits its own
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def _postgres_engine(url: URL, echo: bool, pool_size: int, max_overflow: int) -> Engine:
    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    enforce_immutability: bool = True,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    A second call replaces the first.  ``pool_size`` and ``max_overflow``
    apply to PostgreSQL only.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()
    if dialect == "sqlite":
        _engine = _sqlite_engine(url, echo)
    else:
        _engine = _postgres_engine(url, echo, pool_size, max_overflow)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    if enforce_immutability:
        register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "enforce_immutability": enforce_immutability},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for independent sessions (one per thread or request)."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            ContralorOrchestrator(session, rules).approve(event_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from contralor_kernel.db.base import Base
    import contralor_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every register table.  Tests only."""
    from contralor_kernel.db.base import Base
    import contralor_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
