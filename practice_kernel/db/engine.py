"""
Module: practice_kernel.db.engine
Responsibility: SQLAlchemy engine construction and transactional scope
    utilities.  Single point of database connection configuration.
Architecture position: Kernel > DB.  Imports from db/base.py and logging only.

Invariants enforced:
    - Every ledger transition and entity write runs inside its own
      ``session_scope()`` and is committed before the caller moves on, so
      concurrent invocations see reservations as soon as they exist.
    - PostgreSQL runs with READ COMMITTED and a pre-pinged QueuePool.
      SQLite (tests, local runs) uses a StaticPool for in-memory URLs so
      every session shares the same database.

Callers own the engine and its session factory; there is no
module-level engine.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from practice_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """Create an engine configured for the URL's dialect."""
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception;
    always closes the session.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create every table registered on ``Base.metadata``.

    Imports the ORM model modules first so their tables are known.
    """
    from practice_kernel.db.base import Base
    import practice_batch.models  # noqa: F401

    Base.metadata.create_all(engine)
