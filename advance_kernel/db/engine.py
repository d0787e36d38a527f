"""
Database engine and session management.

One process-wide engine and ``sessionmaker`` are created by
``init_engine_from_url`` and handed to ``SqlAlchemyAdvanceRepository``
through ``get_session_factory()``.  The repository owns transaction scope for
lifecycle operations; ``session_scope()`` is the general-purpose helper for
maintenance code and tests.

SQLite URLs share a single connection (``StaticPool``) so an in-memory
database survives across sessions.  Other URLs get a ``QueuePool`` at READ
COMMITTED; per-advance serialization comes from ``SELECT ... FOR UPDATE`` in
the repository, not from the isolation level.

Calling any accessor before ``init_engine_from_url`` raises ``RuntimeError``.

``create_tables`` is the single place the kernel reaches into the modules
layer: it imports the ORM registry so ``Base.metadata`` sees every table.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from advance_kernel.db.base import Base
from advance_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


@dataclass
class _Database:
    engine: Engine
    session_factory: sessionmaker[Session]


_database: _Database | None = None


def _require() -> _Database:
    if _database is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first")
    return _database


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine; a second call replaces the first.

    Pool settings apply to server databases only.
    """
    global _database

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _database = _Database(engine, sessionmaker(bind=engine, expire_on_commit=False))

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name, "echo": echo})
    return engine


def get_engine() -> Engine:
    return _require().engine


def get_session_factory() -> sessionmaker[Session]:
    return _require().session_factory


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session committed on clean exit, rolled back and re-raised on error."""
    session = _require().session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every advance table on the current engine."""
    from advance_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose of the engine and forget it (tests)."""
    global _database

    if _database is not None:
        _database.engine.dispose()
    _database = None
