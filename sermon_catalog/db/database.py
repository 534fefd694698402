"""
Database engine and session management for the sermon catalog.

- Engine built lazily from DATABASE_URL on first use (configure_database()
  overrides it, e.g. with "sqlite://" in tests)
- Session-per-operation pattern through the get_db_session() context manager
- SQLite connections get WAL / busy-timeout / foreign-key pragmas
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional
from urllib.parse import urlparse

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool, StaticPool

from .models import Base
from sermon_catalog.config import Settings
from sermon_catalog.logger import setup_logging, log_function


db_logger = setup_logging(logger_name="database", log_file="logs/database.log")

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def optimize_sqlite_connection(dbapi_connection, connection_record):
    """Apply SQLite pragmas when a connection is created."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def _is_memory_sqlite(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme.startswith("sqlite") and parsed.path in ("", "/", "/:memory:")


def build_engine(url: str) -> Engine:
    """
    Create an engine for ``url``.

    In-memory SQLite shares one connection (StaticPool) so every session sees
    the same database; file SQLite uses NullPool to avoid locking issues.
    """
    parsed = urlparse(url)
    if not parsed.scheme.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    if _is_memory_sqlite(url):
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        db_path = Path(parsed.path[1:])
        db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            poolclass=NullPool,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    event.listen(engine, "connect", optimize_sqlite_connection)
    return engine


def configure_database(url: Optional[str] = None) -> Engine:
    """
    (Re)configure the module engine and session factory.

    Args:
        url: Database URL; defaults to Settings.from_env().database_url

    Returns:
        The new engine
    """
    global _engine, _session_factory
    if url is None:
        url = Settings.from_env().database_url
    if _engine is not None:
        _engine.dispose()
    _engine = build_engine(url)
    _session_factory = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=_engine
    )
    db_logger.info(f"Database configured: {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure_database()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        configure_database()
    return _session_factory


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions (session-per-operation pattern).

    Rolls back on any error and always closes the session.

    Usage:
        with get_db_session() as session:
            session.add(entry)
            session.commit()
    """
    session = get_session_factory()()
    try:
        yield session

    except OperationalError as e:
        db_logger.error(f"Database operational error: {e}")
        session.rollback()
        error_msg = str(e.orig) if hasattr(e, "orig") else str(e)
        if "no such table" in error_msg.lower():
            raise OperationalError(
                "Database table does not exist. Run `python -m sermon_catalog.db init` first.",
                None,
                e.orig if hasattr(e, "orig") else None,
            )
        raise

    except SQLAlchemyError as e:
        db_logger.error(f"Database error: {e}")
        session.rollback()
        raise

    except Exception:
        session.rollback()
        raise

    finally:
        session.close()


@log_function(logger_name="database", log_execution_time=True)
def init_database() -> bool:
    """
    Create all tables defined in the models.

    Returns:
        bool: True if initialization succeeded, False otherwise
    """
    try:
        Base.metadata.create_all(bind=get_engine())
        db_logger.info("Database tables created successfully")
        return True
    except SQLAlchemyError as e:
        db_logger.error(f"Failed to initialize database: {e}")
        return False


@log_function(logger_name="database", log_execution_time=True)
def check_database_connection() -> bool:
    """Return True if a trivial query succeeds."""
    try:
        with get_db_session() as session:
            session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        db_logger.error(f"Database connection test failed: {e}")
        return False
