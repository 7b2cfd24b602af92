"""
Database connection and session management for the clinic back-office.

This module provides:
- Database engine creation and configuration (SQLite or PostgreSQL)
- Session factory and the session_scope() transaction helper
- Database initialization (create tables)
- SQLite pragmas (foreign keys, WAL)
- Translation of storage failures into service exceptions
"""

import functools
import logging
from contextlib import contextmanager
from typing import Callable, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..utils.constants import UNDEFINED_TABLE_SQLSTATE, UNDEFINED_COLUMN_SQLSTATE
from ..models.base import Base
from .exceptions import ServiceError, DatabaseError, SchemaNotProvisionedError

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

REQUIRED_TABLES = (
    "inventory_items",
    "inventory_adjustments",
    "prescriptions",
    "prescription_lines",
)

_SCHEMA_MISSING_MARKERS = (
    "no such table",
    "no such column",
    "does not exist",
    "undefinedtable",
    "undefinedcolumn",
)


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints (needed for ON DELETE behaviour on
    prescription lines and adjustments) and WAL mode. Other drivers are
    left alone.
    """
    if not type(dbapi_connection).__module__.startswith("sqlite3"):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    config = get_config()
    if database_url is None:
        config.ensure_directories()
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url.split('@')[-1]}")

    if ":memory:" in database_url or "mode=memory" in database_url:
        # In-memory databases (testing) must share one connection
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args=config.db_connect_args)

    return create_engine(
        database_url,
        echo=echo,
        pool_size=config.db_pool_size,
        max_overflow=10,
        pool_timeout=config.db_timeout,
        pool_recycle=config.db_pool_recycle,
        pool_pre_ping=True,
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Import all models to ensure they're registered with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine.

    Args:
        force_recreate: If True, recreate the engine even if one exists

    Returns:
        Database engine
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    - Creates a new session
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Yields:
        Database session

    Example:
        with session_scope() as session:
            item = InventoryItem(name="Gauze", quantity=10)
            session.add(item)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def is_schema_missing(error: Exception) -> bool:
    """
    Check whether a storage error means the schema hasn't been provisioned.

    Recognizes PostgreSQL SQLSTATE codes for undefined tables/columns and the
    equivalent SQLite messages.
    """
    orig = getattr(error, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in (UNDEFINED_TABLE_SQLSTATE, UNDEFINED_COLUMN_SQLSTATE):
        return True
    message = str(orig if orig is not None else error).lower()
    return any(marker in message for marker in _SCHEMA_MISSING_MARKERS)


def translate_storage_errors(schema_missing_message: str) -> Callable:
    """
    Decorate a public service function so storage failures surface as
    service exceptions.

    - ServiceError subclasses pass through untouched
    - Missing tables/columns become SchemaNotProvisionedError carrying
      schema_missing_message
    - Any other SQLAlchemyError becomes DatabaseError

    Args:
        schema_missing_message: Operator-facing message for the schema case
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ServiceError:
                raise
            except SQLAlchemyError as e:
                if is_schema_missing(e):
                    logger.error(f"{func.__name__}: schema not provisioned ({e})")
                    raise SchemaNotProvisionedError(schema_missing_message, e) from e
                logger.error(f"{func.__name__}: database error", exc_info=True)
                raise DatabaseError(str(e), e) from e

        return wrapper

    return decorator


def verify_database() -> bool:
    """
    Verify that the database is accessible and has the required tables.

    Returns:
        True if every required table exists, False otherwise
    """
    try:
        engine = get_engine()
        tables = set(inspect(engine).get_table_names())
        missing = [table for table in REQUIRED_TABLES if table not in tables]
        if missing:
            logger.warning(f"Database is missing tables: {', '.join(missing)}")
            return False
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database verification failed: {e}")
        return False


def close_connections() -> None:
    """
    Close all database connections.

    Useful for cleanup or before application exit.
    """
    global _engine, _SessionFactory

    _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Initialize the application database.

    This is the main entry point for setting up the database when the
    server starts. It creates tables that don't exist yet.
    """
    config = get_config()

    if config.database_type == "sqlite":
        if not config.database_exists():
            logger.info(f"Creating new database at: {config.database_path}")
        else:
            logger.info(f"Using existing database at: {config.database_path}")

    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
