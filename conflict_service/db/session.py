"""
Database Session Management
===========================

PostgreSQL connection handling with SQLAlchemy (SQLite for development/tests).

`snapshot_session()` is the session every conflict check runs in: all corpus
reads of one check share a single transaction, so a case committed
concurrently is either fully visible or fully absent.
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from ..config import get_settings
from .models import Base

_engine = None
_engine_url = None

# Session factory is configured lazily (important for tests that set DATABASE_URL at runtime).
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _current_database_url() -> str:
    # Default to SQLite for development/testing, use DATABASE_URL for production PostgreSQL
    return os.environ.get("DATABASE_URL", "sqlite:///./conflicts.db")


def _enable_sqlite_transactions(engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself, and enforce foreign keys as PostgreSQL does.

    pysqlite defers BEGIN until the first write, which would leave the reads of
    a check outside any transaction.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _create_engine_for_url(database_url: str):
    echo = os.environ.get("SQL_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        _enable_sqlite_transactions(engine)
        return engine

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT", "5")),
        },
        echo=echo,
    )


def get_engine():
    """Get the SQLAlchemy engine"""
    global _engine, _engine_url
    database_url = _current_database_url()
    if _engine is None or _engine_url != database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _create_engine_for_url(database_url)
        _engine_url = database_url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    """Reset engine/sessionmaker (primarily for tests)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    """Initialize database tables"""
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def drop_db():
    """Drop all database tables (use with caution!)"""
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get database session.

    Usage:
        @app.get("/items")
        def read_items(db: Session = Depends(get_db)):
            ...
    """
    # Ensure SessionLocal is configured for current DATABASE_URL
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database session.

    Usage:
        with get_db_session() as db:
            db.query(Case).all()
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def snapshot_session() -> Generator[Session, None, None]:
    """
    Session whose reads all observe one consistent snapshot of the corpus.

    PostgreSQL: REPEATABLE READ (configurable) plus a per-statement timeout.
    SQLite: a single explicit transaction.

    Usage:
        with snapshot_session() as db:
            engine = ConflictEngine.for_session(db)
            engine.check_case(case_id)
    """
    engine = get_engine()
    settings = get_settings()
    db = SessionLocal()
    try:
        if engine.dialect.name == "postgresql":
            db.connection(execution_options={"isolation_level": settings.snapshot_isolation_level})
            timeout_ms = int(settings.lookup_statement_timeout_ms)
            db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        else:
            db.connection()
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
