"""
Base SQLAlchemy configuration and utilities for PsyPlex models.

Two engines exist side by side: the restricted engine (``DATABASE_URL``)
whose sessions are scoped to a principal by row-level policy, and the
privileged engine (``PRIVILEGED_DATABASE_URL``) that bypasses it. The
privileged URL is optional; when it is missing the privileged credential
is considered not configured.
"""

import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator


class JSONType(TypeDecorator):
    """Cross-database JSON type that works with both PostgreSQL and SQLite.

    Uses JSONB on PostgreSQL for performance, falls back to JSON on SQLite.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always round-trips as UTC.

    SQLite drops tzinfo on read; this re-attaches it so comparisons
    between stored and freshly created values behave the same on every
    dialect.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Database URL from environment or default to SQLite for local development
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./psyplex.db"
)

# Privileged (RLS-bypassing) credential; unset means not configured
PRIVILEGED_DATABASE_URL = os.getenv("PRIVILEGED_DATABASE_URL")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite only enforces FOREIGN KEY / ON DELETE when asked to
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _normalize_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


def get_engine(database_url: str | None = None):
    """Create SQLAlchemy engine.

    Args:
        database_url: Optional database URL override.

    Returns:
        SQLAlchemy engine instance.
    """
    url = _normalize_url(database_url or DATABASE_URL)
    echo = os.getenv("SQL_ECHO", "false").lower() == "true"

    # In-memory SQLite must share one connection across worker threads
    if url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    # PostgreSQL settings
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


# Default engines and session factories
_engine = None
_SessionLocal = None
_PrivilegedSessionLocal = None


def get_session_factory(engine=None):
    """Get or create the restricted-tier session factory."""
    global _engine, _SessionLocal

    if engine is not None:
        return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

    if _SessionLocal is None:
        _engine = get_engine()
        _SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=_engine
        )

    return _SessionLocal


def get_privileged_session_factory() -> Optional[sessionmaker]:
    """Get the privileged-tier session factory, or None when not configured."""
    global _PrivilegedSessionLocal

    if PRIVILEGED_DATABASE_URL is None:
        return None

    if _PrivilegedSessionLocal is None:
        engine = get_engine(PRIVILEGED_DATABASE_URL)
        _PrivilegedSessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

    return _PrivilegedSessionLocal


def init_db(engine=None) -> None:
    """Initialize database tables.

    Args:
        engine: Optional engine to use. Uses default if not provided.
    """
    if engine is None:
        engine = get_engine()

    Base.metadata.create_all(bind=engine)


def drop_db(engine=None) -> None:
    """Drop all database tables. USE WITH CAUTION.

    Args:
        engine: Optional engine to use. Uses default if not provided.
    """
    if engine is None:
        engine = get_engine()

    Base.metadata.drop_all(bind=engine)
