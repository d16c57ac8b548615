#provisioning_engine\infrastructure\postgres\database.py

"""Engine, session and schema helpers for the state database."""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from provisioning_engine.infrastructure.postgres.config import settings

logger = logging.getLogger(__name__)


Base = declarative_base()


# ============================================
# Engines
# ============================================
def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Engine for the state database.

    Records are written from scheduler worker threads, so sqlite
    connections are shared across threads; an in-memory sqlite URL keeps
    a single connection so every session sees the same tables.
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(url, echo=settings.echo, **options)

    logger.info(f"[state-db] connecting to {settings.display_url}")
    return create_engine(
        url,
        echo=settings.echo,
        pool_pre_ping=True,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        connect_args={"application_name": "workspace-provisioner"},
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


# ============================================
# Sessions
# ============================================
def get_session_factory(engine_instance: Optional[Engine] = None):
    """Session factory bound to the given engine (default: the process engine)."""
    return sessionmaker(
        bind=engine_instance or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(session_factory) -> Generator[Session, None, None]:
    """One transaction: commit on success, roll back on any error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ============================================
# Schema
# ============================================
def create_state_schema(engine_instance: Optional[Engine] = None) -> None:
    """
    Create the resource_records table if missing.

    Postgres deployments use the Alembic migration instead; this covers
    sqlite and tests.
    """
    from provisioning_engine.infrastructure.postgres import models  # noqa: F401

    Base.metadata.create_all(bind=engine_instance or get_engine())
