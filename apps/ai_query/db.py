"""Database session factory and bootstrap."""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from apps.ai_query.config import config
from apps.ai_query.models import Base

DATABASE_URL = config.DATABASE_URL

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=os.getenv("SQL_ECHO", "").lower() in ("1", "true", "yes"),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """Provide a transactional scope for DB operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ensure_tables(bind=None):
    """Create the service tables if they do not exist. Idempotent (checkfirst=True).
    Postgres schemas are owned by Alembic; this only runs for SQLite/dev databases.
    bind: optional engine/connection; if None, uses global engine.
    """
    target = bind if bind is not None else engine
    if target.dialect.name == "postgresql":
        return
    Base.metadata.create_all(bind=target, checkfirst=True)
