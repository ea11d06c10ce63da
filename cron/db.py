"""Cron DB session on its own engine (cron.config.DATABASE_URL). Jobs are short-lived: no pooling."""

from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from cron.config import config


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine(config.DATABASE_URL, poolclass=NullPool)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Transactional session: commit on success, rollback on error."""
    session = Session(bind=get_engine(), expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
