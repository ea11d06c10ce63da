"""Read-only execution of validated SELECT statements against the operational database."""

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from apps.ai_query.config import config

logger = logging.getLogger(__name__)


class DataStoreError(RuntimeError):
    """Query execution failed. sqlstate is the Postgres error code when the driver reports one."""

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    """SQLSTATE from the DBAPI exception (psycopg2 pgcode / psycopg sqlstate)."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def run_select(
    sql: str,
    bind: Engine | None = None,
    max_rows: int | None = None,
    timeout_ms: int | None = None,
) -> list[dict[str, Any]]:
    """
    Execute sql and return up to max_rows rows as JSON-safe dicts.

    Runs driver-level (no bind-parameter parsing of the SQL text) inside a transaction
    that is always rolled back. On Postgres the transaction is READ ONLY with a statement_timeout.
    Only call with SQL that has passed sql_validator.
    """
    if bind is None:
        from apps.ai_query.db import engine

        bind = engine
    max_rows = max_rows if max_rows is not None else config.QUERY_MAX_ROWS
    timeout_ms = timeout_ms if timeout_ms is not None else config.QUERY_TIMEOUT_MS

    try:
        with bind.connect() as conn:
            trans = conn.begin()
            try:
                if conn.dialect.name == "postgresql":
                    conn.exec_driver_sql("SET TRANSACTION READ ONLY")
                    conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(timeout_ms)}")
                result = conn.execution_options(no_parameters=True).exec_driver_sql(sql)
                rows = [dict(r) for r in result.mappings().fetchmany(max_rows)]
            finally:
                trans.rollback()
    except DBAPIError as e:
        raise DataStoreError(str(e.orig or e), sqlstate=_sqlstate(e)) from e
    except SQLAlchemyError as e:
        raise DataStoreError(str(e)) from e

    return jsonable_encoder(rows)
