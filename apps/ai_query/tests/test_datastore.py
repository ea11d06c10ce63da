"""run_select on SQLite (rollback, row cap, JSON-safe rows) and SQLSTATE extraction."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from apps.ai_query.services.datastore import DataStoreError, _sqlstate, run_select
from tests.conftest import requires_db


@pytest.fixture
def seeded(sqlite_engine):
    with sqlite_engine.begin() as conn:
        conn.execute(text("CREATE TABLE tool_changes (id INTEGER PRIMARY KEY, change_date DATE, tool_life INTEGER)"))
        for i in range(5):
            conn.execute(
                text("INSERT INTO tool_changes (id, change_date, tool_life) VALUES (:id, :d, :life)"),
                {"id": i + 1, "d": "2026-03-01", "life": 100 * (i + 1)},
            )
    return sqlite_engine


def test_run_select_returns_dict_rows(seeded) -> None:
    rows = run_select("SELECT COUNT(*) AS n FROM tool_changes", bind=seeded)
    assert rows == [{"n": 5}]


def test_run_select_caps_rows(seeded) -> None:
    rows = run_select("SELECT id FROM tool_changes ORDER BY id", bind=seeded, max_rows=2)
    assert rows == [{"id": 1}, {"id": 2}]


def test_run_select_does_not_parse_bind_params(seeded) -> None:
    rows = run_select("SELECT ':not_a_param' AS s, '%' AS pct FROM tool_changes LIMIT 1", bind=seeded)
    assert rows == [{"s": ":not_a_param", "pct": "%"}]


def test_run_select_always_rolls_back(seeded) -> None:
    # Validated SQL is SELECT-only; rollback still guards the store if a write ever slipped through.
    with pytest.raises(DataStoreError):
        run_select("SELECT * FROM tool_changes WHERE 1 = 1; DELETE FROM tool_changes", bind=seeded)
    with seeded.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM tool_changes")).scalar() == 5


def test_missing_table_raises_data_store_error(seeded) -> None:
    with pytest.raises(DataStoreError) as exc:
        run_select("SELECT * FROM no_such_table", bind=seeded)
    assert "no_such_table" in str(exc.value)


def test_sqlstate_from_driver_error() -> None:
    class Orig(Exception):
        pgcode = "42703"

    class Wrapped(Exception):
        orig = Orig()

    assert _sqlstate(Wrapped()) == "42703"
    assert _sqlstate(Exception()) is None


def test_rows_are_json_safe(sqlite_engine) -> None:
    from apps.ai_query.services import datastore

    class FakeResult:
        def mappings(self):
            return self

        def fetchmany(self, n):
            return [{"d": date(2026, 3, 1), "cost": Decimal("12.50")}]

    class FakeConn:
        dialect = sqlite_engine.dialect

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def begin(self):
            class T:
                def rollback(self):
                    pass

            return T()

        def execution_options(self, **kw):
            return self

        def exec_driver_sql(self, sql):
            return FakeResult()

    class FakeEngine:
        def connect(self):
            return FakeConn()

    rows = datastore.run_select("SELECT 1", bind=FakeEngine())
    assert rows == [{"d": "2026-03-01", "cost": 12.5}]


@requires_db
def test_postgres_statement_timeout() -> None:
    import os

    from sqlalchemy import create_engine

    engine = create_engine(os.environ["DATABASE_TEST_URL"])
    try:
        assert run_select("SELECT 1 AS one", bind=engine) == [{"one": 1}]
        with pytest.raises(DataStoreError) as exc:
            run_select("SELECT pg_sleep(2)", bind=engine, timeout_ms=100)
        assert exc.value.sqlstate == "57014"
    finally:
        engine.dispose()
