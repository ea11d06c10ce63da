"""Test doubles shared across AI query tests."""

from contextlib import contextmanager

from sqlalchemy.orm import sessionmaker

from apps.ai_query.services.llm_provider import LLMError


def make_session_factory(engine):
    """Same commit/rollback contract as apps.ai_query.db.get_db, bound to engine."""
    Session = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def _get_db():
        session = Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _get_db


class FakeClock:
    """Manually advanced clock. ms for the rate limiter, datetime for the cache."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


class ScriptedProvider:
    """LLM double returning fixed text and recording every call."""

    def __init__(self, sql="SELECT COUNT(*) FROM tool_changes WHERE change_date = CURRENT_DATE", answer="Three tools.", fail=False):
        self.sql = sql
        self.answer = answer
        self.fail = fail
        self.calls = []

    def generate_sql(self, question, schema_context, history):
        self.calls.append(("generate_sql", question, history))
        if self.fail:
            raise LLMError("model unavailable")
        return self.sql

    def explain_result(self, question, rows):
        self.calls.append(("explain_result", question, rows))
        return self.answer

    def chat(self, message, history):
        self.calls.append(("chat", message, history))
        if self.fail:
            raise LLMError("model unavailable")
        return f"reply to {message}"


class RecordingExecutor:
    """Executor double: returns rows (or raises) and records the SQL it was given."""

    def __init__(self, rows=None, error=None):
        self.rows = rows if rows is not None else [{"count": 3}]
        self.error = error
        self.seen = []

    def __call__(self, sql):
        self.seen.append(sql)
        if self.error is not None:
            raise self.error
        return self.rows
