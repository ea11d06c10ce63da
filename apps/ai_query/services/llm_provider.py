"""
LLM provider for natural-language queries and chat.

When ENV=test, uses DeterministicProvider (no network).
Otherwise uses GeminiProvider (google-genai SDK).
Model output is untrusted: SQL it returns must pass sql_validator before execution.
"""

import json
import logging
import re
from typing import Any, Protocol, runtime_checkable

import httpx
from google import genai
from google.genai import errors, types

from apps.ai_query.config import config, env_name

logger = logging.getLogger(__name__)

MAX_RESULT_ROWS_IN_PROMPT = 200

SQL_PROMPT = """You are a PostgreSQL expert. Translate the user's question into one PostgreSQL query.

## Database schema
{schema}
{history}
## Rules
1. Generate a single SELECT query only (no INSERT, UPDATE, DELETE or DDL).
2. Use only tables and columns from the schema above.
3. Add appropriate WHERE conditions; use NOW() and INTERVAL for date arithmetic.
4. Match Korean enum values exactly (e.g. change_reason = '파손').
5. Return only the SQL: no explanation, comments, headers or code fences.

## Question
{question}

SQL starting with SELECT:"""

EXPLAIN_PROMPT = """You are a data analyst. Answer the user's question from the query result below.

## Question
{question}

## Query result (JSON rows)
{rows}

## Rules
1. Answer the question directly in 2-3 sentences.
2. Highlight the key numbers.
3. If there are no rows, say that no data matches the conditions.

Answer:"""

_CODE_FENCE_OPEN_RE = re.compile(r"^```(?:sql)?\s*\n?", re.IGNORECASE)
_CODE_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_SQL_HEADER_RE = re.compile(r"^(SQL\s*query\s*:|SQL\s*:|query\s*:)\s*", re.IGNORECASE)


class LLMError(RuntimeError):
    """Language model unavailable or returned an unusable response."""


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for the language model. history items are {"role": "user"|"assistant", "content": str}."""

    def generate_sql(self, question: str, schema_context: str, history: list[dict[str, str]]) -> str:
        """Return raw model text expected to contain one SELECT statement."""
        ...

    def explain_result(self, question: str, rows: list[dict[str, Any]]) -> str:
        """Return a natural-language answer to question given result rows."""
        ...

    def chat(self, message: str, history: list[dict[str, str]]) -> str:
        """Return the assistant reply to message given prior turns."""
        ...


def extract_sql(text: str) -> str:
    """Pull SQL out of model output: drop code fences, SQL: headers and prose before the first SELECT line.
    Anything after a semicolon is kept so the validator sees stacked statements."""
    sql = (text or "").strip()
    sql = _CODE_FENCE_OPEN_RE.sub("", sql)
    sql = _CODE_FENCE_CLOSE_RE.sub("", sql)
    sql = _SQL_HEADER_RE.sub("", sql.strip())

    lines = sql.split("\n")
    start = next((i for i, line in enumerate(lines) if line.strip().upper().startswith("SELECT")), 0)
    return "\n".join(lines[start:]).strip()


def render_history(history: list[dict[str, str]]) -> str:
    """Numbered transcript for the SQL prompt. Empty string when there is no history."""
    if not history:
        return ""
    lines = ["", "## Previous conversation"]
    for i, item in enumerate(history, start=1):
        who = "User" if item.get("role") == "user" else "AI"
        lines.append(f"{i}. {who}: {item.get('content', '')}")
    lines.append("Use the conversation above as context for the current question.")
    lines.append("")
    return "\n".join(lines)


class DeterministicProvider:
    """
    Deterministic provider for tests. No network.
    Always proposes today's tool change count.
    """

    SQL = "SELECT COUNT(*) AS change_count FROM tool_changes WHERE change_date = CURRENT_DATE"

    def generate_sql(self, question: str, schema_context: str, history: list[dict[str, str]]) -> str:
        return self.SQL

    def explain_result(self, question: str, rows: list[dict[str, Any]]) -> str:
        if not rows:
            return "No data matches the conditions."
        return f"Found {len(rows)} row(s) for: {question.strip()}"

    def chat(self, message: str, history: list[dict[str, str]]) -> str:
        return f"({len(history)} prior messages) {message.strip()}"


class GeminiProvider:
    """Google Gemini through the google-genai SDK. Every call is bounded by LLM_TIMEOUT_SECONDS."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        self.model = model or config.GEMINI_MODEL
        self.timeout = timeout if timeout is not None else config.LLM_TIMEOUT_SECONDS
        if not self.api_key:
            raise LLMError("GEMINI_API_KEY is not configured")
        # HttpOptions.timeout is in milliseconds
        self._client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )

    def _generate(self, contents: list[types.Content]) -> str:
        try:
            resp = self._client.models.generate_content(model=self.model, contents=contents)
        except (errors.APIError, httpx.HTTPError) as e:
            raise LLMError(f"Gemini request failed: {e}") from e

        text = (resp.text or "").strip()
        if not text:
            raise LLMError("Gemini returned an empty response")
        return text

    def _prompt(self, prompt: str) -> str:
        return self._generate([_content("user", prompt)])

    def generate_sql(self, question: str, schema_context: str, history: list[dict[str, str]]) -> str:
        prompt = SQL_PROMPT.format(schema=schema_context, history=render_history(history), question=question)
        return self._prompt(prompt)

    def explain_result(self, question: str, rows: list[dict[str, Any]]) -> str:
        rows_json = json.dumps(rows[:MAX_RESULT_ROWS_IN_PROMPT], ensure_ascii=False, indent=2, default=str)
        return self._prompt(EXPLAIN_PROMPT.format(question=question, rows=rows_json))

    def chat(self, message: str, history: list[dict[str, str]]) -> str:
        contents = [_content("user" if h.get("role") == "user" else "model", h.get("content", "")) for h in history]
        contents.append(_content("user", message))
        return self._generate(contents)


def _content(role: str, text: str) -> types.Content:
    return types.Content(role=role, parts=[types.Part(text=text)])


_provider: LLMProvider | None = None


def get_llm_provider(*, force_refresh: bool = False) -> LLMProvider:
    """
    Return the active LLM provider. Lazy-initialized.

    When ENV=test, returns DeterministicProvider (no network).
    Otherwise returns GeminiProvider; raises LLMError if it is not configured.
    """
    global _provider
    if force_refresh:
        _provider = None
    if _provider is None:
        if env_name() == "test":
            _provider = DeterministicProvider()
            logger.info("Using deterministic LLM provider (ENV=test)")
        else:
            _provider = GeminiProvider()
            logger.info("Using Gemini LLM provider model=%s", _provider.model)
    return _provider
