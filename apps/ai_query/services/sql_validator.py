"""Static validator for LLM-generated SQL. SELECT-only, allow-listed tables, deny-listed patterns and functions.

Regex-based, not a parser: a first line of defense, not a proof of safety.
"""

import logging
import re
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_COMMANDS = frozenset({"SELECT"})

# Operational tables the model may read. Anything else is rejected.
ALLOWED_TABLES = (
    "tool_changes",
    "equipment",
    "endmill_types",
    "endmill_categories",
    "inventory",
    "inventory_transactions",
    "user_profiles",
    "cam_sheets",
    "cam_sheet_endmills",
    "suppliers",
    "endmill_supplier_prices",
    "tool_positions",
    "user_roles",
)

FORBIDDEN_PATTERNS = [
    re.compile(r"DROP\s+TABLE", re.IGNORECASE),
    re.compile(r"DROP\s+DATABASE", re.IGNORECASE),
    re.compile(r"DELETE\s+FROM", re.IGNORECASE),
    re.compile(r"UPDATE\s+\w", re.IGNORECASE),
    re.compile(r"INSERT\s+INTO", re.IGNORECASE),
    re.compile(r"TRUNCATE", re.IGNORECASE),
    re.compile(r"ALTER\s+TABLE", re.IGNORECASE),
    re.compile(r"CREATE\s+TABLE", re.IGNORECASE),
    re.compile(r"CREATE\s+DATABASE", re.IGNORECASE),
    re.compile(r"GRANT\s+", re.IGNORECASE),
    re.compile(r"REVOKE\s+", re.IGNORECASE),
    re.compile(r";.*SELECT", re.IGNORECASE | re.DOTALL),  # stacked statements
    re.compile(r";\s*$"),  # trailing statement terminator
    re.compile(r"--"),  # line comment
    re.compile(r"/\*"),  # block comment
    re.compile(r"xp_cmdshell", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"execute\s+immediate", re.IGNORECASE),
]

# Postgres file access, cross-database links and artificial delays.
FORBIDDEN_FUNCTIONS = frozenset({
    "pg_sleep",
    "pg_sleep_for",
    "pg_sleep_until",
    "pg_read_file",
    "pg_read_binary_file",
    "pg_ls_dir",
    "pg_stat_file",
    "pg_terminate_backend",
    "pg_cancel_backend",
    "copy",
    "lo_import",
    "lo_export",
    "dblink",
    "dblink_exec",
})

# Calls never reported by extract_function_names.
IGNORED_FUNCTIONS = frozenset({"count", "sum", "avg", "max", "min", "round", "cast", "coalesce"})

MAX_QUERY_LENGTH = 10_000
MAX_UNIONS = 2
MAX_OPEN_PARENS = 10

# Postgres SQLSTATE -> validator code
SQLSTATE_CODES = {
    "42P01": ("TABLE_NOT_FOUND", "The query references a table that does not exist."),
    "42703": ("COLUMN_NOT_FOUND", "The query references a column that does not exist."),
}

_FROM_RE = re.compile(r"FROM\s+(\w+)", re.IGNORECASE)
_JOIN_RE = re.compile(r"JOIN\s+(\w+)", re.IGNORECASE)
_CALL_RE = re.compile(r"(\w+)\s*\(")
_UNION_RE = re.compile(r"UNION", re.IGNORECASE)
_JOIN_WORD_RE = re.compile(r"\bJOIN\b", re.IGNORECASE)
_LIKE_RE = re.compile(r"LIKE", re.IGNORECASE)
_AGGREGATE_RE = re.compile(r"\b(COUNT|SUM|AVG|MAX|MIN)\s*\(", re.IGNORECASE)


class SQLValidationError(ValueError):
    """Raised when SQL fails validation. code is machine-readable; details only echo public policy."""

    def __init__(self, message: str, code: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


def extract_table_names(sql: str) -> list[str]:
    """Lowercased, deduplicated identifiers following FROM or JOIN, in first-seen order."""
    names = [m.group(1).lower() for m in _FROM_RE.finditer(sql)]
    names += [m.group(1).lower() for m in _JOIN_RE.finditer(sql)]
    return list(dict.fromkeys(names))


def extract_function_names(sql: str) -> list[str]:
    """Lowercased, deduplicated identifiers followed by '(' excluding common aggregates and casts."""
    names = [m.group(1).lower() for m in _CALL_RE.finditer(sql)]
    return list(dict.fromkeys(n for n in names if n not in IGNORED_FUNCTIONS))


def validate_sql(sql: Any) -> None:
    """
    Validate a candidate SQL string. Returns None on accept.

    Raises SQLValidationError with one of:
    INVALID_INPUT, FORBIDDEN_COMMAND, FORBIDDEN_PATTERN, UNAUTHORIZED_TABLE,
    FORBIDDEN_FUNCTION, QUERY_TOO_LONG, TOO_MANY_UNIONS,
    UNBALANCED_PARENTHESES, TOO_DEEP_SUBQUERY.
    """
    if not isinstance(sql, str) or not sql.strip():
        raise SQLValidationError("Invalid SQL: query is empty or not a string.", "INVALID_INPUT")

    trimmed = sql.strip()

    first_word = trimmed.split()[0].upper()
    if first_word not in ALLOWED_COMMANDS:
        raise SQLValidationError(
            "SQL command not allowed. Only SELECT queries can be used.",
            "FORBIDDEN_COMMAND",
            f"Detected command: {first_word}",
        )

    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(trimmed):
            raise SQLValidationError(
                "The query contains a forbidden pattern.",
                "FORBIDDEN_PATTERN",
                f"Pattern: {pattern.pattern}",
            )

    unauthorized = [t for t in extract_table_names(trimmed) if t not in ALLOWED_TABLES]
    if unauthorized:
        raise SQLValidationError(
            f"Access to tables not allowed: {', '.join(unauthorized)}",
            "UNAUTHORIZED_TABLE",
            f"Allowed tables: {', '.join(ALLOWED_TABLES)}",
        )

    forbidden = [f for f in extract_function_names(trimmed) if f in FORBIDDEN_FUNCTIONS]
    if forbidden:
        raise SQLValidationError(
            f"Forbidden functions used: {', '.join(forbidden)}",
            "FORBIDDEN_FUNCTION",
        )

    if len(trimmed) > MAX_QUERY_LENGTH:
        raise SQLValidationError(
            f"Query is too long. At most {MAX_QUERY_LENGTH:,} characters are allowed.",
            "QUERY_TOO_LONG",
        )

    if len(_UNION_RE.findall(trimmed)) > MAX_UNIONS:
        raise SQLValidationError(
            f"At most {MAX_UNIONS} UNION clauses are allowed.",
            "TOO_MANY_UNIONS",
        )

    open_parens = trimmed.count("(")
    if open_parens != trimmed.count(")"):
        raise SQLValidationError("Parentheses are not balanced.", "UNBALANCED_PARENTHESES")

    if open_parens > MAX_OPEN_PARENS:
        raise SQLValidationError(
            f"Subquery nesting is too deep. At most {MAX_OPEN_PARENS} levels are allowed.",
            "TOO_DEEP_SUBQUERY",
        )


def is_valid_sql(sql: Any) -> bool:
    """True if validate_sql accepts sql."""
    try:
        validate_sql(sql)
    except SQLValidationError:
        return False
    return True


def safety_score(sql: Any) -> int:
    """
    Heuristic 0-100; 0 whenever validate_sql rejects.
    100 minus: 10 for any UNION, 5 per '(', 5 for any LIKE, 5 per JOIN; plus 5 for aggregates.
    """
    if not is_valid_sql(sql):
        return 0

    score = 100
    if _UNION_RE.search(sql):
        score -= 10
    score -= sql.count("(") * 5
    if _LIKE_RE.search(sql):
        score -= 5
    score -= len(_JOIN_WORD_RE.findall(sql)) * 5
    if _AGGREGATE_RE.search(sql):
        score += 5

    return max(0, min(100, score))


def sanitize_sql(sql: str) -> str:
    """Collapse whitespace, trim, strip trailing semicolons. Run before validation, never after."""
    cleaned = re.sub(r"\s+", " ", sql).strip()
    return re.sub(r";+$", "", cleaned).rstrip()


def execute_safe(
    sql: str,
    executor: Callable[[str], T],
    min_safety_score: int = 50,
) -> T:
    """
    Sanitize, validate, score, then run executor(sanitized_sql).

    Rejected SQL never reaches executor. Executor errors carrying SQLSTATE 42P01/42703
    become TABLE_NOT_FOUND/COLUMN_NOT_FOUND; anything else propagates unchanged.
    """
    cleaned = sanitize_sql(sql) if isinstance(sql, str) else sql
    validate_sql(cleaned)

    score = safety_score(cleaned)
    if score < min_safety_score:
        raise SQLValidationError(
            f"SQL safety score is too low: {score}/100",
            "LOW_SAFETY_SCORE",
        )

    try:
        return executor(cleaned)
    except Exception as e:
        mapped = SQLSTATE_CODES.get(getattr(e, "sqlstate", None) or "")
        if mapped is None:
            raise
        code, message = mapped
        raise SQLValidationError(message, code) from e
