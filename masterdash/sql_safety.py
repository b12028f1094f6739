"""
Safety checks and composition of dashboard base queries with scope predicates.
"""

import re
from typing import Optional, Tuple

from masterdash.errors import ComposeInvariantViolation

_FORBIDDEN_VERBS = re.compile(
    r"\b(insert|update|delete|drop|alter|truncate|create|merge|exec|execute|grant|revoke|into)\b",
    re.IGNORECASE,
)
_ORDER_ITEM = r"[A-Za-z_][A-Za-z0-9_]*(?:\s+(?:asc|desc))?"
_ORDER_CLAUSE = re.compile(rf"(?is)^\s*{_ORDER_ITEM}(?:\s*,\s*{_ORDER_ITEM})*\s*$")


# ── Helper functions ─────────────────────────────────────────────────

def strip_sql(sql: str) -> Tuple[str, str]:
    """
    Blank out literals, quoted identifiers and comments.

    Returns ``(stripped, top_level)`` where *top_level* additionally blanks
    everything nested inside parentheses.
    """
    stripped = []
    top = []
    depth = 0
    i, n = 0, len(sql)

    def blank():
        stripped.append(" ")
        top.append(" ")

    while i < n:
        ch = sql[i]
        if ch == "'":
            j = i + 1
            while j < n:
                if sql[j] == "'":
                    if j + 1 < n and sql[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            if j >= n:
                raise ComposeInvariantViolation("Unterminated string literal in base query.")
            i = j + 1
            blank()
            continue
        if sql.startswith("--", i):
            j = sql.find("\n", i)
            i = n if j == -1 else j
            blank()
            continue
        if sql.startswith("/*", i):
            j = sql.find("*/", i + 2)
            if j == -1:
                raise ComposeInvariantViolation("Unterminated comment in base query.")
            i = j + 2
            blank()
            continue
        if ch in '["`':
            close = "]" if ch == "[" else ch
            j = sql.find(close, i + 1)
            if j == -1:
                raise ComposeInvariantViolation("Unterminated quoted identifier in base query.")
            i = j + 1
            blank()
            continue
        if ch == "(":
            depth += 1
            stripped.append(ch)
            top.append(" ")
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ComposeInvariantViolation("Unbalanced parentheses in base query.")
            stripped.append(ch)
            top.append(" ")
        else:
            stripped.append(ch)
            top.append(ch if depth == 0 else " ")
        i += 1

    if depth != 0:
        raise ComposeInvariantViolation("Unbalanced parentheses in base query.")
    return "".join(stripped), "".join(top)


def validate_base_query(sql: str) -> None:
    """
    Reject a base query that cannot be wrapped and filtered safely.

    A base query is a single read-only ``SELECT ... FROM ... [GROUP BY ...]``
    with no top-level ``WHERE`` or ``ORDER BY`` and no statement terminator.
    """
    if not sql or not sql.strip():
        raise ComposeInvariantViolation("Base query is empty.")

    stripped, top = strip_sql(sql)

    if not re.match(r"(?is)^\s*select\b", top):
        raise ComposeInvariantViolation(f"Base query must be a SELECT: {sql.strip()[:160]}...")
    if ";" in stripped:
        raise ComposeInvariantViolation("Base query must not contain a statement terminator.")
    bad = _FORBIDDEN_VERBS.search(stripped)
    if bad:
        raise ComposeInvariantViolation(f"Base query uses forbidden keyword '{bad.group(1)}'.")
    if re.search(r"(?i)\bwhere\b", top):
        raise ComposeInvariantViolation(
            "Base query has a top-level WHERE clause; scope predicates are added by the gateway."
        )
    if re.search(r"(?i)\border\s+by\b", top):
        raise ComposeInvariantViolation(
            "Base query has a top-level ORDER BY clause; pass the ordering separately."
        )


def validate_order_by(order_by: Optional[str]) -> None:
    if order_by is None:
        return
    if not _ORDER_CLAUSE.match(order_by):
        raise ComposeInvariantViolation(f"Invalid ORDER BY clause: {order_by!r}")


# ── Composition ──────────────────────────────────────────────────────

def compose_query(base_query: str, fragment: str, order_by: Optional[str] = None,
                  dialect: str = "default") -> str:
    """
    Wrap *base_query* as a derived table and apply *fragment* and *order_by*.

    The row cap is left as the ``:row_cap`` bind parameter, rendered as
    ``TOP`` on SQL Server and ``LIMIT`` elsewhere.
    """
    validate_base_query(base_query)
    validate_order_by(order_by)

    mssql = dialect == "mssql"
    sql = f"SELECT {'TOP (:row_cap) ' if mssql else ''}* FROM (\n{base_query.strip()}\n) AS scoped"
    if fragment:
        sql += f"\nWHERE {fragment}"
    if order_by:
        sql += f"\nORDER BY {order_by.strip()}"
    if not mssql:
        sql += "\nLIMIT :row_cap"
    return sql
