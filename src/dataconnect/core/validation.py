"""
dataconnect Validation — Query acceptance rules and dialect formatting.

SQL connectors describe themselves with an ``SQLDialect``; every other
connector declares a ``QueryGrammar`` of ``VERB:target`` prefixes.

The keyword checks here are pattern matching, not parsing. They catch
obvious mistakes and destructive statements; they are not an injection
defence. SQL generated by the connectors themselves uses bound parameters
and ``quote_identifier``.
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import sqlparse

from .schema import ValidationResult

DANGEROUS_SQL = ("drop database", "drop schema", "truncate", "delete from")

_TRAILING_LIMIT = re.compile(
    r"\blimit\s+(?:(\d+)\s*,\s*)?(\d+)(\s+offset\s+\d+)?\s*$", re.IGNORECASE
)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$\- ]{0,127}$")


@dataclass(frozen=True)
class SQLDialect:
    """Validation and quoting rules for one SQL backend."""

    name: str
    allowed_keywords: Sequence[str]
    identifier_quote: str = '"'
    dangerous_patterns: Sequence[str] = DANGEROUS_SQL
    requires_order_by_with_limit: bool = False
    explain_prefix: str = "EXPLAIN"

    def validate(self, query: str) -> ValidationResult:
        return validate_sql(query, self)

    def quote(self, identifier: str) -> str:
        return quote_identifier(identifier, self.identifier_quote)


@dataclass(frozen=True)
class QueryGrammar:
    """The ``VERB:target`` micro-grammar of a non-SQL connector."""

    label: str
    verbs: Sequence[str]
    example: str
    sample_verb: str

    def validate(self, query: str) -> ValidationResult:
        return validate_verb_query(query, self)

    def parse(self, query: str) -> "VerbQuery":
        return parse_verb_query(query, self)


@dataclass(frozen=True)
class VerbQuery:
    verb: str
    target: str
    extra: Optional[str] = None


def validate_sql(query: str, dialect: SQLDialect) -> ValidationResult:
    """Check a SQL string against the dialect's allow and deny lists."""
    try:
        trimmed = (query or "").strip().lower()
        if not trimmed:
            return ValidationResult(False, "Query is empty")

        if not any(trimmed.startswith(k) for k in dialect.allowed_keywords):
            return ValidationResult(False, "Query must start with a valid SQL keyword")

        collapsed = " ".join(trimmed.split())
        if any(pattern in collapsed for pattern in dialect.dangerous_patterns):
            return ValidationResult(False, "Query contains potentially dangerous operations")

        if dialect.requires_order_by_with_limit:
            if re.search(r"\blimit\b", collapsed) and not re.search(r"\border\s+by\b", collapsed):
                return ValidationResult(
                    False, f"{dialect.name} requires ORDER BY when using LIMIT"
                )

        return ValidationResult(True)
    except Exception as e:  # pragma: no cover - validation never raises
        return ValidationResult(False, str(e) or "Unknown validation error")


def validate_verb_query(query: str, grammar: QueryGrammar) -> ValidationResult:
    """Check that a query starts with one of the grammar's verbs and a colon.

    Spaces around the colon are allowed, as ``format_verb_query`` removes them.
    """
    try:
        trimmed = (query or "").strip().lower()
        if not trimmed:
            return ValidationResult(False, "Query is empty")

        verb, colon, _ = trimmed.partition(":")
        if not colon or verb.strip() not in {v.lower() for v in grammar.verbs}:
            return ValidationResult(
                False,
                f"Query must use {grammar.label}-specific format (e.g., {grammar.example})",
            )
        return ValidationResult(True)
    except Exception as e:  # pragma: no cover
        return ValidationResult(False, str(e) or "Unknown validation error")


def parse_verb_query(query: str, grammar: QueryGrammar) -> VerbQuery:
    """Split ``VERB:target[:extra]`` into its parts.

    Raises:
        ValueError: If the query does not follow the grammar.
    """
    verdict = validate_verb_query(query, grammar)
    if not verdict.valid:
        raise ValueError(verdict.error)

    verb, _, rest = query.strip().partition(":")
    target, _, extra = rest.partition(":")
    return VerbQuery(
        verb=verb.strip().upper(),
        target=target.strip(),
        extra=extra.strip() or None,
    )


def format_sql(query: str) -> str:
    """Collapse whitespace in a SQL string, leaving literals intact."""
    try:
        formatted = sqlparse.format(query, strip_whitespace=True)
        return formatted.strip() or query
    except Exception:
        return query


def format_verb_query(query: str) -> str:
    """Normalize ``verb : target`` to ``VERB:target``."""
    try:
        if ":" not in query:
            return query.strip()
        parts = [p.strip() for p in query.strip().split(":")]
        parts[0] = parts[0].upper()
        return ":".join(parts)
    except Exception:
        return query


def quote_identifier(identifier: str, quote: str = '"') -> str:
    """Quote a table or column name after checking it against an allow-list.

    Dotted names (``schema.table``) are quoted part by part.

    Raises:
        ValueError: If any part contains characters outside the allow-list.
    """
    parts = identifier.split(".") if identifier else [""]
    quoted = []
    for part in parts:
        if not _IDENTIFIER.match(part):
            raise ValueError(f"Invalid identifier: {identifier!r}")
        quoted.append(f"{quote}{part}{quote}")
    return ".".join(quoted)


def strip_statement(query: str) -> str:
    """Remove surrounding whitespace and trailing semicolons."""
    return query.strip().rstrip(";").rstrip()


def apply_limit(query: str, limit: int) -> str:
    """Append ``LIMIT n``, or tighten a trailing LIMIT that is larger.

    Comments are stripped first so a trailing ``-- note`` cannot swallow
    the appended clause. Both ``LIMIT n OFFSET m`` and MySQL's
    ``LIMIT m, n`` are recognised.
    """
    limit = check_limit(limit)
    statement = strip_statement(query)
    if "--" in statement or "/*" in statement:
        statement = strip_statement(sqlparse.format(statement, strip_comments=True))
    match = _TRAILING_LIMIT.search(statement)
    if match:
        skip, current, offset = match.group(1), int(match.group(2)), match.group(3) or ""
        if current <= limit:
            return statement
        if skip is not None:
            return f"{statement[: match.start()]}LIMIT {skip}, {limit}"
        return f"{statement[: match.start()]}LIMIT {limit}{offset}"
    return f"{statement} LIMIT {limit}"


def check_limit(limit) -> int:
    """Coerce a row cap to a non-negative int."""
    if isinstance(limit, bool):
        raise ValueError("limit must be an integer")
    value = int(limit)
    if value < 0:
        raise ValueError("limit must be >= 0")
    return value


def has_order_by(query: str) -> bool:
    return re.search(r"\border\s+by\b", query, re.IGNORECASE) is not None


def looks_like_sql(query: str) -> bool:
    """True when a string reads like a SQL statement rather than ``VERB:target``."""
    head = (query or "").strip().lower()
    if re.match(r"^[a-z_]+\s*:", head):
        return False
    return re.match(
        r"^(select|with|insert|update|delete|create|drop|alter|truncate|explain|pragma|show)\b",
        head,
    ) is not None


def split_target(target: str) -> Tuple[str, Optional[str]]:
    """Split ``name!range`` (spreadsheet notation) into its parts."""
    if "!" in target:
        name, _, cell_range = target.partition("!")
        return name.strip(), cell_range.strip() or None
    return target, None
