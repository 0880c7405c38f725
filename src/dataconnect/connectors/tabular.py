"""
dataconnect Tabular Connector — Discovery and queries over in-memory table views.

Connectors for files, documents and most web APIs load their source into a
document (cached on the ``Connection`` handle) and expose it as a list of
``TableData`` views. Schema discovery reads those views; queries use the
connector's ``VERB:target`` grammar.
"""

import logging
import time
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .base import BaseConnector
from .utils import (
    coerce_value,
    elapsed_ms,
    infer_column_type,
    sample_values,
    sanitize_name,
    unique_headers,
    word_count,
)
from ..core.errors import QueryError, SchemaError, SourceConnectionError, describe_error
from ..core.logging import query_preview
from ..core.schema import Column, ColumnType, Connection, QueryResult
from ..core.validation import VerbQuery

logger = logging.getLogger(__name__)

TABULAR_DATA_TYPES = (
    ColumnType.STRING,
    ColumnType.INTEGER,
    ColumnType.FLOAT,
    ColumnType.DECIMAL,
    ColumnType.BOOLEAN,
    ColumnType.DATE,
    ColumnType.TIME,
    ColumnType.DATETIME,
    ColumnType.UNKNOWN,
)

Grid = Tuple[List[str], List[List[Any]]]


@dataclass
class TableData:
    """A tabular view over part of a loaded source."""

    name: str
    columns: List[str]
    rows: List[List[Any]] = field(default_factory=list)
    description: Optional[str] = None
    types: Dict[str, ColumnType] = field(default_factory=dict)

    def values(self, column: str) -> List[Any]:
        idx = self.columns.index(column)
        return [row[idx] if idx < len(row) else None for row in self.rows]

    def grid(self) -> Grid:
        return list(self.columns), [list(r) for r in self.rows]


class TabularConnector(BaseConnector):
    """Base class for connectors whose source is loaded into ``TableData`` views."""

    @abstractmethod
    async def document(self, connection: Connection) -> Any:
        """Load (once per connection) and return the source document."""

    @abstractmethod
    def tables(self, document: Any) -> List[TableData]:
        """Tabular views of the document, in source order."""

    def handle(self, query: VerbQuery, document: Any, params: Optional[Sequence[Any]]) -> Grid:
        """Serve one parsed query against the loaded document."""
        raise ValueError(f"Unsupported {self.display_name} operation: {query.verb}")

    async def dispatch(
        self, query: VerbQuery, connection: Connection, params: Optional[Sequence[Any]]
    ) -> Grid:
        return self.handle(query, await self.document(connection), params)

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {}

    # ──── Discovery ────

    async def _table(self, connection: Connection, table_name: str) -> TableData:
        document = await self.document(connection)
        return find_table(self.tables(document), table_name)

    async def get_table_list(self, connection: Connection) -> List[str]:
        return [t.name for t in self.tables(await self.document(connection))]

    async def get_column_list(self, connection: Connection, table_name: str) -> List[str]:
        return list((await self._table(connection, table_name)).columns)

    async def get_column_info(
        self, connection: Connection, table_name: str, column_name: str
    ) -> Column:
        table = await self._table(connection, table_name)
        if column_name not in table.columns:
            raise SchemaError(f"Column '{column_name}' not found in table '{table_name}'")
        values = table.values(column_name)
        column_type = table.types.get(column_name) or infer_column_type(values)
        if column_type not in self.capabilities.supported_data_types:
            column_type = ColumnType.STRING
        return Column(
            name=column_name,
            type=column_type,
            native_type=column_type.value,
            nullable=any(v is None or v == "" for v in values) or not values,
            sample_values=sample_values(values),
            metadata={"position": table.columns.index(column_name)},
        )

    async def get_table_row_count(self, connection: Connection, table_name: str) -> int:
        return len((await self._table(connection, table_name)).rows)

    # ──── Queries ────

    async def execute_query(
        self,
        connection: Connection,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        self.ensure_open(connection)
        logger.debug("%s query: %s", self.display_name, query_preview(query))
        start = time.perf_counter()
        try:
            parsed = self.grammar.parse(query)
        except ValueError as e:
            raise QueryError(str(e), query=query) from e

        try:
            columns, rows = await self.dispatch(parsed, connection, params)
        except QueryError as e:
            if e.query is None:
                raise QueryError(str(e), query=query) from e
            raise
        except (ValueError, KeyError, IndexError, SchemaError) as e:
            logger.error("%s query failed: %s", self.display_name, e)
            raise QueryError(f"Query execution failed: {describe_error(e)}", query=query) from e
        except SourceConnectionError as e:
            if not rejected_request(e):
                raise
            raise QueryError(f"Query execution failed: {describe_error(e)}", query=query) from e

        metadata = {"source_type": self.source_type, "operation": parsed.verb}
        metadata.update(self.result_metadata(connection))
        return QueryResult(
            columns=columns,
            rows=rows,
            query=query,
            execution_time_ms=elapsed_ms(start),
            metadata=metadata,
        )


# ──── Helpers shared by the tabular connectors ────


AUTH_STATUSES = (401, 403)


def rejected_request(error: SourceConnectionError) -> bool:
    """True when the server answered a request with a non-auth error status."""
    cause = error.__cause__
    return (
        isinstance(cause, httpx.HTTPStatusError)
        and cause.response.status_code not in AUTH_STATUSES
    )


def cells_table(name: str, cells: List[List[str]]) -> TableData:
    """A grid of text cells as TableData, first row as headers."""
    if not cells:
        return TableData(name=name, columns=[])
    headers = [sanitize_name(h) for h in unique_headers(cells[0])]
    rows = []
    for raw in cells[1:]:
        values = [coerce_value(v) for v in raw[: len(headers)]]
        values += [None] * (len(headers) - len(values))
        rows.append(values)
    return TableData(name=name, columns=headers, rows=rows)


def find_table(tables: Sequence[TableData], name: str) -> TableData:
    """Look a table up by exact, case-insensitive or sanitized name."""
    wanted = (name or "").strip()
    for table in tables:
        if table.name == wanted:
            return table
    for table in tables:
        if table.name.lower() == wanted.lower() or (
            table.description and table.description.lower() == wanted.lower()
        ):
            return table
    for table in tables:
        if table.name == sanitize_name(wanted):
            return table
    raise SchemaError(f"Table '{name}' not found")


def maybe_table(tables: Sequence[TableData], name: str) -> Optional[TableData]:
    try:
        return find_table(tables, name) if name else None
    except SchemaError:
        return None


def parse_span(spec: Optional[str], total: int) -> Tuple[int, int]:
    """Turn ``"5"``, ``"3-8"`` or ``""`` into a 0-based ``[start, end)`` slice.

    A single number ``n`` means the first ``n`` items.
    """
    spec = (spec or "").strip()
    if not spec or spec in ("*", "all"):
        return 0, total
    if "-" in spec:
        first, _, last = spec.partition("-")
        start = int(first) if first.strip() else 1
        end = int(last) if last.strip() else total
        if start < 1 or end < start:
            raise ValueError(f"Invalid range: {spec}")
        return start - 1, min(end, total)
    count = int(spec)
    if count < 0:
        raise ValueError(f"Invalid range: {spec}")
    return 0, min(count, total)


def parse_number(spec: str, label: str) -> int:
    try:
        number = int(spec)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number, got {spec!r}")
    if number < 1:
        raise ValueError(f"{label} must be >= 1")
    return number


def joined_term(query: VerbQuery) -> str:
    """The target of a free-text verb, colons included."""
    return query.target if query.extra is None else f"{query.target}:{query.extra}"


def search_table(table: TableData, term: str) -> Grid:
    """Rows of ``table`` with any cell containing ``term`` (case-insensitive)."""
    needle = (term or "").strip().lower()
    if not needle:
        raise ValueError("Search term is required")
    rows = [
        row for row in table.rows
        if any(needle in str(cell).lower() for cell in row if cell is not None)
    ]
    return list(table.columns), rows


def text_metrics(text: str) -> Grid:
    """``metric``/``value`` rows describing a block of text."""
    lines = text.splitlines()
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    words = word_count(text)
    rows = [
        ["characters", len(text)],
        ["words", words],
        ["lines", len(lines)],
        ["paragraphs", len(paragraphs)],
        ["average_words_per_paragraph", round(words / len(paragraphs), 2) if paragraphs else 0],
    ]
    return ["metric", "value"], rows


def column_profile(table: TableData) -> Grid:
    """Per-column statistics of a table."""
    rows = []
    for name in table.columns:
        values = table.values(name)
        present = [v for v in values if v is not None and v != ""]
        numeric = [v for v in present if isinstance(v, (int, float)) and not isinstance(v, bool)]
        rows.append([
            name,
            infer_column_type(values).value,
            len(present),
            len(values) - len(present),
            len({str(v) for v in present}),
            min(numeric) if numeric else None,
            max(numeric) if numeric else None,
            round(sum(numeric) / len(numeric), 4) if numeric else None,
        ])
    return ["column", "type", "non_null", "nulls", "distinct", "min", "max", "mean"], rows
