"""
dataconnect CSV Connector — Query and inspect delimited text files.

Each file is a single table named after the file (``sales.csv`` → ``sales``).

Query format:
    READ_CSV:<table>            every row
    GET_ROWS:<n> | <a>-<b>      the first n rows, or rows a..b (1-based)
    FILTER:<column><op><value>  op is one of = != > < >= <= ~ (contains)
    ANALYZE[:<table>]           per-column statistics
    EXTRACT:<column>[,<column>] a projection
"""

import csv
import io
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .files import FILE_DATA_TYPES, FileConnector
from .tabular import Grid, TableData, column_profile, find_table, joined_term, parse_span
from .utils import coerce_value, sanitize_name, unique_headers
from ..core.schema import Capabilities, Connection
from ..core.validation import QueryGrammar, VerbQuery

CSV_GRAMMAR = QueryGrammar(
    label="CSV",
    verbs=("READ_CSV", "GET_ROWS", "FILTER", "ANALYZE", "EXTRACT"),
    example="READ_CSV:table_name",
    sample_verb="READ_CSV",
)

CSV_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "PARSE", "EXTRACT", "ANALYZE", "VALIDATE", "FILTER"),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=("STRING", "NUMBER", "DATE", "BOOLEAN", "CURRENCY", "PERCENTAGE"),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=4,
)

_CONDITION = re.compile(r"^\s*(.+?)\s*(!=|>=|<=|=|>|<|~)\s*(.*?)\s*$")


@dataclass
class CSVDocument:
    table: TableData
    delimiter: str
    has_header: bool


def _open_encoding(encoding: str) -> str:
    # utf-8-sig strips a leading BOM written by Excel
    return "utf-8-sig" if encoding.lower().replace("_", "-") in ("utf-8", "utf8") else encoding


def sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


def _compare(cell: Any, op: str, value: str) -> bool:
    if cell is None:
        return False
    if op == "~":
        return value.lower() in str(cell).lower()
    if op in ("=", "!="):
        equal = str(cell).lower() == value.lower()
        return equal if op == "=" else not equal
    try:
        left, right = float(cell), float(value)
    except (TypeError, ValueError):
        left, right = str(cell), value
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    return left <= right


def filter_rows(table: TableData, condition: str) -> Grid:
    match = _CONDITION.match(condition or "")
    if not match:
        raise ValueError("Filter must look like <column>=<value>")
    column, op, value = match.groups()
    if column not in table.columns:
        raise ValueError(f"Unknown column: {column}")
    idx = table.columns.index(column)
    rows = [row for row in table.rows if _compare(row[idx], op, value)]
    return list(table.columns), rows


def project(table: TableData, spec: str) -> Grid:
    wanted = [c.strip() for c in (spec or "").split(",") if c.strip()]
    if not wanted:
        raise ValueError("At least one column is required")
    missing = [c for c in wanted if c not in table.columns]
    if missing:
        raise ValueError(f"Unknown column(s): {', '.join(missing)}")
    indexes = [table.columns.index(c) for c in wanted]
    return wanted, [[row[i] for i in indexes] for row in table.rows]


class CSVConnector(FileConnector):
    """Connector for CSV files.

    The delimiter is sniffed unless ``additional_config['delimiter']`` is
    set; ``additional_config['has_header']`` (default true) controls
    whether the first row holds column names.
    """

    display_name = "CSV"
    file_type = "CSV"
    extensions = (".csv",)
    extension_error = "File must be a CSV file (.csv)"
    capabilities = CSV_CAPABILITIES
    grammar = CSV_GRAMMAR

    @property
    def source_type(self) -> str:
        return "csv"

    def parse(self, path: str, connection: Connection) -> CSVDocument:
        encoding = _open_encoding(connection.option("encoding", "utf-8"))
        with open(path, "r", newline="", encoding=encoding) as f:
            text = f.read()

        delimiter = connection.option("delimiter") or sniff_delimiter(text[:4096])
        has_header = bool(connection.option("has_header", True))
        records = [
            row for row in csv.reader(io.StringIO(text), delimiter=delimiter)
            if any(cell.strip() for cell in row)
        ]

        if has_header and records:
            headers = unique_headers(records[0])
            records = records[1:]
        else:
            width = max((len(r) for r in records), default=0)
            headers = [f"col_{i + 1}" for i in range(width)]

        width = len(headers)
        rows = []
        for record in records:
            values = [coerce_value(cell) for cell in record[:width]]
            values += [None] * (width - len(values))
            rows.append(values)

        name = os.path.splitext(connection.database_name or os.path.basename(path))[0]
        table = TableData(
            name=sanitize_name(name),
            columns=headers,
            rows=rows,
            description=name,
        )
        return CSVDocument(table=table, delimiter=delimiter, has_header=has_header)

    def tables(self, document: CSVDocument) -> List[TableData]:
        return [document.table]

    def describe_file(self, document: CSVDocument) -> Dict[str, Any]:
        return {
            "delimiter": document.delimiter,
            "has_header": document.has_header,
            "columns": len(document.table.columns),
            "estimated_rows": len(document.table.rows),
        }

    def handle(self, query: VerbQuery, document: CSVDocument, params: Optional[Sequence[Any]]) -> Grid:
        table = document.table
        if query.verb == "READ_CSV":
            if query.target:
                table = find_table([table], query.target)
            return table.grid()
        if query.verb == "GET_ROWS":
            span = query.extra if query.extra is not None else query.target
            start, end = parse_span(span, len(table.rows))
            return list(table.columns), [list(r) for r in table.rows[start:end]]
        if query.verb == "FILTER":
            return filter_rows(table, joined_term(query))
        if query.verb == "ANALYZE":
            return column_profile(table)
        if query.verb == "EXTRACT":
            return project(table, query.target)
        raise ValueError(f"Unsupported CSV operation: {query.verb}")
