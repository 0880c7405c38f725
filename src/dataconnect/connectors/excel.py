"""
dataconnect Excel Connector — Query and inspect Excel workbooks.

Each sheet in the workbook becomes a table, with the first row as column headers.

Query format:
    READ_SHEET:<sheet>
    GET_RANGE:<sheet>:A1:C10
    ANALYZE:<sheet>
    EXTRACT:<sheet>:<column>[,<column>]
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .csv_file import project
from .files import FILE_DATA_TYPES, FileConnector
from .tabular import Grid, TableData, column_profile, find_table
from .utils import sanitize_name, unique_headers
from ..core.schema import Capabilities, Connection
from ..core.validation import QueryGrammar, VerbQuery

EXCEL_GRAMMAR = QueryGrammar(
    label="Excel",
    verbs=("READ_SHEET", "GET_RANGE", "ANALYZE", "EXTRACT"),
    example="READ_SHEET:Sheet1",
    sample_verb="READ_SHEET",
)

EXCEL_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "PARSE", "EXTRACT", "ANALYZE", "VALIDATE"),
    supported_data_types=FILE_DATA_TYPES,
    native_data_types=("STRING", "NUMBER", "DATE", "BOOLEAN", "FORMULA", "CURRENCY", "PERCENTAGE"),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=4,
)


@dataclass
class Workbook:
    sheets: Dict[str, List[Tuple[Any, ...]]] = field(default_factory=dict)
    tables: List[TableData] = field(default_factory=list)


def sheet_table(title: str, rows: List[Tuple[Any, ...]]) -> Optional[TableData]:
    """Turn raw sheet rows into a table; None for sheets without headers."""
    if not rows:
        return None
    if not any(h is not None and str(h).strip() for h in rows[0]):
        return None
    headers = [sanitize_name(h) for h in unique_headers(rows[0])]
    width = len(headers)
    data = []
    for row in rows[1:]:
        if not any(v is not None and str(v).strip() for v in row):
            continue
        values = list(row[:width])
        values += [None] * (width - len(values))
        data.append(values)
    return TableData(name=sanitize_name(title), columns=headers, rows=data, description=title)


class ExcelConnector(FileConnector):
    """Connector for Excel (.xlsx) files.

    Inspects all sheets, treating each sheet as a table. Formula cells
    report their last cached value.
    """

    display_name = "Excel"
    file_type = "Excel"
    extensions = (".xlsx", ".xls")
    extension_error = "File must be an Excel file (.xlsx or .xls)"
    capabilities = EXCEL_CAPABILITIES
    grammar = EXCEL_GRAMMAR

    @property
    def source_type(self) -> str:
        return "excel"

    def parse(self, path: str, connection: Connection) -> Workbook:
        try:
            import openpyxl
        except ImportError:
            raise ImportError(
                "openpyxl is required for Excel support. "
                "Install it with: pip install openpyxl"
            )

        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
        try:
            workbook = Workbook()
            for sheet_name in wb.sheetnames:
                rows = list(wb[sheet_name].iter_rows(values_only=True))
                workbook.sheets[sheet_name] = rows
                table = sheet_table(sheet_name, rows)
                if table is not None:
                    workbook.tables.append(table)
        finally:
            wb.close()
        return workbook

    def tables(self, document: Workbook) -> List[TableData]:
        return document.tables

    def describe_file(self, document: Workbook) -> Dict[str, Any]:
        return {
            "sheet_count": len(document.sheets),
            "sheets": list(document.sheets),
            "estimated_rows": sum(len(t.rows) for t in document.tables),
        }

    def _raw_sheet(self, document: Workbook, name: str) -> List[Tuple[Any, ...]]:
        if name in document.sheets:
            return document.sheets[name]
        for title, rows in document.sheets.items():
            if title.lower() == name.lower() or sanitize_name(title) == sanitize_name(name):
                return rows
        raise ValueError(f"Sheet '{name}' not found")

    def handle(self, query: VerbQuery, document: Workbook, params: Optional[Sequence[Any]]) -> Grid:
        if query.verb == "GET_RANGE":
            return self._range(document, query)

        target = query.target or (document.tables[0].name if document.tables else "")
        table = find_table(document.tables, target)
        if query.verb == "READ_SHEET":
            return table.grid()
        if query.verb == "ANALYZE":
            return column_profile(table)
        if query.verb == "EXTRACT":
            return project(table, query.extra or "")
        raise ValueError(f"Unsupported Excel operation: {query.verb}")

    def _range(self, document: Workbook, query: VerbQuery) -> Grid:
        from openpyxl.utils.cell import get_column_letter, range_boundaries

        if not query.extra:
            raise ValueError("Range is required (e.g., GET_RANGE:Sheet1:A1:C10)")
        rows = self._raw_sheet(document, query.target)
        min_col, min_row, max_col, max_row = range_boundaries(query.extra.upper())
        max_row = max_row or len(rows)
        max_col = max_col or max((len(r) for r in rows), default=0)
        columns = [get_column_letter(c) for c in range(min_col, max_col + 1)]
        grid = []
        for row in rows[min_row - 1:max_row]:
            cells = list(row[min_col - 1:max_col])
            cells += [None] * (len(columns) - len(cells))
            grid.append(cells)
        return columns, grid
