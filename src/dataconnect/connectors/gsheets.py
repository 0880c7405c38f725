"""
dataconnect Google Sheets Connector — Read and write Google Spreadsheets.

Each worksheet (tab) becomes a table with its first row as column headers.

Query format:
    READ_SHEET:<sheet>[:<range>]
    GET_RANGE:<sheet>:<range>
    UPDATE_RANGE:<sheet>:<range>     values from params (a list of rows)
    APPEND_RANGE:<sheet>             values from params
    DELETE_RANGE:<sheet>:<range>     clears the cells
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .excel import sheet_table
from .google_oauth import TOKEN_URI, GoogleOAuthConnector
from .tabular import TABULAR_DATA_TYPES, Grid, TableData, TabularConnector, find_table, joined_term
from .utils import coerce_value, sanitize_name, unique_headers
from ..core.errors import ConnectorError, SourceConnectionError, describe_error
from ..core.schema import Capabilities, Connection
from ..core.validation import QueryGrammar, VerbQuery, split_target

logger = logging.getLogger(__name__)

SHEETS_GRAMMAR = QueryGrammar(
    label="Google Sheets",
    verbs=("READ_SHEET", "GET_RANGE", "UPDATE_RANGE", "APPEND_RANGE", "DELETE_RANGE"),
    example="READ_SHEET:Sheet1",
    sample_verb="READ_SHEET",
)

SHEETS_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=("READ", "WRITE", "UPDATE", "APPEND", "DELETE", "FORMAT", "ANALYZE"),
    supported_data_types=TABULAR_DATA_TYPES,
    native_data_types=(
        "STRING", "NUMBER", "DATE", "BOOLEAN", "FORMULA", "CURRENCY", "PERCENTAGE", "DURATION",
    ),
    max_query_size=50_000,
    max_result_size=1_000_000,
    max_connections=4,
)

WRITE_VERBS = ("UPDATE_RANGE", "APPEND_RANGE", "DELETE_RANGE")


@dataclass
class Spreadsheet:
    spreadsheet_id: str
    title: str
    worksheets: List[str] = field(default_factory=list)
    tables: List[TableData] = field(default_factory=list)


def value_rows(params: Optional[Sequence[Any]]) -> List[List[Any]]:
    """Normalize query params into a list of rows for a write."""
    if not params:
        raise ValueError("Row values are required in params for write operations")
    rows = list(params)
    if not all(isinstance(row, (list, tuple)) for row in rows):
        rows = [rows]
    return [list(row) for row in rows]


def header_grid(values: List[List[Any]]) -> Grid:
    """First row as headers, remaining rows padded to the header width."""
    if not values:
        return [], []
    headers = unique_headers(values[0])
    rows = []
    for raw in values[1:]:
        row = [coerce_value(v) if isinstance(v, str) else v for v in raw[: len(headers)]]
        row += [None] * (len(headers) - len(row))
        rows.append(row)
    return headers, rows


class GoogleSheetsConnector(TabularConnector, GoogleOAuthConnector):
    """Connector for Google Spreadsheets.

    Config: ``oauth_token`` (plus optional ``refresh_token``) and the
    spreadsheet as ``spreadsheet_id`` or a ``spreadsheet_url``. Sheet data
    goes through gspread; tokens are refreshed with ``GOOGLE_CLIENT_ID`` /
    ``GOOGLE_CLIENT_SECRET`` when set.
    """

    display_name = "Google Sheets"
    capabilities = SHEETS_CAPABILITIES
    grammar = SHEETS_GRAMMAR
    api_url = "https://sheets.googleapis.com/v4/spreadsheets"
    resource_key = "spreadsheet_id"
    resource_aliases = ("sheet_id", "spreadsheet_url", "url")
    missing_resource_error = "Sheet ID is required for Google Sheets queries"

    @property
    def source_type(self) -> str:
        return "google-sheets"

    # ──── gspread (runs in worker threads) ────

    def _gspread_client(self, connection: Connection):
        try:
            import gspread
            from google.oauth2.credentials import Credentials
        except ImportError:
            raise ImportError(
                "Google Sheets support requires gspread and google-auth.\n"
                "Install them with: pip install gspread google-auth"
            )

        client_id, client_secret = self.client_credentials(connection)
        credentials = Credentials(
            token=self.access_token(connection),
            refresh_token=connection.option("refresh_token"),
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
        )
        return gspread.authorize(credentials)

    def _spreadsheet(self, connection: Connection):
        client = connection.state.get("gspread")
        if client is None:
            client = self._gspread_client(connection)
            connection.state["gspread"] = client
        return client.open_by_key(self.resource_id(connection))

    def _worksheet(self, spreadsheet, name: str):
        wanted = (name or "").strip()
        worksheets = spreadsheet.worksheets()
        if not wanted:
            return worksheets[0]
        for ws in worksheets:
            if ws.title == wanted:
                return ws
        for ws in worksheets:
            if ws.title.lower() == wanted.lower() or sanitize_name(ws.title) == sanitize_name(wanted):
                return ws
        raise ValueError(f"Sheet '{name}' not found")

    def _load(self, connection: Connection) -> Spreadsheet:
        spreadsheet = self._spreadsheet(connection)
        book = Spreadsheet(spreadsheet_id=spreadsheet.id, title=spreadsheet.title)
        for ws in spreadsheet.worksheets():
            book.worksheets.append(ws.title)
            values = [[coerce_value(v) if isinstance(v, str) else v for v in row]
                      for row in ws.get_all_values()]
            table = sheet_table(ws.title, values)
            if table is not None:
                book.tables.append(table)
        return book

    async def _call(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (ImportError, ValueError, ConnectorError):
            raise
        except Exception as e:
            logger.error("Google Sheets API call failed: %s", e)
            raise SourceConnectionError(f"Google Sheets API error: {describe_error(e)}") from e

    # ──── Lifecycle ────

    async def probe_resource(self, connection: Connection) -> Dict[str, Any]:
        def fetch():
            spreadsheet = self._spreadsheet(connection)
            worksheets = spreadsheet.worksheets()
            return {
                "api_version": "v4",
                "spreadsheet_id": spreadsheet.id,
                "title": spreadsheet.title,
                "sheet_count": len(worksheets),
                "test_sheet": worksheets[0].title if worksheets else None,
            }

        return await self._call(fetch)

    async def release(self, connection: Connection) -> None:
        connection.state.pop("gspread", None)
        await super().release(connection)

    # ──── Discovery ────

    async def document(self, connection: Connection) -> Spreadsheet:
        self.ensure_open(connection)
        if "document" not in connection.state:
            connection.state["document"] = await self._call(self._load, connection)
        return connection.state["document"]

    def tables(self, document: Spreadsheet) -> List[TableData]:
        return document.tables

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        book = await self.document(connection)
        return {
            "name": book.title,
            "version": "v4",
            "type": self.source_type,
            "spreadsheet_id": book.spreadsheet_id,
            "worksheets": list(book.worksheets),
        }

    def plan_source(self, connection: Connection) -> str:
        return f"spreadsheet {connection.option(self.resource_key) or '(unset)'}"

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {"spreadsheet_id": connection.option(self.resource_key)}

    # ──── Queries ────

    async def dispatch(
        self, query: VerbQuery, connection: Connection, params: Optional[Sequence[Any]]
    ) -> Grid:
        self.resource_id(connection)
        if "!" in query.target:
            sheet, cell_range = split_target(joined_term(query))
        else:
            sheet, cell_range = query.target, query.extra

        if query.verb == "READ_SHEET" and not cell_range:
            book = await self.document(connection)
            target = sheet or (book.tables[0].name if book.tables else "")
            return find_table(book.tables, target).grid()

        if query.verb in ("READ_SHEET", "GET_RANGE"):
            if not cell_range:
                raise ValueError("Range is required (e.g., GET_RANGE:Sheet1:A1:C10)")
            values = await self._call(self._read_range, connection, sheet, cell_range)
            if query.verb == "READ_SHEET":
                return header_grid(values)
            width = max((len(r) for r in values), default=0)
            columns = [f"col_{i + 1}" for i in range(width)]
            return columns, [list(r) + [None] * (width - len(r)) for r in values]

        if query.verb in WRITE_VERBS:
            rows = [] if query.verb == "DELETE_RANGE" else value_rows(params)
            if query.verb != "APPEND_RANGE" and not cell_range:
                raise ValueError(f"Range is required for {query.verb}")
            updated = await self._call(self._write, connection, query.verb, sheet, cell_range, rows)
            connection.state.pop("document", None)
            return ["operation", "sheet", "range", "rows"], [[query.verb, sheet, updated, len(rows)]]

        raise ValueError(f"Unsupported Google Sheets operation: {query.verb}")

    def _read_range(self, connection: Connection, sheet: str, cell_range: str) -> List[List[Any]]:
        ws = self._worksheet(self._spreadsheet(connection), sheet)
        return [list(row) for row in ws.get(cell_range)]

    def _write(self, connection: Connection, verb: str, sheet: str, cell_range: Optional[str], rows) -> str:
        ws = self._worksheet(self._spreadsheet(connection), sheet)
        logger.info("Google Sheets %s on %s!%s", verb, ws.title, cell_range or "(end)")
        if verb == "UPDATE_RANGE":
            ws.update(values=rows, range_name=cell_range, value_input_option="USER_ENTERED")
        elif verb == "APPEND_RANGE":
            ws.append_rows(rows, value_input_option="USER_ENTERED")
        else:
            ws.batch_clear([cell_range])
        return cell_range or ws.title
