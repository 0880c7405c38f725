import sys
from unittest.mock import MagicMock, patch

import httpx
import pytest
import pytest_asyncio

from dataconnect.connectors.google_oauth import google_id
from dataconnect.connectors.gsheets import GoogleSheetsConnector, header_grid, value_rows
from dataconnect.core.errors import QueryError, SourceConnectionError

SHEET_URL = "https://docs.google.com/spreadsheets/d/1AbC_d-9xyz/edit#gid=0"

CONFIG = {
    "oauth_token": "ya29.token",
    "spreadsheet_id": "1AbC_d-9xyz",
}


def worksheet(title, values):
    ws = MagicMock()
    ws.title = title
    ws.get_all_values.return_value = values
    return ws


class FakeGspread:
    """gspread and google-auth stand-ins returning a two-tab spreadsheet."""

    def __init__(self):
        self.sales = worksheet("Q1 Sales", [["Region", "Amount"], ["North", "10"], ["South", "7.5"]])
        self.notes = worksheet("Notes", [])
        self.spreadsheet = MagicMock()
        self.spreadsheet.id = "1AbC_d-9xyz"
        self.spreadsheet.title = "Budget"
        self.spreadsheet.worksheets.return_value = [self.sales, self.notes]
        self.client = MagicMock()
        self.client.open_by_key.return_value = self.spreadsheet

        self.gspread = MagicMock()
        self.gspread.authorize.return_value = self.client
        self.credentials = MagicMock()
        self.google = MagicMock()

    def modules(self):
        return {
            "gspread": self.gspread,
            "google": self.google,
            "google.oauth2": self.google.oauth2,
            "google.oauth2.credentials": self.credentials,
        }


@pytest.fixture
def gspread():
    fake = FakeGspread()
    with patch.dict(sys.modules, fake.modules()):
        yield fake


@pytest.fixture
def connector():
    return GoogleSheetsConnector()


@pytest_asyncio.fixture
async def connection(connector, gspread):
    conn = await connector.connect(CONFIG)
    yield conn
    await connector.disconnect(conn)


class TestHelpers:
    def test_google_id(self):
        assert google_id(SHEET_URL) == "1AbC_d-9xyz"
        assert google_id("1AbC_d-9xyz") == "1AbC_d-9xyz"
        assert google_id("") is None

    def test_value_rows(self):
        assert value_rows([["a", 1], ["b", 2]]) == [["a", 1], ["b", 2]]
        assert value_rows(["a", 1]) == [["a", 1]]
        with pytest.raises(ValueError, match="Row values are required"):
            value_rows(None)

    def test_header_grid(self):
        columns, rows = header_grid([["Name", "Qty"], ["bolt", "4"], ["nut"]])
        assert columns == ["Name", "Qty"]
        assert rows == [["bolt", 4], ["nut", None]]
        assert header_grid([]) == ([], [])


class TestGoogleSheetsConfig:
    def test_token_required(self, connector):
        with pytest.raises(ValueError, match="OAuth token is required for Google Sheets"):
            connector.check_config({"spreadsheet_id": "x"})

    def test_spreadsheet_url(self, connector):
        conn = connector.build_connection({"oauth_token": "t", "spreadsheet_url": SHEET_URL})
        assert conn.option("spreadsheet_id") == "1AbC_d-9xyz"
        assert conn.database_name == "1AbC_d-9xyz"
        assert conn.connection_string == "https://sheets.googleapis.com/v4/spreadsheets"

    def test_refresh_token_kept(self, connector):
        conn = connector.build_connection({**CONFIG, "refresh_token": "1//refresh"})
        assert conn.option("refresh_token") == "1//refresh"


class TestGoogleSheetsConnector:
    @pytest.mark.asyncio
    async def test_connection(self, connector, gspread):
        result = await connector.test_connection(CONFIG)
        assert result.success
        assert result.metadata["auth_method"] == "OAuth"
        assert result.metadata["title"] == "Budget"
        assert result.metadata["sheet_count"] == 2
        assert result.metadata["test_sheet"] == "Q1 Sales"
        gspread.client.open_by_key.assert_called_with("1AbC_d-9xyz")

    @pytest.mark.asyncio
    async def test_connection_without_spreadsheet_checks_token(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"scope": "openid email", "expires_in": "3599"})

        connector = GoogleSheetsConnector(transport=httpx.MockTransport(handler))
        result = await connector.test_connection({"oauth_token": "ya29.token"})
        assert result.success
        assert result.metadata["scopes"] == ["openid", "email"]
        assert result.metadata["expires_in"] == 3599
        assert seen["url"].path == "/tokeninfo"
        assert seen["url"].params["access_token"] == "ya29.token"

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_token"}))
        result = await GoogleSheetsConnector(transport=transport).test_connection({"oauth_token": "bad"})
        assert not result.success
        assert result.metadata["error_type"] == "api_connection_failed"

    @pytest.mark.asyncio
    async def test_missing_libraries(self):
        with patch.dict(sys.modules, {"gspread": None}):
            connector = GoogleSheetsConnector()
            conn = await connector.connect(CONFIG)
            with pytest.raises(ImportError, match="pip install gspread google-auth"):
                await connector.execute_query(conn, "READ_SHEET:")

    @pytest.mark.asyncio
    async def test_schema(self, connector, connection):
        schema = await connector.get_schema(connection)
        assert schema.table_names == ["q1_sales"]
        table = schema.get_table("q1_sales")
        assert table.column_names == ["region", "amount"]
        assert table.row_count == 2
        info = await connector.get_database_info(connection)
        assert info["name"] == "Budget"
        assert info["worksheets"] == ["Q1 Sales", "Notes"]

    @pytest.mark.asyncio
    async def test_client_is_authorized_once(self, connector, connection, gspread):
        await connector.execute_query(connection, "READ_SHEET:")
        await connector.execute_query(connection, "GET_RANGE:Q1 Sales:A1:A2")
        gspread.gspread.authorize.assert_called_once()

    @pytest.mark.asyncio
    async def test_read_sheet(self, connector, connection):
        result = await connector.execute_query(connection, "READ_SHEET:Q1 Sales")
        assert result.columns == ["region", "amount"]
        assert result.rows == [["North", 10], ["South", 7.5]]
        assert result.metadata["spreadsheet_id"] == "1AbC_d-9xyz"

    @pytest.mark.asyncio
    async def test_read_sheet_range(self, connector, connection, gspread):
        gspread.sales.get.return_value = [["Region", "Amount"], ["North", "10"]]
        result = await connector.execute_query(connection, "READ_SHEET:Q1 Sales!A1:B2")
        assert result.columns == ["Region", "Amount"]
        assert result.rows == [["North", 10]]
        gspread.sales.get.assert_called_with("A1:B2")

    @pytest.mark.asyncio
    async def test_get_range(self, connector, connection, gspread):
        gspread.sales.get.return_value = [["Region", "Amount"], ["North"]]
        result = await connector.execute_query(connection, "GET_RANGE:q1_sales:A1:B2")
        assert result.columns == ["col_1", "col_2"]
        assert result.rows == [["Region", "Amount"], ["North", None]]

    @pytest.mark.asyncio
    async def test_update_range(self, connector, connection, gspread):
        await connector.get_table_list(connection)
        result = await connector.execute_query(
            connection, "UPDATE_RANGE:Q1 Sales:B2", params=[["12"]]
        )
        assert result.rows == [["UPDATE_RANGE", "Q1 Sales", "B2", 1]]
        gspread.sales.update.assert_called_once_with(
            values=[["12"]], range_name="B2", value_input_option="USER_ENTERED"
        )
        assert "document" not in connection.state

    @pytest.mark.asyncio
    async def test_append_range(self, connector, connection, gspread):
        result = await connector.execute_query(connection, "APPEND_RANGE:Q1 Sales", params=["East", 3])
        assert result.rows == [["APPEND_RANGE", "Q1 Sales", "Q1 Sales", 1]]
        gspread.sales.append_rows.assert_called_once_with([["East", 3]], value_input_option="USER_ENTERED")

    @pytest.mark.asyncio
    async def test_delete_range(self, connector, connection, gspread):
        result = await connector.execute_query(connection, "DELETE_RANGE:Q1 Sales:A3:B3")
        assert result.rows == [["DELETE_RANGE", "Q1 Sales", "A3:B3", 0]]
        gspread.sales.batch_clear.assert_called_once_with(["A3:B3"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,params,message", [
        ("UPDATE_RANGE:Q1 Sales:B2", None, "Row values are required"),
        ("UPDATE_RANGE:Q1 Sales", [["x"]], "Range is required for UPDATE_RANGE"),
        ("GET_RANGE:Q1 Sales", None, "Range is required"),
        ("GET_RANGE:Nope:A1:B2", None, "Sheet 'Nope' not found"),
        ("READ_SHEET:Nope", None, "Table 'Nope' not found"),
        ("SELECT * FROM sheet", None, "Google Sheets-specific format"),
    ])
    async def test_errors(self, connector, connection, query, params, message):
        with pytest.raises(QueryError, match=message):
            await connector.execute_query(connection, query, params=params)

    @pytest.mark.asyncio
    async def test_spreadsheet_required_for_queries(self, connector, gspread):
        conn = await connector.connect({"oauth_token": "t"})
        with pytest.raises(QueryError, match="Sheet ID is required"):
            await connector.execute_query(conn, "READ_SHEET:")

    @pytest.mark.asyncio
    async def test_api_failure(self, connector, connection, gspread):
        gspread.client.open_by_key.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(SourceConnectionError, match="Google Sheets API error: quota exceeded"):
            await connector.execute_query(connection, "READ_SHEET:")
