import pytest
import pytest_asyncio

from dataconnect.connectors.csv_file import CSVConnector, filter_rows, sniff_delimiter
from dataconnect.connectors.tabular import TableData
from dataconnect.core.errors import QueryError, SourceConnectionError
from dataconnect.core.schema import ColumnType


@pytest.fixture
def connector():
    return CSVConnector()


@pytest_asyncio.fixture
async def connection(connector, csv_config):
    conn = await connector.connect(csv_config)
    yield conn
    await connector.disconnect(conn)


class TestCSVConfig:
    def test_extension(self, connector):
        with pytest.raises(ValueError, match=r"File must be a CSV file \(\.csv\)"):
            connector.check_config({"file_path": "/tmp/a.txt", "file_name": "a.txt"})

    def test_grammar(self, connector):
        assert connector.validate_query("read_csv:products").valid
        result = connector.validate_query("SELECT * FROM products")
        assert result.error == "Query must use CSV-specific format (e.g., READ_CSV:table_name)"

    def test_format_query(self, connector):
        assert connector.format_query("filter : price>5") == "FILTER:price>5"


class TestCSVConnection:
    @pytest.mark.asyncio
    async def test_success(self, connector, csv_config):
        result = await connector.test_connection(csv_config)
        assert result.success
        meta = result.metadata
        assert meta["file_type"] == "CSV"
        assert meta["readable"] is True
        assert meta["delimiter"] == ","
        assert meta["has_header"] is True
        assert meta["columns"] == 4
        assert meta["estimated_rows"] == 3
        assert meta["file_size"] > 0

    @pytest.mark.asyncio
    async def test_missing_file_is_not_a_failure(self, connector, tmp_path):
        config = {"file_path": str(tmp_path / "upload.csv"), "file_name": "upload.csv"}
        result = await connector.test_connection(config)
        assert result.success
        assert result.metadata["readable"] is False

        connection = await connector.connect(config)
        with pytest.raises(SourceConnectionError, match="File not found"):
            await connector.execute_query(connection, "READ_CSV:upload")

    @pytest.mark.asyncio
    async def test_bad_extension(self, connector, sample_csv):
        result = await connector.test_connection({"file_path": sample_csv, "file_name": "x.xlsx"})
        assert not result.success
        assert result.metadata["error_type"] == "file_access_failed"


class TestCSVDiscovery:
    @pytest.mark.asyncio
    async def test_schema(self, connector, connection, sample_csv):
        schema = await connector.get_schema(connection)
        assert schema.table_names == ["products"]
        assert schema.metadata.database_name == "products.csv"
        assert schema.metadata.database_version == "CSV"

        table = schema.get_table("products")
        assert table.row_count == 3
        types = {c.name: c.type for c in table.columns}
        assert types == {
            "id": ColumnType.INTEGER,
            "name": ColumnType.STRING,
            "price": ColumnType.FLOAT,
            "in_stock": ColumnType.BOOLEAN,
        }

    @pytest.mark.asyncio
    async def test_column_info(self, connector, connection):
        column = await connector.get_column_info(connection, "products", "name")
        assert column.sample_values == ["Widget", "Gadget", "Doohickey"]
        assert not column.nullable
        assert column.metadata["position"] == 1

    @pytest.mark.asyncio
    async def test_parsed_once_per_connection(self, connector, connection):
        await connector.get_table_list(connection)
        document = connection.state["document"]
        await connector.execute_query(connection, "READ_CSV:products")
        assert connection.state["document"] is document

    @pytest.mark.asyncio
    async def test_bom_and_custom_delimiter(self, connector, tmp_path):
        path = tmp_path / "Sales Report.csv"
        path.write_text("region;amount\nnorth;10\nsouth;\n", encoding="utf-8-sig")
        conn = await connector.connect({
            "file_path": str(path),
            "file_name": "Sales Report.csv",
            "additional_config": {"delimiter": ";"},
        })
        result = await connector.execute_query(conn, "READ_CSV:sales_report")
        assert result.columns == ["region", "amount"]
        assert result.rows == [["north", 10], ["south", None]]

    @pytest.mark.asyncio
    async def test_without_header(self, connector, tmp_path):
        path = tmp_path / "raw.csv"
        path.write_text("1,2\n3,4\n", encoding="utf-8")
        conn = await connector.connect({
            "file_path": str(path),
            "file_name": "raw.csv",
            "additional_config": {"has_header": False},
        })
        assert await connector.get_column_list(conn, "raw") == ["col_1", "col_2"]
        assert await connector.get_table_row_count(conn, "raw") == 2


class TestCSVQueries:
    @pytest.mark.asyncio
    async def test_read(self, connector, connection):
        result = await connector.execute_query(connection, "READ_CSV:products")
        assert result.columns == ["id", "name", "price", "in_stock"]
        assert result.rows[0] == [1, "Widget", 9.99, True]
        assert result.metadata == {
            "source_type": "csv",
            "operation": "READ_CSV",
            "file_name": "products.csv",
        }

    @pytest.mark.asyncio
    async def test_get_rows(self, connector, connection):
        first_two = await connector.execute_query(connection, "GET_ROWS:2")
        assert [r[0] for r in first_two.rows] == [1, 2]
        middle = await connector.execute_query(connection, "GET_ROWS:2-3")
        assert [r[0] for r in middle.rows] == [2, 3]
        named = await connector.execute_query(connection, "GET_ROWS:products:1")
        assert [r[0] for r in named.rows] == [1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,names", [
        ("FILTER:price>5", ["Widget", "Gadget"]),
        ("FILTER:price<=9.99", ["Widget", "Doohickey"]),
        ("FILTER:name~gad", ["Gadget"]),
        ("FILTER:in_stock=true", ["Widget", "Doohickey"]),
        ("FILTER:name!=Widget", ["Gadget", "Doohickey"]),
    ])
    async def test_filter(self, connector, connection, query, names):
        result = await connector.execute_query(connection, query)
        assert [r[1] for r in result.rows] == names

    @pytest.mark.asyncio
    async def test_analyze(self, connector, connection):
        result = await connector.execute_query(connection, "ANALYZE:products")
        assert result.columns == ["column", "type", "non_null", "nulls", "distinct", "min", "max", "mean"]
        profile = {row[0]: row for row in result.rows}
        assert profile["id"] == ["id", "integer", 3, 0, 3, 1, 3, 2.0]
        assert profile["name"][5:] == [None, None, None]

    @pytest.mark.asyncio
    async def test_extract(self, connector, connection):
        result = await connector.execute_query(connection, "EXTRACT:name,price")
        assert result.columns == ["name", "price"]
        assert result.rows[2] == ["Doohickey", 4.5]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,message", [
        ("FILTER:colour=red", "Unknown column: colour"),
        ("FILTER:price", "Filter must look like"),
        ("EXTRACT:name,weight", "Unknown column"),
        ("GET_ROWS:many", "Query execution failed"),
        ("READ_CSV:customers", "Table 'customers' not found"),
        ("SELECT * FROM products", "CSV-specific format"),
    ])
    async def test_errors(self, connector, connection, query, message):
        with pytest.raises(QueryError, match=message):
            await connector.execute_query(connection, query)

    @pytest.mark.asyncio
    async def test_sample_data_is_truncated(self, connector, connection):
        result = await connector.get_sample_data(connection, "products", limit=2)
        assert result.row_count == 2
        assert result.metadata["truncated"] is True
        assert result.metadata["total_rows"] == 3

    @pytest.mark.asyncio
    async def test_query_plan(self, connector, connection, sample_csv):
        plan = await connector.get_query_plan(connection, "FILTER:price>5")
        assert plan.splitlines() == [
            "CSV Query Plan:",
            f"- Source: {sample_csv}",
            "- Operation: FILTER",
            "- Target: price>5",
            "- Estimated rows: 3",
        ]

    @pytest.mark.asyncio
    async def test_query_plan_rejects_malformed_query(self, connector, connection):
        with pytest.raises(QueryError, match="CSV-specific format") as info:
            await connector.get_query_plan(connection, "SELECT * FROM products")
        assert info.value.query == "SELECT * FROM products"


class TestCSVHelpers:
    def test_sniff_delimiter(self):
        assert sniff_delimiter("a\tb\tc\n1\t2\t3\n4\t5\t6\n") == "\t"
        assert sniff_delimiter("") == ","

    def test_filter_skips_nulls(self):
        table = TableData(name="t", columns=["v"], rows=[[10], [2], [None]])
        _, rows = filter_rows(table, "v >= 5")
        assert rows == [[10]]
