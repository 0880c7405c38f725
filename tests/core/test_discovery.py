import asyncio

import pytest

from dataconnect.connectors.base import BaseConnector
from dataconnect.core.discovery import CancellationToken, build_table, discover_schema
from dataconnect.core.errors import OperationCancelled, SchemaError
from dataconnect.core.schema import (
    Capabilities,
    Column,
    ColumnType,
    Connection,
    ForeignKey,
    Table,
    TableConstraints,
)
from dataconnect.core.validation import QueryGrammar


class FakeConnector(BaseConnector):
    """An in-memory connector whose failures are configured per table."""

    display_name = "Fake"
    grammar = QueryGrammar(label="fake", verbs=("READ",), example="READ:t", sample_verb="READ")

    def __init__(self, tables, *, delays=None, broken=(), broken_columns=(),
                 broken_counts=(), broken_constraints=(), list_error=None, views=True):
        self.data = tables
        self.delays = delays or {}
        self.broken = set(broken)
        self.broken_columns = set(broken_columns)
        self.broken_counts = set(broken_counts)
        self.broken_constraints = set(broken_constraints)
        self.list_error = list_error
        self.capabilities = Capabilities(
            supports_sql=False,
            supported_operations=("READ",),
            supported_data_types=(ColumnType.STRING, ColumnType.INTEGER),
            supports_views=views,
            max_connections=2,
        )
        self.active = 0
        self.peak = 0

    @property
    def source_type(self):
        return "fake"

    def build_connection(self, config):
        return Connection(source_type="fake", database_name="memory")

    async def probe(self, connection):
        return 1.0, 1.0, {}

    async def get_table_list(self, connection):
        if self.list_error:
            raise self.list_error
        return list(self.data)

    async def get_column_list(self, connection, table_name):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(table_name, 0))
        finally:
            self.active -= 1
        if table_name in self.broken:
            raise RuntimeError("permission denied")
        return list(self.data[table_name])

    async def get_column_info(self, connection, table_name, column_name):
        if (table_name, column_name) in self.broken_columns:
            raise RuntimeError("bad type")
        return Column(name=column_name, type=ColumnType.INTEGER)

    async def get_table_row_count(self, connection, table_name):
        if table_name in self.broken_counts:
            raise RuntimeError("count timed out")
        return 10

    async def get_table_constraints(self, connection, table_name):
        if table_name in self.broken_constraints:
            raise RuntimeError("no access to catalog")
        if table_name == "orders":
            return TableConstraints(
                primary_keys=["id"],
                foreign_keys=[ForeignKey("user_id", "users", "id")],
            )
        return TableConstraints()

    async def get_view_list(self, connection):
        return [Table(name="recent_orders", type="view")]

    async def execute_query(self, connection, query, params=None):
        raise NotImplementedError


TABLES = {
    "users": ["id", "name"],
    "orders": ["id", "user_id", "total"],
    "items": ["id"],
}


@pytest.fixture
def connection():
    return Connection(source_type="fake", database_name="memory")


class TestDiscoverSchema:
    @pytest.mark.asyncio
    async def test_full_schema(self, connection):
        schema = await discover_schema(FakeConnector(TABLES), connection)

        assert schema.table_names == ["users", "orders", "items"]
        assert schema.metadata.total_tables == 3
        assert schema.metadata.total_columns == 6
        assert schema.metadata.database_name == "memory"
        assert [v.name for v in schema.views] == ["recent_orders"]
        assert not schema.warnings

        orders = schema.get_table("orders")
        assert orders.row_count == 10
        assert orders.primary_keys == ["id"]
        assert orders.columns[1].is_foreign_key

    @pytest.mark.asyncio
    async def test_preserves_backend_order_under_concurrency(self, connection):
        connector = FakeConnector(TABLES, delays={"users": 0.05, "orders": 0.01})
        schema = await discover_schema(connector, connection, max_workers=3)
        assert schema.table_names == ["users", "orders", "items"]

    @pytest.mark.asyncio
    async def test_worker_bound(self, connection):
        many = {f"t{i}": ["id"] for i in range(8)}
        connector = FakeConnector(many, delays={name: 0.01 for name in many})
        await discover_schema(connector, connection)
        assert connector.peak <= 2

    @pytest.mark.asyncio
    async def test_invalid_workers(self, connection):
        with pytest.raises(ValueError):
            await discover_schema(FakeConnector(TABLES), connection, max_workers=-1)

    @pytest.mark.asyncio
    async def test_table_list_failure_is_fatal(self, connection):
        connector = FakeConnector(TABLES, list_error=RuntimeError("catalog offline"))
        with pytest.raises(SchemaError, match="catalog offline"):
            await discover_schema(connector, connection)

    @pytest.mark.asyncio
    async def test_broken_table_is_skipped_with_warning(self, connection):
        schema = await discover_schema(FakeConnector(TABLES, broken={"orders"}), connection)

        assert schema.table_names == ["users", "items"]
        assert schema.is_partial
        warning = schema.warnings[0]
        assert warning.table == "orders"
        assert warning.stage == "column_list"
        assert warning.message == "permission denied"

    @pytest.mark.asyncio
    async def test_broken_column_degrades_to_unknown(self, connection):
        connector = FakeConnector(TABLES, broken_columns={("users", "name")})
        schema = await discover_schema(connector, connection)

        users = schema.get_table("users")
        assert users.columns[1].name == "name"
        assert users.columns[1].type == ColumnType.UNKNOWN
        assert schema.warnings[0].column == "name"
        assert schema.warnings[0].stage == "column_info"

    @pytest.mark.asyncio
    async def test_row_count_and_constraint_failures(self, connection):
        connector = FakeConnector(
            TABLES, broken_counts={"items"}, broken_constraints={"orders"}
        )
        schema = await discover_schema(connector, connection)

        assert schema.get_table("items").row_count is None
        assert schema.get_table("orders").primary_keys == []
        stages = sorted(w.stage for w in schema.warnings)
        assert stages == ["constraints", "row_count"]

    @pytest.mark.asyncio
    async def test_views_skipped_when_unsupported(self, connection):
        schema = await discover_schema(FakeConnector(TABLES, views=False), connection)
        assert schema.views == []

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, connection):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled, match="cancelled"):
            await discover_schema(FakeConnector(TABLES), connection, cancel_token=token)

    @pytest.mark.asyncio
    async def test_deadline(self, connection):
        connector = FakeConnector(TABLES, delays={name: 0.05 for name in TABLES})
        token = CancellationToken(timeout=0.01)
        with pytest.raises(OperationCancelled):
            await discover_schema(connector, connection, max_workers=1, cancel_token=token)


class TestBuildTable:
    @pytest.mark.asyncio
    async def test_single_table(self, connection):
        warnings = []
        table = await build_table(
            FakeConnector(TABLES), connection, "orders", warnings=warnings
        )
        assert table.column_names == ["id", "user_id", "total"]
        assert table.columns[0].is_primary_key
        assert warnings == []

    @pytest.mark.asyncio
    async def test_column_list_failure_propagates(self, connection):
        with pytest.raises(RuntimeError):
            await build_table(FakeConnector(TABLES, broken={"users"}), connection, "users")

    @pytest.mark.asyncio
    async def test_get_table_info_records_warnings(self, connection):
        connector = FakeConnector(TABLES, broken_counts={"users"})
        table = await connector.get_table_info(connection, "users")
        assert table.metadata["warnings"] == ["users [row_count]: count timed out"]


class TestCancellationToken:
    def test_not_cancelled_by_default(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled

    def test_expired_deadline(self):
        token = CancellationToken(timeout=0)
        assert token.cancelled
        with pytest.raises(OperationCancelled, match="deadline"):
            token.raise_if_cancelled()
