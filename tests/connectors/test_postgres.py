import sys
from unittest.mock import patch

import pytest

from dataconnect.connectors.postgres import PostgresConnector, is_managed_host, postgres_column
from dataconnect.core.errors import QueryError
from dataconnect.core.schema import ColumnType

CONFIG = {"host": "localhost", "database_name": "shop", "username": "app", "password": "pw"}

COLUMN_FIELDS = [
    "column_name", "data_type", "udt_name", "is_nullable", "column_default",
    "character_maximum_length", "numeric_precision", "numeric_scale",
]
KEY_FIELDS = [
    "constraint_name", "constraint_type", "column_name", "referenced_table",
    "referenced_column", "delete_rule", "update_rule",
]
ROUTINE_FIELDS = [
    "specific_name", "routine_name", "routine_type", "data_type", "external_language",
    "parameter_name", "parameter_type", "parameter_mode",
]


@pytest.fixture
def driver(fake_driver):
    fake_driver.answer(
        "version()", ["version", "current_database", "current_user"],
        [("PostgreSQL 16.1 on x86_64-pc-linux-gnu", "shop", "app")],
    )
    with patch.dict(sys.modules, {"psycopg2": fake_driver.module}):
        yield fake_driver


@pytest.fixture
def catalog(driver):
    """Script a one-table catalog with a view and two routines."""
    driver.answer("information_schema.tables", ["table_name"], [("users",)])
    driver.answer("information_schema.columns", COLUMN_FIELDS, [
        ("id", "integer", "int4", "NO", "nextval('users_id_seq'::regclass)", None, 32, 0),
        ("email", "character varying", "varchar", "YES", None, 255, None, None),
        ("tags", "ARRAY", "_text", "YES", None, None, None, None),
        ("nickname", "USER-DEFINED", "citext", "YES", None, None, None, None),
    ])
    driver.answer("information_schema.table_constraints", KEY_FIELDS, [
        ("users_pkey", "PRIMARY KEY", "id", None, None, None, None),
        ("users_email_key", "UNIQUE", "email", None, None, None, None),
    ])
    driver.answer("pg_indexes", ["indexname", "indexdef"], [
        ("users_pkey", "CREATE UNIQUE INDEX users_pkey ON public.users USING btree (id)"),
        ("users_email_key", "CREATE UNIQUE INDEX users_email_key ON public.users USING btree (email)"),
    ])
    driver.answer("COUNT(*)", ["count"], [(42,)])
    driver.answer("information_schema.views", ["name", "kind"], [("active_users", "view")])
    driver.answer("information_schema.routines", ROUTINE_FIELDS, [
        ("add_1", "add", "FUNCTION", "integer", "SQL", "a", "integer", "IN"),
        ("add_1", "add", "FUNCTION", "integer", "SQL", "b", "integer", "IN"),
        ("cleanup_2", "cleanup", "PROCEDURE", None, "PLPGSQL", None, None, None),
    ])
    return driver


class TestPostgresConfig:
    def test_source_type(self):
        connector = PostgresConnector()
        assert connector.source_type == "postgresql"
        assert connector.capabilities.supports_stored_procedures

    def test_required_fields(self):
        with pytest.raises(ValueError, match="Host, database name, and username are required"):
            PostgresConnector().check_config({"host": "localhost", "username": "app"})

    @pytest.mark.parametrize("port,message", [
        ("abc", "Port must be a number"),
        (0, "between 1 and 65535"),
        (70000, "between 1 and 65535"),
    ])
    def test_port(self, port, message):
        with pytest.raises(ValueError, match=message):
            PostgresConnector().check_config({**CONFIG, "port": port})

    def test_defaults(self):
        conn = PostgresConnector().build_connection(CONFIG)
        assert conn.port == 5432
        assert conn.database_name == "shop"
        assert conn.option("schema") == "public"
        assert not conn.ssl_enabled
        assert conn.query_timeout == 60000
        assert "pw" not in repr(conn)

    def test_database_alias(self):
        config = {"host": "h", "database": "analytics", "username": "u"}
        assert PostgresConnector().build_connection(config).database_name == "analytics"

    @pytest.mark.parametrize("host", ["db.abcd.supabase.co", "prod.x1.us-east-1.rds.amazonaws.com"])
    def test_managed_hosts_use_ssl(self, host):
        assert is_managed_host(host)
        conn = PostgresConnector().build_connection({**CONFIG, "host": host})
        assert conn.ssl_enabled

    def test_custom_schema(self):
        conn = PostgresConnector().build_connection(
            {**CONFIG, "additional_config": {"schema": "sales"}}
        )
        assert conn.option("schema") == "sales"


class TestPostgresConnection:
    @pytest.mark.asyncio
    async def test_success(self, driver):
        result = await PostgresConnector().test_connection(CONFIG)

        assert result.success
        assert result.metadata["database_version"].startswith("PostgreSQL 16.1")
        assert result.metadata["database"] == "shop"
        assert result.metadata["user"] == "app"
        assert result.metadata["port"] == 5432

        kwargs = driver.connect_kwargs
        assert kwargs["host"] == "localhost"
        assert kwargs["dbname"] == "shop"
        assert kwargs["sslmode"] == "prefer"
        assert kwargs["options"] == "-c statement_timeout=60000"
        assert kwargs["connect_timeout"] == 30

    @pytest.mark.asyncio
    async def test_ssl_mode_require(self, driver):
        await PostgresConnector().test_connection({**CONFIG, "ssl_enabled": True})
        assert driver.connect_kwargs["sslmode"] == "require"

    @pytest.mark.asyncio
    async def test_connection_string(self, driver):
        dsn = "postgresql://app:pw@localhost/shop"
        result = await PostgresConnector().test_connection({**CONFIG, "connection_string": dsn})
        assert result.success
        assert driver.connect_args == (dsn,)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,message", [
        ("could not connect to server: Connection refused", "Connection refused."),
        ('password authentication failed for user "app"', "Authentication failed."),
        ('database "shop" does not exist', "Database does not exist."),
    ])
    async def test_friendly_failures(self, driver, error, message):
        driver.connect_error = Exception(error)
        result = await PostgresConnector().test_connection(CONFIG)
        assert not result.success
        assert result.error_message.startswith(message)
        assert result.metadata["error_type"] == "connection_failed"

    @pytest.mark.asyncio
    async def test_missing_driver(self):
        connector = PostgresConnector()
        with patch.dict(sys.modules, {"psycopg2": None}):
            result = await connector.test_connection(CONFIG)
            assert not result.success
            assert "pip install psycopg2-binary" in result.error_message

            connection = await connector.connect(CONFIG)
            with pytest.raises(ImportError, match="psycopg2"):
                await connector.execute_query(connection, "SELECT 1")


class TestPostgresDiscovery:
    def test_column_mapping(self):
        column = postgres_column({
            "column_name": "price", "data_type": "numeric", "udt_name": "numeric",
            "is_nullable": "NO", "numeric_precision": 10, "numeric_scale": 2,
        })
        assert column.type == ColumnType.DECIMAL
        assert column.native_type == "numeric"
        assert not column.nullable
        assert (column.precision, column.scale) == (10, 2)

    @pytest.mark.asyncio
    async def test_schema(self, catalog):
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        schema = await connector.get_schema(connection)
        await connector.disconnect(connection)

        assert schema.metadata.database_name == "shop"
        assert schema.metadata.database_version.startswith("PostgreSQL 16.1")
        assert schema.table_names == ["users"]
        assert not schema.warnings

        users = schema.get_table("users")
        assert users.row_count == 42
        assert users.primary_keys == ["id"]
        types = {c.name: c.type for c in users.columns}
        assert types == {
            "id": ColumnType.INTEGER,
            "email": ColumnType.STRING,
            "tags": ColumnType.ARRAY,
            "nickname": ColumnType.STRING,
        }
        email = users.columns[1]
        assert email.is_unique and email.is_indexed
        assert email.max_length == 255
        assert [i.type for i in users.indexes] == ["btree", "btree"]
        assert users.indexes[0].is_primary

        assert [(v.name, v.type, v.schema_name) for v in schema.views] == [
            ("active_users", "view", "public"),
        ]
        assert [f.name for f in schema.functions] == ["add"]
        assert [p.name for p in schema.functions[0].parameters] == ["a", "b"]
        assert [p.name for p in schema.procedures] == ["cleanup"]

    @pytest.mark.asyncio
    async def test_catalog_queries_are_parameterized(self, catalog):
        connector = PostgresConnector()
        connection = await connector.connect({**CONFIG, "additional_config": {"schema": "sales"}})
        await connector.get_table_list(connection)
        await connector.get_column_list(connection, "users")

        sql, params = catalog.executed[-1]
        assert "information_schema.columns" in sql
        assert params == ("sales", "users")

    @pytest.mark.asyncio
    async def test_column_list_is_cached_per_connection(self, catalog):
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        await connector.get_column_list(connection, "users")
        await connector.get_column_info(connection, "users", "email")
        column_queries = [s for s, _ in catalog.executed if "information_schema.columns" in s]
        assert len(column_queries) == 1


class TestPostgresQueries:
    @pytest.mark.asyncio
    async def test_limit_is_applied_to_sql(self, driver):
        driver.answer("FROM users", ["id", "name"], [(1, "Alice"), (2, "Bob")])
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)

        result = await connector.execute_query_with_limit(connection, "SELECT * FROM users;", 5)

        assert result.rows == [[1, "Alice"], [2, "Bob"]]
        assert driver.executed[-1] == ("SELECT * FROM users LIMIT 5", None)
        assert result.metadata["source_type"] == "postgresql"

    @pytest.mark.asyncio
    async def test_params_are_bound(self, driver):
        driver.answer("WHERE id", ["name"], [("Alice",)])
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        await connector.execute_query(connection, "SELECT name FROM users WHERE id = %s", [1])
        assert driver.executed[-1][1] == (1,)

    @pytest.mark.asyncio
    async def test_write_statement(self, driver):
        driver.answer("UPDATE", rowcount=3)
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        result = await connector.execute_query(connection, "UPDATE users SET active = true")
        assert result.columns == []
        assert result.metadata["affected_rows"] == 3

    @pytest.mark.asyncio
    async def test_driver_error_becomes_query_error(self, driver):
        driver.answer("FROM nowhere", error=Exception('relation "nowhere" does not exist'))
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        with pytest.raises(QueryError, match='relation "nowhere" does not exist'):
            await connector.execute_query(connection, "SELECT * FROM nowhere")

    @pytest.mark.asyncio
    async def test_query_plan(self, driver):
        driver.answer("EXPLAIN", ["QUERY PLAN"], [("Seq Scan on users  (cost=0.00..1.01 rows=1)",)])
        connector = PostgresConnector()
        connection = await connector.connect(CONFIG)
        plan = await connector.get_query_plan(connection, "SELECT * FROM users")
        assert plan.splitlines() == [
            "PostgreSQL Query Plan (localhost:5432/shop):",
            "Seq Scan on users  (cost=0.00..1.01 rows=1)",
        ]
        assert driver.executed[-1][0] == "EXPLAIN SELECT * FROM users"

    def test_sample_query_quotes_identifiers(self):
        assert PostgresConnector().sample_query("users", 10) == 'SELECT * FROM "users" LIMIT 10'
        with pytest.raises(ValueError):
            PostgresConnector().sample_query("users; drop table x", 10)

    def test_validation(self):
        connector = PostgresConnector()
        assert connector.validate_query("WITH t AS (SELECT 1) SELECT * FROM t").valid
        assert not connector.validate_query("SHOW tables").valid
