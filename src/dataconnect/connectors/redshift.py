"""
dataconnect Redshift Connector — Query and inspect Amazon Redshift clusters.

Redshift speaks the PostgreSQL wire protocol, so the psycopg2 driver is
shared with the PostgreSQL connector. Catalog queries use the ``svv_*``
views; Redshift has no enforced foreign keys and no
conventional indexes.
"""

from typing import Any, Dict, List, Tuple

from .postgres import group_routines, connect_postgres, postgres_column
from .sql import SQLConnector
from ..core.schema import (
    SQL_DATA_TYPES,
    Capabilities,
    Column,
    Connection,
    Function,
    Procedure,
    Table,
    TableConstraints,
)
from ..core.validation import SQLDialect, check_limit

REDSHIFT_DIALECT = SQLDialect(
    name="Redshift",
    allowed_keywords=(
        "select", "insert", "update", "delete", "create", "drop", "alter", "with", "copy", "unload",
    ),
    requires_order_by_with_limit=True,
)

REDSHIFT_CAPABILITIES = Capabilities(
    supports_sql=True,
    supported_operations=(
        "SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "COPY",
        "UNLOAD", "VACUUM", "ANALYZE", "EXPLAIN", "WITH", "CTE",
    ),
    supported_data_types=SQL_DATA_TYPES,
    native_data_types=(
        "VARCHAR", "CHAR", "TEXT", "INTEGER", "BIGINT", "SMALLINT", "DECIMAL", "NUMERIC",
        "REAL", "DOUBLE PRECISION", "BOOLEAN", "DATE", "TIMESTAMP", "TIMESTAMPTZ",
        "INTERVAL", "SUPER", "VARBYTE",
    ),
    supports_transactions=True,
    supports_stored_procedures=True,
    supports_functions=True,
    supports_views=True,
    supports_indexes=False,
    supports_foreign_keys=False,
    max_query_size=10_000_000,
    max_result_size=100_000_000,
    max_connections=5,
)


class RedshiftConnector(SQLConnector):
    """Connector for Amazon Redshift.

    Queries executed with a row limit must carry an ``ORDER BY`` so that
    the returned rows are deterministic across slices.
    """

    display_name = "Redshift"
    capabilities = REDSHIFT_CAPABILITIES
    dialect = REDSHIFT_DIALECT
    default_port = 5439
    default_connection_timeout = 60000
    default_query_timeout = 300000
    default_max_connections = 5
    info_sql = "SELECT version(), current_database(), current_user"

    @property
    def source_type(self) -> str:
        return "redshift"

    def use_ssl(self, config: Dict[str, Any]) -> bool:
        return True

    def extra_options(self, config: Dict[str, Any]) -> Dict[str, Any]:
        options = super().extra_options(config)
        options.setdefault("schema", "public")
        options.setdefault("ssl_mode", "require")
        return options

    def open_driver(self, connection: Connection):
        return connect_postgres(connection, default_sslmode="require")

    def _schema(self, connection: Connection) -> str:
        return connection.option("schema", "public")

    def sample_query(self, table_name: str, limit: int) -> str:
        return (
            f"SELECT * FROM {self.dialect.quote(table_name)} "
            f"ORDER BY 1 LIMIT {check_limit(limit)}"
        )

    async def get_table_list(self, connection: Connection) -> List[str]:
        self.ensure_open(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT table_name
            FROM svv_tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (self._schema(connection),),
        )
        return [row["table_name"] for row in rows]

    async def describe_columns(self, connection: Connection, table_name: str) -> List[Column]:
        rows = await self.query_dicts(
            connection,
            """
            SELECT
                column_name,
                data_type,
                data_type AS udt_name,
                is_nullable,
                column_default,
                character_maximum_length,
                numeric_precision,
                numeric_scale
            FROM svv_columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (self._schema(connection), table_name),
        )
        return [postgres_column(row) for row in rows]

    async def get_table_constraints(
        self, connection: Connection, table_name: str
    ) -> TableConstraints:
        self.ensure_open(connection)
        # Primary keys are informational only on Redshift but still reported.
        rows = await self.query_dicts(
            connection,
            """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND tc.table_schema = %s
              AND tc.table_name = %s
            ORDER BY kcu.ordinal_position
            """,
            (self._schema(connection), table_name),
        )
        return TableConstraints(primary_keys=[row["column_name"] for row in rows])

    async def get_view_list(self, connection: Connection) -> List[Table]:
        self.ensure_open(connection)
        schema = self._schema(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT table_name
            FROM svv_tables
            WHERE table_schema = %s
              AND table_type = 'VIEW'
            ORDER BY table_name
            """,
            (schema,),
        )
        views = []
        for row in rows:
            columns = await self.describe_columns(connection, row["table_name"])
            views.append(Table(
                name=row["table_name"], type="view", schema_name=schema, columns=columns
            ))
        return views

    async def get_routines(
        self, connection: Connection
    ) -> Tuple[List[Function], List[Procedure]]:
        self.ensure_open(connection)
        schema = self._schema(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT
                r.specific_name,
                r.routine_name,
                r.routine_type,
                r.data_type,
                r.external_language,
                NULL AS parameter_name,
                NULL AS parameter_type,
                NULL AS parameter_mode
            FROM information_schema.routines r
            WHERE r.routine_schema = %s
            ORDER BY r.routine_name
            """,
            (schema,),
        )
        return group_routines(rows, schema)
