"""
dataconnect PostgreSQL Connector — Query and inspect PostgreSQL databases.
"""

import re
from typing import Any, Dict, List, Tuple

from .sql import SQLConnector, seconds
from ..core.schema import (
    SQL_DATA_TYPES,
    Capabilities,
    Column,
    ColumnType,
    Connection,
    ForeignKey,
    Function,
    Index,
    Parameter,
    Procedure,
    Table,
    TableConstraints,
    map_sql_type,
)
from ..core.validation import SQLDialect

# Managed hosts that only accept TLS connections
MANAGED_HOST_PATTERNS = (
    "supabase.co",
    "supabase.com",
    "rds.amazonaws.com",
    "neon.tech",
    "render.com",
    "azure.com",
    "digitalocean.com",
    "elephantsql.com",
    "heroku.com",
    "aiven.io",
)

POSTGRES_DIALECT = SQLDialect(
    name="PostgreSQL",
    allowed_keywords=(
        "select", "insert", "update", "delete", "create", "drop", "alter", "with", "explain",
    ),
)

POSTGRES_CAPABILITIES = Capabilities(
    supports_sql=True,
    supported_operations=(
        "SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "INDEX",
        "VIEW", "FUNCTION", "PROCEDURE", "TRIGGER", "WITH", "EXPLAIN",
    ),
    supported_data_types=SQL_DATA_TYPES,
    native_data_types=(
        "VARCHAR", "TEXT", "CHAR", "UUID", "INTEGER", "BIGINT", "SMALLINT", "SERIAL",
        "DECIMAL", "NUMERIC", "REAL", "DOUBLE PRECISION", "MONEY", "BOOLEAN", "DATE",
        "TIME", "TIMESTAMP", "TIMESTAMPTZ", "INTERVAL", "JSON", "JSONB", "ARRAY", "BYTEA",
    ),
    supports_transactions=True,
    supports_stored_procedures=True,
    supports_functions=True,
    supports_views=True,
    supports_indexes=True,
    supports_foreign_keys=True,
    max_query_size=1_000_000,
    max_result_size=10_000_000,
    max_connections=10,
)

_INDEX_COLUMNS = re.compile(r"\((.*)\)")


def is_managed_host(host: str) -> bool:
    host = (host or "").lower()
    return any(pattern in host for pattern in MANAGED_HOST_PATTERNS)


def connect_postgres(connection: Connection, default_sslmode: str = "prefer"):
    """Open a psycopg2 connection with timeouts taken from the handle."""
    try:
        import psycopg2
    except ImportError:
        raise ImportError(
            "PostgreSQL support requires psycopg2.\n"
            "Install it with: pip install psycopg2-binary"
        )

    options = f"-c statement_timeout={int(connection.query_timeout or 0)}"
    connect_timeout = seconds(connection.connection_timeout)
    if connection.connection_string:
        return psycopg2.connect(
            connection.connection_string,
            connect_timeout=connect_timeout,
            options=options,
        )

    sslmode = connection.option("ssl_mode") or ("require" if connection.ssl_enabled else default_sslmode)
    return psycopg2.connect(
        host=connection.host,
        port=connection.port,
        dbname=connection.database_name,
        user=connection.username,
        password=connection.password,
        connect_timeout=connect_timeout,
        sslmode=sslmode,
        options=options,
        application_name="dataconnect",
    )


def postgres_column(row: Dict[str, Any]) -> Column:
    """Build a Column from an ``information_schema.columns`` row."""
    data_type = row.get("data_type") or ""
    udt_name = row.get("udt_name") or ""
    if data_type == "ARRAY" or udt_name.startswith("_"):
        column_type = ColumnType.ARRAY
    elif data_type == "USER-DEFINED":
        column_type = map_sql_type(udt_name)
    else:
        column_type = map_sql_type(data_type)
    return Column(
        name=row["column_name"],
        type=column_type,
        native_type=udt_name or data_type,
        nullable=row.get("is_nullable") == "YES",
        default_value=row.get("column_default"),
        max_length=row.get("character_maximum_length"),
        precision=row.get("numeric_precision"),
        scale=row.get("numeric_scale"),
    )


class PostgresConnector(SQLConnector):
    """Connector for PostgreSQL databases.

    Tables come from ``information_schema`` of one schema (``public`` by
    default, or ``additional_config['schema']``). SSL is switched on
    automatically for well-known managed hosts.
    """

    display_name = "PostgreSQL"
    capabilities = POSTGRES_CAPABILITIES
    dialect = POSTGRES_DIALECT
    default_port = 5432
    info_sql = "SELECT version(), current_database(), current_user"

    @property
    def source_type(self) -> str:
        return "postgresql"

    def use_ssl(self, config: Dict[str, Any]) -> bool:
        return bool(config.get("ssl_enabled")) or is_managed_host(config.get("host", ""))

    def extra_options(self, config: Dict[str, Any]) -> Dict[str, Any]:
        options = super().extra_options(config)
        options.setdefault("schema", "public")
        return options

    def open_driver(self, connection: Connection):
        return connect_postgres(connection)

    def _schema(self, connection: Connection) -> str:
        return connection.option("schema", "public")

    async def get_table_list(self, connection: Connection) -> List[str]:
        self.ensure_open(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT table_name
            FROM information_schema.tables
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
                udt_name,
                is_nullable,
                column_default,
                character_maximum_length,
                numeric_precision,
                numeric_scale
            FROM information_schema.columns
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
        schema = self._schema(connection)
        key_rows = await self.query_dicts(
            connection,
            """
            SELECT
                tc.constraint_name,
                tc.constraint_type,
                kcu.column_name,
                ccu.table_name AS referenced_table,
                ccu.column_name AS referenced_column,
                rc.delete_rule,
                rc.update_rule
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            LEFT JOIN information_schema.referential_constraints rc
                ON tc.constraint_name = rc.constraint_name
                AND tc.table_schema = rc.constraint_schema
            LEFT JOIN information_schema.constraint_column_usage ccu
                ON rc.unique_constraint_name = ccu.constraint_name
                AND rc.unique_constraint_schema = ccu.constraint_schema
            WHERE tc.table_schema = %s
              AND tc.table_name = %s
              AND tc.constraint_type IN ('PRIMARY KEY', 'FOREIGN KEY', 'UNIQUE')
            ORDER BY kcu.ordinal_position
            """,
            (schema, table_name),
        )

        constraints = TableConstraints()
        for row in key_rows:
            kind = row["constraint_type"]
            if kind == "PRIMARY KEY":
                constraints.primary_keys.append(row["column_name"])
            elif kind == "UNIQUE":
                constraints.unique_columns.append(row["column_name"])
            elif kind == "FOREIGN KEY":
                constraints.foreign_keys.append(ForeignKey(
                    column_name=row["column_name"],
                    referenced_table=row["referenced_table"],
                    referenced_column=row["referenced_column"],
                    constraint_name=row["constraint_name"],
                    on_delete=row.get("delete_rule"),
                    on_update=row.get("update_rule"),
                ))

        index_rows = await self.query_dicts(
            connection,
            "SELECT indexname, indexdef FROM pg_indexes WHERE schemaname = %s AND tablename = %s",
            (schema, table_name),
        )
        for row in index_rows:
            definition = row["indexdef"] or ""
            match = _INDEX_COLUMNS.search(definition)
            columns = [c.strip().strip('"') for c in match.group(1).split(",")] if match else []
            method = re.search(r"USING (\w+)", definition)
            constraints.indexes.append(Index(
                name=row["indexname"],
                columns=columns,
                is_unique="UNIQUE INDEX" in definition.upper(),
                is_primary=row["indexname"].endswith("_pkey"),
                type=method.group(1) if method else None,
            ))
        return constraints

    async def get_view_list(self, connection: Connection) -> List[Table]:
        self.ensure_open(connection)
        schema = self._schema(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT table_name AS name, 'view' AS kind
            FROM information_schema.views
            WHERE table_schema = %s
            UNION ALL
            SELECT matviewname AS name, 'materialized_view' AS kind
            FROM pg_matviews
            WHERE schemaname = %s
            ORDER BY name
            """,
            (schema, schema),
        )
        views = []
        for row in rows:
            columns = await self.describe_columns(connection, row["name"])
            views.append(Table(
                name=row["name"], type=row["kind"], schema_name=schema, columns=columns
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
                p.parameter_name,
                p.data_type AS parameter_type,
                p.parameter_mode
            FROM information_schema.routines r
            LEFT JOIN information_schema.parameters p
                ON r.specific_name = p.specific_name
                AND r.specific_schema = p.specific_schema
            WHERE r.routine_schema = %s
            ORDER BY r.routine_name, p.ordinal_position
            """,
            (schema,),
        )
        return group_routines(rows, schema)


def group_routines(rows, schema: str) -> Tuple[List[Function], List[Procedure]]:
    functions: Dict[str, Function] = {}
    procedures: Dict[str, Procedure] = {}
    for row in rows:
        key = row["specific_name"]
        if row["routine_type"] == "PROCEDURE":
            routine = procedures.setdefault(key, Procedure(
                name=row["routine_name"], schema_name=schema, language=row.get("external_language"),
            ))
        else:
            routine = functions.setdefault(key, Function(
                name=row["routine_name"],
                return_type=row.get("data_type") or "void",
                schema_name=schema,
                language=row.get("external_language"),
            ))
        if row.get("parameter_name") or row.get("parameter_type"):
            routine.parameters.append(Parameter(
                name=row.get("parameter_name") or f"arg{len(routine.parameters) + 1}",
                type=row.get("parameter_type") or "unknown",
                direction=row.get("parameter_mode") or "IN",
            ))
    return list(functions.values()), list(procedures.values())
