"""
dataconnect SQLite Connector — Query and inspect SQLite database files.
"""

import os
import sqlite3
from typing import Any, Dict, List
from urllib.parse import quote

from .sql import SQLConnector
from .utils import file_extension
from ..core.schema import (
    SQL_DATA_TYPES,
    Capabilities,
    Column,
    Connection,
    ForeignKey,
    Index,
    Table,
    TableConstraints,
    map_sql_type,
)
from ..core.validation import SQLDialect

SQLITE_EXTENSIONS = (".db", ".sqlite", ".sqlite3")

SQLITE_DIALECT = SQLDialect(
    name="SQLite",
    allowed_keywords=(
        "select", "insert", "update", "delete", "create", "drop", "alter",
        "pragma", "attach", "detach", "vacuum", "analyze",
    ),
    explain_prefix="EXPLAIN QUERY PLAN",
)

SQLITE_CAPABILITIES = Capabilities(
    supports_sql=True,
    supported_operations=(
        "SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "INDEX",
        "VIEW", "TRIGGER", "ATTACH", "DETACH", "VACUUM", "ANALYZE",
    ),
    supported_data_types=SQL_DATA_TYPES,
    native_data_types=(
        "TEXT", "INTEGER", "REAL", "BLOB", "NUMERIC", "VARCHAR", "CHAR", "INT", "BIGINT",
        "SMALLINT", "TINYINT", "DECIMAL", "FLOAT", "DOUBLE", "BOOLEAN", "DATE", "DATETIME",
    ),
    supports_transactions=True,
    supports_stored_procedures=False,
    supports_functions=True,
    supports_views=True,
    supports_indexes=True,
    supports_foreign_keys=True,
    max_query_size=1_000_000,
    max_result_size=10_000_000,
    max_connections=4,
)


class SQLiteConnector(SQLConnector):
    """Connector for SQLite databases.

    Config: ``file_path`` (the database file) and ``file_name`` (its
    display name, which must end in .db, .sqlite or .sqlite3). The file
    is opened read-write but never created.
    """

    display_name = "SQLite"
    capabilities = SQLITE_CAPABILITIES
    dialect = SQLITE_DIALECT
    test_error_type = "file_access_failed"
    default_query_timeout = 30000
    default_max_connections = 4
    info_sql = "SELECT sqlite_version()"

    @property
    def source_type(self) -> str:
        return "sqlite"

    def check_config(self, config: Dict[str, Any]) -> None:
        if not config.get("file_path") or not config.get("file_name"):
            raise ValueError("File path and name are required")
        if file_extension(config["file_name"]) not in SQLITE_EXTENSIONS:
            raise ValueError("File must be a SQLite database file (.db, .sqlite, or .sqlite3)")

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        options = dict(config.get("additional_config") or {})
        options["file_path"] = _db_path(config["file_path"])
        return Connection(
            source_type=self.source_type,
            database_name=config["file_name"],
            connection_timeout=int(config.get("connection_timeout") or self.default_connection_timeout),
            query_timeout=int(config.get("query_timeout") or self.default_query_timeout),
            max_connections=int(config.get("max_connections") or self.default_max_connections),
            additional_config=options,
        )

    def open_driver(self, connection: Connection):
        db_path = connection.option("file_path")
        if not os.path.isfile(db_path):
            raise FileNotFoundError(f"Database not found: {db_path}")
        timeout = (connection.query_timeout or self.default_query_timeout) / 1000
        uri = f"file:{quote(os.path.abspath(db_path))}?mode=rw"
        return sqlite3.connect(uri, uri=True, timeout=timeout)

    def probe_metadata(self, connection: Connection, row) -> Dict[str, Any]:
        db_path = connection.option("file_path")
        return {
            "database_version": f"SQLite {row[0]}" if row else "SQLite",
            "database": connection.database_name,
            "file_path": db_path,
            "file_size_bytes": os.path.getsize(db_path) if os.path.isfile(db_path) else None,
        }

    def plan_source(self, connection: Connection) -> str:
        return connection.option("file_path")

    async def get_table_list(self, connection: Connection) -> List[str]:
        self.ensure_open(connection)
        _, rows, _ = await self.run(
            connection,
            "SELECT name FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name",
        )
        return [row[0] for row in rows]

    async def describe_columns(self, connection: Connection, table_name: str) -> List[Column]:
        rows = await self.query_dicts(
            connection, f"PRAGMA table_info({self.dialect.quote(table_name)})"
        )
        return [
            Column(
                name=col["name"],
                type=map_sql_type(col["type"] or "text"),
                native_type=col["type"] or None,
                nullable=not col["notnull"] and not col["pk"],
                default_value=col["dflt_value"],
                is_primary_key=bool(col["pk"]),
            )
            for col in rows
        ]

    async def get_table_constraints(
        self, connection: Connection, table_name: str
    ) -> TableConstraints:
        self.ensure_open(connection)
        quoted = self.dialect.quote(table_name)
        constraints = TableConstraints()

        columns = await self.query_dicts(connection, f"PRAGMA table_info({quoted})")
        constraints.primary_keys = [
            c["name"] for c in sorted(columns, key=lambda c: c["pk"]) if c["pk"]
        ]

        for fk in await self.query_dicts(connection, f"PRAGMA foreign_key_list({quoted})"):
            constraints.foreign_keys.append(ForeignKey(
                column_name=fk["from"],
                referenced_table=fk["table"],
                referenced_column=fk["to"],
                constraint_name=f"fk_{table_name}_{fk['id']}",
                on_delete=fk["on_delete"],
                on_update=fk["on_update"],
            ))

        for idx in await self.query_dicts(connection, f"PRAGMA index_list({quoted})"):
            info = await self.query_dicts(
                connection, f"PRAGMA index_info({self.dialect.quote(idx['name'])})"
            )
            index = Index(
                name=idx["name"],
                columns=[i["name"] for i in sorted(info, key=lambda i: i["seqno"])],
                is_unique=bool(idx["unique"]),
                is_primary=idx["origin"] == "pk",
                type="btree",
            )
            constraints.indexes.append(index)
            if index.is_unique and len(index.columns) == 1:
                constraints.unique_columns.append(index.columns[0])
        return constraints

    async def get_view_list(self, connection: Connection) -> List[Table]:
        self.ensure_open(connection)
        _, rows, _ = await self.run(
            connection,
            "SELECT name FROM sqlite_master WHERE type='view' ORDER BY name",
        )
        views = []
        for (name,) in rows:
            columns = await self.describe_columns(connection, name)
            views.append(Table(name=name, type="view", columns=columns))
        return views

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        info = await super().get_database_info(connection)
        info["file_path"] = connection.option("file_path")
        return info


def _db_path(path: str) -> str:
    """Accept plain paths and ``sqlite:///`` URIs."""
    if path.startswith("sqlite:///"):
        path = path[len("sqlite:///"):]
    elif path.startswith("sqlite://"):
        path = path[len("sqlite://"):]
    return os.path.expanduser(path)
