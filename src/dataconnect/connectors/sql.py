"""
dataconnect SQL Connector — Shared behaviour of the DB-API backed connectors.

Each operation opens a short-lived driver connection from the parameters on
the ``Connection`` handle, runs in a worker thread and closes it again.
"""

import asyncio
import dataclasses
import logging
import time
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.errors import (
    QueryError,
    SchemaError,
    SourceConnectionError,
    describe_error,
    friendly_connection_message,
)
from ..core.logging import query_preview
from ..core.schema import Column, Connection, QueryResult, ValidationResult
from ..core.validation import (
    SQLDialect,
    apply_limit,
    check_limit,
    format_sql,
    has_order_by,
    strip_statement,
)
from .base import BaseConnector, Probe
from .utils import elapsed_ms

logger = logging.getLogger(__name__)

Rows = Tuple[List[str], List[List[Any]], int]


class SQLConnector(BaseConnector):
    """Base class for connectors that speak SQL through a DB-API driver."""

    dialect: SQLDialect
    default_port: Optional[int] = None
    default_connection_timeout = 30000
    default_query_timeout = 60000
    default_max_connections = 10
    info_sql = "SELECT 1"

    # ──── Config ────

    def check_config(self, config: Dict[str, Any]) -> None:
        if not config.get("host") or not _database_name(config) or not config.get("username"):
            raise ValueError("Host, database name, and username are required")
        port = config.get("port")
        if port not in (None, ""):
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise ValueError(f"Port must be a number, got {port!r}")
            if not 0 < port < 65536:
                raise ValueError("Port must be between 1 and 65535")

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        return Connection(
            source_type=self.source_type,
            host=config["host"],
            port=int(config.get("port") or self.default_port),
            database_name=_database_name(config),
            username=config["username"],
            password=config.get("password"),
            connection_string=config.get("connection_string"),
            ssl_enabled=self.use_ssl(config),
            connection_timeout=int(config.get("connection_timeout") or self.default_connection_timeout),
            query_timeout=int(config.get("query_timeout") or self.default_query_timeout),
            max_connections=int(config.get("max_connections") or self.default_max_connections),
            additional_config=self.extra_options(config),
        )

    def use_ssl(self, config: Dict[str, Any]) -> bool:
        return bool(config.get("ssl_enabled", False))

    def extra_options(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return dict(config.get("additional_config") or {})

    # ──── Driver layer (runs in worker threads) ────

    @abstractmethod
    def open_driver(self, connection: Connection):
        """Open a DB-API connection from the handle's parameters."""

    def _open(self, connection: Connection):
        try:
            return self.open_driver(connection)
        except ImportError:
            raise
        except Exception as e:
            logger.error("%s connection failed: %s", self.display_name, e)
            raise SourceConnectionError(
                friendly_connection_message(e, self.display_name)
            ) from e

    def _run_sync(self, connection: Connection, sql: str, params: Optional[Sequence[Any]]) -> Rows:
        conn = self._open(connection)
        try:
            cursor = conn.cursor()
            try:
                if params is None:
                    cursor.execute(sql)
                else:
                    cursor.execute(sql, tuple(params))
                if cursor.description:
                    columns = [d[0] for d in cursor.description]
                    rows = [list(row) for row in cursor.fetchall()]
                else:
                    columns, rows = [], []
                affected = cursor.rowcount
            finally:
                cursor.close()
            conn.commit()
            return columns, rows, affected
        finally:
            conn.close()

    async def run(
        self, connection: Connection, sql: str, params: Optional[Sequence[Any]] = None
    ) -> Rows:
        return await asyncio.to_thread(self._run_sync, connection, sql, params)

    async def query_dicts(
        self, connection: Connection, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        columns, rows, _ = await self.run(connection, sql, params)
        return [dict(zip(columns, row)) for row in rows]

    # ──── Lifecycle ────

    def _probe_sync(self, connection: Connection) -> Probe:
        start = time.perf_counter()
        conn = self._open(connection)
        connection_ms = elapsed_ms(start)
        try:
            query_start = time.perf_counter()
            cursor = conn.cursor()
            try:
                cursor.execute(self.info_sql)
                row = cursor.fetchone()
            finally:
                cursor.close()
            query_ms = elapsed_ms(query_start)
        finally:
            conn.close()
        return connection_ms, query_ms, self.probe_metadata(connection, row)

    async def probe(self, connection: Connection) -> Probe:
        return await asyncio.to_thread(self._probe_sync, connection)

    def probe_metadata(self, connection: Connection, row) -> Dict[str, Any]:
        row = list(row or [])
        row += [None] * (3 - len(row))
        return {
            "database_version": row[0],
            "database": row[1] or connection.database_name,
            "user": row[2] or connection.username,
            "host": connection.host,
            "port": connection.port,
            "ssl_enabled": connection.ssl_enabled,
        }

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        self.ensure_open(connection)
        _, rows, _ = await self.run(connection, self.info_sql)
        meta = self.probe_metadata(connection, rows[0] if rows else None)
        return {
            "name": meta["database"],
            "version": meta["database_version"] or "unknown",
            "user": meta.get("user"),
            "type": self.source_type,
        }

    # ──── Discovery ────

    @abstractmethod
    async def describe_columns(self, connection: Connection, table_name: str) -> List[Column]:
        """Read the column definitions of one table from the catalog."""

    async def _columns(self, connection: Connection, table_name: str) -> List[Column]:
        cache = connection.state.setdefault("columns", {})
        if table_name not in cache:
            columns = await self.describe_columns(connection, table_name)
            if not columns:
                raise SchemaError(f"Table '{table_name}' not found or has no columns")
            cache[table_name] = columns
        return cache[table_name]

    async def get_column_list(self, connection: Connection, table_name: str) -> List[str]:
        self.ensure_open(connection)
        return [c.name for c in await self._columns(connection, table_name)]

    async def get_column_info(
        self, connection: Connection, table_name: str, column_name: str
    ) -> Column:
        self.ensure_open(connection)
        for column in await self._columns(connection, table_name):
            if column.name == column_name:
                return dataclasses.replace(column, metadata=dict(column.metadata))
        raise SchemaError(f"Column '{column_name}' not found in table '{table_name}'")

    async def get_table_row_count(self, connection: Connection, table_name: str) -> int:
        self.ensure_open(connection)
        _, rows, _ = await self.run(
            connection, f"SELECT COUNT(*) FROM {self.dialect.quote(table_name)}"
        )
        return int(rows[0][0]) if rows else 0

    # ──── Queries ────

    async def execute_query(
        self,
        connection: Connection,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        self.ensure_open(connection)
        logger.debug("%s query: %s", self.display_name, query_preview(query))
        start = time.perf_counter()
        try:
            columns, rows, affected = await self.run(connection, query, params)
        except (SourceConnectionError, ImportError):
            raise
        except Exception as e:
            logger.error("%s query failed: %s", self.display_name, e)
            raise QueryError(f"Query execution failed: {describe_error(e)}", query=query) from e

        metadata: Dict[str, Any] = {"source_type": self.source_type}
        if not columns:
            metadata["affected_rows"] = affected
        return QueryResult(
            columns=columns,
            rows=rows,
            query=query,
            execution_time_ms=elapsed_ms(start),
            metadata=metadata,
        )

    async def execute_query_with_limit(
        self,
        connection: Connection,
        query: str,
        limit: int,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        limit = check_limit(limit)
        sql = query
        if _returns_rows(query):
            if self.dialect.requires_order_by_with_limit and not has_order_by(query):
                raise QueryError(
                    f"{self.dialect.name} requires ORDER BY when using LIMIT", query=query
                )
            sql = apply_limit(query, limit)
        result = await self.execute_query(connection, sql, params)
        return result.truncated(limit)

    def sample_query(self, table_name: str, limit: int) -> str:
        return f"SELECT * FROM {self.dialect.quote(table_name)} LIMIT {check_limit(limit)}"

    def validate_query(self, query: str) -> ValidationResult:
        return self.dialect.validate(query)

    def format_query(self, query: str) -> str:
        return format_sql(query)

    async def get_query_plan(self, connection: Connection, query: str) -> str:
        self.ensure_open(connection)
        verdict = self.validate_query(query)
        if not verdict.valid:
            raise QueryError(verdict.error or "Invalid query", query=query)
        plan_sql = f"{self.dialect.explain_prefix} {strip_statement(query)}"
        try:
            _, rows, _ = await self.run(connection, plan_sql)
        except (SourceConnectionError, ImportError):
            raise
        except Exception as e:
            raise QueryError(f"Failed to get query plan: {describe_error(e)}", query=query) from e
        lines = [f"{self.display_name} Query Plan ({self.plan_source(connection)}):"]
        lines += [" | ".join(str(v) for v in row) for row in rows]
        return "\n".join(lines)

    def plan_source(self, connection: Connection) -> str:
        return f"{connection.host}:{connection.port}/{connection.database_name}"


def _database_name(config: Dict[str, Any]) -> Optional[str]:
    return config.get("database_name") or config.get("database")


def _returns_rows(query: str) -> bool:
    head = query.strip().lower()
    return head.startswith("select") or head.startswith("with")


def seconds(ms: Optional[int], default: int = 30) -> int:
    """Convert a millisecond timeout into whole seconds (at least 1)."""
    if not ms:
        return default
    return max(1, int(ms) // 1000)
