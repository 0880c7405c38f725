"""
dataconnect Base Connector — The async contract every data source implements.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.discovery import CancellationToken, build_table, discover_schema
from ..core.errors import QueryError, SourceConnectionError, describe_error
from ..core.schema import (
    Capabilities,
    Column,
    Connection,
    DataSourceSchema,
    DiscoveryWarning,
    Function,
    Procedure,
    QueryResult,
    Table,
    TableConstraints,
    TestResult,
    ValidationResult,
)
from ..core.validation import QueryGrammar, check_limit, format_verb_query
from .utils import elapsed_ms

logger = logging.getLogger(__name__)

Probe = Tuple[float, float, Dict[str, Any]]


class BaseConnector(ABC):
    """Abstract base class for data source connectors.

    Every connector must implement:
    - `check_config()` / `build_connection()`: validate and normalize config.
    - `probe()`: one lightweight round trip for `test_connection()`.
    - the listing and describing operations used by schema discovery.
    - `execute_query()`.

    Connectors hold no per-call state. Everything tied to one
    connection lives on the `Connection` handle.
    """

    capabilities: Capabilities
    display_name: str = ""
    grammar: Optional[QueryGrammar] = None
    test_error_type: str = "connection_failed"

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the type identifier for this connector (e.g., 'sqlite')."""

    # ──── Lifecycle ────

    def check_config(self, config: Dict[str, Any]) -> None:
        """Raise ValueError if required fields are missing or malformed."""

    @abstractmethod
    def build_connection(self, config: Dict[str, Any]) -> Connection:
        """Create a Connection with this backend's defaults filled in."""

    @abstractmethod
    async def probe(self, connection: Connection) -> Probe:
        """Perform one round trip.

        Returns:
            ``(connection_time_ms, query_time_ms, metadata)``.
        """

    async def release(self, connection: Connection) -> None:
        """Free backend resources held by ``connection``."""

    async def test_connection(self, config: Dict[str, Any]) -> TestResult:
        """Check that the source is reachable. Never raises."""
        start = time.perf_counter()
        try:
            self.check_config(config)
            connection = self.build_connection(config)
        except Exception as e:
            return self._failed_test(e, start)

        try:
            connection_ms, query_ms, metadata = await self.probe(connection)
        except Exception as e:
            logger.error("%s connection test failed: %s", self.display_name, e)
            return self._failed_test(e, start)
        finally:
            try:
                await self.disconnect(connection)
            except Exception as e:
                logger.warning("Ignoring release failure after test: %s", e)

        logger.info("%s connection test succeeded", self.display_name)
        return TestResult(
            success=True,
            connection_time_ms=connection_ms,
            query_time_ms=query_ms,
            metadata=metadata,
        )

    def _failed_test(self, error: Exception, start: float) -> TestResult:
        return TestResult(
            success=False,
            connection_time_ms=elapsed_ms(start),
            query_time_ms=0.0,
            error_message=describe_error(error),
            metadata={"error_type": self.test_error_type},
        )

    async def connect(self, config: Dict[str, Any]) -> Connection:
        """Validate ``config`` and return a connection handle.

        Raises:
            SourceConnectionError: If the config cannot produce a connection.
        """
        try:
            self.check_config(config)
            connection = self.build_connection(config)
        except Exception as e:
            logger.error("%s connection failed: %s", self.display_name, e)
            raise SourceConnectionError(
                f"Failed to connect to {self.display_name}: {describe_error(e)}"
            ) from e
        logger.info("Connected to %s (%s)", self.display_name, connection.id)
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """Release ``connection``. Calling it twice is a no-op."""
        if connection.closed:
            return
        try:
            await self.release(connection)
        except Exception as e:
            logger.error("Error disconnecting from %s: %s", self.display_name, e)
            raise
        finally:
            connection.closed = True
            connection.state.clear()
        logger.info("Disconnected from %s (%s)", self.display_name, connection.id)

    def ensure_open(self, connection: Connection) -> None:
        if connection.closed:
            raise SourceConnectionError(f"Connection {connection.id} is closed")

    # ──── Discovery ────

    async def get_schema(
        self,
        connection: Connection,
        *,
        max_workers: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DataSourceSchema:
        self.ensure_open(connection)
        return await discover_schema(
            self, connection, max_workers=max_workers, cancel_token=cancel_token
        )

    async def get_table_info(self, connection: Connection, table_name: str) -> Table:
        """Describe a single table; partial failures land in ``metadata['warnings']``."""
        self.ensure_open(connection)
        warnings: List[DiscoveryWarning] = []
        table = await build_table(self, connection, table_name, warnings=warnings)
        if warnings:
            table.metadata["warnings"] = [str(w) for w in warnings]
        return table

    @abstractmethod
    async def get_table_list(self, connection: Connection) -> List[str]:
        """Return table (sheet, page set, endpoint) names in backend order."""

    @abstractmethod
    async def get_column_list(self, connection: Connection, table_name: str) -> List[str]:
        """Return column names of ``table_name`` in order."""

    @abstractmethod
    async def get_column_info(
        self, connection: Connection, table_name: str, column_name: str
    ) -> Column:
        """Describe one column."""

    @abstractmethod
    async def get_table_row_count(self, connection: Connection, table_name: str) -> int:
        """Return the number of rows in ``table_name``."""

    async def get_table_constraints(
        self, connection: Connection, table_name: str
    ) -> TableConstraints:
        return TableConstraints()

    async def get_view_list(self, connection: Connection) -> List[Table]:
        return []

    async def get_routines(
        self, connection: Connection
    ) -> Tuple[List[Function], List[Procedure]]:
        return [], []

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        return {
            "name": connection.database_name or self.display_name,
            "version": "unknown",
            "type": self.source_type,
        }

    # ──── Queries ────

    @abstractmethod
    async def execute_query(
        self,
        connection: Connection,
        query: str,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        """Run ``query`` and return every resulting row."""

    async def execute_query_with_limit(
        self,
        connection: Connection,
        query: str,
        limit: int,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        """Run ``query`` and return at most ``limit`` rows."""
        limit = check_limit(limit)
        result = await self.execute_query(connection, query, params)
        return result.truncated(limit)

    def sample_query(self, table_name: str, limit: int) -> str:
        return f"{self.grammar.sample_verb}:{table_name}"

    async def get_sample_data(
        self, connection: Connection, table_name: str, limit: int = 10
    ) -> QueryResult:
        limit = check_limit(limit)
        return await self.execute_query_with_limit(
            connection, self.sample_query(table_name, limit), limit
        )

    def validate_query(self, query: str) -> ValidationResult:
        return self.grammar.validate(query)

    def format_query(self, query: str) -> str:
        return format_verb_query(query)

    async def get_query_plan(self, connection: Connection, query: str) -> str:
        """Describe how a ``VERB:target`` query will be served."""
        self.ensure_open(connection)
        try:
            parsed = self.grammar.parse(query)
        except ValueError as e:
            raise QueryError(str(e), query=query) from e
        target = parsed.target
        try:
            tables = await self.get_table_list(connection)
            count_target = target if target in tables else (tables[0] if tables else target)
            estimated = str(await self.get_table_row_count(connection, count_target))
        except Exception as e:
            logger.debug("Row estimate unavailable for %s: %s", target, e)
            estimated = "unknown"
        return "\n".join([
            f"{self.grammar.label} Query Plan:",
            f"- Source: {self.plan_source(connection)}",
            f"- Operation: {parsed.verb}",
            f"- Target: {target or '(all)'}",
            f"- Estimated rows: {estimated}",
        ])

    def plan_source(self, connection: Connection) -> str:
        return connection.database_name or self.display_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_type={self.source_type!r})"
