"""
dataconnect Execution — Dispatch a query to the right connector.

``QueryExecutor`` is the single entry point for the query layer: it
resolves the connector, negotiates capabilities, validates, runs the
query on a fresh connection and always releases it.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from .config import Settings
from .errors import QueryError, UnsupportedOperationError
from .logging import query_preview
from .schema import DataSourceSchema, QueryResult, TestResult
from .validation import looks_like_sql

if TYPE_CHECKING:
    from ..connectors.base import BaseConnector
    from .discovery import CancellationToken
    from .registry import ConnectorRegistry

logger = logging.getLogger(__name__)


def negotiate(connector: "BaseConnector", query: str) -> None:
    """Refuse a query the connector's capabilities cannot accept.

    Raises:
        UnsupportedOperationError: Raw SQL sent to a non-SQL connector, a
            query above ``max_query_size``, or a verb outside
            ``supported_operations``.
    """
    capabilities = connector.capabilities

    if not capabilities.supports_sql and looks_like_sql(query):
        example = getattr(connector.grammar, "example", "VERB:target")
        raise UnsupportedOperationError(
            f"{connector.display_name} does not accept SQL; "
            f"use its query format instead (e.g., {example})"
        )

    if capabilities.max_query_size is not None:
        size = len(query.encode("utf-8"))
        if size > capabilities.max_query_size:
            raise UnsupportedOperationError(
                f"Query is {size} bytes; {connector.display_name} accepts at most "
                f"{capabilities.max_query_size} bytes"
            )

    if not capabilities.supports_sql and ":" in query:
        verb = query.strip().split(":", 1)[0].strip().upper()
        if verb and not capabilities.supports_operation(verb) and verb not in connector.grammar.verbs:
            raise UnsupportedOperationError(
                f"{connector.display_name} does not support operation '{verb}'"
            )


def enforce_result_size(result: QueryResult, max_bytes: Optional[int]) -> QueryResult:
    """Drop trailing rows until the JSON payload fits in ``max_bytes``."""
    if max_bytes is None or not result.rows:
        return result

    def size(rows) -> int:
        return len(json.dumps(rows, default=str).encode("utf-8"))

    if size(result.rows) <= max_bytes:
        return result

    keep = len(result.rows)
    while keep > 0 and size(result.rows[:keep]) > max_bytes:
        keep //= 2
    trimmed = result.truncated(keep)
    trimmed.metadata["truncated"] = True
    trimmed.metadata["total_rows"] = result.row_count
    trimmed.metadata["max_result_size"] = max_bytes
    logger.warning(
        "Result of %d rows exceeded %d bytes; kept %d rows",
        result.row_count, max_bytes, keep,
    )
    return trimmed


class QueryExecutor:
    """Run queries, discovery and connection tests through a registry."""

    def __init__(self, registry: "ConnectorRegistry", settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or Settings()

    async def run(
        self,
        source_type: str,
        config: Dict[str, Any],
        query: str,
        *,
        limit: Optional[int] = None,
        params: Optional[Sequence[Any]] = None,
    ) -> QueryResult:
        """Validate and execute ``query`` against a fresh connection.

        Raises:
            UnknownSourceTypeError: If ``source_type`` is not registered.
            UnsupportedOperationError: If capability negotiation fails.
            QueryError: If validation or execution fails.
            SourceConnectionError: If the backend cannot be reached.
        """
        connector = self.registry.require(source_type)
        negotiate(connector, query)

        verdict = connector.validate_query(query)
        if not verdict.valid:
            raise QueryError(verdict.error or "Invalid query", query=query)

        row_cap = self.settings.clamp_limit(limit)
        logger.debug("Running %s query: %s", source_type, query_preview(query))

        connection = await connector.connect(config)
        try:
            result = await connector.execute_query_with_limit(
                connection, query, row_cap, params=params
            )
        finally:
            await connector.disconnect(connection)

        return enforce_result_size(result, connector.capabilities.max_result_size)

    async def discover(
        self,
        source_type: str,
        config: Dict[str, Any],
        *,
        max_workers: Optional[int] = None,
        cancel_token: Optional["CancellationToken"] = None,
    ) -> DataSourceSchema:
        """Connect, discover the schema and disconnect."""
        connector = self.registry.require(source_type)
        connection = await connector.connect(config)
        try:
            return await connector.get_schema(
                connection,
                max_workers=max_workers or self.settings.discovery_workers,
                cancel_token=cancel_token,
            )
        finally:
            await connector.disconnect(connection)

    async def test(self, source_type: str, config: Dict[str, Any]) -> TestResult:
        return await self.registry.require(source_type).test_connection(config)
