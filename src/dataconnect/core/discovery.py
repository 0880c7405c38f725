"""
dataconnect Discovery — List, describe and assemble a data source schema.

The pipeline is connector-agnostic: it only calls the listing and
describing operations of the connector contract. Tables are described in
parallel (bounded by a semaphore) and come back in the backend's order.
Per-table and per-column failures are recorded as warnings instead of
aborting the whole discovery.
"""

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING, List, Optional

from .errors import OperationCancelled, SchemaError, describe_error
from .schema import (
    Column,
    ColumnType,
    DataSourceSchema,
    DiscoveryWarning,
    SchemaMetadata,
    Table,
)

if TYPE_CHECKING:
    from ..connectors.base import BaseConnector
    from .schema import Connection

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation for long-running discovery.

    Trip it with ``cancel()`` or give it a ``timeout`` in seconds; the
    pipeline checks it before every table and column.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Schema discovery was cancelled")
        if self.cancelled:
            raise OperationCancelled("Schema discovery deadline exceeded")


def _warn(warnings: Optional[List[DiscoveryWarning]], warning: DiscoveryWarning) -> None:
    logger.warning("Discovery: %s", warning)
    if warnings is not None:
        warnings.append(warning)


async def build_table(
    connector: "BaseConnector",
    connection: "Connection",
    table_name: str,
    *,
    warnings: Optional[List[DiscoveryWarning]] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Table:
    """Describe one table: columns, then constraints, then row count.

    A failing column list propagates to the caller. Failures after that
    degrade the table and are appended to ``warnings``.
    """
    token = cancel_token or CancellationToken()
    token.raise_if_cancelled()

    column_names = await connector.get_column_list(connection, table_name)

    columns: List[Column] = []
    for column_name in column_names:
        token.raise_if_cancelled()
        try:
            column = await connector.get_column_info(connection, table_name, column_name)
        except OperationCancelled:
            raise
        except Exception as e:
            _warn(warnings, DiscoveryWarning(
                table=table_name,
                column=column_name,
                stage="column_info",
                message=describe_error(e),
            ))
            column = Column(name=column_name, type=ColumnType.UNKNOWN)
        columns.append(column)

    table = Table(name=table_name, columns=columns)

    token.raise_if_cancelled()
    try:
        constraints = await connector.get_table_constraints(connection, table_name)
    except OperationCancelled:
        raise
    except Exception as e:
        _warn(warnings, DiscoveryWarning(
            table=table_name, stage="constraints", message=describe_error(e)
        ))
    else:
        for column in table.columns:
            constraints.apply_to(column)
        table.primary_keys = list(constraints.primary_keys)
        table.foreign_keys = list(constraints.foreign_keys)
        table.indexes = list(constraints.indexes)

    token.raise_if_cancelled()
    try:
        table.row_count = await connector.get_table_row_count(connection, table_name)
    except OperationCancelled:
        raise
    except Exception as e:
        _warn(warnings, DiscoveryWarning(
            table=table_name, stage="row_count", message=describe_error(e)
        ))

    return table


async def discover_schema(
    connector: "BaseConnector",
    connection: "Connection",
    *,
    max_workers: Optional[int] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> DataSourceSchema:
    """Run the discovery pipeline against an open connection.

    Args:
        connector: The connector that owns ``connection``.
        connection: Handle returned by ``connector.connect()``.
        max_workers: Tables described concurrently. Defaults to the
            connection's ``max_connections``, then the capability default.
        cancel_token: Optional token checked before every entity.

    Raises:
        SchemaError: If the table list itself cannot be read.
        OperationCancelled: If the token trips mid-discovery.
    """
    token = cancel_token or CancellationToken()
    capabilities = connector.capabilities
    workers = max_workers or connection.max_connections or capabilities.max_connections
    if workers < 1:
        raise ValueError("max_workers must be >= 1")

    token.raise_if_cancelled()
    warnings: List[DiscoveryWarning] = []

    try:
        table_names = await connector.get_table_list(connection)
    except OperationCancelled:
        raise
    except Exception as e:
        logger.error("Failed to list tables for %s: %s", connector.source_type, e)
        raise SchemaError(
            f"Failed to list tables for {connector.source_type}: {describe_error(e)}"
        ) from e

    logger.info(
        "Discovering %d tables from %s (workers=%d)",
        len(table_names), connector.source_type, workers,
    )

    semaphore = asyncio.Semaphore(workers)

    async def describe(index: int, name: str):
        async with semaphore:
            token.raise_if_cancelled()
            try:
                table = await build_table(
                    connector, connection, name, warnings=warnings, cancel_token=token
                )
            except OperationCancelled:
                raise
            except Exception as e:
                _warn(warnings, DiscoveryWarning(
                    table=name, stage="column_list", message=describe_error(e)
                ))
                return index, None
            return index, table

    tasks = [
        asyncio.ensure_future(describe(i, name)) for i, name in enumerate(table_names)
    ]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    tables = [table for _, table in sorted(results, key=lambda r: r[0]) if table is not None]

    views: List[Table] = []
    if capabilities.supports_views:
        token.raise_if_cancelled()
        try:
            views = list(await connector.get_view_list(connection))
        except OperationCancelled:
            raise
        except Exception as e:
            _warn(warnings, DiscoveryWarning(table=None, stage="views", message=describe_error(e)))

    functions, procedures = [], []
    if capabilities.supports_functions or capabilities.supports_stored_procedures:
        token.raise_if_cancelled()
        try:
            functions, procedures = await connector.get_routines(connection)
        except OperationCancelled:
            raise
        except Exception as e:
            _warn(warnings, DiscoveryWarning(table=None, stage="routines", message=describe_error(e)))

    database_name = connection.database_name or connector.source_type
    database_version = "unknown"
    try:
        info = await connector.get_database_info(connection)
        database_name = info.get("name") or database_name
        database_version = str(info.get("version") or database_version)
    except OperationCancelled:
        raise
    except Exception as e:
        _warn(warnings, DiscoveryWarning(table=None, stage="database_info", message=describe_error(e)))

    schema = DataSourceSchema(
        source_type=connector.source_type,
        metadata=SchemaMetadata(
            database_name=database_name,
            database_version=database_version,
        ),
        tables=tables,
        views=views,
        functions=list(functions),
        procedures=list(procedures),
        warnings=warnings,
    )
    schema.refresh_totals()

    logger.info(
        "Discovered %d tables, %d columns from %s (%d warnings)",
        schema.metadata.total_tables,
        schema.metadata.total_columns,
        connector.source_type,
        len(warnings),
    )
    return schema
