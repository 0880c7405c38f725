"""
dataconnect Core — Schema types, registry, discovery, validation and execution.
"""

from .discovery import CancellationToken, discover_schema
from .errors import (
    ConnectorError,
    OperationCancelled,
    QueryError,
    SchemaError,
    SourceConnectionError,
    UnknownSourceTypeError,
    UnsupportedOperationError,
)
from .execution import QueryExecutor, negotiate
from .registry import ConnectorRegistry, build_default_registry
from .schema import (
    Capabilities,
    Column,
    ColumnType,
    Connection,
    DataSourceSchema,
    QueryResult,
    Table,
    TestResult,
    ValidationResult,
)

__all__ = [
    "CancellationToken",
    "Capabilities",
    "Column",
    "ColumnType",
    "Connection",
    "ConnectorError",
    "ConnectorRegistry",
    "DataSourceSchema",
    "OperationCancelled",
    "QueryError",
    "QueryExecutor",
    "QueryResult",
    "SchemaError",
    "SourceConnectionError",
    "Table",
    "TestResult",
    "UnknownSourceTypeError",
    "UnsupportedOperationError",
    "ValidationResult",
    "build_default_registry",
    "discover_schema",
    "negotiate",
]
