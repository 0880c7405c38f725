"""
dataconnect Schema — Universal data source representation.

This module defines the types every connector produces: capability
descriptors, connection handles, discovered schemas, and the normalized
query/test results.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ColumnType(str, Enum):
    """Canonical column types shared by every connector."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    INTERVAL = "interval"
    JSON = "json"
    ARRAY = "array"
    BLOB = "blob"
    UNKNOWN = "unknown"


# Map common SQL types to canonical types
SQL_TYPE_MAP: Dict[str, ColumnType] = {
    # String types
    "text": ColumnType.STRING,
    "varchar": ColumnType.STRING,
    "char": ColumnType.STRING,
    "nvarchar": ColumnType.STRING,
    "nchar": ColumnType.STRING,
    "clob": ColumnType.STRING,
    "character varying": ColumnType.STRING,
    "character": ColumnType.STRING,
    "bpchar": ColumnType.STRING,
    "uuid": ColumnType.STRING,
    "enum": ColumnType.STRING,
    "set": ColumnType.STRING,
    "tinytext": ColumnType.STRING,
    "mediumtext": ColumnType.STRING,
    "longtext": ColumnType.STRING,
    "citext": ColumnType.STRING,
    # Integer types
    "integer": ColumnType.INTEGER,
    "int": ColumnType.INTEGER,
    "int2": ColumnType.INTEGER,
    "int4": ColumnType.INTEGER,
    "int8": ColumnType.INTEGER,
    "smallint": ColumnType.INTEGER,
    "mediumint": ColumnType.INTEGER,
    "bigint": ColumnType.INTEGER,
    "tinyint": ColumnType.INTEGER,
    "serial": ColumnType.INTEGER,
    "bigserial": ColumnType.INTEGER,
    "year": ColumnType.INTEGER,
    # Float types
    "real": ColumnType.FLOAT,
    "float": ColumnType.FLOAT,
    "float4": ColumnType.FLOAT,
    "float8": ColumnType.FLOAT,
    "double": ColumnType.FLOAT,
    "double precision": ColumnType.FLOAT,
    # Exact numerics
    "decimal": ColumnType.DECIMAL,
    "numeric": ColumnType.DECIMAL,
    "money": ColumnType.DECIMAL,
    # Boolean
    "boolean": ColumnType.BOOLEAN,
    "bool": ColumnType.BOOLEAN,
    # Date/time
    "date": ColumnType.DATE,
    "time": ColumnType.TIME,
    "timetz": ColumnType.TIME,
    "time without time zone": ColumnType.TIME,
    "time with time zone": ColumnType.TIME,
    "datetime": ColumnType.DATETIME,
    "timestamp": ColumnType.DATETIME,
    "timestamptz": ColumnType.DATETIME,
    "timestamp without time zone": ColumnType.DATETIME,
    "timestamp with time zone": ColumnType.DATETIME,
    "interval": ColumnType.INTERVAL,
    # JSON
    "json": ColumnType.JSON,
    "jsonb": ColumnType.JSON,
    "super": ColumnType.JSON,
    "array": ColumnType.ARRAY,
    # Binary
    "blob": ColumnType.BLOB,
    "longblob": ColumnType.BLOB,
    "mediumblob": ColumnType.BLOB,
    "tinyblob": ColumnType.BLOB,
    "binary": ColumnType.BLOB,
    "varbinary": ColumnType.BLOB,
    "varbyte": ColumnType.BLOB,
    "bytea": ColumnType.BLOB,
}

# Longest keys first so "double precision" wins over "double" and
# "timestamp with time zone" over "time" during prefix matching.
_PREFIX_KEYS = sorted(SQL_TYPE_MAP, key=len, reverse=True)


def map_sql_type(sql_type: str) -> ColumnType:
    """Map a SQL type string to a canonical ColumnType."""
    normalized = (sql_type or "").lower().strip()
    if not normalized:
        return ColumnType.UNKNOWN
    if normalized.endswith("[]"):
        return ColumnType.ARRAY
    # Try exact match first
    if normalized in SQL_TYPE_MAP:
        return SQL_TYPE_MAP[normalized]
    # Try prefix match (e.g., "varchar(255)" → "varchar")
    for key in _PREFIX_KEYS:
        if normalized.startswith(key):
            return SQL_TYPE_MAP[key]
    return ColumnType.UNKNOWN


SQL_DATA_TYPES = (
    ColumnType.STRING,
    ColumnType.INTEGER,
    ColumnType.FLOAT,
    ColumnType.DECIMAL,
    ColumnType.BOOLEAN,
    ColumnType.DATE,
    ColumnType.TIME,
    ColumnType.DATETIME,
    ColumnType.INTERVAL,
    ColumnType.JSON,
    ColumnType.ARRAY,
    ColumnType.BLOB,
    ColumnType.UNKNOWN,
)


@dataclass(frozen=True)
class Capabilities:
    """Static description of what a connector type supports."""

    supports_sql: bool
    supported_operations: Sequence[str]
    supported_data_types: Sequence[ColumnType]
    native_data_types: Sequence[str] = ()
    supports_transactions: bool = False
    supports_stored_procedures: bool = False
    supports_functions: bool = False
    supports_views: bool = False
    supports_indexes: bool = False
    supports_foreign_keys: bool = False
    max_query_size: Optional[int] = None
    """Largest accepted query text, in bytes."""
    max_result_size: Optional[int] = None
    """Largest result payload, in bytes."""
    max_connections: int = 4
    """Default worker-pool size for schema discovery."""

    def supports_operation(self, operation: str) -> bool:
        return operation.upper() in {op.upper() for op in self.supported_operations}


@dataclass
class Connection:
    """An ephemeral handle returned by ``connect()``.

    It carries the normalized connection parameters; it never holds a
    pooled driver connection. ``state`` is a per-handle cache cleared on
    ``disconnect()``.
    """

    source_type: str
    id: str = ""
    host: Optional[str] = None
    port: Optional[int] = None
    database_name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    connection_string: Optional[str] = None
    ssl_enabled: bool = False
    connection_timeout: Optional[int] = None
    """Milliseconds."""
    query_timeout: Optional[int] = None
    """Milliseconds."""
    max_connections: Optional[int] = None
    additional_config: Dict[str, Any] = field(default_factory=dict, repr=False)
    closed: bool = False
    state: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        if not self.id:
            self.id = f"{self.source_type}_{uuid.uuid4().hex[:12]}"

    def option(self, key: str, default: Any = None) -> Any:
        """Read a backend-specific setting from ``additional_config``."""
        value = self.additional_config.get(key)
        return default if value is None else value


@dataclass
class ForeignKey:
    """A foreign key from a column of one table to another table."""

    column_name: str
    referenced_table: str
    referenced_column: str
    constraint_name: Optional[str] = None
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


@dataclass
class Index:
    name: str
    columns: List[str] = field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    type: Optional[str] = None


@dataclass
class TableConstraints:
    """Keys and indexes of one table, as reported by the backend."""

    primary_keys: List[str] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    unique_columns: List[str] = field(default_factory=list)

    def apply_to(self, column: "Column") -> "Column":
        """Set the key/index flags of ``column`` from these constraints."""
        column.is_primary_key = column.is_primary_key or column.name in self.primary_keys
        column.is_foreign_key = column.is_foreign_key or any(
            fk.column_name == column.name for fk in self.foreign_keys
        )
        indexed = {name for index in self.indexes for name in index.columns}
        column.is_indexed = column.is_indexed or column.name in indexed or column.is_primary_key
        column.is_unique = (
            column.is_unique
            or column.name in self.unique_columns
            or (column.is_primary_key and len(self.primary_keys) == 1)
        )
        return column


@dataclass
class Column:
    """A column/field in a table or data structure."""

    name: str
    type: ColumnType
    native_type: Optional[str] = None
    nullable: bool = True
    default_value: Any = None
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_unique: bool = False
    is_indexed: bool = False
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    sample_values: List[Any] = field(default_factory=list)
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Table:
    """A table, sheet, page set or endpoint in the data source."""

    name: str
    type: str = "table"
    """One of ``table``, ``view`` or ``materialized_view``."""
    schema_name: Optional[str] = None
    columns: List[Column] = field(default_factory=list)
    primary_keys: List[str] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    row_count: Optional[int] = None
    size_bytes: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def primary_key_columns(self) -> List[Column]:
        return [c for c in self.columns if c.is_primary_key]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass
class Parameter:
    name: str
    type: str
    direction: str = "IN"
    default_value: Any = None


@dataclass
class Function:
    name: str
    return_type: str
    schema_name: Optional[str] = None
    parameters: List[Parameter] = field(default_factory=list)
    language: Optional[str] = None
    definition: Optional[str] = None


@dataclass
class Procedure:
    name: str
    schema_name: Optional[str] = None
    parameters: List[Parameter] = field(default_factory=list)
    language: Optional[str] = None
    definition: Optional[str] = None


@dataclass
class DiscoveryWarning:
    """A per-entity failure recorded while discovering a schema."""

    table: Optional[str]
    stage: str
    message: str
    column: Optional[str] = None

    def __str__(self) -> str:
        target = self.table or "<schema>"
        if self.column:
            target = f"{target}.{self.column}"
        return f"{target} [{self.stage}]: {self.message}"


@dataclass
class SchemaMetadata:
    database_name: str
    database_version: str = "unknown"
    schema_version: str = "1.0"
    last_updated: str = ""
    total_tables: int = 0
    total_columns: int = 0

    def __post_init__(self):
        if not self.last_updated:
            self.last_updated = utc_now()


@dataclass
class DataSourceSchema:
    """Complete schema of a discovered data source.

    ``warnings`` lists the tables and columns that could not be fully
    described; the rest of the schema is still usable.
    """

    source_type: str
    metadata: SchemaMetadata
    tables: List[Table] = field(default_factory=list)
    views: List[Table] = field(default_factory=list)
    functions: List[Function] = field(default_factory=list)
    procedures: List[Procedure] = field(default_factory=list)
    warnings: List[DiscoveryWarning] = field(default_factory=list)

    def refresh_totals(self) -> None:
        """Recompute the aggregate counts from ``tables``."""
        self.metadata.total_tables = len(self.tables)
        self.metadata.total_columns = sum(len(t.columns) for t in self.tables)

    @property
    def is_partial(self) -> bool:
        return bool(self.warnings)

    @property
    def table_names(self) -> List[str]:
        """Return table names in discovery order."""
        return [t.name for t in self.tables]

    def get_table(self, name: str) -> Optional[Table]:
        return next((t for t in self.tables if t.name == name), None)

    @property
    def summary(self) -> str:
        parts = [f"Source: {self.source_type} ({self.metadata.database_name})"]
        parts.append(
            f"Tables: {self.metadata.total_tables}, "
            f"Columns: {self.metadata.total_columns}"
        )
        for t in self.tables:
            cols = ", ".join(c.name for c in t.columns[:5])
            suffix = "..." if len(t.columns) > 5 else ""
            row_info = f" ({t.row_count} rows)" if t.row_count is not None else ""
            parts.append(f"  • {t.name}{row_info}: {cols}{suffix}")
        if self.views:
            parts.append(f"Views: {len(self.views)}")
            for v in self.views:
                parts.append(f"  • {v.name}")
        if self.warnings:
            parts.append(f"Warnings: {len(self.warnings)}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueryResult:
    """Normalized result of any query against any connector."""

    columns: List[str]
    rows: List[List[Any]]
    query: str
    execution_time_ms: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    row_count: int = -1

    def __post_init__(self):
        width = len(self.columns)
        normalized = []
        for row in self.rows:
            row = list(row)
            if len(row) < width:
                row.extend([None] * (width - len(row)))
            elif len(row) > width:
                raise ValueError(
                    f"Row has {len(row)} values but the result has {width} columns"
                )
            normalized.append(row)
        self.rows = normalized
        self.row_count = len(self.rows)

    @classmethod
    def from_records(
        cls,
        records: Sequence[Dict[str, Any]],
        query: str,
        columns: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> "QueryResult":
        """Build a result from dict rows; columns default to the union of keys."""
        if columns is None:
            columns = []
            for record in records:
                for key in record:
                    if key not in columns:
                        columns.append(key)
        rows = [[record.get(c) for c in columns] for record in records]
        return cls(columns=list(columns), rows=rows, query=query, **kwargs)

    def truncated(self, limit: int) -> "QueryResult":
        """Return a copy with at most ``limit`` rows."""
        if limit < 0:
            raise ValueError("limit must be >= 0")
        metadata = dict(self.metadata)
        if len(self.rows) > limit:
            metadata["truncated"] = True
            metadata["total_rows"] = len(self.rows)
        return QueryResult(
            columns=list(self.columns),
            rows=self.rows[:limit],
            query=self.query,
            execution_time_ms=self.execution_time_ms,
            metadata=metadata,
        )

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TestResult:
    """Outcome of ``test_connection``.

    Connection and query latency are kept apart so callers can tell network
    or auth slowness from backend processing time.
    """

    __test__ = False  # not a pytest test class

    success: bool
    connection_time_ms: float = 0.0
    query_time_ms: float = 0.0
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
