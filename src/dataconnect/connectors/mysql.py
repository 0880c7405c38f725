"""
dataconnect MySQL Connector — Query and inspect MySQL databases.
"""

from typing import Any, Dict, List, Tuple

from .sql import SQLConnector, seconds
from ..core.schema import (
    SQL_DATA_TYPES,
    Capabilities,
    Column,
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

MYSQL_DIALECT = SQLDialect(
    name="MySQL",
    allowed_keywords=(
        "select", "insert", "update", "delete", "create", "drop", "alter",
        "show", "describe", "explain",
    ),
    identifier_quote="`",
)

MYSQL_CAPABILITIES = Capabilities(
    supports_sql=True,
    supported_operations=(
        "SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "INDEX",
        "VIEW", "FUNCTION", "PROCEDURE", "TRIGGER", "EVENT", "SCHEMA",
    ),
    supported_data_types=SQL_DATA_TYPES,
    native_data_types=(
        "VARCHAR", "TEXT", "CHAR", "INT", "BIGINT", "SMALLINT", "TINYINT", "DECIMAL", "NUMERIC",
        "FLOAT", "DOUBLE", "BOOLEAN", "DATE", "TIME", "DATETIME", "TIMESTAMP", "YEAR",
        "BLOB", "LONGBLOB", "JSON", "ENUM", "SET",
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


def mysql_column(row: Dict[str, Any]) -> Column:
    """Build a Column from an ``information_schema.COLUMNS`` row."""
    column_type = row.get("COLUMN_TYPE") or row.get("DATA_TYPE") or ""
    key = row.get("COLUMN_KEY") or ""
    return Column(
        name=row["COLUMN_NAME"],
        # tinyint(1) is MySQL's boolean
        type=map_sql_type("boolean" if column_type.lower() == "tinyint(1)" else row.get("DATA_TYPE") or ""),
        native_type=column_type,
        nullable=row.get("IS_NULLABLE") == "YES",
        default_value=row.get("COLUMN_DEFAULT"),
        is_primary_key=key == "PRI",
        is_unique=key in ("PRI", "UNI"),
        is_indexed=bool(key),
        max_length=row.get("CHARACTER_MAXIMUM_LENGTH"),
        precision=row.get("NUMERIC_PRECISION"),
        scale=row.get("NUMERIC_SCALE"),
        description=row.get("COLUMN_COMMENT") or None,
    )


class MySQLConnector(SQLConnector):
    """Connector for MySQL databases.

    Catalog data comes from ``information_schema`` restricted to the
    configured database. Connections use ``utf8mb4``.
    """

    display_name = "MySQL"
    capabilities = MYSQL_CAPABILITIES
    dialect = MYSQL_DIALECT
    default_port = 3306
    info_sql = "SELECT VERSION(), DATABASE(), USER()"

    @property
    def source_type(self) -> str:
        return "mysql"

    def extra_options(self, config: Dict[str, Any]) -> Dict[str, Any]:
        options = super().extra_options(config)
        options.setdefault("charset", "utf8mb4")
        options.setdefault("timezone", "UTC")
        return options

    def open_driver(self, connection: Connection):
        try:
            import pymysql
        except ImportError:
            raise ImportError(
                "MySQL support requires pymysql.\n"
                "Install it with: pip install PyMySQL"
            )

        params = {
            "host": connection.host,
            "port": connection.port,
            "user": connection.username,
            "password": connection.password or "",
            "database": connection.database_name,
            "charset": connection.option("charset", "utf8mb4"),
            "connect_timeout": seconds(connection.connection_timeout),
            "read_timeout": seconds(connection.query_timeout, default=60),
        }
        if connection.ssl_enabled:
            ca = connection.option("ssl_ca")
            params["ssl"] = {"ca": ca} if ca else {"check_hostname": False}
        return pymysql.connect(**params)

    async def get_table_list(self, connection: Connection) -> List[str]:
        self.ensure_open(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT TABLE_NAME
            FROM information_schema.TABLES
            WHERE TABLE_SCHEMA = %s
              AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
            """,
            (connection.database_name,),
        )
        return [row["TABLE_NAME"] for row in rows]

    async def describe_columns(self, connection: Connection, table_name: str) -> List[Column]:
        rows = await self.query_dicts(
            connection,
            """
            SELECT
                COLUMN_NAME,
                DATA_TYPE,
                COLUMN_TYPE,
                IS_NULLABLE,
                COLUMN_KEY,
                COLUMN_DEFAULT,
                CHARACTER_MAXIMUM_LENGTH,
                NUMERIC_PRECISION,
                NUMERIC_SCALE,
                COLUMN_COMMENT
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = %s
              AND TABLE_NAME = %s
            ORDER BY ORDINAL_POSITION
            """,
            (connection.database_name, table_name),
        )
        return [mysql_column(row) for row in rows]

    async def get_table_constraints(
        self, connection: Connection, table_name: str
    ) -> TableConstraints:
        self.ensure_open(connection)
        db_name = connection.database_name
        key_rows = await self.query_dicts(
            connection,
            """
            SELECT
                kcu.CONSTRAINT_NAME,
                kcu.COLUMN_NAME,
                kcu.REFERENCED_TABLE_NAME,
                kcu.REFERENCED_COLUMN_NAME,
                rc.DELETE_RULE,
                rc.UPDATE_RULE
            FROM information_schema.KEY_COLUMN_USAGE kcu
            LEFT JOIN information_schema.REFERENTIAL_CONSTRAINTS rc
                ON kcu.CONSTRAINT_NAME = rc.CONSTRAINT_NAME
                AND kcu.CONSTRAINT_SCHEMA = rc.CONSTRAINT_SCHEMA
            WHERE kcu.TABLE_SCHEMA = %s
              AND kcu.TABLE_NAME = %s
            ORDER BY kcu.ORDINAL_POSITION
            """,
            (db_name, table_name),
        )

        constraints = TableConstraints()
        for row in key_rows:
            if row["CONSTRAINT_NAME"] == "PRIMARY":
                constraints.primary_keys.append(row["COLUMN_NAME"])
            elif row.get("REFERENCED_TABLE_NAME"):
                constraints.foreign_keys.append(ForeignKey(
                    column_name=row["COLUMN_NAME"],
                    referenced_table=row["REFERENCED_TABLE_NAME"],
                    referenced_column=row["REFERENCED_COLUMN_NAME"],
                    constraint_name=row["CONSTRAINT_NAME"],
                    on_delete=row.get("DELETE_RULE"),
                    on_update=row.get("UPDATE_RULE"),
                ))

        index_rows = await self.query_dicts(
            connection,
            """
            SELECT INDEX_NAME, COLUMN_NAME, NON_UNIQUE, INDEX_TYPE
            FROM information_schema.STATISTICS
            WHERE TABLE_SCHEMA = %s
              AND TABLE_NAME = %s
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
            """,
            (db_name, table_name),
        )
        indexes: Dict[str, Index] = {}
        for row in index_rows:
            name = row["INDEX_NAME"]
            index = indexes.setdefault(name, Index(
                name=name,
                is_unique=not int(row["NON_UNIQUE"]),
                is_primary=name == "PRIMARY",
                type=row.get("INDEX_TYPE"),
            ))
            index.columns.append(row["COLUMN_NAME"])
            if index.is_unique and not index.is_primary and len(index.columns) == 1:
                constraints.unique_columns.append(row["COLUMN_NAME"])
        constraints.indexes = list(indexes.values())
        return constraints

    async def get_view_list(self, connection: Connection) -> List[Table]:
        self.ensure_open(connection)
        rows = await self.query_dicts(
            connection,
            """
            SELECT TABLE_NAME
            FROM information_schema.VIEWS
            WHERE TABLE_SCHEMA = %s
            ORDER BY TABLE_NAME
            """,
            (connection.database_name,),
        )
        views = []
        for row in rows:
            columns = await self.describe_columns(connection, row["TABLE_NAME"])
            views.append(Table(name=row["TABLE_NAME"], type="view", columns=columns))
        return views

    async def get_routines(
        self, connection: Connection
    ) -> Tuple[List[Function], List[Procedure]]:
        self.ensure_open(connection)
        db_name = connection.database_name
        rows = await self.query_dicts(
            connection,
            """
            SELECT
                r.SPECIFIC_NAME,
                r.ROUTINE_NAME,
                r.ROUTINE_TYPE,
                r.DTD_IDENTIFIER,
                p.PARAMETER_NAME,
                p.DTD_IDENTIFIER AS PARAMETER_TYPE,
                p.PARAMETER_MODE
            FROM information_schema.ROUTINES r
            LEFT JOIN information_schema.PARAMETERS p
                ON r.SPECIFIC_NAME = p.SPECIFIC_NAME
                AND r.ROUTINE_SCHEMA = p.SPECIFIC_SCHEMA
                AND p.ORDINAL_POSITION > 0
            WHERE r.ROUTINE_SCHEMA = %s
            ORDER BY r.ROUTINE_NAME, p.ORDINAL_POSITION
            """,
            (db_name,),
        )

        functions: Dict[str, Function] = {}
        procedures: Dict[str, Procedure] = {}
        for row in rows:
            key = row["SPECIFIC_NAME"]
            if row["ROUTINE_TYPE"] == "PROCEDURE":
                routine = procedures.setdefault(key, Procedure(name=row["ROUTINE_NAME"], language="SQL"))
            else:
                routine = functions.setdefault(key, Function(
                    name=row["ROUTINE_NAME"],
                    return_type=row.get("DTD_IDENTIFIER") or "unknown",
                    language="SQL",
                ))
            if row.get("PARAMETER_NAME"):
                routine.parameters.append(Parameter(
                    name=row["PARAMETER_NAME"],
                    type=row.get("PARAMETER_TYPE") or "unknown",
                    direction=row.get("PARAMETER_MODE") or "IN",
                ))
        return list(functions.values()), list(procedures.values())
