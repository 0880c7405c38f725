"""
dataconnect Errors — The exception taxonomy shared by all connectors.
"""

from typing import Iterable, Optional


class ConnectorError(Exception):
    """Base class for every error raised by this package."""


class SourceConnectionError(ConnectorError, ConnectionError):
    """The backend could not be reached or refused the credentials."""


class SchemaError(ConnectorError):
    """Schema introspection failed as a whole (e.g. the table list)."""


class QueryError(ConnectorError):
    """A query failed while executing against the backend."""

    def __init__(self, message: str, query: Optional[str] = None):
        self.query = query
        if query:
            message = f"{message} (query: {_shorten(query)})"
        super().__init__(message)


class UnsupportedOperationError(ConnectorError):
    """The connector's capabilities do not allow the requested operation."""


class UnknownSourceTypeError(ConnectorError, KeyError):
    """No connector is registered for the requested type."""

    def __init__(self, source_type: str, available: Iterable[str] = ()):
        self.source_type = source_type
        names = ", ".join(sorted(available)) or "none"
        super().__init__(
            f"No connector registered for type '{source_type}'. Available: {names}"
        )

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return self.args[0]


class OperationCancelled(ConnectorError):
    """A cancellation token was tripped or its deadline passed."""


def describe_error(error: object) -> str:
    """Render an error for end users, falling back to ``Unknown error``."""
    if isinstance(error, BaseException):
        message = str(error).strip()
        if message:
            return message
    elif isinstance(error, str) and error.strip():
        return error.strip()
    return "Unknown error"


def friendly_connection_message(error: BaseException, backend: str) -> str:
    """Translate common driver errors into actionable messages."""
    text = str(error)
    lowered = text.lower()
    if "refused" in lowered or "econnrefused" in lowered:
        return (
            f"Connection refused. Please check if the {backend} server is running "
            "and the host/port are correct."
        )
    if "authentication failed" in lowered or "access denied" in lowered:
        return "Authentication failed. Please check your username and password."
    if ("database" in lowered and "does not exist" in lowered) or "unknown database" in lowered:
        return "Database does not exist. Please check the database name."
    if "timeout" in lowered or "timed out" in lowered:
        return (
            "Connection timeout. Please check if the host is reachable "
            "and the port is correct."
        )
    return f"Connection failed: {describe_error(error)}"


def _shorten(query: str, width: int = 200) -> str:
    query = " ".join(query.split())
    return query if len(query) <= width else query[: width - 3] + "..."
