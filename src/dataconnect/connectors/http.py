"""
dataconnect HTTP Connector — Shared behaviour of the connectors backed by web APIs.

Each ``Connection`` lazily owns one ``httpx.AsyncClient``; ``disconnect()``
closes it. Pass ``transport=`` to route every request through a custom
transport (``httpx.MockTransport`` in tests).
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .base import BaseConnector
from .sql import seconds
from .. import __version__
from ..core.errors import SourceConnectionError, describe_error
from ..core.schema import Connection, QueryResult

logger = logging.getLogger(__name__)

Grid = Tuple[List[str], List[List[Any]]]


class HTTPConnector(BaseConnector):
    """Base class for connectors that talk to a remote HTTP API."""

    test_error_type = "api_connection_failed"
    default_timeout = 30000
    user_agent = f"dataconnect/{__version__}"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def headers(self, connection: Connection) -> Dict[str, str]:
        """Default request headers for ``connection``."""
        return {"User-Agent": self.user_agent}

    def client(self, connection: Connection) -> httpx.AsyncClient:
        """The connection's HTTP client, created on first use."""
        self.ensure_open(connection)
        client = connection.state.get("client")
        if client is None:
            timeout = seconds(connection.query_timeout or self.default_timeout)
            client = httpx.AsyncClient(
                headers=self.headers(connection),
                timeout=httpx.Timeout(timeout, connect=seconds(connection.connection_timeout, timeout)),
                follow_redirects=True,
                transport=self._transport,
            )
            connection.state["client"] = client
        return client

    async def release(self, connection: Connection) -> None:
        client = connection.state.pop("client", None)
        if client is not None:
            await client.aclose()

    async def request(self, connection: Connection, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request; non-2xx answers and transport errors raise.

        Raises:
            SourceConnectionError: On HTTP errors or when the server is unreachable.
        """
        client = self.client(connection)
        logger.debug("%s %s %s", self.display_name, method, url)
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("%s returned HTTP %s for %s", self.display_name, status, url)
            raise SourceConnectionError(
                f"{self.display_name} request failed: HTTP {status} {e.response.reason_phrase}".rstrip()
            ) from e
        except httpx.HTTPError as e:
            logger.error("%s request to %s failed: %s", self.display_name, url, e)
            raise SourceConnectionError(
                f"{self.display_name} request failed: {describe_error(e)}"
            ) from e
        return response


def response_body(response: httpx.Response) -> Any:
    """Decoded JSON when the server sent JSON, otherwise the text."""
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except json.JSONDecodeError:
            pass
    return response.text


def records_grid(data: Any) -> Grid:
    """Flatten a decoded API payload into columns and rows.

    A list of objects becomes one row per object; an object wrapping a
    single list of objects (``{"data": [...]}``) is unwrapped first.
    """
    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list) and v and isinstance(v[0], dict)]
        if len(lists) == 1:
            data = lists[0]
        else:
            return list(data), [[_cell(v) for v in data.values()]]
    if isinstance(data, list):
        if all(isinstance(item, dict) for item in data):
            result = QueryResult.from_records(data, query="")
            return result.columns, [[_cell(v) for v in row] for row in result.rows]
        return ["value"], [[_cell(item)] for item in data]
    return ["value"], [[data]]


def _cell(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value
