"""
dataconnect API Connector — Query a generic REST API.

Each configured endpoint is exposed as a table built from its GET response.
Any method can be sent through a query; request bodies come from ``params``.

Query format:
    GET:<endpoint or table>[?query=string]
    POST:<endpoint>          body: params[0]
    PUT / PATCH / DELETE:<endpoint>
    HEAD / OPTIONS:<endpoint> response headers
"""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

import httpx

from .base import Probe
from .http import HTTPConnector, records_grid, response_body
from .tabular import TABULAR_DATA_TYPES, Grid, TableData, TabularConnector, joined_term
from .utils import elapsed_ms, sanitize_name
from ..core.errors import SourceConnectionError, describe_error
from ..core.schema import Capabilities, Connection
from ..core.validation import QueryGrammar, VerbQuery

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
BODY_METHODS = ("POST", "PUT", "PATCH")
AUTH_TYPES = ("API_KEY", "OAUTH", "BASIC", "NONE")

API_GRAMMAR = QueryGrammar(
    label="API",
    verbs=METHODS,
    example="GET:users",
    sample_verb="GET",
)

API_CAPABILITIES = Capabilities(
    supports_sql=False,
    supported_operations=METHODS + ("ANALYZE", "EXTRACT"),
    supported_data_types=TABULAR_DATA_TYPES,
    native_data_types=("JSON", "XML", "TEXT", "NUMBER", "BOOLEAN", "DATE", "ARRAY", "OBJECT"),
    max_query_size=100_000,
    max_result_size=1_000_000,
    max_connections=10,
)


def valid_http_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def endpoint_name(path: str) -> str:
    return sanitize_name(path.strip("/")) if path.strip("/") else "root"


class APIConnector(TabularConnector, HTTPConnector):
    """Connector for a REST API rooted at ``api_url``.

    Config::

        api_url: https://api.example.com/v1
        api_key: ...            # sent in api_key_header (default X-API-Key)
        oauth_token: ...        # sent as a Bearer token
        auth_type: API_KEY      # API_KEY | OAUTH | BASIC | NONE
        additional_config:
          endpoints: [users, orders]
          headers: {Accept-Language: en}
    """

    display_name = "API"
    capabilities = API_CAPABILITIES
    grammar = API_GRAMMAR

    @property
    def source_type(self) -> str:
        return "api"

    # ──── Lifecycle ────

    def check_config(self, config: Dict[str, Any]) -> None:
        url = config.get("api_url")
        if not url:
            raise ValueError("API URL is required")
        if not valid_http_url(url):
            raise ValueError("Invalid API URL format")
        auth_type = config.get("auth_type")
        if auth_type and str(auth_type).upper() not in AUTH_TYPES:
            raise ValueError(f"Unsupported auth type '{auth_type}'. Use one of: {', '.join(AUTH_TYPES)}")

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        options = dict(config.get("additional_config") or {})
        for key in ("api_key", "oauth_token", "headers", "endpoints", "api_key_header"):
            if config.get(key) is not None:
                options[key] = config[key]

        auth_type = config.get("auth_type") or options.get("auth_type")
        if not auth_type:
            if options.get("api_key"):
                auth_type = "API_KEY"
            elif options.get("oauth_token"):
                auth_type = "OAUTH"
            else:
                auth_type = "NONE"
        options["auth_type"] = str(auth_type).upper()

        timeout = int(config.get("timeout") or config.get("query_timeout") or self.default_timeout)
        return Connection(
            source_type=self.source_type,
            connection_string=config["api_url"].rstrip("/"),
            host=urlparse(config["api_url"]).netloc,
            username=config.get("username"),
            password=config.get("password"),
            connection_timeout=int(config.get("connection_timeout") or timeout),
            query_timeout=timeout,
            max_connections=int(config.get("max_connections") or self.capabilities.max_connections),
            additional_config=options,
        )

    def headers(self, connection: Connection) -> Dict[str, str]:
        headers = super().headers(connection)
        headers["Accept"] = "application/json"
        headers.update(connection.option("headers", {}))

        auth_type = connection.option("auth_type")
        if auth_type == "API_KEY" and connection.option("api_key"):
            headers[connection.option("api_key_header", "X-API-Key")] = connection.option("api_key")
        elif auth_type == "OAUTH" and connection.option("oauth_token"):
            headers["Authorization"] = f"Bearer {connection.option('oauth_token')}"
        elif auth_type == "BASIC" and connection.username:
            pair = f"{connection.username}:{connection.password or ''}".encode()
            headers["Authorization"] = f"Basic {base64.b64encode(pair).decode()}"
        return headers

    async def probe(self, connection: Connection) -> Probe:
        start = time.perf_counter()
        client = self.client(connection)
        connection_ms = elapsed_ms(start)

        query_start = time.perf_counter()
        try:
            response = await client.get(connection.connection_string)
        except httpx.HTTPError as e:
            raise SourceConnectionError(f"API request failed: {describe_error(e)}") from e
        if response.status_code in (401, 403):
            raise SourceConnectionError(f"API authentication failed: HTTP {response.status_code}")

        return connection_ms, elapsed_ms(query_start), {
            "api_url": connection.connection_string,
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type", ""),
            "auth_type": connection.option("auth_type"),
        }

    # ──── Endpoints ────

    def endpoints(self, connection: Connection) -> Dict[str, str]:
        """Configured endpoints keyed by table name."""
        paths = connection.option("endpoints") or [""]
        return {endpoint_name(str(p)): str(p) for p in paths}

    def url_for(self, connection: Connection, endpoint: str) -> str:
        """Resolve an endpoint path, table name or same-host URL.

        Raises:
            ValueError: If an absolute URL points at another host.
        """
        endpoint = (endpoint or "").strip()
        endpoint = self.endpoints(connection).get(endpoint, endpoint)
        if urlparse(endpoint).scheme:
            if urlparse(endpoint).netloc != connection.host:
                raise ValueError(f"Endpoint must be on {connection.host}: {endpoint}")
            return endpoint
        return urljoin(connection.connection_string + "/", endpoint.lstrip("/"))

    # ──── Discovery ────

    async def document(self, connection: Connection) -> Dict[str, TableData]:
        self.ensure_open(connection)
        if "document" not in connection.state:
            endpoints = self.endpoints(connection)

            async def load(name: str, path: str) -> TableData:
                response = await self.request(connection, "GET", self.url_for(connection, path))
                columns, rows = records_grid(response_body(response))
                return TableData(name=name, columns=columns, rows=rows, description=path or None)

            tables = await asyncio.gather(*(load(n, p) for n, p in endpoints.items()))
            connection.state["document"] = {t.name: t for t in tables}
        return connection.state["document"]

    def tables(self, document: Dict[str, TableData]) -> List[TableData]:
        return list(document.values())

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        return {
            "name": connection.host,
            "version": "unknown",
            "type": self.source_type,
            "api_url": connection.connection_string,
            "auth_type": connection.option("auth_type"),
            "endpoints": list(self.endpoints(connection).values()),
        }

    def plan_source(self, connection: Connection) -> str:
        return connection.connection_string

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        metadata = {"api_url": connection.connection_string}
        metadata.update(connection.state.get("last_response", {}))
        return metadata

    # ──── Queries ────

    async def dispatch(
        self, query: VerbQuery, connection: Connection, params: Optional[Sequence[Any]]
    ) -> Grid:
        method = query.verb
        url = self.url_for(connection, joined_term(query))
        kwargs: Dict[str, Any] = {}
        if params and method in BODY_METHODS:
            kwargs["json"] = params[0]
        if method != "GET":
            logger.info("API %s %s", method, url)

        response = await self.request(connection, method, url, **kwargs)
        connection.state["last_response"] = {
            "method": method,
            "url": str(response.url),
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type", ""),
        }

        if method in ("HEAD", "OPTIONS"):
            rows = [["status_code", response.status_code]]
            rows += [[name, value] for name, value in response.headers.items()]
            return ["header", "value"], rows
        if not response.content:
            return ["status_code"], [[response.status_code]]
        return records_grid(response_body(response))
