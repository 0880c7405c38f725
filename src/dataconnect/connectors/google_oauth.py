"""
dataconnect Google OAuth — Shared auth for the Google Sheets, Docs and Analytics connectors.

Requests carry the user's OAuth access token. When Google answers 401 and
a refresh token plus client credentials are available, the access token is
refreshed once and the request retried.
"""

import logging
import re
import time
from abc import abstractmethod
from typing import Any, Dict, Optional

import httpx

from .base import Probe
from .http import HTTPConnector
from .utils import elapsed_ms
from ..core.config import Settings
from ..core.errors import SourceConnectionError, describe_error
from ..core.schema import Connection

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
TOKENINFO_URI = "https://oauth2.googleapis.com/tokeninfo"


def google_id(value: Optional[str], kind: str = "d") -> Optional[str]:
    """Pull a resource id out of a Google URL, or return the value unchanged.

    ``https://docs.google.com/spreadsheets/d/<id>/edit`` → ``<id>``.
    """
    if not value:
        return None
    value = str(value).strip()
    match = re.search(rf"/{kind}/([a-zA-Z0-9_-]+)", value)
    if match:
        return match.group(1)
    return value


class GoogleOAuthConnector(HTTPConnector):
    """Base class for Google APIs authorised with a user OAuth token.

    Subclasses set ``resource_key`` (the additional-config key holding the
    document, spreadsheet or property id), ``resource_aliases`` (config keys
    accepted for it) and ``missing_resource_error``.
    """

    api_url: str = ""
    resource_key: str = ""
    resource_aliases: tuple = ()
    missing_resource_error: str = ""

    def check_config(self, config: Dict[str, Any]) -> None:
        if not config.get("oauth_token"):
            raise ValueError(f"OAuth token is required for {self.display_name}")

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        options = dict(config.get("additional_config") or {})
        options["oauth_token"] = config["oauth_token"]
        if config.get("refresh_token"):
            options["refresh_token"] = config["refresh_token"]
        for key in (self.resource_key,) + tuple(self.resource_aliases):
            value = config.get(key) or options.get(key)
            if value:
                options[self.resource_key] = self.normalize_resource(value)
                break
        timeout = int(config.get("timeout") or config.get("query_timeout") or self.default_timeout)
        return Connection(
            source_type=self.source_type,
            connection_string=(config.get("api_url") or self.api_url).rstrip("/"),
            database_name=options.get(self.resource_key),
            connection_timeout=int(config.get("connection_timeout") or timeout),
            query_timeout=timeout,
            max_connections=int(config.get("max_connections") or self.capabilities.max_connections),
            additional_config=options,
        )

    def normalize_resource(self, value: str) -> str:
        return google_id(value) or value

    def resource_id(self, connection: Connection) -> str:
        """The configured resource id.

        Raises:
            ValueError: If none was configured.
        """
        value = connection.option(self.resource_key)
        if not value:
            raise ValueError(self.missing_resource_error)
        return value

    # ──── Tokens ────

    def access_token(self, connection: Connection) -> str:
        return connection.state.get("access_token") or connection.option("oauth_token")

    def headers(self, connection: Connection) -> Dict[str, str]:
        headers = super().headers(connection)
        headers["Authorization"] = f"Bearer {self.access_token(connection)}"
        return headers

    def client_credentials(self, connection: Connection):
        settings = Settings.from_env()
        client_id = connection.option("client_id") or settings.google_client_id
        client_secret = connection.option("client_secret") or settings.google_client_secret
        return client_id, client_secret

    async def refresh_access_token(self, connection: Connection) -> bool:
        """Exchange the refresh token for a new access token.

        Returns False when no refresh token or client credentials are set.
        """
        refresh_token = connection.option("refresh_token")
        client_id, client_secret = self.client_credentials(connection)
        if not (refresh_token and client_id and client_secret):
            return False

        client = self.client(connection)
        response = await client.post(TOKEN_URI, data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        })
        if response.status_code != 200:
            logger.error("%s token refresh failed: HTTP %s", self.display_name, response.status_code)
            raise SourceConnectionError(
                f"{self.display_name} token refresh failed: HTTP {response.status_code}"
            )
        token = response.json()["access_token"]
        connection.state["access_token"] = token
        client.headers["Authorization"] = f"Bearer {token}"
        logger.info("Refreshed %s access token", self.display_name)
        return True

    async def google_request(self, connection: Connection, method: str, url: str, **kwargs) -> httpx.Response:
        """``request()`` with one token refresh on 401."""
        try:
            return await self.request(connection, method, url, **kwargs)
        except SourceConnectionError as e:
            cause = e.__cause__
            unauthorized = (
                isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 401
            )
            if not unauthorized or not await self.refresh_access_token(connection):
                raise
        return await self.request(connection, method, url, **kwargs)

    # ──── Probe ────

    async def probe(self, connection: Connection) -> Probe:
        start = time.perf_counter()
        self.client(connection)
        connection_ms = elapsed_ms(start)

        query_start = time.perf_counter()
        metadata: Dict[str, Any] = {"auth_method": "OAuth", "api_url": connection.connection_string}
        if connection.option(self.resource_key):
            metadata.update(await self.probe_resource(connection))
        else:
            metadata.update(await self.probe_token(connection))
        return connection_ms, elapsed_ms(query_start), metadata

    async def probe_token(self, connection: Connection) -> Dict[str, Any]:
        """Validate the access token when no resource is configured yet."""
        response = await self.google_request(
            connection, "GET", TOKENINFO_URI, params={"access_token": self.access_token(connection)}
        )
        try:
            info = response.json()
        except ValueError as e:
            raise SourceConnectionError(f"Unexpected token info response: {describe_error(e)}") from e
        return {
            "scopes": (info.get("scope") or "").split(),
            "expires_in": int(info["expires_in"]) if info.get("expires_in") else None,
        }

    @abstractmethod
    async def probe_resource(self, connection: Connection) -> Dict[str, Any]:
        """Fetch a small piece of the configured resource."""
