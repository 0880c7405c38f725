"""
dataconnect File Connector — Shared behaviour of the local document connectors.

A file connector parses its file once per connection (cached on the
``Connection`` handle) into a list of ``TableData`` views.
"""

import asyncio
import logging
import os
import time
from abc import abstractmethod
from typing import Any, Dict, Tuple

from .base import Probe
from .tabular import TABULAR_DATA_TYPES, TabularConnector
from .utils import elapsed_ms, file_extension
from ..core.errors import SourceConnectionError, describe_error
from ..core.schema import Connection

logger = logging.getLogger(__name__)

FILE_DATA_TYPES = TABULAR_DATA_TYPES


class FileConnector(TabularConnector):
    """Base class for connectors reading a single local file.

    Config: ``file_path`` and ``file_name``; the name's extension must be
    one of ``extensions``. Optional ``encoding`` (default ``utf-8``).
    """

    extensions: Tuple[str, ...] = ()
    extension_error: str = ""
    file_type: str = ""
    test_error_type = "file_access_failed"

    @abstractmethod
    def parse(self, path: str, connection: Connection) -> Any:
        """Read the file into an in-memory document (runs in a worker thread)."""

    def describe_file(self, document: Any) -> Dict[str, Any]:
        """Extra metadata reported by ``test_connection``."""
        return {}

    # ──── Lifecycle ────

    def check_config(self, config: Dict[str, Any]) -> None:
        if not config.get("file_path") or not config.get("file_name"):
            raise ValueError("File path and name are required")
        if file_extension(config["file_name"]) not in self.extensions:
            raise ValueError(self.extension_error)

    def build_connection(self, config: Dict[str, Any]) -> Connection:
        options = dict(config.get("additional_config") or {})
        options["file_path"] = os.path.expanduser(config["file_path"])
        options["file_name"] = config["file_name"]
        options.setdefault("encoding", config.get("encoding") or "utf-8")
        return Connection(
            source_type=self.source_type,
            database_name=config["file_name"],
            max_connections=int(config.get("max_connections") or self.capabilities.max_connections),
            additional_config=options,
        )

    def path(self, connection: Connection) -> str:
        return connection.option("file_path")

    async def probe(self, connection: Connection) -> Probe:
        path = self.path(connection)
        start = time.perf_counter()
        exists = await asyncio.to_thread(os.path.isfile, path)
        connection_ms = elapsed_ms(start)

        metadata: Dict[str, Any] = {
            "file_type": self.file_type,
            "file_name": connection.database_name,
            "file_path": path,
            "readable": exists,
        }
        if not exists:
            # Uploaded files may live in remote storage; the format check passed.
            logger.info("%s not found locally; content probe skipped", path)
            return connection_ms, 0.0, metadata

        query_start = time.perf_counter()
        document = await self.document(connection)
        metadata["file_size"] = os.path.getsize(path)
        metadata["encoding"] = connection.option("encoding")
        metadata.update(self.describe_file(document))
        return connection_ms, elapsed_ms(query_start), metadata

    async def document(self, connection: Connection) -> Any:
        """Parse the file once per connection."""
        self.ensure_open(connection)
        if "document" not in connection.state:
            path = self.path(connection)
            if not os.path.isfile(path):
                raise SourceConnectionError(f"File not found: {path}")
            try:
                connection.state["document"] = await asyncio.to_thread(self.parse, path, connection)
            except ImportError:
                raise
            except Exception as e:
                logger.error("Failed to read %s: %s", path, e)
                raise SourceConnectionError(
                    f"Failed to read {self.file_type} file: {describe_error(e)}"
                ) from e
        return connection.state["document"]

    async def get_database_info(self, connection: Connection) -> Dict[str, Any]:
        path = self.path(connection)
        return {
            "name": connection.database_name,
            "version": self.file_type,
            "type": self.source_type,
            "file_path": path,
            "file_size": os.path.getsize(path) if os.path.isfile(path) else None,
        }

    def plan_source(self, connection: Connection) -> str:
        return self.path(connection)

    def result_metadata(self, connection: Connection) -> Dict[str, Any]:
        return {"file_name": connection.database_name}
