"""
dataconnect Registry — Map source type identifiers to connector instances.

The registry is a plain value. Build it once with
``build_default_registry()`` and pass it to whatever needs a connector.
"""

from typing import TYPE_CHECKING, Dict, Iterable, Iterator, Optional, Set

from .errors import UnknownSourceTypeError
from .schema import Capabilities

if TYPE_CHECKING:
    from ..connectors.base import BaseConnector


class ConnectorRegistry:
    """A fixed mapping from source type to connector."""

    def __init__(self, connectors: Iterable["BaseConnector"] = ()):
        self._connectors: Dict[str, "BaseConnector"] = {}
        for connector in connectors:
            self.register(connector)

    def register(self, connector: "BaseConnector") -> None:
        """Add a connector under its ``source_type``.

        Raises:
            ValueError: If the type is already registered.
        """
        key = connector.source_type
        if key in self._connectors:
            raise ValueError(f"Connector type '{key}' is already registered")
        self._connectors[key] = connector

    def lookup(self, source_type: str) -> Optional["BaseConnector"]:
        """Return the connector for ``source_type``, or None if there is none."""
        return self._connectors.get(source_type)

    def require(self, source_type: str) -> "BaseConnector":
        connector = self.lookup(source_type)
        if connector is None:
            raise UnknownSourceTypeError(source_type, self._connectors)
        return connector

    def list_types(self) -> Set[str]:
        return set(self._connectors)

    def list_all(self) -> Dict[str, "BaseConnector"]:
        return dict(self._connectors)

    def capabilities(self, source_type: str) -> Capabilities:
        return self.require(source_type).capabilities

    def is_supported(self, source_type: str) -> bool:
        return source_type in self._connectors

    def __contains__(self, source_type: object) -> bool:
        return source_type in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)

    def __iter__(self) -> Iterator[str]:
        return iter(self._connectors)


def build_default_registry(**connector_options) -> ConnectorRegistry:
    """Build a registry holding every built-in connector.

    Keyword arguments (e.g. ``transport`` for the HTTP connectors) are
    forwarded to the connectors that accept them.
    """
    from ..connectors import DRIVER_CONNECTORS, HTTP_CONNECTORS

    connectors = [cls() for cls in DRIVER_CONNECTORS]
    connectors += [cls(**connector_options) for cls in HTTP_CONNECTORS]
    return ConnectorRegistry(connectors)
