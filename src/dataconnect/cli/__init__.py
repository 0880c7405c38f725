"""dataconnect CLI — Command-line interface for testing, inspecting and querying data sources."""

from .main import app, console
from . import catalog
from . import run

__all__ = ["app", "console", "catalog", "run"]
