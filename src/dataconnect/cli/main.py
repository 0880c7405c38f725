import json
from typing import Any, Dict, Optional

import typer
from rich.console import Console

from dataconnect import __version__
from dataconnect.core.config import Settings, load_config_file
from dataconnect.core.errors import ConnectorError
from dataconnect.core.logging import configure_logging
from dataconnect.core.registry import ConnectorRegistry, build_default_registry

app = typer.Typer(
    name="dataconnect",
    help="🔌 Test, inspect and query databases, files and web APIs through one interface.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

# Errors the commands report as a one-line message instead of a traceback.
CLI_ERRORS = (ConnectorError, ValueError, FileNotFoundError, ImportError)


@app.callback(invoke_without_command=True)
def main(
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log connector activity (DEBUG level)."
    ),
):
    """🔌 dataconnect — One contract for querying databases, files and web APIs."""
    if version:
        console.print(f"dataconnect version: [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    settings = Settings.from_env()
    configure_logging("DEBUG" if verbose else "WARNING", json_format=settings.log_json)


def get_registry() -> ConnectorRegistry:
    return build_default_registry()


def load_config(path: str) -> Dict[str, Any]:
    """Read ``--config`` or exit with an error message."""
    try:
        return load_config_file(path)
    except (FileNotFoundError, ValueError) as e:
        fail(e)


def parse_params(raw: Optional[str]):
    if raw is None:
        return None
    try:
        params = json.loads(raw)
    except json.JSONDecodeError as e:
        fail(f"--params must be a JSON array: {e}")
    if not isinstance(params, list):
        fail("--params must be a JSON array")
    return params


def fail(error: object) -> None:
    console.print(f"\n[red]Error:[/red] {error}")
    raise typer.Exit(code=1)


def print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))
