"""Commands that connect to a data source."""

import asyncio
from typing import Optional

import typer
from rich.table import Table as RichTable

from dataconnect.core.config import Settings
from dataconnect.core.execution import QueryExecutor
from .main import CLI_ERRORS, app, console, fail, get_registry, load_config, parse_params, print_json

CONFIG_HELP = "Connection config file (YAML or JSON)."


def _print_schema_summary(schema):
    if schema.tables:
        table = RichTable(title=f"📊 Discovered Tables ({len(schema.tables)})")
        table.add_column("Table", style="cyan", no_wrap=True)
        table.add_column("Columns", style="green")
        table.add_column("Rows", justify="right")
        table.add_column("Primary Key", style="yellow")

        for t in schema.tables:
            cols = ", ".join(c.name for c in t.columns[:6])
            if len(t.columns) > 6:
                cols += f" (+{len(t.columns) - 6} more)"
            pk = ", ".join(c.name for c in t.primary_key_columns) or "—"
            rows = str(t.row_count) if t.row_count is not None else "—"
            table.add_row(t.name, cols, rows, pk)

        console.print()
        console.print(table)
    else:
        console.print("\n  No tables found.")

    if schema.views:
        console.print(f"\n  👁️  Views: {', '.join(v.name for v in schema.views)}")
    if schema.functions or schema.procedures:
        console.print(
            f"  ⚙️  Functions: {len(schema.functions)}, Procedures: {len(schema.procedures)}"
        )

    if schema.warnings:
        console.print(f"\n  ⚠️  [yellow]{len(schema.warnings)} warning(s):[/yellow]")
        for warning in schema.warnings:
            console.print(f"    • {warning}", markup=False)


@app.command()
def test(
    source_type: str = typer.Argument(..., help="Connector type."),
    config: str = typer.Option(..., "--config", "-c", help=CONFIG_HELP),
):
    """🩺 Test that a data source is reachable."""
    settings = load_config(config)
    try:
        connector = get_registry().require(source_type)
    except CLI_ERRORS as e:
        fail(e)

    with console.status(f"[bold green]Testing {connector.display_name} connection..."):
        result = asyncio.run(connector.test_connection(settings))

    if not result.success:
        error_type = result.metadata.get("error_type", "connection_failed")
        console.print(f"\n❌ [red]Connection failed[/red] ({error_type}): {result.error_message}")
        raise typer.Exit(code=1)

    console.print(f"\n✅ Connected to [cyan]{connector.display_name}[/cyan]")
    console.print(f"  Connection time: {result.connection_time_ms:.1f} ms")
    console.print(f"  Query time:      {result.query_time_ms:.1f} ms")
    for key, value in result.metadata.items():
        console.print(f"  {key}: {value}", markup=False)


@app.command()
def schema(
    source_type: str = typer.Argument(..., help="Connector type."),
    config: str = typer.Option(..., "--config", "-c", help=CONFIG_HELP),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Tables described in parallel."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the full schema as JSON."),
):
    """🔍 Discover the tables and columns of a data source."""
    settings = load_config(config)
    executor = QueryExecutor(get_registry(), Settings.from_env())

    try:
        with console.status("[bold green]Inspecting data source..."):
            result = asyncio.run(executor.discover(source_type, settings, max_workers=workers))
    except CLI_ERRORS as e:
        fail(e)

    if as_json:
        print_json(result.to_dict())
        return

    console.print()
    console.print(result.summary.splitlines()[0], markup=False)
    _print_schema_summary(result)
    console.print()


@app.command()
def query(
    source_type: str = typer.Argument(..., help="Connector type."),
    query_text: str = typer.Argument(..., metavar="QUERY", help="SQL or VERB:target query."),
    config: str = typer.Option(..., "--config", "-c", help=CONFIG_HELP),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=0, help="Maximum rows returned."),
    params: Optional[str] = typer.Option(None, "--params", "-p", help="Query parameters as a JSON array."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
):
    """▶️  Validate and run a query."""
    settings = load_config(config)
    values = parse_params(params)
    executor = QueryExecutor(get_registry(), Settings.from_env())

    try:
        result = asyncio.run(
            executor.run(source_type, settings, query_text, limit=limit, params=values)
        )
    except CLI_ERRORS as e:
        fail(e)

    if as_json:
        print_json(result.to_dict())
        return

    table = RichTable(show_lines=False)
    for column in result.columns:
        table.add_column(str(column), overflow="fold")
    for row in result.rows:
        table.add_row(*("" if v is None else str(v) for v in row))

    console.print()
    console.print(table)
    footer = f"  {result.row_count} row(s) in {result.execution_time_ms:.1f} ms"
    if result.metadata.get("truncated"):
        footer += f" [yellow](truncated from {result.metadata.get('total_rows')})[/yellow]"
    console.print(footer)
    console.print()


@app.command()
def plan(
    source_type: str = typer.Argument(..., help="Connector type."),
    query_text: str = typer.Argument(..., metavar="QUERY", help="SQL or VERB:target query."),
    config: str = typer.Option(..., "--config", "-c", help=CONFIG_HELP),
):
    """🗺️  Show how a query would be executed."""
    settings = load_config(config)

    async def explain():
        connector = get_registry().require(source_type)
        connection = await connector.connect(settings)
        try:
            return await connector.get_query_plan(connection, query_text)
        finally:
            await connector.disconnect(connection)

    try:
        text = asyncio.run(explain())
    except CLI_ERRORS as e:
        fail(e)

    console.print(text, markup=False, highlight=False)
