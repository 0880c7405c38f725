"""Commands that describe connectors without touching a data source."""

import typer
from rich.table import Table as RichTable

from .main import CLI_ERRORS, app, console, fail, get_registry, print_json


@app.command(name="list-connectors")
def list_connectors():
    """📋 Show the registered data source connectors."""
    registry = get_registry()

    table = RichTable(title="Available Connectors")
    table.add_column("Type", style="cyan", no_wrap=True)
    table.add_column("Connector", style="green")
    table.add_column("SQL", justify="center")
    table.add_column("Example Query")

    for source_type, connector in sorted(registry.list_all().items()):
        caps = connector.capabilities
        if caps.supports_sql:
            example = "SELECT * FROM <table>"
        else:
            example = connector.grammar.example
        table.add_row(source_type, connector.display_name, "✅" if caps.supports_sql else "—", example)

    console.print()
    console.print(table)
    console.print()


@app.command()
def capabilities(
    source_type: str = typer.Argument(..., help="Connector type (e.g., postgresql, csv, api)."),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON."),
):
    """🧭 Show what a connector supports."""
    try:
        caps = get_registry().capabilities(source_type)
    except CLI_ERRORS as e:
        fail(e)

    if as_json:
        print_json({
            "source_type": source_type,
            "supports_sql": caps.supports_sql,
            "supported_operations": list(caps.supported_operations),
            "supported_data_types": [t.value for t in caps.supported_data_types],
            "native_data_types": list(caps.native_data_types),
            "max_query_size": caps.max_query_size,
            "max_result_size": caps.max_result_size,
            "max_connections": caps.max_connections,
        })
        return

    table = RichTable(title=f"Capabilities: {source_type}", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("SQL", "yes" if caps.supports_sql else "no")
    table.add_row("Operations", ", ".join(caps.supported_operations))
    table.add_row("Data types", ", ".join(t.value for t in caps.supported_data_types))
    table.add_row("Native types", ", ".join(caps.native_data_types) or "—")
    for label, flag in (
        ("Transactions", caps.supports_transactions),
        ("Views", caps.supports_views),
        ("Indexes", caps.supports_indexes),
        ("Foreign keys", caps.supports_foreign_keys),
        ("Functions", caps.supports_functions),
        ("Procedures", caps.supports_stored_procedures),
    ):
        table.add_row(label, "yes" if flag else "no")
    table.add_row("Max query size", str(caps.max_query_size or "—"))
    table.add_row("Max result size", str(caps.max_result_size or "—"))
    table.add_row("Max connections", str(caps.max_connections))

    console.print()
    console.print(table)
    console.print()


@app.command()
def validate(
    source_type: str = typer.Argument(..., help="Connector type."),
    query: str = typer.Argument(..., help="Query to check."),
):
    """✔️  Check a query against a connector's rules and show it formatted."""
    try:
        connector = get_registry().require(source_type)
    except CLI_ERRORS as e:
        fail(e)

    verdict = connector.validate_query(query)
    if not verdict.valid:
        console.print(f"❌ [red]Invalid:[/red] {verdict.error}")
        raise typer.Exit(code=1)

    console.print("✅ [green]Valid[/green]")
    console.print(connector.format_query(query), markup=False, highlight=False)
