"""CLI application for database metadata crawling."""

import typer

from dbcrawl.cli.commands.schema import schema
from dbcrawl.cli.commands.sources import sources
from dbcrawl.cli.common.logging_config import configure_logging

app = typer.Typer(
    help="dbcrawl - database metadata crawler",
    no_args_is_help=True,
)


@app.callback()
def _init(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages"),
    log_json: bool = typer.Option(False, "--log-json", help="Log as JSON lines"),
):
    """Configure logging for every command."""
    configure_logging("DEBUG" if verbose else "WARNING", json_output=log_json)


app.command("schema")(schema)
app.command("sources")(sources)


if __name__ == "__main__":
    app()
