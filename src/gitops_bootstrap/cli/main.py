"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from gitops_bootstrap import __version__
from gitops_bootstrap.cli.commands import bootstrap
from gitops_bootstrap.logging.config import configure_logging

app = typer.Typer(
    name="gitops-bootstrap",
    help="Bootstrap a GitOps repository and hand a cluster over to Argo CD.",
    add_completion=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"gitops-bootstrap version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit log records as JSON.",
    ),
) -> None:
    """GitOps bootstrap - render, commit and converge foundational services."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs)


# Register subcommands
app.command()(bootstrap.bootstrap)
app.command(name="validate-auth")(bootstrap.validate_auth)
app.command()(bootstrap.wait)
app.command(name="app-status")(bootstrap.app_status)


if __name__ == "__main__":
    app()
