"""
Root Typer application for the orderstream CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from orderstream import __version__
from orderstream.core.logging import configure_logging
from orderstream.core.settings import get_settings

app = Typer(
    name="orderstream",
    help="orderstream — order change-feed and clickstream processing.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"orderstream {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override ORDERSTREAM_LOG_LEVEL."),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs"),
) -> None:
    """orderstream CLI — replay change records and clicks, run workflows."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=json_logs,
        service=settings.service_name,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from orderstream.cli.changes import app as changes_app  # noqa: E402
from orderstream.cli.clicks import app as clicks_app  # noqa: E402
from orderstream.cli.workflow import app as workflow_app  # noqa: E402

app.add_typer(changes_app, name="changes", help="Change-log replay.")
app.add_typer(clicks_app, name="clicks", help="Clickstream replay.")
app.add_typer(workflow_app, name="workflow", help="Order workflow.")


if __name__ == "__main__":
    app()
