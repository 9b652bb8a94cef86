"""
CLI: ``orderstream workflow`` - run the order workflow locally.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import typer

from orderstream.cli.utils import load_document, print_json, print_table
from orderstream.core.clients import ClientRegistry
from orderstream.core.settings import get_settings
from orderstream.notifications.channels import LoggingNotificationChannel
from orderstream.orchestration.engine import ExecutionStatus
from orderstream.orchestration.starter import execution_input, execution_name
from orderstream.pipeline import build_engine, build_notifier

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON order document"),
    name: str | None = typer.Option(None, "--name", "-n", help="Execution name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one order through the workflow and print the execution record."""
    settings = get_settings()
    document = load_document(file)
    now = datetime.now(UTC)
    order_id = str(document.get(settings.partition_key) or file.stem)

    with ClientRegistry(settings) as registry:
        notifier = build_notifier(settings, registry)
        engine = build_engine(settings, notifier)
        record = engine.run(
            name or execution_name(order_id, now),
            execution_input(order_id, document, now),
        )

    if json_out:
        print_json(record.to_dict())
    else:
        print_table(
            f"{record.name}: {record.status.value}",
            ["State", "Status", "Attempts", "Error"],
            [[e.state.value, e.status, e.attempts, e.error] for e in record.history],
        )
        if isinstance(notifier, LoggingNotificationChannel) and notifier.sent:
            print_table(
                "Notifications",
                ["To", "Subject"],
                [[m.to, m.subject] for m in notifier.sent],
            )

    if record.status is not ExecutionStatus.SUCCEEDED:
        raise typer.Exit(code=1)
