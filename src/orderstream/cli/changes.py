"""
CLI: ``orderstream changes`` - replay change-log records.
"""

from __future__ import annotations

from pathlib import Path

import typer

from orderstream.cli.utils import fail, load_records, print_json, print_table
from orderstream.core.clients import ClientRegistry
from orderstream.core.errors import ConfigError
from orderstream.core.settings import get_settings
from orderstream.orchestration.orchestrator import LocalOrchestrator
from orderstream.pipeline import SINK_NAMES, build_change_consumer, build_orchestrator

app = typer.Typer(no_args_is_help=True)


@app.command("replay")
def replay(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON change records"),
    sink: list[str] = typer.Option(list(SINK_NAMES), "--sink", "-s", help="Sinks to dispatch to"),
    remote: bool = typer.Option(False, "--remote", help="Start executions on the state machine"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Dispatch a file of change records to the sinks."""
    settings = get_settings()
    records = load_records(file)

    with ClientRegistry(settings) as registry:
        try:
            orchestrator = build_orchestrator(settings, registry, remote=remote)
            consumer = build_change_consumer(settings, registry, orchestrator, sinks=sink)
        except ConfigError as e:
            fail(str(e), code=2)

        result = consumer.process(records)

        executions = []
        if isinstance(orchestrator, LocalOrchestrator):
            executions = [orchestrator.wait(r.name) for r in orchestrator.list_executions()]
            orchestrator.shutdown()

    if json_out:
        print_json(
            {
                "summary": result.to_dict(),
                "outcomes": [o.to_dict() for o in result.outcomes],
                "executions": [r.to_dict() for r in executions],
            }
        )
    else:
        print_table(
            "Dispatch",
            ["Sink", "Entity", "Sequence", "Status", "Error"],
            [
                [o.sink or "-", o.entity_id, o.sequence_token, o.status.value,
                 str(o.error) if o.error else None]
                for o in result.outcomes
            ],
        )
        if executions:
            print_table(
                "Executions",
                ["Name", "Status", "Error kind"],
                [[r.name, r.status.value, r.error_kind] for r in executions],
            )

    if result.should_redeliver:
        raise typer.Exit(code=1)
