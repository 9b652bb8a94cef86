"""
CLI: ``orderstream clicks`` - replay clickstream records.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import typer
from rich.markup import escape

from orderstream.clickstream.processor import ProcessResult
from orderstream.clickstream.storage import MemoryObjectStore
from orderstream.cli.utils import err_console, load_records, print_json, print_table
from orderstream.core.clients import ClientRegistry
from orderstream.core.errors import BatchAborted
from orderstream.core.settings import get_settings
from orderstream.execution.workers import group_by_shard
from orderstream.pipeline import build_batch_sink, build_clickstream_consumer, build_shard_pool

app = typer.Typer(no_args_is_help=True)


@app.command("replay")
def replay(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON transport records"),
    s3: bool = typer.Option(False, "--s3", help="Write objects to the configured bucket"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Fan a file of clickstream records out, one batch per shard, and flush the buffer."""
    settings = get_settings()
    records = load_records(file)

    with ClientRegistry(settings) as registry:
        store = None if s3 else MemoryObjectStore()
        sink = build_batch_sink(settings, registry, store=store)
        consumer = build_clickstream_consumer(settings, registry, sink)

        pool_result = build_shard_pool(settings, consumer).run(group_by_shard(records))
        report = sink.close()

    summary = ProcessResult()
    failures: list[str] = []
    for outcome in pool_result.outcomes:
        if outcome.result is None:
            continue
        if outcome.result.is_ok():
            summary.merge(outcome.result.unwrap())
            continue
        error = outcome.result.error
        if isinstance(error, BatchAborted):
            failures.append(
                f"{outcome.shard_id}: batch aborted at record {error.failed_index} "
                f"({error.forwarded} forwarded): {error.message}"
            )
        else:
            failures.append(f"{outcome.shard_id}: {error}")

    if json_out:
        print_json(
            {
                "summary": summary.to_dict(),
                "shards": pool_result.to_dict(),
                "failures": failures,
                "flush": asdict(report) if report else None,
            }
        )
    else:
        print_table("Clickstream", list(summary.to_dict()), [list(summary.to_dict().values())])
        if report is not None:
            print_table(
                "Flush",
                ["Status", "Key", "Records", "Bytes"],
                [[report.status, report.key, report.records, report.size_bytes]],
            )

    if failures:
        for failure in failures:
            err_console.print(f"[bold red]Error[/bold red]: {escape(failure)}")
        raise typer.Exit(code=1)
