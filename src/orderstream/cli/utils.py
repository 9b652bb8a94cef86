"""
CLI utility helpers - input loading and output formatting.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read transport records from a JSON file.

    Accepts a JSON list or a handler event of the form ``{"Records": [...]}``.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        err_console.print(f"[bold red]Error[/bold red]: cannot read {path}: {e}")
        raise typer.Exit(code=2) from e

    if isinstance(data, dict) and isinstance(data.get("Records"), list):
        return data["Records"]
    if isinstance(data, list):
        return data
    err_console.print(f"[bold red]Error[/bold red]: {path} holds neither a list nor a Records event")
    raise typer.Exit(code=2)


def load_document(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        err_console.print(f"[bold red]Error[/bold red]: cannot read {path}: {e}")
        raise typer.Exit(code=2) from e
    if not isinstance(data, dict):
        err_console.print(f"[bold red]Error[/bold red]: {path} must hold a JSON object")
        raise typer.Exit(code=2)
    return data


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row))
    console.print(table)


def fail(message: str, code: int = 1) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red]: {escape(message)}")
    raise typer.Exit(code=code)
