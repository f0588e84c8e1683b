"""Console output for the docai CLI.

ConsoleManager renders with Rich on a terminal and falls back to JSON lines
when ``json_output`` is set, so the CLI can be scripted.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..utils.logging_factory import LoggingFactory


class ConsoleManager:
    """Manages console output with Rich integration."""

    def __init__(self, verbose: bool = False, json_output: bool = False, console: Optional[Console] = None):
        self.verbose = verbose
        self.json_output = json_output
        if self.json_output:
            self.console = None
        else:
            self.console = console or Console(stderr=True)
        self.out = Console() if console is None else console

    def setup_logging(self, log_file: Optional[str] = None) -> None:
        """Route the package logger through a RichHandler (or plain stderr for JSON mode)."""
        level = logging.DEBUG if self.verbose else logging.INFO
        if self.json_output:
            handler: logging.Handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler = RichHandler(
                console=self.console,
                show_time=True,
                show_path=self.verbose,
                rich_tracebacks=True,
            )
        LoggingFactory.initialize(level=level, log_file=log_file, console_handler=handler)

    def print_stage(self, stage: str, status: str = "starting") -> None:
        """Print stage information with appropriate renderer."""
        if self.json_output:
            self._emit_json({"stage": stage, "status": status}, stream=sys.stderr)
            return
        status_color = {
            "starting": "blue",
            "complete": "green",
            "error": "red",
            "warning": "yellow",
        }.get(status, "white")
        self.console.print(Panel(f"[bold]{stage}[/bold]", style=status_color, padding=(0, 1)))

    def print_result(self, payload: Any) -> None:
        """Print a command result to stdout."""
        if self.json_output:
            self._emit_json({"type": "result", "result": payload})
        elif isinstance(payload, str):
            self.out.print(payload, markup=False, highlight=False)
        else:
            self.out.print_json(data=payload)

    def print_table(self, title: str, rows: Mapping[str, Any]) -> None:
        """Print a two-column key/value table (or a JSON object)."""
        if self.json_output:
            self._emit_json({"type": "table", "title": title, "rows": dict(rows)})
            return
        table = Table(title=title)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for key, value in rows.items():
            table.add_row(str(key), "" if value is None else str(value))
        self.out.print(table)

    def print_batch_summary(self, outcomes: Sequence[Mapping[str, Any]]) -> None:
        """Print one row per batch item: index, status and a content preview."""
        if self.json_output:
            self._emit_json({"type": "batch", "results": list(outcomes)})
            return
        table = Table(title="Batch Results")
        table.add_column("#", style="cyan", justify="right")
        table.add_column("Status", style="bold")
        table.add_column("Content")
        for outcome in outcomes:
            ok = outcome.get("success")
            preview = outcome.get("content") or outcome.get("error") or ""
            table.add_row(
                str(outcome.get("index")),
                "[green]ok[/green]" if ok else "[red]failed[/red]",
                preview[:80],
            )
        self.out.print(table)

    def log_error(self, message: str) -> None:
        """Print an error message to stderr."""
        if self.json_output:
            self._emit_json({"type": "error", "message": message}, stream=sys.stderr)
        else:
            self.console.print(f"[red]ERROR: {message}[/red]")

    def _emit_json(self, payload: Mapping[str, Any], stream=None) -> None:
        record = {"timestamp": datetime.now().isoformat(), **payload}
        print(json.dumps(record, default=str), file=stream or sys.stdout)
