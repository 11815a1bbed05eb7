"""Console management with Rich integration.

This module provides a ConsoleManager that adapts CLI output to:
- Rich-rendered tables and panels on stderr for humans
- JSON lines for machine-readable output (CI/CD)
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..orchestration.workflow_engine.events import WorkflowEvent
from ..orchestration.workflow_engine.steps import (
    BaseStep,
    ExecutionRecord,
    RunResult,
    StepOutcome,
    WorkflowDefinition,
)

PREVIEW_LENGTH = 80


class ThreadSafeConsole:
    """Thread-safe wrapper around Rich Console."""

    def __init__(self, console: Console):
        self._console = console
        self._lock = threading.RLock()

    @property
    def raw(self) -> Console:
        return self._console

    def print(self, *args, **kwargs):
        with self._lock:
            self._console.print(*args, **kwargs)


def _preview(value: Any, limit: int = PREVIEW_LENGTH) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    text = " ".join(text.split())
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


class ConsoleManager:
    """Manages CLI output with Rich integration."""

    def __init__(
        self,
        verbose: bool = False,
        json_output: bool = False,
        console: Optional[Console] = None,
        stdout: Any = None,
    ):
        self.verbose = verbose
        self.json_output = json_output
        self._stdout = stdout
        if self.json_output:
            self.console = None
        else:
            self.console = ThreadSafeConsole(console or Console(stderr=True))

    @property
    def stdout(self):
        return self._stdout or sys.stdout

    def create_log_handler(self) -> logging.Handler:
        """Build the console handler for LoggingFactory.initialize()."""
        if self.json_output or self.console is None:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            return handler
        return RichHandler(
            console=self.console.raw,
            show_time=True,
            show_path=self.verbose,
            rich_tracebacks=True,
        )

    def _emit_json(self, payload: dict, stream: Any = None) -> None:
        payload = {"timestamp": datetime.now().isoformat(), **payload}
        print(json.dumps(payload, default=str), file=stream or self.stdout)

    def print_stage(self, stage: str, status: str = "starting") -> None:
        """Print stage information with appropriate renderer."""
        if self.json_output:
            self._emit_json({"type": "stage", "stage": stage, "status": status}, sys.stderr)
            return
        status_color = {
            "starting": "blue",
            "complete": "green",
            "error": "red",
            "warning": "yellow",
        }.get(status, "white")
        self.console.print(Panel(f"[bold]{stage}[/bold]", style=status_color, padding=(0, 1)))

    def print_error(self, message: str) -> None:
        if self.json_output:
            self._emit_json({"type": "error", "message": message}, sys.stderr)
        else:
            self.console.print(f"[red]ERROR: {escape(message)}[/red]")

    def print_workflows(self, registered: Iterable[str], templates: Iterable[str]) -> None:
        """List workflow names available to ``run``."""
        registered = list(registered)
        templates = list(templates)
        if self.json_output:
            self._emit_json({"type": "workflows", "registered": registered, "templates": templates})
            return

        table = Table(title="Workflows")
        table.add_column("Name", style="cyan")
        table.add_column("Source", style="green")
        for name in registered:
            table.add_row(name, "registered")
        for name in templates:
            if name not in registered:
                table.add_row(name, "built-in")
        self.console.print(table)

    def print_definition(self, definition: WorkflowDefinition) -> None:
        """Show a workflow's steps."""
        if self.json_output:
            self._emit_json(
                {
                    "type": "workflow",
                    "name": definition.name,
                    "description": definition.description,
                    "steps": [step.model_dump(by_alias=False, exclude_none=True) for step in definition.steps],
                }
            )
            return

        title = f"{definition.name}: {definition.description}" if definition.description else definition.name
        table = Table(title=title)
        table.add_column("#", justify="right")
        table.add_column("Step", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Output", style="green")
        table.add_column("Details")
        for index, step in enumerate(definition.steps, start=1):
            table.add_row(
                str(index),
                step.display_name,
                step.type,
                step.output_variable or "",
                self._describe_step(step),
            )
        self.console.print(table)

    @staticmethod
    def _describe_step(step: BaseStep) -> str:
        parameters = step.parameters()
        if not parameters:
            return ""
        return _preview(parameters)

    def on_event(self, event: WorkflowEvent) -> None:
        """Event bus subscriber that reports step progress."""
        outcome = event.outcome
        if outcome is None:
            return
        if self.json_output:
            self._emit_json(
                {
                    "type": event.name,
                    "execution_id": event.execution.id,
                    "step": outcome.step_id,
                    "status": outcome.status.value,
                    "error": outcome.error,
                },
                sys.stderr,
            )
            return
        self.console.print(self._format_outcome(outcome))

    @staticmethod
    def _format_outcome(outcome: StepOutcome) -> str:
        if outcome.succeeded:
            return f"[green]✓[/green] {escape(outcome.step.display_name)}"
        return f"[red]✗[/red] {escape(outcome.step.display_name)}: {escape(outcome.error or '')}"

    def print_result(self, result: RunResult) -> None:
        """Print the results of a completed run."""
        if self.json_output:
            self._emit_json(
                {
                    "type": "result",
                    "execution_id": result.execution_id,
                    "status": result.status.value,
                    "duration": result.duration,
                    "step_count": result.step_count,
                    "failed_steps": [outcome.step_id for outcome in result.failed_steps],
                    "results": result.results,
                }
            )
            return

        table = Table(title=f"Execution {result.execution_id}")
        table.add_column("Variable", style="cyan")
        table.add_column("Value")
        for name, value in result.results.items():
            table.add_row(name, value if self.verbose and isinstance(value, str) else _preview(value))
        self.console.print(table)

        status = "warning" if result.failed_steps else "complete"
        self.print_stage(
            f"{result.status.value}: {len(result.outcomes) - len(result.failed_steps)}/"
            f"{result.step_count} steps in {result.duration:.2f}s",
            status,
        )

    def print_failure(self, error: Exception, execution: Optional[ExecutionRecord]) -> None:
        """Report a run that ended with an error."""
        if self.json_output:
            payload = {"type": "failure", "error": str(error)}
            if execution is not None:
                payload.update(
                    execution_id=execution.id,
                    status=execution.status.value,
                    duration=execution.duration,
                    completed_steps=[o.step_id for o in execution.outcomes if o.succeeded],
                )
            self._emit_json(payload)
            return

        self.print_error(str(error))
        if execution is not None and execution.outcomes:
            for outcome in execution.outcomes:
                self.console.print(self._format_outcome(outcome))
