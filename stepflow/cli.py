"""Command line interface for running and inspecting workflows.

This module is the ``stepflow`` console script entry point.
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .config import Config, get_config
from .orchestration.errors import WorkflowError, WorkflowNotFound
from .orchestration.registry import WorkflowRegistry
from .orchestration.workflow_engine.core import WorkflowOrchestrator
from .orchestration.workflow_engine.events import EventType
from .ui.console import ConsoleManager
from .utils.logging_factory import LoggingFactory

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2


class UsageError(Exception):
    """Bad command line input; reported with exit code 2."""


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="stepflow",
        description="Run named multi-step workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # List registered and built-in workflows
  stepflow list

  # Show the steps of a workflow
  stepflow show code-generation

  # Dry run a built-in workflow, echoing prompts instead of generating text
  stepflow run code-generation --input '{"requirements": "a todo app"}' --echo-generator

  # Run a workflow from a definitions file and keep going past failed steps
  stepflow run nightly --definitions workflows.yaml --continue-on-error
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    # Shared by every subcommand so options may follow the command name
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    common.add_argument(
        "--json-output",
        action="store_true",
        help="Emit machine-readable JSON lines instead of rich output",
    )
    common.add_argument(
        "--definitions",
        "-d",
        action="append",
        default=[],
        metavar="PATH",
        help="YAML or JSON workflow definitions to load (repeatable)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    subparsers.add_parser("list", parents=[common], help="List available workflows")

    show_parser = subparsers.add_parser("show", parents=[common], help="Show the steps of a workflow")
    show_parser.add_argument("name", help="Workflow name")

    run_parser = subparsers.add_parser("run", parents=[common], help="Run a workflow")
    run_parser.add_argument("name", help="Workflow name")
    input_group = run_parser.add_mutually_exclusive_group()
    input_group.add_argument("--input", "-i", help="Workflow input as a JSON document")
    input_group.add_argument("--input-file", help="File holding the workflow input as JSON")
    run_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Record failed steps and keep running the remaining ones",
    )
    run_parser.add_argument(
        "--storage-root",
        help="Directory file-operation steps are confined to (default: STEPFLOW_STORAGE_ROOT or .)",
    )
    run_parser.add_argument(
        "--echo-generator",
        action="store_true",
        help="Use a text generator that returns each prompt unchanged",
    )
    run_parser.add_argument("--output", "-o", help="Write the run results to this JSON file")

    return parser


def echo_generator(prompt: str, hints: Dict[str, Any]) -> str:
    return prompt


def _parse_input(args: argparse.Namespace) -> Any:
    if args.input is not None:
        source, text = "--input", args.input
    elif args.input_file:
        source = args.input_file
        try:
            text = Path(args.input_file).read_text(encoding="utf-8")
        except OSError as e:
            raise UsageError(f"Cannot read input file {args.input_file}: {e}") from e
    else:
        return {}

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise UsageError(f"Invalid JSON in {source}: {e}") from e


def build_orchestrator(
    args: argparse.Namespace, config: Optional[Config] = None
) -> WorkflowOrchestrator:
    """Create an orchestrator with definitions from config and the command line."""
    config = config or get_config()
    if getattr(args, "storage_root", None):
        config = dataclasses.replace(config, storage_root=Path(args.storage_root))

    registry = WorkflowRegistry()
    paths: List[str] = [*config.definitions, *args.definitions]
    for path in paths:
        try:
            registry.load_file(path)
        except (WorkflowError, ValidationError) as e:
            raise UsageError(str(e)) from e

    orchestrator = WorkflowOrchestrator(registry=registry, config=config)
    if getattr(args, "echo_generator", False):
        orchestrator.set_generator(echo_generator)
    return orchestrator


def list_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    orchestrator = build_orchestrator(args)
    registry = orchestrator.registry
    console.print_workflows(registry.list_registered(), registry.list_templates())
    return EXIT_OK


def show_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    orchestrator = build_orchestrator(args)
    try:
        definition = orchestrator.registry.resolve(args.name)
    except WorkflowNotFound as e:
        console.print_error(str(e))
        return EXIT_USAGE
    console.print_definition(definition)
    return EXIT_OK


async def _run_workflow(
    orchestrator: WorkflowOrchestrator, args: argparse.Namespace, workflow_input: Any
):
    async with orchestrator:
        return await orchestrator.run(
            args.name, workflow_input, continue_on_error=args.continue_on_error
        )


def run_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    """Handle the run subcommand.

    Returns:
        Exit code (0 for success, 1 for a failed run, 2 for bad input)
    """
    workflow_input = _parse_input(args)
    orchestrator = build_orchestrator(args)
    orchestrator.subscribe(EventType.STEP_COMPLETED, console.on_event)
    orchestrator.subscribe(EventType.STEP_FAILED, console.on_event)

    console.print_stage(f"Running workflow: {args.name}")
    try:
        result = asyncio.run(_run_workflow(orchestrator, args, workflow_input))
    except WorkflowNotFound as e:
        console.print_error(str(e))
        return EXIT_USAGE
    except WorkflowError as e:
        console.print_failure(e, e.execution)
        return EXIT_RUN_FAILED

    console.print_result(result)

    if args.output:
        output_path = Path(args.output)
        summary = {
            "execution_id": result.execution_id,
            "status": result.status.value,
            "duration": result.duration,
            "results": result.results,
        }
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(summary, f, indent=2, default=str)
        except OSError as e:
            console.print_error(f"Cannot write results to {output_path}: {e}")
            return EXIT_RUN_FAILED
        logger.info(f"Results written to {output_path}")

    return EXIT_RUN_FAILED if result.failed_steps else EXIT_OK


COMMANDS = {
    "list": list_command,
    "show": show_command,
    "run": run_command,
}


def setup_logging(console: ConsoleManager, config: Config, verbose: bool) -> None:
    level = "DEBUG" if verbose else config.log_level
    LoggingFactory.initialize(
        level=level,
        format_string=config.log_format,
        log_file=Path(config.log_file) if config.log_file else None,
        console_handler=console.create_log_handler(),
        log_to_console=config.log_to_console,
        force=True,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    console = ConsoleManager(verbose=args.verbose, json_output=args.json_output)
    try:
        config = get_config()
    except ValueError as e:
        console.print_error(f"Invalid configuration: {e}")
        return EXIT_USAGE
    setup_logging(console, config, args.verbose)

    try:
        return COMMANDS[args.command](args, console)
    except UsageError as e:
        console.print_error(str(e))
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return EXIT_RUN_FAILED


if __name__ == "__main__":
    sys.exit(main())
