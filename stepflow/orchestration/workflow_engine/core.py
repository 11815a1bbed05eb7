"""
Core orchestration engine.

This module contains the workflow orchestrator that resolves a workflow by
name, runs its steps in declaration order, tracks the execution record and
publishes lifecycle events.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from ..errors import StepExecutionError, WorkflowNotFound
from .events import EventBus, EventHandler, EventType
from .executors import DelegateHandler, StepDispatcher, TextGenerator
from .steps import (
    EngineStats,
    ExecutionRecord,
    RunOptions,
    RunResult,
    StepOutcome,
    StepStatus,
    WorkflowDefinition,
    WorkflowStatus,
)

if TYPE_CHECKING:
    from ...config import Config
    from ..registry import WorkflowRegistry
    from ..state_manager import ExecutionStore

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Main workflow orchestration engine."""

    def __init__(
        self,
        registry: Optional["WorkflowRegistry"] = None,
        dispatcher: Optional[StepDispatcher] = None,
        store: Optional["ExecutionStore"] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional["Config"] = None,
        generator: Optional[TextGenerator] = None,
    ):
        """Initialize workflow orchestrator.

        Collaborators that are not supplied are built from ``config``.

        Args:
            registry: Workflow name resolution
            dispatcher: Step execution
            store: Execution record retention
            event_bus: Lifecycle event publication
            config: Settings for default collaborators (defaults to get_config())
            generator: Text generator for ``generate`` steps
        """
        # Import here to avoid circular imports
        from ...config import get_config
        from ..backends import HttpxTransport, LocalStorageBackend
        from ..registry import WorkflowRegistry
        from ..state_manager import InMemoryExecutionStore

        self.config = config or get_config()
        self.registry = registry or WorkflowRegistry()
        self.store = store or InMemoryExecutionStore(
            max_records=self.config.max_executions, max_age=self.config.execution_ttl
        )
        self.events = event_bus or EventBus()
        self.dispatcher = dispatcher or StepDispatcher(
            storage=LocalStorageBackend(self.config.storage_root),
            transport=HttpxTransport(timeout=self.config.http_timeout),
            max_parallel=self.config.max_parallel,
        )
        if generator is not None:
            self.dispatcher.generator = generator

    def register(
        self,
        name: str,
        steps: Any,
        metadata: Optional[Mapping[str, Any]] = None,
        description: str = "",
    ) -> str:
        """Register a workflow definition.

        Returns:
            Workflow ID
        """
        return self.registry.register(name, steps, metadata=metadata, description=description)

    def set_generator(self, generator: Optional[TextGenerator]) -> None:
        self.dispatcher.generator = generator

    def register_delegate(self, step_type: str, handler: DelegateHandler) -> None:
        self.dispatcher.register_delegate(step_type, handler)

    def set_default_delegate(self, handler: Optional[DelegateHandler]) -> None:
        self.dispatcher.default_delegate = handler

    def subscribe(self, event: Union[str, EventType], handler: EventHandler) -> Callable[[], None]:
        """Subscribe to a lifecycle event; returns an unsubscribe callable."""
        return self.events.subscribe(event, handler)

    async def run(
        self,
        name: str,
        input: Any = None,
        options: Union[RunOptions, Mapping[str, Any], None] = None,
        *,
        continue_on_error: Optional[bool] = None,
    ) -> RunResult:
        """Run a workflow to completion.

        Args:
            name: Registered or built-in workflow name
            input: Value bound as ``input`` in the run context
            options: RunOptions or a mapping with ``continueOnError``
            continue_on_error: Overrides the option of the same name

        Returns:
            RunResult of the completed run

        Raises:
            WorkflowNotFound: If the name does not resolve
            StepExecutionError: If a step fails and the run does not continue on errors
        """
        run_options = RunOptions.from_value(options)
        if continue_on_error is not None:
            run_options = RunOptions(continue_on_error=continue_on_error)

        record = ExecutionRecord(workflow_name=name, input=input, options=run_options)

        try:
            definition = self.registry.resolve(name)
        except WorkflowNotFound as e:
            record.transition(WorkflowStatus.FAILED)
            record.error = str(e)
            record.log(f"Workflow not found: {name}")
            logger.error(f"Execution {record.id} failed: {e}")
            e.execution = record.snapshot()
            self.events.publish(EventType.EXECUTION_FAILED, record, error=e)
            raise

        self.store.save(record)
        record.transition(WorkflowStatus.RUNNING)
        record.log(f"Started workflow: {name}")
        logger.info(f"Starting workflow: {name} ({record.id})")
        self.events.publish(EventType.EXECUTION_STARTED, record)

        for step in definition.steps:
            record.log(f"Executing step: {step.display_name}")
            try:
                result = await self.dispatcher.dispatch(step, record.context)
            except StepExecutionError as e:
                outcome = StepOutcome(step=step, status=StepStatus.FAILED, error=str(e))
                record.outcomes.append(outcome)
                record.log(f"Step failed: {step.display_name}: {e}")
                self.events.publish(EventType.STEP_FAILED, record, outcome=outcome, error=e)

                if run_options.continue_on_error:
                    logger.warning(f"Step {step.id} failed but continuing: {e}")
                    continue

                self._fail(record, e)
                raise

            if step.output_variable:
                record.context[step.output_variable] = result
                record.results[step.output_variable] = result

            outcome = StepOutcome(step=step, status=StepStatus.COMPLETED, result=result)
            record.outcomes.append(outcome)
            record.log(f"Step completed: {step.display_name}")
            self.events.publish(EventType.STEP_COMPLETED, record, outcome=outcome)

        record.transition(WorkflowStatus.COMPLETED)
        record.log(f"Workflow completed: {name}")
        self.registry.record_execution(name)
        logger.info(
            f"Workflow {name} ({record.id}) finished with status {record.status.value} "
            f"in {record.duration:.2f}s"
        )
        self.events.publish(EventType.EXECUTION_COMPLETED, record)
        self.store.cleanup()

        return self._create_result(record, definition)

    def _fail(self, record: ExecutionRecord, error: StepExecutionError) -> None:
        record.transition(WorkflowStatus.FAILED)
        record.error = str(error)
        record.log(f"Workflow failed: {error}")
        logger.error(
            f"Workflow {record.workflow_name} ({record.id}) failed after "
            f"{len(record.outcomes)} step(s): {error}"
        )
        error.execution = record.snapshot()
        self.events.publish(EventType.EXECUTION_FAILED, record, error=error)
        self.store.cleanup()

    @staticmethod
    def _create_result(record: ExecutionRecord, definition: WorkflowDefinition) -> RunResult:
        return RunResult(
            execution_id=record.id,
            status=record.status,
            results=dict(record.results),
            context=dict(record.context),
            duration=record.duration or 0.0,
            step_count=len(definition.steps),
            outcomes=list(record.outcomes),
        )

    def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Get a snapshot of an execution record.

        Returns:
            Deep copy of the record, or None if unknown or evicted
        """
        record = self.store.get(execution_id)
        return record.snapshot() if record is not None else None

    def stats(self) -> EngineStats:
        return EngineStats(
            registered_count=self.registry.registered_count,
            template_count=self.registry.template_count,
            running_count=self.store.count(WorkflowStatus.RUNNING),
            total_count=self.store.count(),
        )

    async def aclose(self) -> None:
        """Release the transport and wait for pending async event handlers."""
        await self.events.drain()
        close = getattr(self.dispatcher.transport, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "WorkflowOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
