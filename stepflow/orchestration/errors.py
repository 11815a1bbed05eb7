"""Exception hierarchy for workflow orchestration."""
from __future__ import annotations

from typing import Any, List, Optional


class WorkflowError(Exception):
    """Base class for all orchestration errors.

    Attributes:
        execution: Snapshot of the ExecutionRecord the error terminated, if any
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.execution: Optional[Any] = None


class WorkflowNotFound(WorkflowError):
    """Raised when a workflow name resolves to neither a registered nor a built-in definition."""

    def __init__(self, name: str):
        super().__init__(f"Workflow '{name}' not found")
        self.name = name


class InvalidTransition(WorkflowError):
    """Raised when an execution record is moved out of a terminal state."""


class ExpressionError(WorkflowError):
    """Raised when a condition or transform expression cannot be parsed or evaluated."""


class RemoteCallError(WorkflowError):
    """Raised when a remote call returns a non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StoragePathError(WorkflowError):
    """Raised when a file operation targets a path outside the storage root."""


class StepExecutionError(WorkflowError):
    """A step handler failed.

    Wraps the step identity and the underlying cause.
    """

    def __init__(
        self,
        step_id: str,
        step_type: str,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"Step '{step_id}' ({step_type}) failed: {cause}"
        super().__init__(message)
        self.step_id = step_id
        self.step_type = step_type
        self.cause = cause


class UnknownStepType(StepExecutionError):
    """Raised when a delegated step type has no registered handler."""

    def __init__(self, step_id: str, step_type: str):
        super().__init__(step_id, step_type, message=f"Unknown step type: {step_type}")


class HandlerMissing(StepExecutionError):
    """Raised when a generate step runs without a text generator configured."""

    def __init__(self, step_id: str, step_type: str = "generate"):
        super().__init__(
            step_id, step_type, message="Text generation handler not set"
        )


class ParallelStepError(StepExecutionError):
    """One or more sub-steps of a parallel step failed.

    The message and cause are those of the first failure in declaration order;
    ``errors`` holds every failure.
    """

    def __init__(self, step_id: str, errors: List[StepExecutionError]):
        first = errors[0]
        super().__init__(
            step_id,
            "parallel",
            cause=first,
            message=f"Parallel step '{step_id}' failed ({len(errors)} error(s)): {first}",
        )
        self.errors = errors
