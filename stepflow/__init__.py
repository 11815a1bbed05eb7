"""Stepflow: named multi-step workflows with templated parameters."""

from .orchestration import (
    RunOptions,
    RunResult,
    StepExecutionError,
    WorkflowError,
    WorkflowNotFound,
    WorkflowOrchestrator,
    WorkflowRegistry,
)

__version__ = "1.0.0"

__all__ = [
    "RunOptions",
    "RunResult",
    "StepExecutionError",
    "WorkflowError",
    "WorkflowNotFound",
    "WorkflowOrchestrator",
    "WorkflowRegistry",
    "__version__",
]
