"""Workflow orchestration: registry, engine, storage and retention."""

from .backends import HttpxTransport, LocalStorageBackend, StorageBackend, Transport
from .errors import (
    ExpressionError,
    HandlerMissing,
    InvalidTransition,
    ParallelStepError,
    RemoteCallError,
    StepExecutionError,
    StoragePathError,
    UnknownStepType,
    WorkflowError,
    WorkflowNotFound,
)
from .registry import WorkflowRegistry
from .state_manager import ExecutionStore, InMemoryExecutionStore
from .templates import get_workflow_template, load_builtin_templates
from .workflow_engine import (
    EventType,
    ExecutionRecord,
    RunOptions,
    RunResult,
    StepStatus,
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowOrchestrator,
    WorkflowStatus,
)

__all__ = [
    "EventType",
    # Errors
    "ExpressionError",
    "ExecutionRecord",
    # Retention
    "ExecutionStore",
    "HandlerMissing",
    # Backends
    "HttpxTransport",
    "InMemoryExecutionStore",
    "InvalidTransition",
    "LocalStorageBackend",
    "ParallelStepError",
    "RemoteCallError",
    "RunOptions",
    "RunResult",
    "StepExecutionError",
    "StepStatus",
    "StorageBackend",
    "StoragePathError",
    "Transport",
    "UnknownStepType",
    "WorkflowDefinition",
    "WorkflowError",
    "WorkflowEvent",
    "WorkflowNotFound",
    # Core workflow classes
    "WorkflowOrchestrator",
    "WorkflowRegistry",
    "WorkflowStatus",
    # Workflow templates
    "get_workflow_template",
    "load_builtin_templates",
]
