"""
Workflow execution engine.

This package contains the engine components:
- steps: Step variants, workflow definitions and execution records
- templating: ``{{path}}`` placeholder resolution
- expressions: Restricted expression language for conditions and transforms
- executors: Step dispatch and built-in step handlers
- control_flow: Condition and parallel steps
- events: Lifecycle event bus
- core: Orchestration logic
"""

from __future__ import annotations

# Export main public API
from .steps import (
    BaseStep,
    ConditionStep,
    DelegateStep,
    EngineStats,
    ExecutionRecord,
    FileOperationStep,
    GenerateStep,
    ParallelStep,
    RemoteCallStep,
    RunOptions,
    RunResult,
    StepOutcome,
    StepSpec,
    StepStatus,
    TransformStep,
    WorkflowDefinition,
    WorkflowStatus,
    parse_step,
    parse_steps,
)

from .core import WorkflowOrchestrator

from .events import EventBus, EventType, WorkflowEvent
from .executors import DelegateRequest, StepDispatcher

__all__ = [
    # Step models
    "BaseStep",
    "ConditionStep",
    "DelegateStep",
    "FileOperationStep",
    "GenerateStep",
    "ParallelStep",
    "RemoteCallStep",
    "StepSpec",
    "TransformStep",
    "parse_step",
    "parse_steps",

    # Definitions and records
    "EngineStats",
    "ExecutionRecord",
    "RunOptions",
    "RunResult",
    "StepOutcome",
    "StepStatus",
    "WorkflowDefinition",
    "WorkflowStatus",

    # Core orchestrator
    "WorkflowOrchestrator",

    # Events
    "EventBus",
    "EventType",
    "WorkflowEvent",

    # Dispatch
    "DelegateRequest",
    "StepDispatcher",
]
