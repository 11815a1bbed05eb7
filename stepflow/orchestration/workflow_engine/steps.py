"""
Workflow step models and data structures.

This module defines the step variants a workflow is built from, the workflow
definition itself, and the records an execution produces.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import (
    Annotated,
    Any,
    Callable,
    ClassVar,
    Dict,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
    model_validator,
)

from ...config import _parse_bool
from ..errors import InvalidTransition


def copy_value(value: Any) -> Any:
    """Deep copy a context value, sharing whatever cannot be copied.

    Containers are copied item by item when a whole-value copy fails, so an
    uncopyable object (a lock, an open client) stays shared while its
    siblings are still isolated.
    """
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        pass
    if isinstance(value, Mapping):
        return {key: copy_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(copy_value(item) for item in value)
    return value


class WorkflowStatus(Enum):
    """Workflow execution status."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(Enum):
    """Individual step outcome status."""

    COMPLETED = "completed"
    FAILED = "failed"


BUILTIN_STEP_TYPES = (
    "generate",
    "file-operation",
    "remote-call",
    "transform",
    "condition",
    "parallel",
)

# Tags used by older workflow definitions
LEGACY_TYPE_ALIASES = {
    "ai": "generate",
    "api-call": "remote-call",
}


def normalize_step_type(step_type: Any) -> Any:
    return LEGACY_TYPE_ALIASES.get(step_type, step_type)


class BaseStep(BaseModel):
    """Fields shared by every step variant."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Parameters whose string leaves are rewritten against the context
    templated_fields: ClassVar[Tuple[str, ...]] = ()

    id: str
    name: str = ""
    type: str
    output_variable: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("output_variable", "outputVariable", "outputVar"),
    )

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            data = dict(data)
            if "type" in data:
                data["type"] = normalize_step_type(data["type"])
            if not data.get("name") and data.get("id"):
                data["name"] = data["id"]
        return data

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def parameters(self) -> Dict[str, Any]:
        """Return the templated part of the parameter bag."""
        return {name: getattr(self, name) for name in self.templated_fields}

    def with_parameters(self, parameters: Mapping[str, Any]) -> "BaseStep":
        """Return a copy of this step carrying resolved parameters."""
        return self.model_copy(update=dict(parameters))


class GenerateStep(BaseStep):
    """Call the configured text generator with a templated prompt."""

    templated_fields: ClassVar[Tuple[str, ...]] = ("prompt", "hints")

    type: Literal["generate"] = "generate"
    prompt: str
    hints: Dict[str, Any] = Field(default_factory=dict)


class FileOperationStep(BaseStep):
    """Read, write, list or probe a path under the storage root."""

    templated_fields: ClassVar[Tuple[str, ...]] = ("path", "content")

    type: Literal["file-operation"] = "file-operation"
    operation: Literal["read", "write", "list", "exists"]
    path: str
    content: Any = None


class RemoteCallStep(BaseStep):
    """Issue an HTTP request through the configured transport."""

    templated_fields: ClassVar[Tuple[str, ...]] = ("url", "method", "headers", "body")

    type: Literal["remote-call"] = "remote-call"
    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = Field(default=None, validation_alias=AliasChoices("body", "data"))
    timeout: Optional[float] = Field(default=None, gt=0)


class TransformStep(BaseStep):
    """Derive a value from one context variable.

    ``transformation`` is either a callable ``(value, context)`` or an
    expression evaluated with ``value`` bound to the selected variable.
    """

    type: Literal["transform"] = "transform"
    input: str
    transformation: Union[Callable[..., Any], str]


class ConditionStep(BaseStep):
    """Evaluate a condition and run the matching branch."""

    type: Literal["condition"] = "condition"
    condition: Union[bool, Callable[..., Any], str]
    true_branch: Optional[StepSpec] = Field(
        default=None, validation_alias=AliasChoices("true_branch", "trueBranch")
    )
    false_branch: Optional[StepSpec] = Field(
        default=None, validation_alias=AliasChoices("false_branch", "falseBranch")
    )


class ParallelStep(BaseStep):
    """Run sub-steps concurrently and join their results in declaration order."""

    type: Literal["parallel"] = "parallel"
    steps: Tuple[StepSpec, ...] = Field(min_length=1)
    max_concurrency: Optional[int] = Field(
        default=None, ge=1, validation_alias=AliasChoices("max_concurrency", "maxConcurrency")
    )


class DelegateStep(BaseStep):
    """Any step type outside the built-in set.

    Every key besides the common step fields is kept as a parameter and
    forwarded to the delegate handler registered for ``type``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    def parameters(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def with_parameters(self, parameters: Mapping[str, Any]) -> "DelegateStep":
        data = self.model_dump()
        data.update(parameters)
        return DelegateStep.model_validate(data)


def _step_tag(value: Any) -> Optional[str]:
    """Pick the union member for raw or already-built step data."""
    if isinstance(value, Mapping):
        step_type = value.get("type")
    else:
        step_type = getattr(value, "type", None)
    if step_type is None:
        return None
    step_type = normalize_step_type(step_type)
    return step_type if step_type in BUILTIN_STEP_TYPES else "delegate"


StepSpec = Annotated[
    Union[
        Annotated[GenerateStep, Tag("generate")],
        Annotated[FileOperationStep, Tag("file-operation")],
        Annotated[RemoteCallStep, Tag("remote-call")],
        Annotated[TransformStep, Tag("transform")],
        Annotated[ConditionStep, Tag("condition")],
        Annotated[ParallelStep, Tag("parallel")],
        Annotated[DelegateStep, Tag("delegate")],
    ],
    Discriminator(_step_tag),
]

BUILTIN_STEP_CLASSES = (
    GenerateStep,
    FileOperationStep,
    RemoteCallStep,
    TransformStep,
    ConditionStep,
    ParallelStep,
)

ConditionStep.model_rebuild()
ParallelStep.model_rebuild()

_step_adapter: TypeAdapter = TypeAdapter(StepSpec)


def parse_step(data: Union[BaseStep, Mapping[str, Any]]) -> BaseStep:
    """Validate raw step data into its StepSpec variant."""
    if isinstance(data, BaseStep):
        return data
    return _step_adapter.validate_python(data)


def parse_steps(steps: Iterable[Union[BaseStep, Mapping[str, Any]]]) -> Tuple[BaseStep, ...]:
    return tuple(parse_step(step) for step in steps)


class WorkflowDefinition(BaseModel):
    """Workflow definition with validation."""

    id: str = Field(default_factory=lambda: f"workflow_{uuid.uuid4().hex}")
    name: str
    description: str = ""
    steps: Tuple[StepSpec, ...]
    metadata: Dict[str, Any] = Field(default_factory=dict, validate_default=True)
    executions: int = 0

    @field_validator("steps")
    @classmethod
    def validate_steps(cls, v):
        """Validate step definitions."""
        if not v:
            raise ValueError("Workflow must have at least one step")

        step_ids = set()
        for step in v:
            if step.id in step_ids:
                raise ValueError(f"Duplicate step ID: {step.id}")
            step_ids.add(step.id)

        return v

    @field_validator("metadata")
    @classmethod
    def stamp_created(cls, v):
        return {"created": datetime.now(), **v}


@dataclass
class StepOutcome:
    """Recorded result of one attempted step."""

    step: BaseStep
    status: StepStatus
    result: Any = None
    error: Optional[str] = None
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def step_id(self) -> str:
        return self.step.id

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED

    def snapshot(self) -> "StepOutcome":
        return replace(self, result=copy_value(self.result))


@dataclass
class RunOptions:
    """Per-run options."""

    continue_on_error: bool = False

    @classmethod
    def from_value(cls, options: Union["RunOptions", Mapping[str, Any], None]) -> "RunOptions":
        """Accept RunOptions, a mapping (camelCase or snake_case keys) or None."""
        if options is None:
            return cls()
        if isinstance(options, RunOptions):
            return options
        value = options.get("continue_on_error", options.get("continueOnError", False))
        if isinstance(value, str):
            value = _parse_bool(value)
        return cls(continue_on_error=bool(value))


_TERMINAL = {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED}

_ALLOWED_TRANSITIONS = {
    WorkflowStatus.CREATED: {WorkflowStatus.RUNNING, WorkflowStatus.FAILED},
    WorkflowStatus.RUNNING: _TERMINAL,
}


@dataclass
class ExecutionRecord:
    """Mutable state of one workflow run, owned by the engine executing it."""

    workflow_name: str
    input: Any = None
    options: RunOptions = field(default_factory=RunOptions)
    id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex}")
    status: WorkflowStatus = WorkflowStatus.CREATED
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    outcomes: List[StepOutcome] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def __post_init__(self):
        self.context.setdefault("input", self.input)

    def is_terminal(self) -> bool:
        """Check if the run reached a terminal state."""
        return self.status in _TERMINAL

    def transition(self, status: WorkflowStatus) -> None:
        """Move to ``status``; terminal states are final.

        Raises:
            InvalidTransition: If the move is not part of the state machine
        """
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(
                f"Execution {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status in _TERMINAL:
            self.end_time = datetime.now()

    @property
    def duration(self) -> Optional[float]:
        """Run duration in seconds, None while the run is in progress."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def log(self, message: str) -> None:
        self.logs.append(message)

    def snapshot(self) -> "ExecutionRecord":
        """Deep copy safe to hand to callers and observers.

        Values that cannot be copied are shared with the live record.
        """
        clone = copy.copy(self)
        clone.input = copy_value(self.input)
        clone.context = copy_value(self.context)
        clone.results = copy_value(self.results)
        clone.options = replace(self.options)
        clone.outcomes = [outcome.snapshot() for outcome in self.outcomes]
        clone.logs = list(self.logs)
        return clone


@dataclass
class RunResult:
    """Aggregated result returned by a completed run."""

    execution_id: str
    status: WorkflowStatus
    results: Dict[str, Any]
    context: Dict[str, Any]
    duration: float
    step_count: int
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]


@dataclass
class EngineStats:
    """Registry and execution counters."""

    registered_count: int
    template_count: int
    running_count: int
    total_count: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
