"""Unit tests for step models, workflow definitions and execution records."""
from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError

from stepflow.orchestration.errors import InvalidTransition
from stepflow.orchestration.workflow_engine.steps import (
    ConditionStep,
    DelegateStep,
    EngineStats,
    ExecutionRecord,
    FileOperationStep,
    GenerateStep,
    ParallelStep,
    RemoteCallStep,
    RunOptions,
    StepOutcome,
    StepStatus,
    TransformStep,
    WorkflowDefinition,
    WorkflowStatus,
    copy_value,
    parse_step,
    parse_steps,
)


class TestParseStep:
    """Tests for selecting the step variant from raw data."""

    @pytest.mark.parametrize(
        "data,cls",
        [
            ({"id": "g", "type": "generate", "prompt": "p"}, GenerateStep),
            ({"id": "f", "type": "file-operation", "operation": "read", "path": "a.txt"}, FileOperationStep),
            ({"id": "r", "type": "remote-call", "url": "http://x"}, RemoteCallStep),
            ({"id": "t", "type": "transform", "input": "x", "transformation": "value"}, TransformStep),
            ({"id": "c", "type": "condition", "condition": True}, ConditionStep),
            (
                {"id": "p", "type": "parallel", "steps": [{"id": "a", "type": "generate", "prompt": "p"}]},
                ParallelStep,
            ),
            ({"id": "d", "type": "notify", "channel": "#ops"}, DelegateStep),
        ],
    )
    def test_variant_selection(self, data, cls):
        assert isinstance(parse_step(data), cls)

    def test_legacy_type_aliases(self):
        assert isinstance(parse_step({"id": "a", "type": "ai", "prompt": "p"}), GenerateStep)
        step = parse_step({"id": "b", "type": "api-call", "url": "http://x"})
        assert isinstance(step, RemoteCallStep)
        assert step.type == "remote-call"

    def test_camel_case_aliases(self):
        step = parse_step(
            {
                "id": "c",
                "type": "condition",
                "condition": "x > 1",
                "outputVariable": "out",
                "trueBranch": {"id": "t", "type": "generate", "prompt": "yes"},
                "falseBranch": {"id": "f", "type": "generate", "prompt": "no"},
            }
        )
        assert step.output_variable == "out"
        assert isinstance(step.true_branch, GenerateStep)
        assert step.false_branch.prompt == "no"

    def test_output_var_alias_and_data_alias(self):
        step = parse_step(
            {"id": "r", "type": "remote-call", "url": "http://x", "data": {"a": 1}, "outputVar": "resp"}
        )
        assert step.body == {"a": 1}
        assert step.output_variable == "resp"

    def test_name_defaults_to_id(self):
        assert parse_step({"id": "only-id", "type": "generate", "prompt": "p"}).name == "only-id"

    def test_missing_required_field(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "g", "type": "generate"})

    def test_invalid_file_operation(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "f", "type": "file-operation", "operation": "delete", "path": "x"})

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "x", "prompt": "p"})

    def test_empty_parallel_rejected(self):
        with pytest.raises(ValidationError):
            parse_step({"id": "p", "type": "parallel", "steps": []})

    def test_steps_are_frozen(self):
        step = parse_step({"id": "g", "type": "generate", "prompt": "p"})
        with pytest.raises(ValidationError):
            step.prompt = "changed"

    def test_already_built_step_passes_through(self):
        step = GenerateStep(id="g", prompt="p")
        assert parse_steps([step]) == (step,)


class TestParameters:
    """Tests for templated parameter extraction and replacement."""

    def test_builtin_parameters(self):
        step = parse_step({"id": "g", "type": "generate", "prompt": "p {{x}}", "hints": {"k": "v"}})
        assert step.parameters() == {"prompt": "p {{x}}", "hints": {"k": "v"}}
        resolved = step.with_parameters({"prompt": "p 1"})
        assert resolved.prompt == "p 1"
        assert step.prompt == "p {{x}}"

    def test_control_flow_steps_have_no_templated_parameters(self):
        step = parse_step({"id": "c", "type": "condition", "condition": "{{x}} > 1"})
        assert step.parameters() == {}

    def test_delegate_parameters_are_extras(self):
        step = parse_step({"id": "d", "type": "notify", "channel": "{{room}}", "outputVariable": "sent"})
        assert step.parameters() == {"channel": "{{room}}"}
        resolved = step.with_parameters({"channel": "#ops"})
        assert isinstance(resolved, DelegateStep)
        assert resolved.parameters() == {"channel": "#ops"}
        assert resolved.output_variable == "sent"
        assert resolved.type == "notify"


class TestWorkflowDefinition:
    """Tests for definition validation."""

    def test_valid_definition(self):
        definition = WorkflowDefinition(
            name="demo", steps=[{"id": "a", "type": "generate", "prompt": "p"}]
        )
        assert definition.id.startswith("workflow_")
        assert "created" in definition.metadata
        assert definition.executions == 0

    def test_empty_steps_rejected(self):
        with pytest.raises(ValidationError, match="at least one step"):
            WorkflowDefinition(name="empty", steps=[])

    def test_duplicate_step_ids_rejected(self):
        steps = [
            {"id": "a", "type": "generate", "prompt": "p"},
            {"id": "a", "type": "generate", "prompt": "q"},
        ]
        with pytest.raises(ValidationError, match="Duplicate step ID"):
            WorkflowDefinition(name="dup", steps=steps)


class TestExecutionRecord:
    """Tests for the run state machine."""

    def test_initial_state(self):
        record = ExecutionRecord(workflow_name="demo", input={"n": 1})
        assert record.id.startswith("exec_")
        assert record.status == WorkflowStatus.CREATED
        assert record.context == {"input": {"n": 1}}
        assert record.duration is None

    def test_happy_path_transitions(self):
        record = ExecutionRecord(workflow_name="demo")
        record.transition(WorkflowStatus.RUNNING)
        assert not record.is_terminal()
        record.transition(WorkflowStatus.COMPLETED)
        assert record.is_terminal()
        assert record.end_time is not None
        assert record.duration >= 0

    def test_created_can_fail_directly(self):
        record = ExecutionRecord(workflow_name="ghost")
        record.transition(WorkflowStatus.FAILED)
        assert record.status == WorkflowStatus.FAILED

    @pytest.mark.parametrize("target", list(WorkflowStatus))
    def test_terminal_states_are_final(self, target):
        record = ExecutionRecord(workflow_name="demo")
        record.transition(WorkflowStatus.RUNNING)
        record.transition(WorkflowStatus.FAILED)
        with pytest.raises(InvalidTransition):
            record.transition(target)

    def test_cannot_complete_without_running(self):
        with pytest.raises(InvalidTransition):
            ExecutionRecord(workflow_name="demo").transition(WorkflowStatus.COMPLETED)

    def test_duration_in_seconds(self):
        record = ExecutionRecord(workflow_name="demo")
        record.transition(WorkflowStatus.RUNNING)
        record.transition(WorkflowStatus.COMPLETED)
        record.end_time = record.start_time + timedelta(seconds=2.5)
        assert record.duration == 2.5

    def test_snapshot_is_independent(self):
        record = ExecutionRecord(workflow_name="demo", input={"items": [1]})
        snapshot = record.snapshot()
        record.context["input"]["items"].append(2)
        record.outcomes.append(
            StepOutcome(step=GenerateStep(id="g", prompt="p"), status=StepStatus.COMPLETED)
        )
        assert snapshot.context["input"]["items"] == [1]
        assert snapshot.outcomes == []

    def test_snapshot_shares_uncopyable_values(self):
        lock = threading.Lock()
        record = ExecutionRecord(workflow_name="demo", input={"items": [1]})
        record.context["handle"] = {"lock": lock, "tags": ["a"]}
        record.results["handle"] = record.context["handle"]
        record.outcomes.append(
            StepOutcome(step=GenerateStep(id="g", prompt="p"), status=StepStatus.COMPLETED, result=lock)
        )

        snapshot = record.snapshot()

        assert snapshot.context["handle"]["lock"] is lock
        assert snapshot.results["handle"]["lock"] is lock
        assert snapshot.outcomes[0].result is lock
        record.context["handle"]["tags"].append("b")
        record.context["input"]["items"].append(2)
        assert snapshot.context["handle"]["tags"] == ["a"]
        assert snapshot.context["input"]["items"] == [1]


class TestCopyValue:
    """Tests for the copy used by snapshots and step contexts."""

    def test_plain_values_are_deep_copied(self):
        value = {"a": [1, {"b": 2}]}
        copied = copy_value(value)
        assert copied == value
        assert copied["a"][1] is not value["a"][1]

    def test_uncopyable_leaves_are_shared(self):
        lock = threading.Lock()
        copied = copy_value([lock, (lock, [1])])
        assert copied[0] is lock
        assert copied[1][0] is lock
        assert copied[1] == (lock, [1])


class TestRunOptions:
    """Tests for option normalization."""

    def test_defaults(self):
        assert RunOptions.from_value(None).continue_on_error is False

    @pytest.mark.parametrize("key", ["continueOnError", "continue_on_error"])
    def test_mapping_keys(self, key):
        assert RunOptions.from_value({key: True}).continue_on_error is True

    @pytest.mark.parametrize(
        "value,expected",
        [("false", False), ("true", True), ("0", False), ("yes", True), (1, True), (0, False)],
    )
    def test_mapping_values_are_parsed(self, value, expected):
        assert RunOptions.from_value({"continueOnError": value}).continue_on_error is expected

    def test_instance_passthrough(self):
        options = RunOptions(continue_on_error=True)
        assert RunOptions.from_value(options) is options


def test_engine_stats_to_dict():
    stats = EngineStats(registered_count=1, template_count=5, running_count=0, total_count=3)
    assert stats.to_dict() == {
        "registered_count": 1,
        "template_count": 5,
        "running_count": 0,
        "total_count": 3,
    }
