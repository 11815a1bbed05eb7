"""Unit tests for WorkflowRegistry and the built-in template catalog."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from stepflow.orchestration.errors import WorkflowError, WorkflowNotFound
from stepflow.orchestration.registry import WorkflowRegistry
from stepflow.orchestration.templates import (
    get_workflow_template,
    list_template_names,
    load_builtin_templates,
)
from stepflow.orchestration.workflow_engine.steps import GenerateStep, ParallelStep

STEPS = [{"id": "a", "type": "generate", "prompt": "p", "outputVariable": "out"}]

BUILTIN_NAMES = [
    "api-development",
    "code-generation",
    "component-factory",
    "deployment-pipeline",
    "test-automation",
]


class TestRegistration:
    """Tests for register/resolve/unregister."""

    def test_register_and_resolve(self):
        registry = WorkflowRegistry()
        workflow_id = registry.register("demo", STEPS, metadata={"owner": "qa"}, description="Demo")
        definition = registry.resolve("demo")
        assert definition.id == workflow_id
        assert workflow_id.startswith("workflow_")
        assert definition.description == "Demo"
        assert definition.metadata["owner"] == "qa"
        assert isinstance(definition.steps[0], GenerateStep)

    def test_register_replaces_existing(self):
        registry = WorkflowRegistry()
        first = registry.register("demo", STEPS)
        second = registry.register("demo", [{"id": "b", "type": "generate", "prompt": "q"}])
        assert first != second
        assert registry.resolve("demo").steps[0].id == "b"
        assert registry.registered_count == 1

    def test_invalid_steps_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowRegistry().register("bad", [{"id": "a", "type": "generate"}])

    def test_registered_shadows_builtin(self):
        registry = WorkflowRegistry()
        registry.register("code-generation", STEPS)
        assert registry.resolve("code-generation").steps[0].id == "a"
        registry.unregister("code-generation")
        assert registry.resolve("code-generation").steps[0].id == "analyze-requirements"

    def test_unknown_name(self):
        with pytest.raises(WorkflowNotFound, match="Workflow 'ghost' not found"):
            WorkflowRegistry().resolve("ghost")

    def test_unregister_unknown(self):
        assert WorkflowRegistry().unregister("ghost") is False

    def test_listing(self):
        registry = WorkflowRegistry()
        registry.register("zeta", STEPS)
        registry.register("alpha", STEPS)
        assert registry.list_registered() == ["alpha", "zeta"]
        assert registry.list_templates() == BUILTIN_NAMES
        assert registry.is_registered("alpha")
        assert not registry.is_registered("code-generation")

    def test_custom_template_catalog(self):
        registry = WorkflowRegistry(templates={})
        assert registry.template_count == 0
        with pytest.raises(WorkflowNotFound):
            registry.resolve("code-generation")

    def test_record_execution_counts_registered_only(self):
        registry = WorkflowRegistry()
        registry.register("demo", STEPS)
        registry.record_execution("demo")
        registry.record_execution("demo")
        registry.record_execution("code-generation")
        assert registry.resolve("demo").executions == 2
        assert registry.resolve("code-generation").executions == 0


class TestLoadFile:
    """Tests for loading definitions from YAML and JSON files."""

    def test_yaml_workflows_mapping(self, tmp_path: Path):
        path = tmp_path / "flows.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "workflows": {
                        "greet": {
                            "description": "Say hello",
                            "steps": [
                                {
                                    "id": "hello",
                                    "type": "transform",
                                    "input": "input.name",
                                    "transformation": "'Hello, ' + value",
                                    "outputVariable": "greeting",
                                }
                            ],
                        },
                        "echo": {"steps": STEPS},
                    }
                },
                sort_keys=False,
            )
        )
        registry = WorkflowRegistry()
        assert registry.load_file(path) == ["greet", "echo"]
        assert registry.resolve("greet").description == "Say hello"
        assert registry.resolve("greet").steps[0].output_variable == "greeting"

    def test_json_single_definition(self, tmp_path: Path):
        path = tmp_path / "single.json"
        path.write_text(json.dumps({"name": "solo", "steps": STEPS, "metadata": {"v": 2}}))
        registry = WorkflowRegistry()
        assert registry.load_file(str(path)) == ["solo"]
        assert registry.resolve("solo").metadata["v"] == 2

    @pytest.mark.parametrize(
        "content",
        [
            "- just\n- a list\n",
            "something: else\n",
            "workflows: [1, 2]\n",
            "workflows:\n  broken: {description: no steps}\n",
            "workflows: {bad: [unclosed\n",
        ],
    )
    def test_malformed_files(self, tmp_path: Path, content):
        path = tmp_path / "bad.yml"
        path.write_text(content)
        with pytest.raises(WorkflowError):
            WorkflowRegistry().load_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(WorkflowError, match="Cannot read"):
            WorkflowRegistry().load_file(tmp_path / "absent.yaml")


class TestBuiltinTemplates:
    """Tests for the bundled workflow catalog."""

    def test_catalog_names(self):
        assert sorted(load_builtin_templates()) == BUILTIN_NAMES
        assert sorted(list_template_names()) == BUILTIN_NAMES

    @pytest.mark.parametrize("name", BUILTIN_NAMES)
    def test_templates_bind_every_step(self, name):
        definition = get_workflow_template(name)
        assert definition.name == name
        assert definition.description
        for step in definition.steps:
            assert step.output_variable
            assert isinstance(step, (GenerateStep, ParallelStep))

    def test_code_generation_chain(self):
        steps = get_workflow_template("code-generation").steps
        assert [s.output_variable for s in steps] == ["specification", "architecture", "code", "tests"]
        assert "{{input.requirements}}" in steps[0].prompt
        assert "{{specification}}" in steps[1].prompt

    def test_lookup_is_case_insensitive(self):
        assert get_workflow_template("Code-Generation").name == "code-generation"

    def test_unknown_template(self):
        assert get_workflow_template("nope") is None
