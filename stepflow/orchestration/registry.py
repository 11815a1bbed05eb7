"""Named workflow definitions: caller-registered ones and the built-in catalog."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from .errors import WorkflowError, WorkflowNotFound
from .templates import load_builtin_templates
from .workflow_engine.steps import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Resolves workflow names to definitions.

    Caller-registered definitions take precedence over built-in templates of
    the same name. Registration replaces the whole definition under a lock, so
    a run that already resolved its definition keeps using it.
    """

    def __init__(self, templates: Optional[Mapping[str, WorkflowDefinition]] = None):
        """Initialize workflow registry.

        Args:
            templates: Built-in catalog (defaults to the bundled templates)
        """
        self._templates: Dict[str, WorkflowDefinition] = dict(
            load_builtin_templates() if templates is None else templates
        )
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._lock = Lock()

    def register(
        self,
        name: str,
        steps: Iterable[Any],
        metadata: Optional[Mapping[str, Any]] = None,
        description: str = "",
    ) -> str:
        """Register a workflow definition, replacing any of the same name.

        Args:
            name: Workflow name
            steps: Step mappings or step models
            metadata: Arbitrary metadata
            description: Human readable description

        Returns:
            Workflow ID

        Raises:
            pydantic.ValidationError: If a step or the definition is invalid
        """
        definition = WorkflowDefinition(
            name=name,
            description=description,
            steps=list(steps),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._workflows[name] = definition
        logger.info(f"Registered workflow: {name} ({definition.id})")
        return definition.id

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._workflows.pop(name, None)
        if removed is not None:
            logger.info(f"Unregistered workflow: {name}")
        return removed is not None

    def resolve(self, name: str) -> WorkflowDefinition:
        """Find a definition by name.

        Raises:
            WorkflowNotFound: If neither a registered nor a built-in workflow matches
        """
        with self._lock:
            definition = self._workflows.get(name)
        if definition is None:
            definition = self._templates.get(name)
        if definition is None:
            raise WorkflowNotFound(name)
        return definition

    def is_registered(self, name: str) -> bool:
        with self._lock:
            return name in self._workflows

    def list_registered(self) -> List[str]:
        with self._lock:
            return sorted(self._workflows)

    def list_templates(self) -> List[str]:
        return sorted(self._templates)

    @property
    def registered_count(self) -> int:
        with self._lock:
            return len(self._workflows)

    @property
    def template_count(self) -> int:
        return len(self._templates)

    def record_execution(self, name: str) -> None:
        """Count a completed run of a registered workflow.

        Built-in templates are not counted.
        """
        with self._lock:
            definition = self._workflows.get(name)
            if definition is not None:
                definition.executions += 1

    def load_file(self, path: Path | str) -> List[str]:
        """Register every workflow defined in a YAML or JSON file.

        The file holds either ``{"workflows": {name: {"steps": [...]}}}`` or a
        single ``{"name": ..., "steps": [...]}`` mapping.

        Args:
            path: Definition file (``.json``, ``.yaml`` or ``.yml``)

        Returns:
            Names of the registered workflows

        Raises:
            WorkflowError: If the file cannot be parsed or has the wrong shape
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise WorkflowError(f"Cannot read workflow definitions from {path}: {e}") from e

        try:
            if path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise WorkflowError(f"Invalid workflow definition file {path}: {e}") from e

        if not isinstance(data, dict):
            raise WorkflowError(f"Workflow definition file {path} must contain a mapping")

        if "workflows" in data:
            entries = data["workflows"]
            if not isinstance(entries, dict):
                raise WorkflowError(f"'workflows' in {path} must be a mapping of name to definition")
        elif "name" in data and "steps" in data:
            entries = {data["name"]: data}
        else:
            raise WorkflowError(
                f"Workflow definition file {path} needs a 'workflows' mapping or 'name' and 'steps'"
            )

        names = []
        for name, entry in entries.items():
            if not isinstance(entry, dict) or "steps" not in entry:
                raise WorkflowError(f"Workflow '{name}' in {path} has no steps")
            self.register(
                name,
                entry["steps"],
                metadata=entry.get("metadata"),
                description=entry.get("description", ""),
            )
            names.append(name)

        logger.info(f"Loaded {len(names)} workflow(s) from {path}")
        return names
