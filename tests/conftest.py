"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- Isolation from STEPFLOW_* environment variables and the cached config
- A Config rooted in a temporary storage directory
- Recording text generators and ready-made orchestrators
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from stepflow.config import Config, reset_config
from stepflow.orchestration.registry import WorkflowRegistry
from stepflow.orchestration.state_manager import InMemoryExecutionStore
from stepflow.orchestration.workflow_engine.core import WorkflowOrchestrator


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Ensure STEPFLOW_* and LOG_* variables from the host do not leak into tests."""
    for key in list(os.environ):
        if key.startswith("STEPFLOW_") or key in ("LOG_LEVEL", "LOG_FILE", "LOG_FORMAT", "LOG_TO_CONSOLE"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config whose storage root is a fresh temporary directory."""
    storage = tmp_path / "storage"
    storage.mkdir()
    return Config(storage_root=storage, max_parallel=None, definitions=[])


class RecordingGenerator:
    """Text generator that records every call and returns a canned reply."""

    def __init__(self, reply: str = "generated"):
        self.reply = reply
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, prompt: str, hints: Dict[str, Any]) -> str:
        self.calls.append((prompt, hints))
        return f"{self.reply}: {prompt}"

    @property
    def prompts(self) -> List[str]:
        return [prompt for prompt, _ in self.calls]


@pytest.fixture
def generator() -> RecordingGenerator:
    return RecordingGenerator()


@pytest.fixture
def orchestrator(config: Config, generator: RecordingGenerator) -> WorkflowOrchestrator:
    """Orchestrator with its own registry and store, and a recording generator."""
    return WorkflowOrchestrator(
        registry=WorkflowRegistry(),
        store=InMemoryExecutionStore(max_records=100, max_age=None),
        config=config,
        generator=generator,
    )
