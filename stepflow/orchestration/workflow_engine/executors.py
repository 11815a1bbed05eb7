"""
Step dispatch and built-in step handlers.

The dispatcher resolves a step's templated parameters against the current
context, picks the handler for the step's variant and wraps any handler
failure in a ``StepExecutionError``.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import logging
import time
from collections import ChainMap
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..backends import HttpxTransport, LocalStorageBackend, StorageBackend, Transport
from ..errors import HandlerMissing, StepExecutionError, UnknownStepType
from . import templating
from .control_flow import ControlFlowEvaluator
from .expressions import evaluate
from .steps import (
    BUILTIN_STEP_CLASSES,
    BaseStep,
    ConditionStep,
    DelegateStep,
    FileOperationStep,
    GenerateStep,
    ParallelStep,
    RemoteCallStep,
    TransformStep,
    copy_value,
)

logger = logging.getLogger(__name__)

TextGenerator = Callable[[str, Dict[str, Any]], Any]


@dataclass
class DelegateRequest:
    """What a delegate handler receives for a non built-in step."""

    type: str
    step_id: str
    name: str
    params: Dict[str, Any]
    context: Mapping[str, Any]


DelegateHandler = Callable[[DelegateRequest], Any]


async def invoke(func: Callable[..., Any], *args: Any) -> Any:
    """Call a host-supplied handler that may be sync or async.

    Plain callables run in the default executor so they cannot stall the
    event loop; an awaitable they return is awaited.
    """
    if asyncio.iscoroutinefunction(func):
        return await func(*args)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(func, *args))
    if inspect.isawaitable(result):
        result = await result
    return result


class StepDispatcher:
    """Maps each step variant to its handler and runs it."""

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        storage: Optional[StorageBackend] = None,
        transport: Optional[Transport] = None,
        delegates: Optional[Dict[str, DelegateHandler]] = None,
        default_delegate: Optional[DelegateHandler] = None,
        max_parallel: Optional[int] = None,
    ):
        """Initialize step dispatcher.

        Args:
            generator: Text generation function ``(prompt, hints) -> text``
            storage: Backend for file-operation steps (defaults to the
                current directory)
            transport: Backend for remote-call steps (defaults to httpx)
            delegates: Handlers keyed by custom step type
            default_delegate: Handler for custom types without a specific one
            max_parallel: Default concurrency cap inside parallel steps
        """
        self.generator = generator
        self.storage = storage or LocalStorageBackend(Path("."))
        self.transport = transport or HttpxTransport()
        self.default_delegate = default_delegate
        self._delegates: Dict[str, DelegateHandler] = dict(delegates or {})
        self.control_flow = ControlFlowEvaluator(self, max_parallel)

        self._handlers: Dict[type, Callable[[Any, Mapping[str, Any]], Awaitable[Any]]] = {
            GenerateStep: self._run_generate,
            FileOperationStep: self._run_file_operation,
            RemoteCallStep: self._run_remote_call,
            TransformStep: self._run_transform,
            ConditionStep: self.control_flow.run_condition,
            ParallelStep: self.control_flow.run_parallel,
            DelegateStep: self._run_delegate,
        }
        unhandled = [cls.__name__ for cls in BUILTIN_STEP_CLASSES if cls not in self._handlers]
        if unhandled:
            raise TypeError(f"No handler for built-in step types: {', '.join(unhandled)}")

    def register_delegate(self, step_type: str, handler: DelegateHandler) -> None:
        """Handle a custom step type with ``handler``."""
        self._delegates[step_type] = handler
        logger.info(f"Registered delegate handler for step type '{step_type}'")

    def unregister_delegate(self, step_type: str) -> bool:
        return self._delegates.pop(step_type, None) is not None

    def has_delegate(self, step_type: str) -> bool:
        return step_type in self._delegates or self.default_delegate is not None

    @staticmethod
    def prepare(step: BaseStep, context: Mapping[str, Any]) -> BaseStep:
        """Return the step with its templated parameters resolved."""
        parameters = step.parameters()
        if not parameters:
            return step
        return step.with_parameters(templating.resolve(parameters, context))

    async def dispatch(self, step: BaseStep, context: Mapping[str, Any]) -> Any:
        """Execute one step against a read-only deep copy of ``context``.

        Raises:
            StepExecutionError: If the step fails for any reason
        """
        snapshot = MappingProxyType(copy_value(dict(context)))
        handler = self._handlers.get(type(step))
        if handler is None:
            raise UnknownStepType(step.id, step.type)

        logger.debug(f"Executing step: {step.display_name} ({step.type})")
        started = time.monotonic()
        try:
            result = await handler(self.prepare(step, snapshot), snapshot)
        except StepExecutionError as e:
            logger.error(f"Step failed: {step.display_name} ({self._elapsed_ms(started)}ms): {e}")
            raise
        except Exception as e:
            logger.error(f"Step failed: {step.display_name} ({self._elapsed_ms(started)}ms): {e}")
            raise StepExecutionError(step.id, step.type, e) from e

        logger.debug(f"Step completed: {step.display_name} ({self._elapsed_ms(started)}ms)")
        return result

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _run_generate(self, step: GenerateStep, context: Mapping[str, Any]) -> Any:
        if self.generator is None:
            raise HandlerMissing(step.id, step.type)
        return await invoke(self.generator, step.prompt, dict(step.hints))

    async def _run_file_operation(self, step: FileOperationStep, context: Mapping[str, Any]) -> Any:
        if step.operation == "read":
            return await self.storage.read(step.path)
        if step.operation == "write":
            content = step.content
            if content is None:
                content = ""
            elif not isinstance(content, str):
                content = json.dumps(content, default=str)
            return await self.storage.write(step.path, content)
        if step.operation == "list":
            return await self.storage.list(step.path)
        return await self.storage.exists(step.path)

    async def _run_remote_call(self, step: RemoteCallStep, context: Mapping[str, Any]) -> Any:
        return await self.transport.send(
            step.method, step.url, headers=step.headers, body=step.body, timeout=step.timeout
        )

    async def _run_transform(self, step: TransformStep, context: Mapping[str, Any]) -> Any:
        value = templating.lookup_path(context, step.input)
        if value is templating.MISSING:
            value = None

        if callable(step.transformation):
            return await invoke(step.transformation, value, context)

        return evaluate(step.transformation, ChainMap({"value": value}, context))

    async def _run_delegate(self, step: DelegateStep, context: Mapping[str, Any]) -> Any:
        handler = self._delegates.get(step.type) or self.default_delegate
        if handler is None:
            raise UnknownStepType(step.id, step.type)

        request = DelegateRequest(
            type=step.type,
            step_id=step.id,
            name=step.display_name,
            params=step.parameters(),
            context=context,
        )
        return await invoke(handler, request)
