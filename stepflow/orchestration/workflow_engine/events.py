"""
Lifecycle event publication.

Observers subscribe to one of five events and receive a ``WorkflowEvent``
carrying a snapshot of the execution. Delivery is fire-and-forget: observer
failures are logged and never reach the engine.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .steps import ExecutionRecord, StepOutcome

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Events published during a run."""

    EXECUTION_STARTED = "execution-started"
    STEP_COMPLETED = "step-completed"
    STEP_FAILED = "step-failed"
    EXECUTION_COMPLETED = "execution-completed"
    EXECUTION_FAILED = "execution-failed"


@dataclass
class WorkflowEvent:
    """Payload delivered to subscribers."""

    type: EventType
    execution: ExecutionRecord
    outcome: Optional[StepOutcome] = None
    error: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return self.type.value


EventHandler = Callable[[WorkflowEvent], Any]


def _event_type(event: Union[str, EventType]) -> EventType:
    if isinstance(event, EventType):
        return event
    try:
        return EventType(event)
    except ValueError:
        valid = ", ".join(e.value for e in EventType)
        raise ValueError(f"Unknown event '{event}'. Valid events: {valid}") from None


class EventBus:
    """Publish/subscribe hub for workflow lifecycle events."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {e: [] for e in EventType}
        self._pending: set = set()

    def subscribe(self, event: Union[str, EventType], handler: EventHandler) -> Callable[[], None]:
        """Register a handler for an event.

        Args:
            event: Event name (e.g. ``"step-completed"``) or EventType
            handler: Callable or coroutine function taking a WorkflowEvent

        Returns:
            Callable that removes the subscription

        Raises:
            ValueError: If the event name is unknown
        """
        event_type = _event_type(event)
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def subscriber_count(self, event: Union[str, EventType]) -> int:
        return len(self._handlers[_event_type(event)])

    def publish(
        self,
        event: EventType,
        execution: ExecutionRecord,
        outcome: Optional[StepOutcome] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Deliver an event to every subscriber; never raises."""
        handlers = list(self._handlers[event])
        if not handlers:
            return

        for handler in handlers:
            try:
                payload = WorkflowEvent(
                    type=event,
                    execution=execution.snapshot(),
                    outcome=outcome.snapshot() if outcome is not None else None,
                    error=error,
                )
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.error(f"Event handler for {event.value} failed: {e}")

    def _schedule(self, coro: Any, event: EventType) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.error(f"No running event loop for async {event.value} handler")
            return

        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(f"Async event handler for {event.value} failed: {exc}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
