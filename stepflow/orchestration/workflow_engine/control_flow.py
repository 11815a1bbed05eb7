"""
Control-flow step types: ``condition`` and ``parallel``.

Both recurse into the dispatcher for their sub-steps, so a branch or a
parallel member may be any step type, including further control flow.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from ..errors import ParallelStepError, StepExecutionError
from .expressions import evaluate_condition
from .steps import ConditionStep, ParallelStep

if TYPE_CHECKING:
    from .executors import StepDispatcher

logger = logging.getLogger(__name__)


class ControlFlowEvaluator:
    """Branch selection and fan-out/join on top of a StepDispatcher."""

    def __init__(self, dispatcher: "StepDispatcher", max_parallel: Optional[int] = None):
        """Initialize control-flow evaluator.

        Args:
            dispatcher: Dispatcher used to run branches and parallel members
            max_parallel: Default cap on concurrently running members of one
                parallel step (None for no cap)
        """
        self.dispatcher = dispatcher
        self.max_parallel = max_parallel

    @staticmethod
    async def check(condition: Any, context: Mapping[str, Any]) -> bool:
        """Evaluate a condition given as a bool, a predicate or an expression."""
        # Import here to avoid circular imports
        from .executors import invoke

        if isinstance(condition, bool):
            return condition
        if callable(condition):
            return bool(await invoke(condition, context))
        return evaluate_condition(condition, context)

    async def run_condition(self, step: ConditionStep, context: Mapping[str, Any]) -> Any:
        outcome = await self.check(step.condition, context)
        branch = step.true_branch if outcome else step.false_branch
        logger.debug(f"Condition {step.id} evaluated to {outcome}")

        if branch is None:
            return outcome
        return await self.dispatcher.dispatch(branch, context)

    async def run_parallel(self, step: ParallelStep, context: Mapping[str, Any]) -> List[Any]:
        """Run every member concurrently and wait for all of them.

        All members run to completion even when some fail; the step then
        fails with the first error in declaration order.
        """
        limit = step.max_concurrency or self.max_parallel
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def _run_member(member):
            if semaphore is None:
                return await self.dispatcher.dispatch(member, context)
            async with semaphore:
                return await self.dispatcher.dispatch(member, context)

        logger.debug(f"Parallel {step.id} fanning out {len(step.steps)} step(s)")
        results = await asyncio.gather(
            *(_run_member(member) for member in step.steps), return_exceptions=True
        )

        errors = []
        for member, result in zip(step.steps, results):
            if isinstance(result, StepExecutionError):
                errors.append(result)
            elif isinstance(result, BaseException):
                errors.append(StepExecutionError(member.id, member.type, result))
        if errors:
            raise ParallelStepError(step.id, errors)

        return list(results)
