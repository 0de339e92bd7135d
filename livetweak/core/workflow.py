"""
Action workflow engine: ordered interaction steps that may wait for the
elements earlier steps make appear.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Set

from ..errors import StepFailed
from ..host.base import Element, Host
from .lookup import Lookup, find
from .patcher import ApplyResult, PatchApplier, PatchRule
from .waiter import ElementWaiter

logger = logging.getLogger(__name__)

PRESS_SEQUENCE = ("mouseover", "mousedown", "mouseup", "click")


class Interaction(Enum):
    CLICK = "click"
    HOVER = "hover"
    PRESS = "press"
    PATCH = "patch"


@dataclass
class Step:
    """
    One interaction of a workflow.

    ``target`` is looked up immediately when ``timeout_ms`` is 0, otherwise
    waited for. ``expect`` (optional) must appear within ``expect_timeout_ms``
    after the interaction before the next step starts; a step without it is
    fire-and-forget. ``rule`` names the registry rule a PATCH step applies.
    """
    interaction: Interaction
    target: Optional[Lookup] = None
    timeout_ms: int = 0
    delay_ms: int = 0
    expect: Optional[Lookup] = None
    expect_timeout_ms: int = 2000
    rule: Optional[str] = None

    def describe(self) -> str:
        target = self.target.describe() if self.target else f"rule {self.rule}"
        return f"{self.interaction.value} {target}"


@dataclass
class ActionDescriptor:
    name: str
    steps: List[Step] = field(default_factory=list)
    exclusive: bool = False
    description: str = ""


class WorkflowStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAULTED = "faulted"
    BUSY = "busy"
    UNKNOWN = "unknown"


@dataclass
class WorkflowResult:
    name: str
    status: WorkflowStatus
    completed_steps: int = 0
    total_steps: int = 0
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is WorkflowStatus.COMPLETED


class WorkflowEngine:
    """Runs named actions step by step, aborting on the first failed step."""

    def __init__(self, host: Host, waiter: ElementWaiter, applier: PatchApplier,
                 actions: Mapping[str, ActionDescriptor], rules: Optional[Mapping[str, PatchRule]] = None):
        self.host = host
        self.waiter = waiter
        self.applier = applier
        self.actions: Dict[str, ActionDescriptor] = dict(actions)
        self.rules: Dict[str, PatchRule] = dict(rules or {})
        self._in_flight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> FrozenSet[str]:
        return frozenset(self._in_flight)

    def launch(self, name: str) -> asyncio.Task:
        """Start ``name`` in the background and return its task."""
        task = asyncio.ensure_future(self.run(name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run(self, name: str) -> WorkflowResult:
        """Run the action ``name`` to completion or to its first failed step."""
        action = self.actions.get(name)
        if action is None:
            logger.warning(f"No action registered under '{name}'")
            return WorkflowResult(name, WorkflowStatus.UNKNOWN)

        total = len(action.steps)
        if action.exclusive and name in self._in_flight:
            logger.info(f"Action '{name}' already running, ignoring")
            return WorkflowResult(name, WorkflowStatus.BUSY, 0, total)

        self._in_flight.add(name)
        completed = 0
        try:
            for index, step in enumerate(action.steps):
                await self._run_step(index, step)
                completed += 1
            logger.info(f"Action '{name}' completed ({total} step{'s' if total != 1 else ''})")
            return WorkflowResult(name, WorkflowStatus.COMPLETED, completed, total)
        except StepFailed as e:
            logger.warning(f"Action '{name}' aborted at {e}")
            return WorkflowResult(name, WorkflowStatus.ABORTED, completed, total, e.reason)
        except Exception as e:
            logger.exception(f"Action '{name}' failed at step {completed + 1}")
            return WorkflowResult(name, WorkflowStatus.FAULTED, completed, total, str(e))
        finally:
            self._in_flight.discard(name)

    async def _run_step(self, index: int, step: Step) -> None:
        if step.delay_ms:
            await asyncio.sleep(step.delay_ms / 1000)

        element = await self._locate(index, step)
        await self._interact(index, element, step)

        if step.expect is not None:
            outcome = await self.waiter.wait_for(step.expect, step.expect_timeout_ms)
            if not outcome.found:
                raise StepFailed(self._timeout_reason(step.expect, step.expect_timeout_ms, outcome.state.value), index)

    async def _locate(self, index: int, step: Step) -> Element:
        target = step.target
        if target is None:
            target = self.rules[step.rule].lookup

        if step.timeout_ms > 0:
            outcome = await self.waiter.wait_for(target, step.timeout_ms)
            if not outcome.found:
                raise StepFailed(self._timeout_reason(target, step.timeout_ms, outcome.state.value), index)
            return outcome.element

        element = await find(self.host, target)
        if element is None:
            raise StepFailed(f"element not found: {target.describe()}", index)
        return element

    async def _interact(self, index: int, element: Element, step: Step) -> None:
        if step.interaction is Interaction.CLICK:
            await element.click()
        elif step.interaction is Interaction.HOVER:
            await element.dispatch("mouseover")
        elif step.interaction is Interaction.PRESS:
            for event_name in PRESS_SEQUENCE:
                await element.dispatch(event_name)
        elif step.interaction is Interaction.PATCH:
            rule = self.rules[step.rule]
            result = await self.applier.apply(element, rule)
            if result is ApplyResult.SKIPPED:
                raise StepFailed(f"rule '{rule.name}' could not be evaluated", index)
        logger.debug(f"Step {index + 1}: {step.describe()}")

    @staticmethod
    def _timeout_reason(lookup: Lookup, timeout_ms: int, state: str) -> str:
        if state == "cancelled":
            return f"wait cancelled for {lookup.describe()}"
        return f"Timed out after {timeout_ms}ms waiting for {lookup.describe()}"
