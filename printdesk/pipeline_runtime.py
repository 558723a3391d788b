from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger("printdesk.pipeline")

ContextT = TypeVar("ContextT")


@dataclass
class PipelineStep(Generic[ContextT]):
    """Named step with an optional skip guard; always_run steps ignore the guard."""
    name: str
    fn: Callable[[ContextT], None]
    skip_if: Optional[Callable[[ContextT], bool]] = None
    always_run: bool = False


class StepRunner(Generic[ContextT]):
    """Runs ordered steps over a mutable context object."""

    def __init__(self, steps: List[PipelineStep[ContextT]]) -> None:
        """Purpose: Initialize the runner with an ordered list of steps.
        Inputs/Outputs: Input is a list of PipelineStep; no return value.
        Side Effects / State: Stores the step list for later execution.
        Dependencies: None beyond PipelineStep definitions.
        Failure Modes: Duplicate step names raise ValueError.
        If Removed: The router has no ordered place to short-circuit a message.
        Testing Notes: Provide a minimal step list and ensure order is preserved.
        """
        # Keep the steps in declaration order.
        names = [step.name for step in steps]
        if len(names) != len(set(names)):
            raise ValueError("pipeline step names must be unique")
        self._steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: ContextT) -> List[str]:
        """Purpose: Execute steps in order with skip/always-run rules.
        Inputs/Outputs: Input is a mutable context; returns the names of executed steps.
        Side Effects / State: Invokes step functions that may mutate context.
        Dependencies: Depends on PipelineStep.fn and PipelineStep.skip_if semantics.
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: Router steps would be hard-wired into one function.
        Testing Notes: Verify skip_if and always_run logic with simple steps.
        """
        # Iterate steps and honor always_run/skip_if guards.
        executed: List[str] = []
        for step in self._steps:
            if not step.always_run and step.skip_if and step.skip_if(context):
                continue
            started = time.perf_counter()
            step.fn(context)
            executed.append(step.name)
            logger.debug("step=%s elapsed_ms=%.1f", step.name, (time.perf_counter() - started) * 1000)
        return executed
