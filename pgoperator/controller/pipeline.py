# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import Any, Callable, List, Optional


class PipelineHalt(Exception):
    """
    Raised by a step to end the pipeline early without an error, e.g. when
    the resource was already processed.
    """
    pass


class StepResult:
    def __init__(self, name: str, *, fatal: bool = True, value: Any = None,
                 error: Optional[Exception] = None, halted: bool = False) -> None:
        self.name = name
        self.fatal = fatal
        self.value = value
        self.error = error
        self.halted = halted

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        state = "halted" if self.halted else ("ok" if self.ok else f"failed: {self.error}")
        return f"<StepResult {self.name} {state}>"


class PipelineResult:
    def __init__(self, name: str) -> None:
        self.name = name
        self.steps: List[StepResult] = []

    @property
    def halted(self) -> bool:
        return any(s.halted for s in self.steps)

    @property
    def aborted(self) -> bool:
        """A fatal step failed and the steps after it never ran"""
        return any(not s.ok and s.fatal for s in self.steps)

    @property
    def ok(self) -> bool:
        """All steps that ran succeeded, including the non-fatal ones"""
        return all(s.ok for s in self.steps)

    @property
    def failed_step(self) -> Optional[StepResult]:
        for s in self.steps:
            if not s.ok:
                return s
        return None

    @property
    def error(self) -> Optional[Exception]:
        step = self.failed_step
        return step.error if step else None

    @property
    def errors(self) -> List[Exception]:
        return [s.error for s in self.steps if s.error is not None]

    def step(self, name: str) -> Optional[StepResult]:
        for s in self.steps:
            if s.name == name:
                return s
        return None

    def ran(self, name: str) -> bool:
        return self.step(name) is not None

    def __repr__(self) -> str:
        return f"<PipelineResult {self.name} steps={self.steps}>"


class Pipeline:
    """
    An ordered list of fallible steps.

    Steps run in the order they were added. The first failing fatal step
    stops the run (FAIL_FAST) and nothing that already ran is undone
    (ROLLBACK is False): claims, secrets or workloads created by earlier steps
    stay in place. A failing non-fatal step is logged and recorded, and the
    run continues with the next step.

    run() never raises for step errors, the outcome of each step is in the
    returned PipelineResult.
    """
    FAIL_FAST = True
    ROLLBACK = False

    def __init__(self, name: str, logger: Logger) -> None:
        self.name = name
        self.logger = logger
        self._steps: List[tuple] = []

    def add(self, name: str, fn: Callable[[], Any], *, fatal: bool = True) -> 'Pipeline':
        self._steps.append((name, fn, fatal))
        return self

    def run(self) -> PipelineResult:
        result = PipelineResult(self.name)

        for i, (name, fn, fatal) in enumerate(self._steps):
            self.logger.debug(f"{self.name}: {i+1}. {name}")
            try:
                value = fn()
            except PipelineHalt as halt:
                self.logger.warning(f"{self.name}: {halt}")
                result.steps.append(StepResult(name, fatal=fatal, halted=True))
                break
            except Exception as exc:
                result.steps.append(StepResult(name, fatal=fatal, error=exc))
                if fatal:
                    self.logger.error(f"{self.name}: {name} failed, stopping: {exc}")
                    break
                self.logger.error(f"{self.name}: {name} failed, continuing: {exc}")
                continue

            result.steps.append(StepResult(name, fatal=fatal, value=value))

        return result
