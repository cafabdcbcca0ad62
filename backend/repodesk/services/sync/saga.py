"""
Ordered steps with named compensations.

Used for the upload write-through: the cache write is step one, the catalog
write is step two, and a failure in a later step undoes the completed ones
in reverse order. Compensation failures are logged and never replace the
original error.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SagaStep:
    name: str
    action: Callable[[], Any]
    compensation: Optional[Callable[[], None]] = None
    compensation_name: str = ""


class Saga:
    """
    Usage:
        result = (
            Saga("upload", context={"path": path})
            .step("cache_put", put, compensation=drop, compensation_name="cache_delete")
            .step("catalog_upsert", save)
            .run()
        )
    """

    def __init__(self, name: str, context: Optional[dict] = None):
        self.name = name
        self.context = context or {}
        self._steps: List[SagaStep] = []

    def step(
        self,
        name: str,
        action: Callable[[], Any],
        compensation: Optional[Callable[[], None]] = None,
        compensation_name: str = "",
    ) -> "Saga":
        self._steps.append(SagaStep(name, action, compensation, compensation_name))
        return self

    def run(self) -> Any:
        """Run every step; returns the last step's result."""
        completed: List[SagaStep] = []
        result = None

        for step in self._steps:
            try:
                result = step.action()
            except Exception as e:
                logger.warning(
                    f"{self.name}: step {step.name} failed, compensating {len(completed)} step(s)",
                    extra={"error": str(e), **self.context},
                )
                self._compensate(completed)
                raise
            completed.append(step)

        return result

    def _compensate(self, completed: List[SagaStep]) -> None:
        for step in reversed(completed):
            if step.compensation is None:
                continue
            label = step.compensation_name or f"undo {step.name}"
            try:
                step.compensation()
                logger.info(f"{self.name}: compensation {label} done", extra=self.context)
            except Exception as e:
                logger.warning(
                    f"{self.name}: compensation {label} failed",
                    extra={"error": str(e), **self.context},
                )
