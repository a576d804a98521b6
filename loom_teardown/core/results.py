"""Immutable aggregation of teardown step outcomes."""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from loom_teardown.models.cleanup import CleanupResult, OperationResult


@dataclass(frozen=True)
class ResultAggregator:
    """Append-only log of step outcomes for one teardown.

    Every method returns a new aggregator. Failed steps that are not
    best-effort also add their error to ``errors``; overall success is
    derived from ``errors`` when the result is built.
    """

    identifier: str
    operations: Tuple[OperationResult, ...] = ()
    errors: Tuple[str, ...] = ()

    def record(self, operation: OperationResult) -> "ResultAggregator":
        errors = self.errors
        if not operation.success and not operation.best_effort:
            errors = errors + (operation.error or operation.message,)
        return replace(self, operations=self.operations + (operation,), errors=errors)

    def with_error(self, message: str) -> "ResultAggregator":
        """Record an error that has no step of its own (e.g. a failed lookup)."""
        return replace(self, errors=self.errors + (message,))

    @property
    def success(self) -> bool:
        return not self.errors

    def build(self, branch_name: Optional[str] = None) -> CleanupResult:
        return CleanupResult(
            identifier=self.identifier,
            branch_name=branch_name,
            operations=self.operations,
            errors=self.errors,
        )
