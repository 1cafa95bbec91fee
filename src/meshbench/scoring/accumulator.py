"""Immutable running totals threaded through rubric checks."""

from dataclasses import dataclass, replace

from ..schemas.score import CheckOutcome


@dataclass(frozen=True, slots=True)
class ScoreAccumulator:
    """Score, total and counters after some prefix of a rubric's checks.

    Each ``record`` returns a new accumulator. Skipped checks are kept for
    the report but add nothing to ``total``.
    """

    score: int = 0
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: tuple[str, ...] = ()
    outcomes: tuple[CheckOutcome, ...] = ()

    def record(self, outcome: CheckOutcome) -> "ScoreAccumulator":
        outcomes = (*self.outcomes, outcome)
        if outcome.status == "skip":
            return replace(self, outcomes=outcomes)
        if outcome.status == "fail":
            return replace(self, total=self.total + outcome.weight, failed=self.failed + 1, outcomes=outcomes)
        return replace(
            self,
            score=self.score + outcome.awarded,
            total=self.total + outcome.weight,
            passed=self.passed + 1,
            outcomes=outcomes,
        )

    def warn(self, *messages: str) -> "ScoreAccumulator":
        if not messages:
            return self
        return replace(self, warnings=(*self.warnings, *messages))
