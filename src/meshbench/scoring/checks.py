"""Rubric check types.

A check is a pure function of the run evidence. Evaluating it folds one
CheckOutcome into a ScoreAccumulator.
"""

from collections.abc import Callable
from dataclasses import dataclass

from ..evidence.bundle import RunEvidence
from ..schemas.score import CheckOutcome
from .accumulator import ScoreAccumulator


@dataclass(frozen=True, slots=True)
class Verdict:
    passed: bool
    detail: str = ""
    warnings: tuple[str, ...] = ()


def verdict(passed: bool, detail: str = "", *warnings: str) -> Verdict:
    return Verdict(bool(passed), detail, tuple(warnings))


@dataclass(frozen=True, slots=True)
class FallbackRule:
    """Weaker evidence accepted in place of a failed primary test.

    Fallbacks are deliberate leniency and are reported by name whenever
    they grant credit.
    """

    name: str
    description: str
    applies: Callable[[RunEvidence], bool]


Condition = Callable[[RunEvidence], bool]


def _skipped(name: str, category: str, reason: str) -> CheckOutcome:
    return CheckOutcome(name=name, category=category, weight=0, awarded=0, status="skip", detail=reason)


@dataclass(frozen=True, slots=True)
class RubricCheck:
    """Boolean check: full weight on pass, zero on fail."""

    name: str
    category: str
    weight: int
    test: Callable[[RunEvidence], Verdict]
    fallbacks: tuple[FallbackRule, ...] = ()
    condition: Condition | None = None
    skip_reason: str = "precondition not met"

    def evaluate(self, evidence: RunEvidence, acc: ScoreAccumulator) -> ScoreAccumulator:
        if self.condition is not None and not self.condition(evidence):
            return acc.record(_skipped(self.name, self.category, self.skip_reason))
        result = self.test(evidence)
        fallback = None
        if not result.passed:
            fallback = next((rule.name for rule in self.fallbacks if rule.applies(evidence)), None)
        passed = result.passed or fallback is not None
        outcome = CheckOutcome(
            name=self.name,
            category=self.category,
            weight=self.weight,
            awarded=self.weight if passed else 0,
            status="pass" if passed else "fail",
            detail=result.detail,
            fallback=fallback,
        )
        return acc.warn(*result.warnings).record(outcome)


@dataclass(frozen=True, slots=True)
class Tier:
    """Award ``points`` when the count is within ``limit``."""

    limit: int
    points: int


@dataclass(frozen=True, slots=True)
class GraduatedCheck:
    """Buckets a count into fixed tiers.

    With ``higher_is_better`` false a tier matches when ``count <= limit``,
    otherwise when ``count >= limit``. Tiers are tried in order; no match
    awards zero.
    """

    name: str
    category: str
    weight: int
    count: Callable[[RunEvidence], int]
    tiers: tuple[Tier, ...]
    unit: str = ""
    higher_is_better: bool = False
    condition: Condition | None = None
    skip_reason: str = "precondition not met"

    def points_for(self, count: int) -> int:
        for tier in self.tiers:
            if (count >= tier.limit) if self.higher_is_better else (count <= tier.limit):
                return tier.points
        return 0

    def evaluate(self, evidence: RunEvidence, acc: ScoreAccumulator) -> ScoreAccumulator:
        if self.condition is not None and not self.condition(evidence):
            return acc.record(_skipped(self.name, self.category, self.skip_reason))
        count = self.count(evidence)
        points = self.points_for(count)
        if points >= self.weight:
            status = "pass"
        elif points > 0:
            status = "partial"
        else:
            status = "fail"
        detail = f"{count} {self.unit}".strip()
        return acc.record(
            CheckOutcome(
                name=self.name,
                category=self.category,
                weight=self.weight,
                awarded=points,
                status=status,
                detail=detail,
            )
        )


Check = RubricCheck | GraduatedCheck

# Standard tiers for error-style counts: 0 -> 5, <=5 -> 3, <=15 -> 1
TOOL_ERROR_TIERS = (Tier(0, 5), Tier(5, 3), Tier(15, 1))
# Help lookups plus retry mentions: 0 -> 5, <=3 -> 3, <=8 -> 1
HELP_RETRY_TIERS = (Tier(0, 5), Tier(3, 3), Tier(8, 1))
