"""Rubrics: ordered checks plus the global override rules."""

from collections.abc import Callable
from dataclasses import dataclass

from ..config import ScoringSettings, settings
from ..evidence.bundle import RunEvidence
from ..schemas.score import ResultLabel, ScoreOverride, ScoreResult
from .accumulator import ScoreAccumulator
from .checks import Check


@dataclass(frozen=True, slots=True)
class CriticalRule:
    """A foundational precondition; when it never held, no checks run."""

    name: str
    reason: str
    triggered: Callable[[RunEvidence], bool]


@dataclass(frozen=True, slots=True)
class CategoryCap:
    """Caps the score at a percentage of the total when a gate failed."""

    name: str
    detail: str
    gate_failed: Callable[[RunEvidence], bool]
    pct: int | None = None


@dataclass(frozen=True, slots=True)
class PenaltyRule:
    name: str
    points: int
    applies: Callable[[RunEvidence], bool]


@dataclass(frozen=True, slots=True)
class FrictionPenalty:
    """Points subtracted for inefficiency, bounded, never below zero."""

    rules: tuple[PenaltyRule, ...]
    max_points: int

    def assess(self, evidence: RunEvidence) -> tuple[int, list[str]]:
        """Bounded penalty points and one reason per rule that fired."""
        hits = [rule for rule in self.rules if rule.applies(evidence)]
        reasons = [f"-{rule.points} {rule.name}" for rule in hits]
        raw = sum(rule.points for rule in hits)
        if raw > self.max_points:
            reasons.append(f"bounded at {self.max_points}")
        return min(raw, self.max_points), reasons


def classify(score: int, total: int, failed: int, scoring: ScoringSettings | None = None) -> ResultLabel:
    """Label a result against its own total; integer math, no rounding."""
    scoring = scoring or settings.scoring
    if failed == 0:
        return ResultLabel.ALL_CHECKS_PASSED
    if score * 100 >= total * scoring.excellent_pct:
        return ResultLabel.EXCELLENT
    if score * 100 >= total * scoring.pass_pct:
        return ResultLabel.PASS
    return ResultLabel.FAIL


def headline(label: ResultLabel, score: int, total: int, failed: int, penalty: int = 0) -> str:
    if label == ResultLabel.ALL_CHECKS_PASSED:
        if penalty:
            return f"{label.value} ({score}/{total}, -{penalty} friction)"
        return f"{label.value} ({score}/{total})"
    return f"{label.value} ({score}/{total}) — {failed} checks failed"


@dataclass(frozen=True)
class Rubric:
    name: str
    description: str
    checks: tuple[Check, ...]
    critical: CriticalRule | None = None
    cap: CategoryCap | None = None
    penalty: FrictionPenalty | None = None

    def score(self, evidence: RunEvidence, scoring: ScoringSettings | None = None) -> ScoreResult:
        """Evaluate every check, then apply cap and penalty, in that order."""
        scoring = scoring or settings.scoring

        if self.critical is not None and self.critical.triggered(evidence):
            return ScoreResult(
                rubric=self.name,
                label=ResultLabel.CRITICAL_FAIL,
                headline=f"{ResultLabel.CRITICAL_FAIL.value} — {self.critical.reason}",
                overrides=(
                    ScoreOverride(kind="critical-fail", detail=self.critical.reason, score_before=0, score_after=0),
                ),
            )

        acc = ScoreAccumulator()
        for check in self.checks:
            acc = check.evaluate(evidence, acc)

        score = acc.score
        overrides: list[ScoreOverride] = []

        if self.cap is not None and self.cap.gate_failed(evidence):
            pct = self.cap.pct if self.cap.pct is not None else scoring.dispatch_cap_pct
            ceiling = acc.total * pct // 100
            if score > ceiling:
                overrides.append(
                    ScoreOverride(
                        kind="category-cap",
                        detail=f"{self.cap.detail}: capped at {pct}% of {acc.total}",
                        score_before=score,
                        score_after=ceiling,
                    )
                )
                score = ceiling

        penalty = 0
        if self.penalty is not None:
            penalty, reasons = self.penalty.assess(evidence)
            if penalty:
                after = max(0, score - penalty)
                overrides.append(
                    ScoreOverride(
                        kind="friction-penalty",
                        detail="; ".join(reasons),
                        score_before=score,
                        score_after=after,
                    )
                )
                score = after

        label = classify(score, acc.total, acc.failed, scoring)
        return ScoreResult(
            rubric=self.name,
            passed=acc.passed,
            failed=acc.failed,
            warnings=acc.warnings,
            score=score,
            total=acc.total,
            label=label,
            headline=headline(label, score, acc.total, acc.failed, penalty),
            outcomes=acc.outcomes,
            overrides=tuple(overrides),
        )
