"""Pydantic models for rubric scoring results."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ResultLabel(str, Enum):
    ALL_CHECKS_PASSED = "ALL CHECKS PASSED"
    EXCELLENT = "EXCELLENT"
    PASS = "PASS"
    FAIL = "FAIL"
    CRITICAL_FAIL = "CRITICAL FAIL"

    @property
    def acceptable(self) -> bool:
        return self in (ResultLabel.ALL_CHECKS_PASSED, ResultLabel.EXCELLENT, ResultLabel.PASS)


CheckStatus = Literal["pass", "partial", "fail", "skip"]


class CheckOutcome(BaseModel):
    """Result of one rubric check."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: str
    weight: int = Field(ge=0, description="Points possible; 0 for skipped checks")
    awarded: int = Field(ge=0, description="Points earned")
    status: CheckStatus
    detail: str = Field(default="", description="Observed evidence summary")
    fallback: str | None = Field(default=None, description="Named fallback rule that granted credit")


class ScoreOverride(BaseModel):
    """Annotation for a global rule applied after the checks."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["critical-fail", "category-cap", "friction-penalty"]
    detail: str
    score_before: int
    score_after: int


class ScoreResult(BaseModel):
    """Aggregate outcome of a rubric. Frozen once computed."""

    model_config = ConfigDict(frozen=True)

    rubric: str
    passed: int = 0
    failed: int = 0
    warnings: tuple[str, ...] = ()
    score: int = 0
    total: int = 0
    label: ResultLabel
    headline: str = Field(description="Terminal result text, e.g. 'CRITICAL FAIL — mission never created'")
    outcomes: tuple[CheckOutcome, ...] = ()
    overrides: tuple[ScoreOverride, ...] = ()

    @computed_field
    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @computed_field
    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.score * 100 / self.total, 1)

    def categories(self) -> list[str]:
        """Category names in first-seen order."""
        seen: list[str] = []
        for outcome in self.outcomes:
            if outcome.category not in seen:
                seen.append(outcome.category)
        return seen

    def category_points(self, category: str) -> tuple[int, int]:
        """(awarded, possible) for one category."""
        rows = [o for o in self.outcomes if o.category == category]
        return sum(o.awarded for o in rows), sum(o.weight for o in rows)
