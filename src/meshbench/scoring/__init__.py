from .accumulator import ScoreAccumulator
from .checks import FallbackRule, GraduatedCheck, RubricCheck, Tier, Verdict, verdict
from .rubric import CategoryCap, CriticalRule, FrictionPenalty, PenaltyRule, Rubric, classify
from .rubrics import get_rubric, registry

__all__ = [
    "CategoryCap",
    "CriticalRule",
    "FallbackRule",
    "FrictionPenalty",
    "GraduatedCheck",
    "PenaltyRule",
    "Rubric",
    "RubricCheck",
    "ScoreAccumulator",
    "Tier",
    "Verdict",
    "classify",
    "get_rubric",
    "registry",
    "verdict",
]
