"""Pydantic schemas for scenarios, runs, and scores."""

from .run import PhaseTimestamp, PollerState, RunStatus, ScenarioRun, TrackedEntity
from .scenario import (
    AgentsConfig,
    BuildCheck,
    MessageTrigger,
    ReviewConfig,
    RootConfig,
    ScenarioDefinition,
    SpawnTrigger,
)
from .score import CheckOutcome, ResultLabel, ScoreOverride, ScoreResult

__all__ = [
    "AgentsConfig",
    "BuildCheck",
    "CheckOutcome",
    "MessageTrigger",
    "PhaseTimestamp",
    "PollerState",
    "ResultLabel",
    "ReviewConfig",
    "RootConfig",
    "RunStatus",
    "ScenarioDefinition",
    "ScenarioRun",
    "ScoreOverride",
    "ScoreResult",
    "SpawnTrigger",
    "TrackedEntity",
]
