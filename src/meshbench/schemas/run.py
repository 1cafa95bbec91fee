"""Pydantic models for scenario runs and the entities observed during polling."""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from ..errors import InvalidTransitionError


class RunStatus(str, Enum):
    """Externally reported status of a scenario run."""

    CREATED = "created"
    TRIGGERED = "triggered"
    POLLING = "polling"
    COMPLETED = "completed"
    COMPLETED_STILL_RUNNING = "completed-still-running"
    AGENT_EXITED = "agent-exited"
    TIMEOUT = "timeout"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.COMPLETED_STILL_RUNNING,
        RunStatus.AGENT_EXITED,
        RunStatus.TIMEOUT,
    }
)

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.CREATED: frozenset({RunStatus.TRIGGERED}),
    RunStatus.TRIGGERED: frozenset({RunStatus.POLLING}),
    RunStatus.POLLING: TERMINAL_STATUSES,
}


class PollerState(str, Enum):
    """Internal states of the lifecycle poller."""

    IDLE = "idle"
    TRIGGERED = "triggered"
    POLLING = "polling"
    COMPLETED = "completed"
    STUCK_ABORTED = "stuck-aborted"
    TIMED_OUT = "timed-out"
    CAPTURING = "capturing"
    CLEANING_UP = "cleaning-up"
    DONE = "done"


POLLER_TRANSITIONS: dict[PollerState, frozenset[PollerState]] = {
    PollerState.IDLE: frozenset({PollerState.TRIGGERED}),
    PollerState.TRIGGERED: frozenset({PollerState.POLLING}),
    PollerState.POLLING: frozenset(
        {PollerState.POLLING, PollerState.COMPLETED, PollerState.STUCK_ABORTED, PollerState.TIMED_OUT}
    ),
    PollerState.COMPLETED: frozenset({PollerState.CAPTURING}),
    PollerState.STUCK_ABORTED: frozenset({PollerState.CAPTURING}),
    PollerState.TIMED_OUT: frozenset({PollerState.CAPTURING}),
    PollerState.CAPTURING: frozenset({PollerState.CLEANING_UP}),
    PollerState.CLEANING_UP: frozenset({PollerState.DONE}),
    PollerState.DONE: frozenset(),
}


def check_poller_transition(current: PollerState, target: PollerState) -> PollerState:
    if target not in POLLER_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Poller cannot move from {current.value} to {target.value}")
    return target


EntityKind = Literal["process", "task", "mission-child", "message-count", "review"]


class TrackedEntity(BaseModel):
    """An externally observable unit watched for stuck detection."""

    id: str = Field(description="Opaque identifier")
    kind: EntityKind
    value: str | int | None = Field(default=None, description="Last observed value")
    first_seen: float = Field(description="Seconds since run start when first observed")
    last_changed: float = Field(description="Seconds since run start when the value last changed")


class PhaseTimestamp(BaseModel):
    """Named event time, in seconds since run start."""

    name: str
    elapsed_sec: float


class ScenarioRun(BaseModel):
    """One execution of the harness, persisted as ``run.json``."""

    id: str = Field(description="Run identifier")
    run_dir: Path
    scenario_name: str
    scenario_path: Path | None = Field(default=None, description="Resolved scenario file inside the run dir")
    started_at: datetime | None = None
    timeout_sec: float
    poll_interval_sec: float
    stuck_threshold_sec: float
    status: RunStatus = RunStatus.CREATED
    root_id: str | None = None
    setup_env: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def transition(self, target: RunStatus) -> None:
        """Move to a new status, refusing anything the lifecycle does not allow."""
        allowed = RUN_TRANSITIONS.get(self.status, frozenset())
        if target not in allowed:
            raise InvalidTransitionError(f"Run {self.id} cannot move from {self.status.value} to {target.value}")
        self.status = target
        if target == RunStatus.TRIGGERED:
            self.started_at = datetime.now(UTC)
        if target.terminal:
            self.finished_at = datetime.now(UTC)

    @property
    def path(self) -> Path:
        return self.run_dir / "run.json"

    def save(self) -> Path:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            f.write(self.model_dump_json(indent=2))
        return self.path

    @classmethod
    def load(cls, run_dir: Path) -> "ScenarioRun":
        with open(run_dir / "run.json") as f:
            return cls.model_validate_json(f.read())
