"""Pydantic models for scenario definitions."""

from pathlib import Path
from string import Template
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..errors import ScenarioError


class SetupConfig(BaseModel):
    """External setup step that builds the sandboxed environment."""

    command: list[str] = Field(
        default_factory=list,
        description="Setup argv; empty means the run directory is the whole environment",
    )
    timeout_sec: int = Field(default=600, gt=0, description="Setup command timeout")


class MessageTrigger(BaseModel):
    """Start the scenario by posting a labeled message to the bus."""

    kind: Literal["message"] = "message"
    agent: str = Field(default="setup", description="Identity the message is sent as")
    message: str = Field(description="Message body; may reference setup variables")
    labels: list[str] = Field(default_factory=lambda: ["task-request"])


class SpawnTrigger(BaseModel):
    """Start the scenario by asking the supervisor to spawn an agent."""

    kind: Literal["spawn"] = "spawn"
    name: str = Field(description="Supervisor identifier for the spawned agent")
    command: list[str] = Field(min_length=1, description="Agent argv")
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    timeout_sec: int | None = Field(
        default=None,
        description="Agent timeout; defaults to the run's overall timeout",
    )


Trigger = Annotated[MessageTrigger | SpawnTrigger, Field(discriminator="kind")]
RoleName = Annotated[str, Field(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")]


class AgentsConfig(BaseModel):
    """Which supervisor identifiers the poller tracks."""

    lead: str = Field(description="Lead/dev agent identifier")
    respond_pattern: str = Field(
        default="respond",
        description="Regex matching router/respond agents",
    )
    worker_pattern: str = Field(
        default="/",
        description="Regex matching dispatched workers (hierarchical names by default)",
    )
    fallback_respond_names: list[str] = Field(
        default_factory=list,
        description="Respond agent names whose logs are tried even after they exit",
    )
    tracked: dict[RoleName, str] = Field(
        default_factory=dict,
        description="Role name to agent id; each role's exit status is recorded as <ROLE>_STATUS",
    )


class RootConfig(BaseModel):
    """How to find and judge the foundational task or mission record."""

    id: str | None = Field(default=None, description="Fixed record id")
    label: str | None = Field(default=None, description="Label used to discover the record")
    children_label_prefix: str = Field(default="mission:")
    terminal_statuses: list[str] = Field(default_factory=lambda: ["closed", "done"])
    active_statuses: list[str] = Field(
        default_factory=list,
        description="Statuses that count as visible activity on every poll",
    )
    status_fields: list[str] = Field(default_factory=lambda: ["status", "state"])
    track_children: bool = True


class ReviewConfig(BaseModel):
    """Review-tool involvement in the scenario."""

    enabled: bool = False
    auto_approve: bool = False
    reviewer: str = Field(default="reviewer")
    message: str = Field(default="Eval auto-approve: implementation looks correct.")


class BuildCheck(BaseModel):
    """Command run in the sandbox at capture time."""

    name: str
    role: Literal["build", "test", "smoke", "bonus"] = "build"
    command: list[str] = Field(min_length=1)
    timeout_sec: int | None = None
    weight: int | None = Field(default=None, gt=0, description="Rubric points; the rubric default when unset")
    expect: str | None = Field(
        default=None,
        description="Regex the output must contain for the check to count as passing",
    )


class PollOverrides(BaseModel):
    """Per-scenario overrides of the poll settings."""

    interval_sec: float | None = None
    stuck_threshold_sec: float | None = None
    timeout_sec: float | None = None
    grace_interval_sec: float | None = None
    grace_attempts: int | None = None


class ScenarioDefinition(BaseModel):
    """Complete scenario definition matching the YAML format."""

    name: str = Field(description="Scenario identifier")
    description: str = Field(default="")
    channel: str = Field(description="Bus channel the scenario runs on")
    setup: SetupConfig = Field(default_factory=SetupConfig)
    trigger: Trigger
    agents: AgentsConfig
    root: RootConfig = Field(default_factory=RootConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    build_checks: list[BuildCheck] = Field(default_factory=list)
    probe_builds_each_poll: bool = False
    expected_hook: str | None = None
    poll: PollOverrides = Field(default_factory=PollOverrides)
    rubric: str = Field(default="single-task")
    env: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path) -> "ScenarioDefinition":
        """Load a scenario definition from a YAML file."""
        try:
            with path.open() as f:
                data = yaml.safe_load(f)
            return cls.model_validate(data)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            raise ScenarioError(f"Invalid scenario {path}: {exc}") from exc

    def to_yaml(self, path: Path) -> None:
        """Save the scenario definition to a YAML file."""
        with path.open("w") as f:
            yaml.dump(self.model_dump(exclude_none=True), f, sort_keys=False)

    def resolved(self, variables: dict[str, str]) -> "ScenarioDefinition":
        """Substitute setup variables (``${NAME}``) into string fields."""
        data = _substitute(self.model_dump(), variables)
        return type(self).model_validate(data)


def _substitute(value, variables: dict[str, str]):
    if isinstance(value, str):
        return Template(value).safe_substitute(variables)
    if isinstance(value, list):
        return [_substitute(item, variables) for item in value]
    if isinstance(value, dict):
        return {key: _substitute(item, variables) for key, item in value.items()}
    return value
