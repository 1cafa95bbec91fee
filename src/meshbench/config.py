"""Centralized configuration using pydantic-settings.

All tunable values for the harness. Values can be overridden via environment
variables with the MESHBENCH_ prefix.

Example:
    MESHBENCH_POLL__INTERVAL_SEC=5
    MESHBENCH_TOOLS__SUPERVISOR='["botty"]'
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PollSettings(BaseSettings):
    """Lifecycle poller timing, in seconds."""

    model_config = SettingsConfigDict(env_prefix="MESHBENCH_POLL__")

    interval_sec: float = Field(default=30, gt=0, description="Sleep between poll iterations")
    stuck_threshold_sec: float = Field(
        default=300,
        gt=0,
        description="Idle time after which a run with no live process is abandoned",
    )
    timeout_sec: float = Field(default=1800, gt=0, description="Overall wall-clock timeout")
    grace_interval_sec: float = Field(
        default=15,
        ge=0,
        description="Re-poll interval while waiting for agents to exit after completion",
    )
    grace_attempts: int = Field(default=4, ge=0, description="Grace period re-polls")
    parallel_probes: bool = Field(
        default=False,
        description="Run snapshot sub-probes on a thread pool",
    )


class CaptureSettings(BaseSettings):
    """Artifact capture limits."""

    model_config = SettingsConfigDict(env_prefix="MESHBENCH_CAPTURE__")

    tail_lines: int = Field(default=500, gt=0, description="Lines captured per agent log")
    history_limit: int = Field(default=200, gt=0, description="Channel messages captured")
    build_check_timeout_sec: int = Field(
        default=300,
        gt=0,
        description="Default timeout for capture-time build checks",
    )
    max_output_length: int = Field(
        default=4000,
        description="Max build-check output length before truncation",
    )


class ToolSettings(BaseSettings):
    """Collaborator CLI locations and invocation limits."""

    model_config = SettingsConfigDict(env_prefix="MESHBENCH_TOOLS__")

    supervisor: list[str] = Field(default_factory=lambda: ["botty"])
    bus: list[str] = Field(default_factory=lambda: ["bus"])
    tracker: list[str] = Field(
        default_factory=lambda: ["maw", "exec", "default", "--", "br"],
        description="Task tracker argv prefix",
    )
    review: list[str] = Field(default_factory=lambda: ["crit"])
    workspace: list[str] = Field(default_factory=lambda: ["maw"])
    command_timeout_sec: int = Field(
        default=60,
        gt=0,
        description="Timeout applied to every collaborator invocation",
    )


class ScoringSettings(BaseSettings):
    """Result classification thresholds, as percentages of the total."""

    model_config = SettingsConfigDict(env_prefix="MESHBENCH_SCORING__")

    excellent_pct: int = Field(default=85, ge=0, le=100)
    pass_pct: int = Field(default=70, ge=0, le=100)
    dispatch_cap_pct: int = Field(
        default=30,
        ge=0,
        le=100,
        description="Score cap when no worker was ever dispatched",
    )


class FrictionSettings(BaseSettings):
    """Friction estimation parameters."""

    model_config = SettingsConfigDict(env_prefix="MESHBENCH_FRICTION__")

    retry_divisor: int = Field(
        default=3,
        gt=0,
        description="Roughly one retry is assumed per this many exit-code failures",
    )


class MeshbenchSettings(BaseSettings):
    """Root configuration for the harness.

    Nested settings use double underscore: MESHBENCH_POLL__TIMEOUT_SEC=900
    """

    model_config = SettingsConfigDict(
        env_prefix="MESHBENCH_",
        env_nested_delimiter="__",
    )

    poll: PollSettings = Field(default_factory=PollSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    friction: FrictionSettings = Field(default_factory=FrictionSettings)


# Singleton instance
settings = MeshbenchSettings()
