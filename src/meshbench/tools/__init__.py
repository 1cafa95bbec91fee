"""Clients for the external collaborator CLIs."""

from dataclasses import dataclass
from pathlib import Path

from ..config import settings
from .base import CommandResult, CommandRunner, truncate_output
from .bus import MessageBus
from .review import ReviewTool
from .supervisor import ProcessSupervisor, agent_ids
from .tracker import TaskTracker
from .workspace import WorkspaceManager


@dataclass
class Toolbox:
    """One client per collaborator, sharing a runner."""

    runner: CommandRunner
    supervisor: ProcessSupervisor
    bus: MessageBus
    tracker: TaskTracker
    review: ReviewTool
    workspace: WorkspaceManager

    @classmethod
    def create(cls, cwd: Path | None = None, env: dict[str, str] | None = None) -> "Toolbox":
        """Build clients from the configured binary locations."""
        runner = CommandRunner(cwd=cwd, env=dict(env or {}), timeout_sec=settings.tools.command_timeout_sec)
        tools = settings.tools
        return cls(
            runner=runner,
            supervisor=ProcessSupervisor(runner, tools.supervisor),
            bus=MessageBus(runner, tools.bus),
            tracker=TaskTracker(runner, tools.tracker),
            review=ReviewTool(runner, tools.review),
            workspace=WorkspaceManager(runner, tools.workspace),
        )


__all__ = [
    "CommandResult",
    "CommandRunner",
    "MessageBus",
    "ProcessSupervisor",
    "ReviewTool",
    "TaskTracker",
    "Toolbox",
    "WorkspaceManager",
    "agent_ids",
    "truncate_output",
]
