"""Process supervisor client (``botty``)."""

import logging

from ..evidence.extract import normalize_records
from .base import ToolClient

logger = logging.getLogger(__name__)


def agent_ids(document) -> list[str]:
    """Agent identifiers from a ``list --format json`` document.

    Accepts ``{"agents": [{"id": ...}]}``, a bare array of objects, or a bare
    array of identifier strings.
    """
    ids = []
    for item in normalize_records(document).items:
        if isinstance(item, str):
            ids.append(item)
        elif isinstance(item, dict):
            agent_id = item.get("id") or item.get("name")
            if agent_id:
                ids.append(str(agent_id))
    return ids


class ProcessSupervisor(ToolClient):
    """Lists, spawns, tails and kills agent processes."""

    def list_agents(self) -> list[str]:
        """Running agent ids. Raises ProbeError if the supervisor cannot be queried."""
        return agent_ids(self.runner.check_json(self.argv("list", "--format", "json")))

    def spawn(
        self,
        name: str,
        command: list[str],
        env: dict[str, str] | None = None,
        timeout_sec: int | None = None,
        cwd: str | None = None,
    ) -> None:
        args = ["spawn", "-n", name]
        if timeout_sec:
            args += ["--timeout", str(timeout_sec)]
        if cwd:
            args += ["--cwd", cwd]
        for key, value in sorted((env or {}).items()):
            args += ["--env", f"{key}={value}"]
        self.runner.check(self.argv(*args, "--", *command))

    def tail(self, name: str, lines: int) -> str:
        return self.runner.check(self.argv("tail", name, "-n", str(lines)))

    def kill(self, name: str) -> bool:
        """Terminate an agent. Killing an exited agent is not an error."""
        result = self.runner.run(self.argv("kill", name))
        if not result.ok:
            logger.debug("kill %s exited %s: %s", name, result.returncode, result.stderr.strip())
        return result.ok
