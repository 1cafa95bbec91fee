"""Subprocess plumbing shared by the collaborator CLI clients."""

import json
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import settings
from ..errors import ProbeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one collaborator invocation."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


def truncate_output(output: str, max_length: int | None = None) -> str:
    """Truncate output to max length."""
    if max_length is None:
        max_length = settings.capture.max_output_length

    if len(output) <= max_length:
        return output
    return output[:max_length] + f"\n... (truncated, {len(output)} total chars)"


@dataclass
class CommandRunner:
    """Runs argv lists with a shared environment, working directory and timeout.

    Timeouts and launch failures (missing or non-executable binaries) are
    reported as exit code -1 rather than raised, so every caller sees a
    CommandResult.
    """

    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout_sec: float | None = None

    def run(
        self,
        args: list[str],
        *,
        timeout_sec: float | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        timeout = timeout_sec or self.timeout_sec or settings.tools.command_timeout_sec
        logger.debug("exec: %s", shlex.join(args))
        try:
            result = subprocess.run(
                args,
                cwd=cwd or self.cwd,
                env={**os.environ, **self.env},
                capture_output=True,
                text=True,
                timeout=timeout,
            )
            return CommandResult(args, result.returncode, result.stdout, result.stderr)
        except subprocess.TimeoutExpired:
            return CommandResult(args, -1, "", "Command timed out")
        except FileNotFoundError:
            return CommandResult(args, -1, "", f"Command not found: {args[0]}")
        except OSError as exc:
            return CommandResult(args, -1, "", f"Command failed to start: {exc}")

    def check(self, args: list[str], **kwargs) -> str:
        """Run and return stdout, raising ProbeError on a non-zero exit."""
        result = self.run(args, **kwargs)
        if not result.ok:
            raise ProbeError(args, result.returncode, result.stderr)
        return result.stdout

    def check_json(self, args: list[str], **kwargs) -> Any:
        """Run and parse stdout as JSON, raising ProbeError if it is not JSON."""
        stdout = self.check(args, **kwargs)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ProbeError(args, 0, f"invalid JSON output: {exc}") from exc


class ToolClient:
    """Base for a client bound to one collaborator binary (argv prefix)."""

    def __init__(self, runner: CommandRunner, prefix: list[str]):
        self.runner = runner
        self.prefix = list(prefix)

    def argv(self, *args: str) -> list[str]:
        return [*self.prefix, *args]
