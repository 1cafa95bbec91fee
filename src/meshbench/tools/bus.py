"""Message bus client (``bus``)."""

from typing import Any

from .base import ToolClient


class MessageBus(ToolClient):
    """Channel messages, hook rules and claims."""

    def send(self, agent: str, channel: str, message: str, labels: list[str] | None = None) -> None:
        args = ["send", "--agent", agent, channel, message]
        for label in labels or []:
            args += ["-L", label]
        self.runner.check(self.argv(*args))

    def history(self, channel: str, limit: int) -> str:
        return self.runner.check(self.argv("history", channel, "-n", str(limit)))

    def history_json(self, channel: str, limit: int) -> Any:
        return self.runner.check_json(self.argv("history", channel, "-n", str(limit), "--format", "json"))

    def hooks_list(self) -> str:
        return self.runner.check(self.argv("hooks", "list"))

    def claims_list(self, agent: str | None = None) -> str:
        args = ["claims", "list"]
        if agent:
            args += ["--agent", agent]
        return self.runner.check(self.argv(*args))

    def claims_stake(self, agent: str, uri: str, memo: str | None = None) -> None:
        args = ["claims", "stake", "--agent", agent, uri]
        if memo:
            args += ["-m", memo]
        self.runner.check(self.argv(*args))

    def claims_release(self, agent: str, uri: str | None = None) -> None:
        args = ["claims", "release", "--agent", agent]
        args += [uri] if uri else ["--all"]
        self.runner.check(self.argv(*args))
