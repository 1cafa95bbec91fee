"""Workspace layer client (``maw ws``)."""

from typing import Any

from .base import ToolClient


class WorkspaceManager(ToolClient):
    def list(self) -> Any:
        return self.runner.check_json(self.argv("ws", "list", "--format", "json"))

    def create(self, name: str) -> None:
        self.runner.check(self.argv("ws", "create", name))

    def merge(self, name: str, destroy: bool = True) -> None:
        args = ["ws", "merge", name]
        if destroy:
            args.append("--destroy")
        self.runner.check(self.argv(*args))
