"""Task tracker client (``br`` run through the workspace layer)."""

from __future__ import annotations

from typing import Any

from .base import ToolClient


class TaskTracker(ToolClient):
    """Task/mission records and their dependency graph."""

    def show(self, record_id: str) -> Any:
        return self.runner.check_json(self.argv("show", record_id, "--format", "json"))

    def list(self, label: str | None = None) -> Any:
        args = ["list"]
        if label:
            args += ["-l", label]
        return self.runner.check_json(self.argv(*args, "--format", "json"))

    def create(self, title: str, description: str = "", labels: list[str] | None = None) -> str:
        args = ["create", "--title", title]
        if description:
            args += ["--description", description]
        for label in labels or []:
            args += ["-l", label]
        return self.runner.check(self.argv(*args)).strip()

    def dep_tree(self, record_id: str) -> str:
        return self.runner.check(self.argv("dep", "tree", record_id))
