"""Code review tool client (``crit``)."""

from typing import Any

from .base import ToolClient


class ReviewTool(ToolClient):
    def list(self) -> Any:
        return self.runner.check_json(self.argv("reviews", "list", "--format", "json"))

    def show(self, review_id: str) -> str:
        return self.runner.check(self.argv("reviews", "show", review_id))

    def lgtm(self, review_id: str, message: str, agent: str) -> None:
        self.runner.check(self.argv("lgtm", review_id, "-m", message, "--agent", agent))

    def block(self, review_id: str, message: str, agent: str) -> None:
        self.runner.check(self.argv("block", review_id, "-m", message, "--agent", agent))
