"""Point-in-time snapshots of the external system.

Each sub-probe that fails contributes ``None`` ("no data this iteration")
instead of raising. Probes may run on a thread pool, but they only return
values; every mutation happens afterwards on the polling thread.
"""

import logging
import re
import shlex
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from ..config import CaptureSettings, settings
from ..errors import ProbeError
from ..evidence.extract import first_record, normalize_records
from ..schemas.scenario import BuildCheck, ScenarioDefinition
from ..tools import Toolbox, truncate_output

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SystemSnapshot:
    """One poll's worth of observations; None means the probe failed."""

    agents: list[str] | None = None
    root_id: str | None = None
    root_record: dict | None = None
    children: list[dict] | None = None
    message_count: int | None = None
    reviews: list[dict] | None = None
    builds: dict[str, bool] | None = None


def run_build_check(tools: Toolbox, check: BuildCheck, capture: CaptureSettings | None = None) -> dict[str, Any]:
    """Run one build check and summarize it for the build-checks artifact."""
    capture = capture or settings.capture
    result = tools.runner.run(check.command, timeout_sec=check.timeout_sec or capture.build_check_timeout_sec)
    output = result.output
    passed = result.ok
    if passed and check.expect:
        try:
            passed = re.search(check.expect, output, re.IGNORECASE | re.MULTILINE) is not None
        except re.error:
            passed = check.expect.lower() in output.lower()
    return {
        "name": check.name,
        "role": check.role,
        "command": shlex.join(check.command),
        "returncode": result.returncode,
        "passed": passed,
        "output": truncate_output(output, capture.max_output_length),
    }


def review_id_of(review: dict) -> str | None:
    value = review.get("review_id") or review.get("id")
    return str(value) if value else None


class SnapshotProbe:
    """Takes SystemSnapshots for one scenario."""

    def __init__(self, scenario: ScenarioDefinition, tools: Toolbox, parallel: bool = False):
        self.scenario = scenario
        self.tools = tools
        self.parallel = parallel

    def _safely(self, name: str, probe: Callable[[], Any]) -> Any:
        try:
            return probe()
        except ProbeError as exc:
            logger.debug("probe %s: no data (%s)", name, exc)
            return None

    def list_agents(self) -> list[str] | None:
        return self._safely("agents", self.tools.supervisor.list_agents)

    def discover_root(self) -> str | None:
        """Find the root record id by label; a fixed id is returned as-is."""
        root = self.scenario.root
        if root.id:
            return root.id
        if not root.label:
            return None
        document = self._safely("root-discovery", lambda: self.tools.tracker.list(label=root.label))
        record = first_record(document)
        value = record.get("id")
        return str(value) if value else None

    def _root_record(self, root_id: str) -> dict | None:
        document = self.tools.tracker.show(root_id)
        return first_record(document) or None

    def _children(self, root_id: str) -> list[dict]:
        label = f"{self.scenario.root.children_label_prefix}{root_id}"
        records = normalize_records(self.tools.tracker.list(label=label)).items
        return [item for item in records if isinstance(item, dict)]

    def _message_count(self) -> int:
        text = self.tools.bus.history(self.scenario.channel, settings.capture.history_limit)
        return sum(1 for line in text.splitlines() if line.strip())

    def _reviews(self) -> list[dict]:
        return [item for item in normalize_records(self.tools.review.list()).items if isinstance(item, dict)]

    def _builds(self) -> dict[str, bool]:
        return {
            check.name: run_build_check(self.tools, check)["passed"]
            for check in self.scenario.build_checks
            if check.role == "build"
        }

    def take(self, root_id: str | None) -> SystemSnapshot:
        if root_id is None:
            root_id = self.discover_root()

        probes: dict[str, Callable[[], Any]] = {
            "agents": self.tools.supervisor.list_agents,
            "messages": self._message_count,
        }
        if root_id:
            probes["root"] = lambda: self._root_record(root_id)
            if self.scenario.root.track_children:
                probes["children"] = lambda: self._children(root_id)
        if self.scenario.review.enabled:
            probes["reviews"] = self._reviews
        if self.scenario.probe_builds_each_poll and self.scenario.build_checks:
            probes["builds"] = self._builds

        if self.parallel:
            with ThreadPoolExecutor(max_workers=len(probes)) as executor:
                futures = {name: executor.submit(self._safely, name, probe) for name, probe in probes.items()}
                results = {name: future.result() for name, future in futures.items()}
        else:
            results = {name: self._safely(name, probe) for name, probe in probes.items()}

        return SystemSnapshot(
            agents=results.get("agents"),
            root_id=root_id,
            root_record=results.get("root"),
            children=results.get("children"),
            message_count=results.get("messages"),
            reviews=results.get("reviews"),
            builds=results.get("builds"),
        )
