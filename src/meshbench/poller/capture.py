"""End-of-run artifact capture.

Every capture that fails writes a documented placeholder so that scoring
sees an explicit "nothing there" rather than a missing file.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .. import artifacts as names
from ..artifacts import ArtifactStore, agent_log_name, child_record_name, review_record_name
from ..config import CaptureSettings, settings
from ..errors import ProbeError
from ..evidence.extract import normalize_records
from ..schemas.run import RunStatus
from ..schemas.scenario import ScenarioDefinition
from ..tools import Toolbox
from .snapshot import review_id_of, run_build_check
from .tracking import EntityTracker, PhaseClock

logger = logging.getLogger(__name__)


@dataclass
class RunObservations:
    """What the poller learned, handed to the final capture."""

    status: RunStatus
    elapsed_sec: float
    root_id: str | None = None
    root_status: str = "unknown"
    child_count: int = 0
    children_closed: int = 0
    workers: list[str] = field(default_factory=list)
    review_id: str | None = None
    review_lgtm_done: bool = False
    agent_statuses: dict[str, str] = field(default_factory=dict)


class ArtifactCapture:
    """Writes agent logs and system state into the artifact store."""

    def __init__(
        self,
        scenario: ScenarioDefinition,
        tools: Toolbox,
        store: ArtifactStore,
        capture: CaptureSettings | None = None,
    ):
        self.scenario = scenario
        self.tools = tools
        self.store = store
        self.capture = capture or settings.capture

    def _fetch(self, label: str, producer: Callable[[], Any]) -> Any:
        try:
            return producer()
        except ProbeError as exc:
            logger.warning("capture %s failed: %s", label, exc)
            return None

    def _put_text(self, name: str, producer: Callable[[], str], placeholder: str) -> None:
        text = self._fetch(name, producer)
        self.store.put_if_absent(name, text if text is not None else placeholder)

    def _put_json(self, name: str, producer: Callable[[], Any], placeholder: str) -> Any:
        data = self._fetch(name, producer)
        if data is None:
            self.store.put_if_absent(name, placeholder)
            return None
        self.store.put_if_absent(name, json.dumps(data, indent=2, sort_keys=True) + "\n")
        return data

    # Agent logs

    def agent_log(self, agent_id: str, placeholder: str | None = names.NO_LOG) -> bool:
        """Tail an agent's log once. Returns True if a real log was written.

        With ``placeholder=None`` nothing is written when the tail fails, so a
        later capture can try again.
        """
        name = agent_log_name(agent_id)
        if self.store.exists(name):
            return False
        text = self._fetch(name, lambda: self.tools.supervisor.tail(agent_id, self.capture.tail_lines))
        if text is None:
            if placeholder is not None:
                self.store.put(name, placeholder)
            return False
        self.store.put(name, text)
        return True

    def hooks(self) -> str:
        self._put_text(names.HOOKS, self.tools.bus.hooks_list, "(no hooks)\n")
        return self.store.read_text(names.HOOKS)

    def agent_logs(self, workers: list[str]) -> None:
        agents = self.scenario.agents
        self.agent_log(agents.lead)
        for agent_id in agents.tracked.values():
            self.agent_log(agent_id)

        listed = self._fetch("agents", self.tools.supervisor.list_agents) or []
        for agent_id in listed:
            if _matches(agents.respond_pattern, agent_id):
                self.agent_log(agent_id)
        for agent_id in agents.fallback_respond_names:
            self.agent_log(agent_id, placeholder=None)

        for worker in workers:
            self.agent_log(worker)
        for agent_id in listed:
            self.agent_log(agent_id)

    # System state

    def channel(self) -> None:
        channel, limit = self.scenario.channel, self.capture.history_limit
        self._put_text(names.CHANNEL_LOG, lambda: self.tools.bus.history(channel, limit), names.NO_HISTORY)
        self._put_json(names.CHANNEL_JSON, lambda: self.tools.bus.history_json(channel, limit), names.EMPTY_MESSAGES)

    def records(self, root_id: str | None) -> None:
        tracker = self.tools.tracker
        if root_id:
            self._put_json(names.ROOT_RECORD, lambda: tracker.show(root_id), names.EMPTY_ARRAY)
            if self.scenario.root.track_children:
                label = f"{self.scenario.root.children_label_prefix}{root_id}"
                children = self._put_json(names.CHILDREN, lambda: tracker.list(label=label), names.EMPTY_ARRAY)
                for child in normalize_records(children).items:
                    child_id = child.get("id") if isinstance(child, dict) else None
                    if child_id:
                        self._put_json(
                            child_record_name(str(child_id)), lambda c=str(child_id): tracker.show(c), names.EMPTY_ARRAY
                        )
        self._put_json(names.ALL_RECORDS, tracker.list, names.EMPTY_ARRAY)

    def workspace_state(self) -> None:
        self._put_json(names.WORKSPACES, self.tools.workspace.list, names.EMPTY_OBJECT)
        self._put_text(names.CLAIMS, self.tools.bus.claims_list, names.NO_CLAIMS)

    def reviews(self) -> None:
        if not self.scenario.review.enabled:
            return
        review = self.tools.review
        listing = self._put_json(names.REVIEWS, review.list, '{"reviews":[]}\n')
        for item in normalize_records(listing).items:
            review_id = review_id_of(item) if isinstance(item, dict) else None
            if review_id:
                self._put_text(
                    review_record_name(review_id), lambda r=review_id: review.show(r), "(review unavailable)\n"
                )

    def build_checks(self) -> list[dict]:
        results = [run_build_check(self.tools, check, self.capture) for check in self.scenario.build_checks]
        self.store.put_if_absent(names.BUILD_CHECKS, json.dumps(results, indent=2) + "\n")
        return results

    # Harness bookkeeping

    def final_status(self, observed: RunObservations) -> None:
        lines = [
            f"STATUS={observed.status.value}",
            f"ROOT_ID={observed.root_id or 'none'}",
            f"ROOT_STATUS={observed.root_status}",
            f"CHILD_COUNT={observed.child_count}",
            f"CHILDREN_CLOSED={observed.children_closed}",
            f"WORKER_COUNT={len(observed.workers)}",
            f"WORKER_NAMES={','.join(sorted(observed.workers))}",
            f"REVIEW_ID={observed.review_id or ''}",
            f"REVIEW_LGTM_DONE={'true' if observed.review_lgtm_done else 'false'}",
            f"ELAPSED_SEC={observed.elapsed_sec:.0f}",
        ]
        lines += [f"{role.upper()}_STATUS={status}" for role, status in observed.agent_statuses.items()]
        self.store.put(names.FINAL_STATUS, "\n".join(lines) + "\n")

    def bookkeeping(self, tracker: EntityTracker, phases: PhaseClock) -> None:
        self.store.put_json(names.ENTITIES, tracker.dump())
        self.store.put(names.PHASE_TIMES, phases.render())

    def capture_all(self, observed: RunObservations, tracker: EntityTracker, phases: PhaseClock) -> None:
        """Capture every end-of-run artifact, harness bookkeeping first."""
        self.final_status(observed)
        self.bookkeeping(tracker, phases)
        self.agent_logs(observed.workers)
        self.channel()
        self.hooks()
        self.records(observed.root_id)
        self.workspace_state()
        self.reviews()
        self.build_checks()


def _matches(pattern: str, value: str) -> bool:
    try:
        return re.search(pattern, value) is not None
    except re.error:
        return pattern in value
