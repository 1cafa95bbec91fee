"""Evidence loaded from a sealed run directory for offline scoring."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .. import artifacts as names
from ..artifacts import ArtifactStore, agent_log_name
from ..schemas.scenario import ScenarioDefinition
from .extract import first_record, normalize_records, parse_key_values, to_int

SCENARIO_FILE = "scenario.yaml"


def record_status(record: dict, status_fields: list[str]) -> str:
    """First non-empty status-like field of a tracker record, lowercased."""
    for key in status_fields:
        value = record.get(key) if isinstance(record, dict) else None
        if value:
            return str(value).lower()
    return "unknown"


def message_labels(message: dict) -> list[str]:
    labels = message.get("labels") if isinstance(message, dict) else None
    if isinstance(labels, list):
        return [str(label) for label in labels]
    if isinstance(labels, str):
        return [labels]
    return []


def message_sender(message: dict) -> str:
    if not isinstance(message, dict):
        return "unknown"
    return str(message.get("agent") or message.get("from") or "unknown")


def parse_phase_times(text: str) -> dict[str, float]:
    """``name=12.5s`` lines; the first value per name wins."""
    phases: dict[str, float] = {}
    for key, value in parse_key_values(text).items():
        try:
            phases.setdefault(key, float(value.rstrip("s")))
        except ValueError:
            continue
    return phases


@dataclass
class RunEvidence:
    """Everything the rubric checks may look at, read once from the artifacts."""

    scenario: ScenarioDefinition
    final: dict[str, str] = field(default_factory=dict)
    agent_logs: dict[str, str] = field(default_factory=dict)
    channel_text: str = ""
    channel_messages: list[dict] = field(default_factory=list)
    root_record: dict = field(default_factory=dict)
    children: list[dict] = field(default_factory=list)
    child_records: dict[str, dict] = field(default_factory=dict)
    all_records: list[dict] = field(default_factory=list)
    workspaces: list[dict] = field(default_factory=list)
    claims_text: str = ""
    build_checks: list[dict] = field(default_factory=list)
    reviews: list[dict] = field(default_factory=list)
    review_texts: dict[str, str] = field(default_factory=dict)
    hooks_text: str = ""
    phase_times: dict[str, float] = field(default_factory=dict)
    run_dir: Path | None = None

    @classmethod
    def load(cls, run_dir: Path, scenario: ScenarioDefinition | None = None) -> "RunEvidence":
        """Read a run directory. Missing or malformed artifacts become empty evidence."""
        if scenario is None:
            scenario = ScenarioDefinition.from_yaml(run_dir / SCENARIO_FILE)
        store = ArtifactStore.for_run(run_dir)
        return cls.from_store(store, scenario, run_dir=run_dir)

    @classmethod
    def from_store(
        cls, store: ArtifactStore, scenario: ScenarioDefinition, run_dir: Path | None = None
    ) -> "RunEvidence":
        agent_logs = {
            name[len("agent-") : -len(".log")]: store.read_text(name) for name in store.glob("agent-*.log")
        }
        child_records = {}
        for name in store.glob("child-*.json"):
            record = first_record(store.read_json(name))
            if record:
                child_records[name[len("child-") : -len(".json")]] = record
        review_texts = {
            name[len("review-") : -len(".txt")]: store.read_text(name) for name in store.glob("review-*.txt")
        }
        return cls(
            scenario=scenario,
            final=parse_key_values(store.read_text(names.FINAL_STATUS)),
            agent_logs=agent_logs,
            channel_text=store.read_text(names.CHANNEL_LOG),
            channel_messages=_dicts(store.read_json(names.CHANNEL_JSON)),
            root_record=first_record(store.read_json(names.ROOT_RECORD)),
            children=_dicts(store.read_json(names.CHILDREN)),
            child_records=child_records,
            all_records=_dicts(store.read_json(names.ALL_RECORDS)),
            workspaces=_dicts(store.read_json(names.WORKSPACES)),
            claims_text=store.read_text(names.CLAIMS),
            build_checks=_dicts(store.read_json(names.BUILD_CHECKS)),
            reviews=_dicts(store.read_json(names.REVIEWS)),
            review_texts=review_texts,
            hooks_text=store.read_text(names.HOOKS),
            phase_times=parse_phase_times(store.read_text(names.PHASE_TIMES)),
            run_dir=run_dir,
        )

    # Final status

    @property
    def final_status(self) -> str:
        return self.final.get("STATUS", "unknown")

    @property
    def root_id(self) -> str | None:
        value = self.final.get("ROOT_ID", "").strip()
        if not value or value == "none":
            return None
        return value

    @property
    def root_status(self) -> str:
        status = record_status(self.root_record, self.scenario.root.status_fields)
        if status == "unknown":
            status = self.final.get("ROOT_STATUS", "unknown").lower() or "unknown"
        return status

    @property
    def root_closed(self) -> bool:
        return self.root_status in self.scenario.root.terminal_statuses

    @property
    def review_lgtm_done(self) -> bool:
        return self.final.get("REVIEW_LGTM_DONE", "false").lower() == "true"

    @property
    def review_id(self) -> str | None:
        return self.final.get("REVIEW_ID") or None

    # Agents

    @property
    def worker_names(self) -> list[str]:
        raw = self.final.get("WORKER_NAMES", "")
        return [name for name in (part.strip() for part in raw.split(",")) if name]

    @property
    def worker_count(self) -> int:
        return max(len(self.worker_names), to_int(self.final.get("WORKER_COUNT"), 0))

    @property
    def lead_log(self) -> str:
        return self.agent_logs.get(_log_key(self.scenario.agents.lead), "")

    def agent_log(self, agent_id: str) -> str:
        return self.agent_logs.get(_log_key(agent_id), "")

    def agent_status(self, role: str) -> str:
        """Exit status recorded for a tracked role, ``unknown`` when absent."""
        return self.final.get(f"{role.upper()}_STATUS", "unknown")

    @property
    def worker_logs(self) -> dict[str, str]:
        """Worker logs: recorded workers plus any log nested under the lead's name."""
        keys = {_log_key(name) for name in self.worker_names}
        lead_prefix = _log_key(self.scenario.agents.lead) + "_"
        keys |= {key for key in self.agent_logs if key.startswith(lead_prefix)}
        return {key: self.agent_logs[key] for key in sorted(keys) if key in self.agent_logs}

    @property
    def respond_logs(self) -> dict[str, str]:
        pattern = self.scenario.agents.respond_pattern
        lead = _log_key(self.scenario.agents.lead)
        workers = set(self.worker_logs)
        return {
            key: text
            for key, text in sorted(self.agent_logs.items())
            if key != lead and key not in workers and _matches(pattern, key)
        }

    @property
    def lead_and_worker_logs(self) -> dict[str, str]:
        logs = {_log_key(self.scenario.agents.lead): self.lead_log}
        logs.update(self.worker_logs)
        return logs

    # Channel

    @property
    def channel_labels(self) -> list[str]:
        return [label for message in self.channel_messages for label in message_labels(message)]

    def senders_with_label(self, prefix: str) -> set[str]:
        return {
            message_sender(message)
            for message in self.channel_messages
            if any(label.startswith(prefix) for label in message_labels(message))
        }

    # Records

    def status_of(self, record: dict) -> str:
        return record_status(record, self.scenario.root.status_fields)

    def is_terminal(self, record: dict) -> bool:
        return self.status_of(record) in self.scenario.root.terminal_statuses

    @property
    def child_ids(self) -> list[str]:
        return [str(child["id"]) for child in self.children if child.get("id")]

    def child_detail(self, child_id: str) -> dict:
        """Full record for a child, falling back to its list entry."""
        if child_id in self.child_records:
            return self.child_records[child_id]
        for child in self.children:
            if str(child.get("id")) == child_id:
                return child
        return {}

    @property
    def children_closed(self) -> int:
        return sum(1 for child in self.children if self.is_terminal(child))

    @property
    def non_default_workspaces(self) -> list[dict]:
        return [ws for ws in self.workspaces if not ws.get("is_default", False) and ws.get("name") != "default"]

    # Build checks

    def build_results(self, role: str) -> list[dict]:
        return [check for check in self.build_checks if check.get("role") == role]

    def build_passed(self, role: str = "build") -> bool:
        """True when every check of a role passed (and at least one ran)."""
        results = self.build_results(role)
        return bool(results) and all(check.get("passed") for check in results)

    @property
    def combined_build_output(self) -> str:
        return "\n".join(str(check.get("output", "")) for check in self.build_checks)


def _dicts(document: Any) -> list[dict]:
    return [item for item in normalize_records(document).items if isinstance(item, dict)]


def _log_key(agent_id: str) -> str:
    return agent_log_name(agent_id)[len("agent-") : -len(".log")]


def _matches(pattern: str, value: str) -> bool:
    try:
        return re.search(pattern, value) is not None
    except re.error:
        return pattern in value
