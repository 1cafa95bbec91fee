"""Mission rubric: a lead decomposes a root task and dispatches workers."""

import re

from ...evidence.bundle import RunEvidence
from ...evidence.extract import extract_json_field, extract_list
from ...schemas.scenario import ScenarioDefinition
from ..checks import Check, RubricCheck, verdict
from ..rubric import CategoryCap, CriticalRule, Rubric
from .common import (
    MISSION_ENV_PATTERN,
    build_checks_for,
    comment_text,
    friction_checks,
    lead_log_count,
    mentions,
    record_labels,
)

MIN_CHILDREN = 3
MIN_TITLE_LENGTH = 5


def _dependency_ids(record: dict) -> list[str]:
    ids = []
    for key in ("dependencies", "depends_on", "deps", "blocked_by"):
        for dep in extract_list(record, key):
            if isinstance(dep, dict):
                dep = dep.get("depends_on_id") or dep.get("id")
            if dep:
                ids.append(str(dep))
    return ids


def _title(record: dict) -> str:
    return str(extract_json_field(record, "title", ""))


# Mission Recognition


def mission_label(evidence: RunEvidence):
    labels = record_labels(evidence.root_record)
    return verdict("mission" in labels, f"labels: {', '.join(labels) or 'none'}")


def structured_description(evidence: RunEvidence):
    description = str(extract_json_field(evidence.root_record, "description", ""))
    return verdict(
        mentions(description, r"outcome", r"success.*metric", r"constraints", r"stop.*crit"),
        f"{len(description)} chars",
    )


def mission_context(evidence: RunEvidence):
    root = re.escape(evidence.root_id or "")
    lead_log = evidence.lead_log
    found = (
        mentions(lead_log, MISSION_ENV_PATTERN, r"Level 4", r"mission.*decompos")
        or (bool(root) and mentions(lead_log, rf"mission.*{root}"))
        or (bool(root) and mentions(evidence.channel_text, rf"mission.*{root}"))
        or mentions(evidence.channel_text, r"mission.*creat")
    )
    return verdict(found)


# Decomposition


def children_created(evidence: RunEvidence):
    count = len(evidence.children)
    return verdict(count >= MIN_CHILDREN, f"{count} children")


def children_labeled(evidence: RunEvidence):
    prefix = evidence.scenario.root.children_label_prefix
    labeled = sum(
        1
        for child_id in evidence.child_ids
        if any(label.startswith(prefix) for label in record_labels(evidence.child_detail(child_id)))
    )
    return verdict(labeled >= MIN_CHILDREN, f"{labeled} children labeled {prefix}*")


def dependencies_wired(evidence: RunEvidence):
    wired = mentions(evidence.lead_log, r"br dep add", r"dep.*add") or any(
        _dependency_ids(evidence.child_detail(child_id)) for child_id in evidence.child_ids
    )
    return verdict(wired)


def inter_child_dependency(evidence: RunEvidence):
    if lead_log_count(evidence, r"br dep add") >= 1:
        return verdict(True, "dep add in lead log")
    siblings = set(evidence.child_ids)
    linked = [
        child_id
        for child_id in evidence.child_ids
        if siblings.intersection(_dependency_ids(evidence.child_detail(child_id))) - {child_id}
    ]
    return verdict(bool(linked), f"{len(linked)} children depend on siblings")


def clear_titles(evidence: RunEvidence):
    short = [
        child_id
        for child_id in evidence.child_ids
        if len(_title(evidence.child_detail(child_id)).strip()) < MIN_TITLE_LENGTH
    ]
    warnings = [f"child {child_id} has an unclear title" for child_id in short]
    return verdict(not short, f"{len(evidence.child_ids) - len(short)}/{len(evidence.child_ids)} clear", *warnings)


# Worker Dispatch


def workers_spawned(evidence: RunEvidence) -> bool:
    return evidence.worker_count >= 1 or mentions(evidence.lead_log, r"botty spawn")


def workers_spawned_check(evidence: RunEvidence):
    return verdict(workers_spawned(evidence), f"{evidence.worker_count} workers")


def multiple_workers(evidence: RunEvidence):
    return verdict(evidence.worker_count >= 2, f"{evidence.worker_count} workers")


def workspaces_created(minimum: int):
    def test(evidence: RunEvidence):
        count = lead_log_count(evidence, r"maw ws create")
        return verdict(count >= minimum, f"{count} ws create calls (need {minimum})")

    return test


def mission_env(evidence: RunEvidence):
    return verdict(
        mentions(evidence.lead_log, MISSION_ENV_PATTERN) or mentions(evidence.channel_text, r"mission.*context")
    )


def claims_staked(minimum: int):
    def test(evidence: RunEvidence):
        count = lead_log_count(evidence, r"bus claims stake")
        return verdict(count >= minimum, f"{count} claims staked (need {minimum})")

    return test


# Monitoring


def checkpoint_posted(evidence: RunEvidence):
    return verdict(
        mentions(evidence.channel_text, r"checkpoint", r"mission.*done", r"active", r"progress.*mission")
        or mentions(evidence.lead_log, r"checkpoint")
    )


def count_info(evidence: RunEvidence):
    return verdict(
        mentions(evidence.channel_text, r"[0-9]+.*done", r"[0-9]+.*closed", r"[0-9]+.*active", r"[0-9]+/[0-9]+")
        or mentions(
            evidence.lead_log,
            r"children.*closed",
            r"children.*status",
            r"[0-9]+.*done.*[0-9]+.*total",
        )
    )


def completion_detected(evidence: RunEvidence):
    return verdict(
        mentions(evidence.lead_log, r"complet", r"task-done", r"worker.*finish", r"child.*closed")
        or mentions(evidence.channel_text, r"task-done")
    )


# Synthesis


def all_children_closed(evidence: RunEvidence):
    total = len(evidence.children)
    closed = evidence.children_closed
    return verdict(total > 0 and closed == total, f"{closed}/{total} closed")


def root_closed(evidence: RunEvidence):
    return verdict(evidence.root_closed, f"status={evidence.root_status}")


def synthesis_comment(evidence: RunEvidence):
    comments = comment_text(evidence.root_record)
    return verdict(
        mentions(
            comments,
            r"mission.*complete",
            r"synthesis",
            r"children.*closed",
            r"all.*done",
            r"key.*decision",
            r"what.*worked",
        )
        or mentions(evidence.channel_text, r"mission.*complete", r"all.*children.*done")
    )


def mission_checks(scenario: ScenarioDefinition, min_workspaces: int = 1, min_claims: int = 1) -> list[Check]:
    """Every mission check, in report order, with configurable dispatch minimums."""
    has_children = lambda evidence: bool(evidence.children)
    return [
        RubricCheck("Root has 'mission' label", "Mission Recognition", 5, mission_label),
        RubricCheck(
            "Structured description (outcome, metrics, constraints)",
            "Mission Recognition",
            5,
            structured_description,
        ),
        RubricCheck("Lead identified mission context", "Mission Recognition", 5, mission_context),
        RubricCheck(f"{MIN_CHILDREN}+ children created", "Decomposition", 5, children_created),
        RubricCheck(
            f"Children labeled {scenario.root.children_label_prefix}<id>", "Decomposition", 5, children_labeled
        ),
        RubricCheck("Dependencies wired", "Decomposition", 5, dependencies_wired),
        RubricCheck("Inter-child dependency", "Decomposition", 5, inter_child_dependency),
        RubricCheck(
            "Children have clear titles",
            "Decomposition",
            5,
            clear_titles,
            condition=has_children,
            skip_reason="no children",
        ),
        RubricCheck("Workers spawned", "Worker Dispatch", 5, workers_spawned_check),
        RubricCheck("2+ workers", "Worker Dispatch", 5, multiple_workers),
        RubricCheck("Workspaces created for workers", "Worker Dispatch", 5, workspaces_created(min_workspaces)),
        RubricCheck("Mission env vars passed to workers", "Worker Dispatch", 5, mission_env),
        RubricCheck("Claims staked for workers", "Worker Dispatch", 5, claims_staked(min_claims)),
        RubricCheck("Checkpoint posted", "Monitoring", 5, checkpoint_posted),
        RubricCheck("Progress counts reported", "Monitoring", 5, count_info),
        RubricCheck("Worker completion detected", "Monitoring", 5, completion_detected),
        RubricCheck("All children closed", "Synthesis", 5, all_children_closed),
        RubricCheck("Root closed", "Synthesis", 5, root_closed),
        RubricCheck("Synthesis comment", "Synthesis", 5, synthesis_comment),
        *build_checks_for(scenario.build_checks),
        *friction_checks(),
    ]


MISSION_NEVER_CREATED = CriticalRule(
    name="mission-never-created",
    reason="mission never created",
    triggered=lambda evidence: evidence.root_id is None,
)

WORKERS_NOT_SPAWNED = CategoryCap(
    name="workers-not-spawned",
    detail="no workers spawned",
    gate_failed=lambda evidence: not workers_spawned(evidence),
)


def build(scenario: ScenarioDefinition) -> Rubric:
    return Rubric(
        name="mission",
        description="A lead decomposes a mission into children and dispatches workers",
        checks=tuple(mission_checks(scenario)),
        critical=MISSION_NEVER_CREATED,
        cap=WORKERS_NOT_SPAWNED,
    )
