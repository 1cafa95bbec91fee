"""Single-task rubric: one agent claims, implements, merges and closes a task."""

import re

from ...evidence.bundle import RunEvidence
from ...evidence.friction import count_tool_errors
from ...schemas.scenario import ScenarioDefinition
from ..checks import TOOL_ERROR_TIERS, FallbackRule, GraduatedCheck, RubricCheck, verdict
from ..rubric import Rubric
from .common import mentions, work_claims

CLAIMED_STATUSES = ("in_progress", "doing", "closed", "done")

CLOSED_RECORD_IMPLIES_WORKSPACE = FallbackRule(
    name="closed-record-implies-workspace",
    description="A merged workspace no longer shows in the list; a closed task implies one existed",
    applies=lambda evidence: evidence.root_closed,
)


def hook_fired(evidence: RunEvidence):
    lead = evidence.scenario.agents.lead
    log = evidence.lead_log
    spawned_log = len(log) > 100 and "already exited" not in log
    fired = (
        mentions(evidence.channel_text, r"spawn-ack", r"hook.*fired", r"agent.*start", r"dev-loop", r"iteration")
        or spawned_log
        or mentions(evidence.channel_text, re.escape(lead))
    )
    return verdict(fired)


def task_claimed(evidence: RunEvidence):
    claimed = evidence.root_status in CLAIMED_STATUSES or evidence.root_closed
    claimed = claimed or mentions(
        evidence.channel_text, r"task-claim", r"claim.*bead", r"in.progress", r"started.*work", r"working.*on"
    )
    return verdict(claimed, f"status={evidence.root_status}")


def workspace_created(evidence: RunEvidence):
    created = (
        bool(evidence.non_default_workspaces)
        or mentions(evidence.channel_text, r"workspace", r"ws.*creat")
        or mentions(evidence.lead_log, r"maw ws create", r"workspace.*creat")
    )
    return verdict(created)


def code_compiles(evidence: RunEvidence):
    results = evidence.build_results("build")
    passed = evidence.build_passed("build")
    warnings = [] if passed else [f"build check {r.get('name')} failed" for r in results if not r.get("passed")]
    return verdict(passed, f"{sum(1 for r in results if r.get('passed'))}/{len(results)} build checks", *warnings)


def workspace_merged(evidence: RunEvidence):
    remaining = len(evidence.non_default_workspaces)
    return verdict(remaining == 0, f"{remaining} non-default workspaces remain")


def task_closed(evidence: RunEvidence):
    return verdict(evidence.root_closed, f"status={evidence.root_status}")


def claims_released(evidence: RunEvidence):
    held = work_claims(evidence)
    return verdict(not held, f"{len(held)} task/workspace claims held")


def exited_cleanly(evidence: RunEvidence):
    return verdict(evidence.final_status == "completed", f"final status: {evidence.final_status}")


def bus_labels(evidence: RunEvidence):
    history = evidence.channel_text
    has_claim = mentions(history, r"task-claim", r"claim")
    has_done = mentions(history, r"task-done", r"completed", r"closed", r"released", r"finished")
    warnings = []
    if not has_claim:
        warnings.append("No task-claim label found in channel history")
    if not has_done:
        warnings.append("No task-done label found in channel history")
    return verdict(has_claim and has_done, "", *warnings)


def build(scenario: ScenarioDefinition) -> Rubric:
    category = "Task Lifecycle"
    checks = [
        RubricCheck("Hook fired and agent spawned", category, 5, hook_fired),
        RubricCheck("Task claimed (in progress at some point)", category, 5, task_claimed),
        RubricCheck(
            "Workspace created",
            category,
            5,
            workspace_created,
            fallbacks=(CLOSED_RECORD_IMPLIES_WORKSPACE,),
        ),
        RubricCheck(
            "Code implemented and compiles",
            "Code Correctness",
            10,
            code_compiles,
            condition=lambda evidence: bool(evidence.build_results("build")),
            skip_reason="no build checks configured",
        ),
        RubricCheck("Workspace merged (no non-default workspaces remain)", category, 5, workspace_merged),
        RubricCheck("Task closed", category, 5, task_closed),
        RubricCheck("Claims released (no task or workspace claims)", category, 5, claims_released),
        RubricCheck("Agent exited cleanly", category, 5, exited_cleanly),
        RubricCheck("Bus labels correct (task-claim and task-done)", "Protocol", 5, bus_labels),
        GraduatedCheck(
            name="Tool errors",
            category="Friction Efficiency",
            weight=5,
            count=lambda evidence: count_tool_errors(evidence.lead_log),
            tiers=TOOL_ERROR_TIERS,
            unit="tool errors",
        ),
    ]
    return Rubric(
        name="single-task",
        description="One agent claims, implements, merges and closes a single task",
        checks=tuple(checks),
    )
