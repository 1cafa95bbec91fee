"""Review-cycle rubric: a dev agent and a reviewer agent take one task through
a blocked review, a fix and an approval.

Dev-side evidence comes from the lead log, reviewer-side evidence from the
reviewer's own log. Each tracked role's exit status is read from
``<ROLE>_STATUS`` in the final status.
"""

from ...evidence.bundle import RunEvidence
from ...evidence.extract import extract_list
from ...poller.tracking import LEAD_SPAWN, role_spawn_phase
from ...schemas.scenario import ScenarioDefinition
from ..checks import FallbackRule, RubricCheck, verdict
from ..rubric import Rubric
from .common import build_checks_for, mentions, work_claims
from .single_task import CLOSED_RECORD_IMPLIES_WORKSPACE

SPAWNED_LOG_CHARS = 100
CYCLE_LABELS = ("task-claim", "review-request", "review-done", "task-done")

RECORD_REACHED_WORK = FallbackRule(
    name="record-reached-work",
    description="A task that reached in_progress or closed was claimed by someone",
    applies=lambda evidence: evidence.root_status == "in_progress" or evidence.root_closed,
)


def _spawned(log: str) -> bool:
    return len(log) > SPAWNED_LOG_CHARS


def _reviewer_log(evidence: RunEvidence) -> str:
    return evidence.agent_log(evidence.scenario.review.reviewer)


# Spawn Chain


def router_fired(evidence: RunEvidence):
    fired = mentions(evidence.channel_text, r"spawn-ack", r"respond", r"router")
    return verdict(fired or any(_spawned(log) for log in evidence.respond_logs.values()))


def triaged_as_work(evidence: RunEvidence):
    triaged = mentions(evidence.channel_text, r"dev-loop", r"bead.*created", r"task-request")
    return verdict(triaged or _spawned(evidence.lead_log))


def dev_spawned(evidence: RunEvidence):
    spawned = _spawned(evidence.lead_log) or mentions(evidence.channel_text, r"dev.*start", r"dev-loop")
    return verdict(spawned or LEAD_SPAWN in evidence.phase_times)


def reviewer_fired(evidence: RunEvidence):
    fired = _spawned(_reviewer_log(evidence)) or mentions(
        evidence.channel_text, r"@.*review", r"reviewer.*start", r"security.*spawn"
    )
    reviewer = evidence.scenario.review.reviewer
    roles = [role for role, agent_id in evidence.scenario.agents.tracked.items() if agent_id == reviewer]
    return verdict(fired or any(role_spawn_phase(role) in evidence.phase_times for role in roles))


def agents_exited_cleanly(evidence: RunEvidence):
    roles = list(evidence.scenario.agents.tracked)
    if not roles:
        return verdict(evidence.final_status == "completed", f"final status: {evidence.final_status}")
    statuses = {role: evidence.agent_status(role) for role in roles}
    detail = ", ".join(f"{role}: {status}" for role, status in statuses.items())
    return verdict(all(status == "completed" for status in statuses.values()), detail)


# Protocol Compliance


def status_transitions(evidence: RunEvidence):
    moved = evidence.root_closed or mentions(evidence.channel_text, r"in.progress", r"claim", r"started.*work")
    return verdict(moved, f"status={evidence.root_status}")


def progress_comments(evidence: RunEvidence):
    count = len(extract_list(evidence.root_record, "comments"))
    return verdict(count > 1, f"{count} comments")


def workspace_created(evidence: RunEvidence):
    created = bool(evidence.non_default_workspaces) or mentions(evidence.channel_text, r"workspace")
    return verdict(created or mentions(evidence.lead_log, r"maw ws create"))


def claims_staked(evidence: RunEvidence):
    patterns = (r"claim.*stake", r"claimed.*bead", r"claimed.*workspace")
    staked = mentions(evidence.channel_text, *patterns) or mentions(evidence.lead_log, r"bus claims stake")
    return verdict(staked)


def claims_released(evidence: RunEvidence):
    held = work_claims(evidence)
    return verdict(not held, f"{len(held)} task/workspace claims held")


def tracker_synced(evidence: RunEvidence):
    return verdict(mentions(evidence.lead_log, r"br sync", r"bn sync"))


def cycle_labels(evidence: RunEvidence):
    history = evidence.channel_text
    labels = set(evidence.channel_labels)
    missing = [label for label in CYCLE_LABELS if label not in labels and not mentions(history, label)]
    warnings = [f"No {label} label found" for label in missing]
    return verdict(not missing, f"{len(CYCLE_LABELS) - len(missing)}/{len(CYCLE_LABELS)} labels", *warnings)


def announcements(evidence: RunEvidence):
    return verdict(mentions(evidence.channel_text, r"start", r"progress", r"review.*request", r"complet"))


# Review Cycle


def review_created(evidence: RunEvidence):
    created = mentions(evidence.lead_log, r"crit reviews create") or mentions(
        evidence.channel_text, r"review.*created", r"crit.*create"
    )
    return verdict(created or evidence.review_id is not None, f"review={evidence.review_id or 'none'}")


def review_requested(evidence: RunEvidence):
    requested = mentions(evidence.lead_log, r"crit reviews request")
    return verdict(requested or mentions(evidence.channel_text, r"review.*request.*@"))


def channel_mention(evidence: RunEvidence):
    return verdict("@" in evidence.channel_text)


def reviewer_pattern(*patterns: str):
    def test(evidence: RunEvidence):
        return verdict(mentions(_reviewer_log(evidence), *patterns))

    return test


def dev_pattern(*patterns: str):
    def test(evidence: RunEvidence):
        return verdict(mentions(evidence.lead_log, *patterns))

    return test


def build(scenario: ScenarioDefinition) -> Rubric:
    spawn, protocol, cycle = "Spawn Chain", "Protocol Compliance", "Review Cycle"
    checks = [
        RubricCheck("Router hook fired", spawn, 4, router_fired),
        RubricCheck("Request triaged as work", spawn, 4, triaged_as_work),
        RubricCheck("Dev agent spawned", spawn, 4, dev_spawned),
        RubricCheck("Reviewer hook fired on @mention", spawn, 4, reviewer_fired),
        RubricCheck("Both agents exited cleanly", spawn, 4, agents_exited_cleanly),
        RubricCheck("Task status transitions (open, in_progress, closed)", protocol, 5, status_transitions),
        RubricCheck("Progress comments posted", protocol, 3, progress_comments),
        RubricCheck(
            "Workspace created", protocol, 3, workspace_created, fallbacks=(CLOSED_RECORD_IMPLIES_WORKSPACE,)
        ),
        RubricCheck("Claims staked", protocol, 4, claims_staked, fallbacks=(RECORD_REACHED_WORK,)),
        RubricCheck("Claims released after work", protocol, 5, claims_released),
        RubricCheck("Tracker sync called", protocol, 2, tracker_synced),
        RubricCheck("Bus labels correct (claim, review request, review done, task done)", protocol, 4, cycle_labels),
        RubricCheck("Channel announcements", protocol, 4, announcements),
        RubricCheck("Review created from the workspace", cycle, 3, review_created),
        RubricCheck("Review requested with @reviewer", cycle, 3, review_requested),
        RubricCheck("Channel message carries an @mention", cycle, 2, channel_mention),
        RubricCheck(
            "Reviewer read code from the workspace",
            cycle,
            3,
            reviewer_pattern(r"ws/.*src", r"workspace.*path", r"read.*ws/"),
        ),
        RubricCheck(
            "Reviewer identified the planted defect",
            cycle,
            5,
            reviewer_pattern(r"path.*travers", r"security", r"vulnerab", r"defect", r"bug"),
        ),
        RubricCheck("Reviewer blocked the review", cycle, 3, reviewer_pattern(r"crit block", r"block.*review")),
        RubricCheck(
            "Dev addressed feedback", cycle, 3, dev_pattern(r"fix", r"address.*feedback", r"reply.*thread")
        ),
        RubricCheck(
            "Dev re-requested review",
            cycle,
            2,
            dev_pattern(r"re-request", r"request.*again", r"crit reviews request"),
        ),
        RubricCheck("Reviewer re-reviewed", cycle, 3, reviewer_pattern(r"re-review", r"verified.*fix", r"read.*src")),
        RubricCheck("Reviewer approved", cycle, 2, reviewer_pattern(r"lgtm", r"approved")),
        RubricCheck("Review marked merged", cycle, 1, dev_pattern(r"mark-merged", r"crit reviews.*merg")),
        *build_checks_for(scenario.build_checks),
    ]
    return Rubric(
        name="review-cycle",
        description="A dev agent and a reviewer agent take one task through a blocked review, a fix and an approval",
        checks=tuple(checks),
    )
