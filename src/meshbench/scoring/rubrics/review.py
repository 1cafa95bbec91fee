"""Review rubric: a worker follows the protocol commands through a review gate."""

import re

from ...evidence.bundle import RunEvidence
from ...evidence.extract import extract_line_count, extract_list
from ...evidence.friction import count_help_lookups, max_repeated_command
from ...schemas.scenario import ScenarioDefinition
from ..checks import RubricCheck, verdict
from ..rubric import FrictionPenalty, PenaltyRule, Rubric
from .common import build_checks_for, comment_text, mentions

PROTOCOL_STEPS = ("resume", "start", "review", "finish", "cleanup")
PENALTY_MAX_POINTS = 30


def protocol_invoked(step: str):
    def test(evidence: RunEvidence):
        return verdict(mentions(evidence.lead_log, rf"botbox protocol {step}", rf"botbox.*protocol.*{step}"))

    return test


# Review Flow


def review_created(evidence: RunEvidence):
    created = mentions(evidence.lead_log, r"crit reviews create", r"review.*created", r"Created review")
    created = created or evidence.review_id is not None or bool(evidence.reviews)
    return verdict(created, f"review={evidence.review_id or 'none'}")


def review_requested(evidence: RunEvidence):
    reviewer = re.escape(evidence.scenario.review.reviewer)
    requested = mentions(evidence.channel_text, r"review.*request", rf"@{reviewer}") or mentions(
        evidence.lead_log,
        rf"bus send.*review.*@{reviewer}",
        rf"bus send.*@{reviewer}.*review",
        r"review-request",
    )
    return verdict(requested)


def review_approved(evidence: RunEvidence):
    return verdict(evidence.review_lgtm_done, f"REVIEW_LGTM_DONE={str(evidence.review_lgtm_done).lower()}")


def finish_gate_passed(evidence: RunEvidence):
    log = evidence.lead_log
    ready = mentions(log, r"protocol finish") and mentions(log, r"status.*Ready", r"finish.*Ready")
    return verdict(ready or (evidence.root_closed and evidence.review_lgtm_done))


def worker_paused(evidence: RunEvidence):
    paused = mentions(
        evidence.lead_log,
        r"stop.*wait",
        r"waiting.*review",
        r"review.*pending",
        r"NeedsReview",
        r"iteration.*2",
        r"resume.*in.progress",
        r"protocol resume.*Resumable",
        r"Resuming",
        r"Found in-progress",
    )
    return verdict(paused or (evidence.review_lgtm_done and evidence.root_closed))


def marked_merged(evidence: RunEvidence):
    return verdict(mentions(evidence.lead_log, r"crit reviews mark-merged", r"mark.merged", r"crit.*mark.*merged"))


# State Transitions


def moved_to_doing(evidence: RunEvidence):
    return verdict(
        mentions(evidence.lead_log, r"doing", r"state.*doing", r"bn do")
        or mentions(comment_text(evidence.root_record), r"doing", r"Starting", r"claimed")
    )


def task_closed(evidence: RunEvidence):
    return verdict(evidence.root_closed, f"status={evidence.root_status}")


def workspace_created(evidence: RunEvidence):
    return verdict(mentions(evidence.lead_log, r"maw ws create", r"workspace.*created", r"Workspace.*ready"))


# Work Quality


def tests_pass(evidence: RunEvidence):
    if evidence.build_results("test"):
        passed = evidence.build_passed("test")
    else:
        passed = "test result: ok" in evidence.combined_build_output
    return verdict(passed)


def progress_comment(evidence: RunEvidence):
    count = len(extract_list(evidence.root_record, "comments"))
    return verdict(count >= 1, f"{count} comments")


# Cleanup


def lead_claims_released(evidence: RunEvidence):
    lead = evidence.scenario.agents.lead
    held = [line for line in evidence.claims_text.splitlines() if lead.lower() in line.lower()]
    return verdict(not held, f"{len(held)} claims held by {lead}")


def announced(evidence: RunEvidence):
    return verdict(
        mentions(evidence.channel_text, r"idle", r"clean", r"sign.*off", r"done", r"complet", r"finish")
        or mentions(
            evidence.lead_log,
            r"bus send.*idle",
            r"bus send.*done",
            r"bus send.*Finish",
            r"bus statuses clear",
            r"Signing off",
        )
    )


def _edited_default_workspace(evidence: RunEvidence) -> bool:
    log = evidence.lead_log
    return mentions(log, r"Edit.*ws/default/src", r"Write.*ws/default/src") and mentions(log, r"maw ws create")


def review_penalty(scenario: ScenarioDefinition) -> FrictionPenalty:
    lead = re.escape(scenario.agents.lead)
    return FrictionPenalty(
        rules=(
            PenaltyRule(
                "protocol command errors requiring fallback",
                5,
                lambda evidence: extract_line_count(
                    evidence.lead_log, r"protocol.*exit|protocol.*error|protocol.*fail|fallback|fall back"
                )
                > 0,
            ),
            PenaltyRule(
                "created new records instead of using the pre-made one",
                5,
                lambda evidence: extract_line_count(evidence.lead_log, r"(bn|br) create.*--title") > 0,
            ),
            PenaltyRule("edited files in the default workspace", 5, _edited_default_workspace),
            PenaltyRule(
                "repeated the same command more than 5 times",
                5,
                lambda evidence: max_repeated_command(evidence.lead_log) > 5,
            ),
            PenaltyRule(
                "used --help more than 3 times",
                5,
                lambda evidence: count_help_lookups(evidence.lead_log) > 3,
            ),
            PenaltyRule(
                "attempted to self-review",
                10,
                lambda evidence: mentions(evidence.lead_log, rf"crit lgtm.*{lead}", r"self.*review", r"approve.*own"),
            ),
        ),
        max_points=PENALTY_MAX_POINTS,
    )


def build(scenario: ScenarioDefinition) -> Rubric:
    quality_checks = [check for check in scenario.build_checks if check.role != "test"]
    checks = [
        *(
            RubricCheck(f"Invoked 'protocol {step}'", "Protocol Commands", 10, protocol_invoked(step))
            for step in PROTOCOL_STEPS
        ),
        RubricCheck("Review created", "Review Flow", 10, review_created),
        RubricCheck("Review requested with @mention", "Review Flow", 10, review_requested),
        RubricCheck("Review approved", "Review Flow", 10, review_approved),
        RubricCheck("Finish passed the review gate", "Review Flow", 10, finish_gate_passed),
        RubricCheck("Worker paused for review approval", "Review Flow", 10, worker_paused),
        RubricCheck("Review marked merged", "Review Flow", 10, marked_merged),
        RubricCheck("Task moved to doing", "State Transitions", 10, moved_to_doing),
        RubricCheck("Task closed at end", "State Transitions", 10, task_closed),
        RubricCheck("Workspace created during work", "State Transitions", 10, workspace_created),
        RubricCheck("Tests pass", "Work Quality", 10, tests_pass),
        *build_checks_for(quality_checks, category="Work Quality", weight=10),
        RubricCheck("Progress comment posted", "Work Quality", 10, progress_comment),
        RubricCheck("No claims held by the worker", "Cleanup", 10, lead_claims_released),
        RubricCheck("Cleanup announcement sent", "Cleanup", 10, announced),
    ]
    return Rubric(
        name="review",
        description="A worker drives one task through the protocol commands and a review gate",
        checks=tuple(checks),
        penalty=review_penalty(scenario),
    )
