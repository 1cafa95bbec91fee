"""Evidence predicates shared by several rubrics."""

import re

from ...evidence.bundle import RunEvidence
from ...evidence.extract import extract_boolean, extract_line_count, extract_list
from ...evidence.friction import count_help_lookups, count_retry_mentions, count_tool_errors
from ...schemas.scenario import BuildCheck
from ..checks import HELP_RETRY_TIERS, TOOL_ERROR_TIERS, GraduatedCheck, RubricCheck, verdict

WORK_CLAIM_PATTERN = r"(bead|bone|workspace)://"
MISSION_ENV_PATTERN = r"BOTBOX_MISSION|BOTBOX_SIBLINGS|BOTBOX_MISSION_OUTCOME"


def comment_text(record: dict) -> str:
    """All comment bodies of a tracker record, one per line."""
    bodies = []
    for comment in extract_list(record, "comments"):
        if isinstance(comment, dict):
            bodies.append(str(comment.get("body") or comment.get("content") or comment.get("text") or ""))
        else:
            bodies.append(str(comment))
    return "\n".join(bodies)


def record_labels(record: dict) -> list[str]:
    return [str(label) for label in extract_list(record, "labels")]


def tool_error_total(evidence: RunEvidence) -> int:
    return sum(count_tool_errors(log) for log in evidence.lead_and_worker_logs.values())


def help_retry_total(evidence: RunEvidence) -> int:
    return sum(count_help_lookups(log) + count_retry_mentions(log) for log in evidence.lead_and_worker_logs.values())


def lead_log_count(evidence: RunEvidence, pattern: str) -> int:
    return extract_line_count(evidence.lead_log, pattern, ignore_case=True)


def work_claims(evidence: RunEvidence) -> list[str]:
    """Task and workspace claims still held at the end of the run."""
    return [line for line in evidence.claims_text.splitlines() if re.search(WORK_CLAIM_PATTERN, line)]


def friction_checks(category: str = "Friction Efficiency") -> tuple[GraduatedCheck, ...]:
    """The standard two graduated friction checks over lead and worker logs."""
    return (
        GraduatedCheck(
            name="Tool errors",
            category=category,
            weight=5,
            count=tool_error_total,
            tiers=TOOL_ERROR_TIERS,
            unit="tool errors",
        ),
        GraduatedCheck(
            name="--help lookups and retries",
            category=category,
            weight=5,
            count=help_retry_total,
            tiers=HELP_RETRY_TIERS,
            unit="--help/retries",
        ),
    )


def _build_check_result(evidence: RunEvidence, name: str) -> dict:
    return next((check for check in evidence.build_checks if check.get("name") == name), {})


def build_checks_for(
    build_checks: list[BuildCheck], category: str = "Code Correctness", weight: int = 5
) -> tuple[RubricCheck, ...]:
    """One check per configured build check.

    A check's own ``weight`` overrides the default. Bonus checks only
    count when every ``build`` check passed.
    """
    checks = []
    for build_check in build_checks:

        def test(evidence: RunEvidence, name: str = build_check.name):
            result = _build_check_result(evidence, name)
            if not result:
                return verdict(False, "not run")
            return verdict(bool(result.get("passed")), f"exit {result.get('returncode')}")

        condition = None
        if build_check.role == "bonus":
            condition = lambda evidence: evidence.build_passed("build")

        checks.append(
            RubricCheck(
                name=f"{build_check.name} passes",
                category=category,
                weight=build_check.weight or weight,
                test=test,
                condition=condition,
                skip_reason="build did not pass",
            )
        )
    return tuple(checks)


def mentions(source: str, *patterns: str) -> bool:
    return extract_boolean(source, patterns)
