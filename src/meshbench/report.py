"""Render scoring results for humans and machines."""

from pathlib import Path

from .artifacts import CHANNEL_LOG, FINAL_STATUS, ArtifactStore
from .schemas.score import CheckOutcome, ResultLabel, ScoreResult

EXIT_OK = 0
EXIT_FAIL = 1
EXIT_CRITICAL = 2

_OVERRIDE_TITLES = {
    "critical-fail": "CRITICAL",
    "category-cap": "CAP",
    "friction-penalty": "FRICTION",
}


def outcome_line(outcome: CheckOutcome) -> str:
    if outcome.status == "skip":
        line = f"SKIP: {outcome.name}"
    elif outcome.status == "pass":
        line = f"PASS ({outcome.weight} pts): {outcome.name}"
    elif outcome.status == "partial":
        line = f"PARTIAL ({outcome.awarded}/{outcome.weight} pts): {outcome.name}"
    else:
        line = f"FAIL (0/{outcome.weight} pts): {outcome.name}"
    if outcome.detail:
        line += f" ({outcome.detail})"
    if outcome.fallback:
        line += f" [fallback: {outcome.fallback}]"
    return line


def result_line(result: ScoreResult) -> str:
    return f"RESULT: {result.headline}"


def render_report(result: ScoreResult, run_dir: Path | None = None) -> str:
    """Human-readable report, ending with the RESULT line and forensic pointers."""
    lines = [f"=== {result.rubric} ==="]

    for category in result.categories():
        awarded, possible = result.category_points(category)
        lines.append("")
        lines.append(f"--- {category} ({awarded}/{possible} pts) ---")
        lines.extend(outcome_line(o) for o in result.outcomes if o.category == category)

    if result.warnings:
        lines.append("")
        lines.extend(f"WARN: {warning}" for warning in result.warnings)

    if result.overrides:
        lines.append("")
        for override in result.overrides:
            title = _OVERRIDE_TITLES[override.kind]
            lines.append(f"{title}: {override.detail} ({override.score_before} -> {override.score_after})")

    lines.extend(
        [
            "",
            "=== Summary ===",
            f"PASS: {result.passed}",
            f"FAIL: {result.failed}",
            f"WARN: {result.warning_count}",
            f"SCORE: {result.score} / {result.total}",
            "",
            result_line(result),
        ]
    )

    if run_dir is not None:
        artifacts = ArtifactStore.for_run(run_dir).root
        lines.extend(
            [
                "",
                "Forensics:",
                f"  Run dir: {run_dir}",
                f"  Artifacts: {artifacts}",
                f"  Final status: {artifacts / FINAL_STATUS}",
                f"  Channel history: {artifacts / CHANNEL_LOG}",
            ]
        )
    return "\n".join(lines)


def render_json(result: ScoreResult) -> str:
    return result.model_dump_json(indent=2)


def exit_code(result: ScoreResult, strict: bool = False) -> int:
    """0 for acceptable results, 1 for FAIL, 2 for CRITICAL FAIL.

    With ``strict`` any failed check is a failure.
    """
    if result.label == ResultLabel.CRITICAL_FAIL:
        return EXIT_CRITICAL
    if strict and result.failed:
        return EXIT_FAIL
    return EXIT_OK if result.label.acceptable else EXIT_FAIL
