"""CLI entrypoint for the meshbench harness."""

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from . import __version__
from .errors import MeshbenchError
from .evidence.bundle import RunEvidence
from .report import exit_code, render_json, render_report
from .runner import friction as analyze_friction
from .runner import run_scenario, setup_run, verify as score_run
from .scoring import get_rubric, registry

RUN_DIR = click.Path(exists=True, file_okay=False, path_type=Path)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log poll progress and absorbed probe failures.")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(".env"),
    show_default=True,
    help="Dotenv file with MESHBENCH_* overrides.",
)
def main(verbose: bool, env_file: Path) -> None:
    """Evaluation harness for multi-agent development scenarios."""
    if env_file.exists():
        load_dotenv(env_file, override=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _score_and_exit(run_dir: Path, rubric: str | None, as_json: bool, strict: bool) -> None:
    try:
        result = score_run(run_dir, rubric)
    except MeshbenchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(render_json(result) if as_json else render_report(result, run_dir))
    raise SystemExit(exit_code(result, strict))


@main.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--run-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Run directory to create. Defaults to a fresh temporary directory.",
)
def setup(scenario: Path, run_dir: Path | None) -> None:
    """Create a run directory for a scenario, running its setup step."""
    try:
        run = setup_run(scenario, run_dir)
    except MeshbenchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Run ID: {run.id}")
    click.echo(f"Run dir: {run.run_dir}")
    for key, value in sorted(run.setup_env.items()):
        click.echo(f"  {key}={value}")


@main.command()
@click.argument("run_dir", type=RUN_DIR)
@click.option("--verify", "then_verify", is_flag=True, help="Score the run once it finishes.")
@click.option("--rubric", type=str, help="Rubric to score with (defaults to the scenario's).")
@click.option("--strict", is_flag=True, help="Exit non-zero when any check failed.")
def run(run_dir: Path, then_verify: bool, rubric: str | None, strict: bool) -> None:
    """Trigger the scenario, poll until it ends and capture artifacts."""
    try:
        status = run_scenario(run_dir)
    except MeshbenchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Final status: {status.value}")
    click.echo(f"Artifacts: {run_dir / 'artifacts'}")
    if then_verify:
        click.echo("")
        _score_and_exit(run_dir, rubric, False, strict)


@main.command("verify")
@click.argument("run_dir", type=RUN_DIR)
@click.option("--rubric", type=str, help="Rubric to score with (defaults to the scenario's).")
@click.option("--json", "as_json", is_flag=True, help="Emit the score result as JSON.")
@click.option("--strict", is_flag=True, help="Exit non-zero when any check failed.")
def verify_command(run_dir: Path, rubric: str | None, as_json: bool, strict: bool) -> None:
    """Score a captured run offline."""
    _score_and_exit(run_dir, rubric, as_json, strict)


@main.command()
@click.argument("run_dir", type=RUN_DIR)
def friction(run_dir: Path) -> None:
    """Tabulate friction signals in every captured agent log."""
    report = analyze_friction(run_dir)
    if not report.per_log:
        click.echo("No agent logs found.")
        return

    header = f"{'log':40} {'exit':>5} {'sibl':>5} {'help':>5} {'fallbk':>6} {'retry':>5} {'repeat':>6} {'wasted':>6}"
    click.echo(header)
    click.echo("-" * len(header))
    for name, counts in sorted(report.per_log.items()):
        click.echo(
            f"{name:40} {counts.exit_failures:>5} {counts.sibling_cancellations:>5} {counts.help_lookups:>5} "
            f"{counts.fallbacks:>6} {counts.retries:>5} {counts.repeated_commands:>6} {counts.wasted:>6}"
        )
    totals = report.totals
    click.echo("-" * len(header))
    click.echo(f"Total wasted calls: {totals.wasted}")
    click.echo(f"Clean logs: {report.clean_logs}/{len(report.per_log)}")
    click.echo(f"Friction score: {report.score}/40 ({report.tier})")


@main.command()
@click.argument("run_dir", type=RUN_DIR, required=False)
def rubrics(run_dir: Path | None) -> None:
    """List registered rubrics, or the checks of a run's rubric."""
    if run_dir is None:
        for name in registry.names():
            click.echo(name)
        return
    try:
        evidence = RunEvidence.load(run_dir)
        rubric = get_rubric(evidence.scenario)
    except MeshbenchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{rubric.name}: {rubric.description}")
    for check in rubric.checks:
        click.echo(f"  [{check.category}] {check.name} ({check.weight} pts)")


if __name__ == "__main__":
    main()
