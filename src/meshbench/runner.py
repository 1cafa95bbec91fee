"""Scenario orchestration: set up a run directory, drive it, score it."""

import logging
import os
import subprocess
import tempfile
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .artifacts import ArtifactStore
from .config import ScoringSettings, settings
from .errors import SetupError
from .evidence.bundle import SCENARIO_FILE, RunEvidence
from .evidence.extract import parse_key_values
from .evidence.friction import FrictionReport, analyze_logs
from .poller import LifecyclePoller, effective_poll_settings
from .schemas.run import PollerState, RunStatus, ScenarioRun
from .schemas.scenario import ScenarioDefinition
from .schemas.score import ScoreResult
from .scoring import get_rubric
from .tools import Toolbox

logger = logging.getLogger(__name__)

RUN_DIR_ENV = "MESHBENCH_RUN_DIR"
PROJECT_DIR_KEY = "PROJECT_DIR"


def load_scenario(scenario_path: Path) -> ScenarioDefinition:
    """Load scenario definition from YAML file."""
    return ScenarioDefinition.from_yaml(scenario_path)


def _run_id(scenario_name: str, created_at: datetime) -> str:
    return f"{scenario_name}-{created_at.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


def run_setup_command(scenario: ScenarioDefinition, run_dir: Path, cwd: Path | None = None) -> dict[str, str]:
    """Run the scenario's setup command; its ``KEY=VALUE`` stdout becomes the setup env.

    The command runs from ``cwd`` (the scenario file's directory) and finds the
    run directory in ``MESHBENCH_RUN_DIR``.
    """
    if not scenario.setup.command:
        return {}
    env = {**os.environ, **scenario.env, RUN_DIR_ENV: str(run_dir)}
    logger.info("running setup: %s", " ".join(scenario.setup.command))
    try:
        result = subprocess.run(
            scenario.setup.command,
            cwd=cwd or run_dir,
            env=env,
            capture_output=True,
            text=True,
            timeout=scenario.setup.timeout_sec,
        )
    except subprocess.TimeoutExpired as exc:
        raise SetupError(f"Setup timed out after {scenario.setup.timeout_sec}s") from exc
    except FileNotFoundError as exc:
        raise SetupError(f"Setup command not found: {scenario.setup.command[0]}") from exc
    except OSError as exc:
        raise SetupError(f"Setup command could not start: {exc}") from exc
    if result.returncode != 0:
        raise SetupError(f"Setup exited with code {result.returncode}: {result.stderr.strip()}")
    return parse_key_values(result.stdout)


def setup_run(scenario_path: Path, run_dir: Path | None = None) -> ScenarioRun:
    """Create a run directory holding the resolved scenario and a ``created`` run record."""
    scenario = load_scenario(scenario_path)
    created_at = datetime.now(UTC)
    if run_dir is None:
        run_dir = Path(tempfile.mkdtemp(prefix=f"meshbench-{scenario.name}-"))
    run_dir = run_dir.resolve()
    run_dir.mkdir(parents=True, exist_ok=True)
    if (run_dir / "run.json").exists():
        raise SetupError(f"Run directory {run_dir} already holds a run")

    setup_env = run_setup_command(scenario, run_dir, cwd=scenario_path.resolve().parent)
    resolved = scenario.resolved({RUN_DIR_ENV: str(run_dir), **setup_env})
    resolved.to_yaml(run_dir / SCENARIO_FILE)

    poll = effective_poll_settings(resolved)
    run = ScenarioRun(
        id=_run_id(scenario.name, created_at),
        run_dir=run_dir,
        scenario_name=scenario.name,
        scenario_path=run_dir / SCENARIO_FILE,
        timeout_sec=poll.timeout_sec,
        poll_interval_sec=poll.interval_sec,
        stuck_threshold_sec=poll.stuck_threshold_sec,
        setup_env=setup_env,
        created_at=created_at,
    )
    run.save()
    logger.info("run %s created in %s", run.id, run_dir)
    return run


@dataclass(frozen=True, slots=True)
class RunContext:
    """Everything needed to drive one run."""

    run: ScenarioRun
    scenario: ScenarioDefinition
    store: ArtifactStore
    tools: Toolbox


def load_run_context(run_dir: Path) -> RunContext:
    run = ScenarioRun.load(run_dir)
    scenario = load_scenario(run_dir / SCENARIO_FILE)
    env = {**scenario.env, **run.setup_env}
    project_dir = run.setup_env.get(PROJECT_DIR_KEY)
    tools = Toolbox.create(cwd=Path(project_dir) if project_dir else run_dir, env=env)
    return RunContext(run=run, scenario=scenario, store=ArtifactStore.for_run(run_dir), tools=tools)


def run_scenario(run_dir: Path, context: RunContext | None = None) -> RunStatus:
    """Drive a created run to completion and seal its artifact store."""
    context = context or load_run_context(run_dir)
    if context.run.status != RunStatus.CREATED:
        raise SetupError(f"Run {context.run.id} is already {context.run.status.value}")
    poller = LifecyclePoller(context.scenario, context.run, context.tools, context.store)
    try:
        return poller.execute()
    finally:
        if poller.state is not PollerState.IDLE:
            context.store.seal()


def verify(run_dir: Path, rubric: str | None = None, scoring: ScoringSettings | None = None) -> ScoreResult:
    """Score a run directory offline."""
    evidence = RunEvidence.load(run_dir)
    return get_rubric(evidence.scenario, rubric).score(evidence, scoring or settings.scoring)


def friction(run_dir: Path) -> FrictionReport:
    """Friction over every captured agent log. Reads only."""
    store = ArtifactStore.for_run(run_dir)
    logs = {name: store.read_text(name) for name in store.glob("agent-*.log")}
    return analyze_logs(logs)
