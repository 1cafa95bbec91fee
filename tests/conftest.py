"""Shared test fixtures for the meshbench harness."""

import json
from pathlib import Path

import pytest

from meshbench.artifacts import ArtifactStore
from meshbench.evidence.bundle import SCENARIO_FILE, RunEvidence
from meshbench.schemas.run import ScenarioRun
from meshbench.schemas.scenario import ScenarioDefinition
from meshbench.tools import (
    CommandResult,
    CommandRunner,
    MessageBus,
    ProcessSupervisor,
    ReviewTool,
    TaskTracker,
    Toolbox,
    WorkspaceManager,
)

TRACKER_PREFIX = ["maw", "exec", "default", "--", "br"]


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeMesh:
    """Scripted state of the external agent system.

    ``agent_script`` and ``root_script`` are consumed one entry per probe;
    the last entry repeats once the script runs out. Commands listed in
    ``failing`` (matched by argv prefix) exit non-zero.
    """

    def __init__(self):
        self.agent_script: list[list[str]] = [[]]
        self.root_script: list[dict] = []
        self.records: dict[str, dict] = {}
        self.labels: dict[str, list[dict]] = {}
        self.history_text = ""
        self.history_messages: list[dict] = []
        self.hooks_text = "hook echo-dev: on task-request spawn echo-dev\n"
        self.logs: dict[str, str] = {}
        self.claims_text = ""
        self.workspaces: list[dict] = [{"name": "default", "is_default": True}]
        self.reviews: list[dict] = []
        self.commands: dict[tuple[str, ...], tuple[int, str]] = {}
        self.failing: list[tuple[str, ...]] = []
        self.calls: list[list[str]] = []
        self.sent: list[list[str]] = []
        self.killed: list[str] = []
        self.lgtms: list[list[str]] = []

    def _next(self, script: list):
        if len(script) > 1:
            return script.pop(0)
        return script[0]

    def handle(self, args: list[str]) -> CommandResult:
        self.calls.append(list(args))
        for prefix in self.failing:
            if tuple(args[: len(prefix)]) == prefix:
                return CommandResult(args, 1, "", "scripted failure")

        if args[:1] == ["botty"]:
            return self._supervisor(args, args[1:])
        if args[:1] == ["bus"]:
            return self._bus(args, args[1:])
        if args[: len(TRACKER_PREFIX)] == TRACKER_PREFIX:
            return self._tracker(args, args[len(TRACKER_PREFIX) :])
        if args[:1] == ["crit"]:
            return self._review(args, args[1:])
        if args[:2] == ["maw", "ws"]:
            return _json_result(args, {"workspaces": self.workspaces})
        code, output = self.commands.get(tuple(args), (0, "ok\n"))
        return CommandResult(args, code, output, "")

    def _supervisor(self, args, rest):
        if rest[0] == "list":
            return _json_result(args, {"agents": [{"id": agent} for agent in self._next(self.agent_script)]})
        if rest[0] == "tail":
            if rest[1] not in self.logs:
                return CommandResult(args, 1, "", f"no such agent: {rest[1]}")
            return CommandResult(args, 0, self.logs[rest[1]], "")
        if rest[0] == "kill":
            self.killed.append(rest[1])
        return CommandResult(args, 0, "", "")

    def _bus(self, args, rest):
        if rest[0] == "send":
            self.sent.append(rest)
            return CommandResult(args, 0, "", "")
        if rest[0] == "history":
            if "--format" in rest:
                return _json_result(args, {"messages": self.history_messages})
            return CommandResult(args, 0, self.history_text, "")
        if rest[:2] == ["hooks", "list"]:
            return CommandResult(args, 0, self.hooks_text, "")
        if rest[:2] == ["claims", "list"]:
            return CommandResult(args, 0, self.claims_text, "")
        return CommandResult(args, 0, "", "")

    def _tracker(self, args, rest):
        if rest[0] == "show":
            record_id = rest[1]
            if self.root_script and record_id == self.root_script[0].get("id"):
                return _json_result(args, [self._next(self.root_script)])
            if record_id not in self.records:
                return CommandResult(args, 1, "", f"no record {record_id}")
            return _json_result(args, [self.records[record_id]])
        if rest[0] == "list":
            if "-l" in rest:
                return _json_result(args, self.labels.get(rest[rest.index("-l") + 1], []))
            return _json_result(args, list(self.records.values()))
        return CommandResult(args, 0, "", "")

    def _review(self, args, rest):
        if rest[:2] == ["reviews", "list"]:
            return _json_result(args, {"reviews": self.reviews})
        if rest[:2] == ["reviews", "show"]:
            return CommandResult(args, 0, f"review {rest[2]}\n", "")
        if rest[0] == "lgtm":
            self.lgtms.append(rest)
        return CommandResult(args, 0, "", "")


def _json_result(args: list[str], data) -> CommandResult:
    return CommandResult(args, 0, json.dumps(data), "")


class FakeRunner(CommandRunner):
    """CommandRunner that answers from a FakeMesh instead of spawning processes."""

    def __init__(self, mesh: FakeMesh):
        super().__init__()
        self.mesh = mesh

    def run(self, args, *, timeout_sec=None, cwd=None) -> CommandResult:
        return self.mesh.handle(list(args))


def fake_toolbox(mesh: FakeMesh) -> Toolbox:
    runner = FakeRunner(mesh)
    return Toolbox(
        runner=runner,
        supervisor=ProcessSupervisor(runner, ["botty"]),
        bus=MessageBus(runner, ["bus"]),
        tracker=TaskTracker(runner, TRACKER_PREFIX),
        review=ReviewTool(runner, ["crit"]),
        workspace=WorkspaceManager(runner, ["maw"]),
    )


@pytest.fixture
def mesh() -> FakeMesh:
    return FakeMesh()


@pytest.fixture
def tools(mesh: FakeMesh) -> Toolbox:
    return fake_toolbox(mesh)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def single_task_scenario() -> ScenarioDefinition:
    """A single-task scenario triggered by a task-request message."""
    return ScenarioDefinition.model_validate(
        {
            "name": "single-task",
            "channel": "echo",
            "trigger": {"kind": "message", "message": "New task bd-1", "labels": ["task-request"]},
            "agents": {"lead": "echo-dev"},
            "root": {"id": "bd-1", "track_children": False},
            "build_checks": [{"name": "cargo check", "role": "build", "command": ["cargo", "check"]}],
            "poll": {
                "interval_sec": 30,
                "stuck_threshold_sec": 300,
                "timeout_sec": 1800,
                "grace_interval_sec": 15,
                "grace_attempts": 4,
            },
            "rubric": "single-task",
        }
    )


@pytest.fixture
def mission_scenario() -> ScenarioDefinition:
    """A mission scenario whose root is discovered by label."""
    return ScenarioDefinition.model_validate(
        {
            "name": "mission",
            "channel": "taskr",
            "trigger": {"kind": "message", "message": "Build taskr"},
            "agents": {"lead": "taskr-dev", "worker_pattern": "^taskr-dev/"},
            "root": {"label": "mission"},
            "build_checks": [
                {"name": "cargo build", "role": "build", "command": ["cargo", "build"]},
                {"name": "smoke run", "role": "bonus", "command": ["./target/debug/taskr"]},
            ],
            "rubric": "mission",
        }
    )


@pytest.fixture
def review_scenario() -> ScenarioDefinition:
    return ScenarioDefinition.model_validate(
        {
            "name": "review",
            "channel": "greeter",
            "trigger": {"kind": "spawn", "name": "eval-worker", "command": ["botbox", "run", "worker-loop"]},
            "agents": {"lead": "eval-worker"},
            "root": {"id": "bn-7", "terminal_statuses": ["done"], "active_statuses": ["doing"], "track_children": False},
            "review": {"enabled": True, "auto_approve": True, "reviewer": "greeter-security"},
            "build_checks": [
                {"name": "cargo test", "role": "test", "command": ["cargo", "test"], "expect": "test result: ok"}
            ],
            "rubric": "review",
        }
    )


@pytest.fixture
def review_cycle_scenario() -> ScenarioDefinition:
    """A dev agent and a tracked reviewer taking one task through review."""
    return ScenarioDefinition.model_validate(
        {
            "name": "review-cycle",
            "channel": "echo",
            "trigger": {"kind": "message", "message": "New task bd-1", "labels": ["task-request"]},
            "agents": {"lead": "echo-dev", "tracked": {"dev": "echo-dev", "reviewer": "echo-security"}},
            "root": {"id": "bd-1", "track_children": False},
            "review": {"enabled": True, "auto_approve": False, "reviewer": "echo-security"},
            "build_checks": [
                {"name": "cargo check", "role": "build", "command": ["cargo", "check"], "weight": 5},
                {
                    "name": "path traversal fixed",
                    "role": "smoke",
                    "command": ["grep", "-qiE", "canonical", "main.rs"],
                    "weight": 3,
                },
            ],
            "rubric": "review-cycle",
        }
    )


@pytest.fixture
def make_run():
    """Factory for a ``created`` run record with its scenario file."""

    def build(run_dir: Path, scenario: ScenarioDefinition) -> ScenarioRun:
        run_dir.mkdir(parents=True, exist_ok=True)
        scenario.to_yaml(run_dir / SCENARIO_FILE)
        run = ScenarioRun(
            id=f"{scenario.name}-test",
            run_dir=run_dir,
            scenario_name=scenario.name,
            scenario_path=run_dir / SCENARIO_FILE,
            timeout_sec=1800,
            poll_interval_sec=30,
            stuck_threshold_sec=300,
        )
        run.save()
        return run

    return build


@pytest.fixture
def write_artifacts(make_run):
    """Factory writing a captured run directory by hand; dict/list values are stored as JSON."""

    def write(run_dir: Path, scenario: ScenarioDefinition, artifacts: dict[str, object]) -> RunEvidence:
        make_run(run_dir, scenario)
        store = ArtifactStore.for_run(run_dir)
        for name, content in artifacts.items():
            if isinstance(content, str):
                store.put(name, content)
            else:
                store.put_json(name, content)
        return RunEvidence.load(run_dir)

    return write


@pytest.fixture
def single_task_artifacts() -> dict[str, object]:
    """Artifacts of a clean single-task run: claimed once, done twice, record closed."""
    return {
        "final-status.env": "STATUS=completed\nROOT_ID=bd-1\nROOT_STATUS=closed\nWORKER_COUNT=0\nWORKER_NAMES=\n",
        "agent-echo-dev.log": "\n".join(
            [
                "Starting dev-loop iteration 1 for echo-dev",
                '> Bash {"command":"bus claims stake --agent echo-dev bead://echo/bd-1"}',
                '> Bash {"command":"maw ws create echo-dev-ws"}',
                '> Bash {"command":"cargo check"}',
                "Finished dev checking, exit 0",
                '> Bash {"command":"maw ws merge echo-dev-ws --destroy"}',
                '> Bash {"command":"br close bd-1"}',
            ]
        ),
        "channel-history.log": "\n".join(
            [
                "setup: New task bd-1 [task-request]",
                "echo-dev: Working on bd-1 [task-claim]",
                "echo-dev: Closed bd-1 [task-done]",
                "echo-dev: Released all claims, signing off [task-done]",
            ]
        ),
        "channel-history.json": {
            "messages": [
                {"agent": "setup", "body": "New task bd-1", "labels": ["task-request"]},
                {"agent": "echo-dev", "body": "Working on bd-1", "labels": ["task-claim"]},
                {"agent": "echo-dev", "body": "Closed bd-1", "labels": ["task-done"]},
                {"agent": "echo-dev", "body": "Released all claims", "labels": ["task-done"]},
            ]
        },
        "root-record.json": [{"id": "bd-1", "title": "Add GET /version", "status": "closed"}],
        "workspaces.json": {"workspaces": [{"name": "default", "is_default": True}]},
        "claims.txt": "(no claims)\n",
        "build-checks.json": [
            {"name": "cargo check", "role": "build", "command": "cargo check", "returncode": 0, "passed": True, "output": ""}
        ],
    }
