"""Tests for the registered rubrics against hand-written run directories."""

import pytest

from meshbench.errors import UnknownRubricError
from meshbench.report import EXIT_CRITICAL, EXIT_FAIL, EXIT_OK, exit_code
from meshbench.schemas.score import ResultLabel
from meshbench.scoring import get_rubric, registry


def outcome(result, name):
    return next(o for o in result.outcomes if o.name == name)


def mission_artifacts(workers: bool = True) -> dict[str, object]:
    """A mission run: three closed children, two workers, build passing."""
    lead_log = [
        "BOTBOX_MISSION=m-1 BOTBOX_SIBLINGS=c-1,c-2,c-3",
        "Level 4 mission m-1: decomposing into children",
        '> Bash {"command":"br dep add c-2 c-1"}',
        '> Bash {"command":"maw ws create w1"}',
        '> Bash {"command":"maw ws create w2"}',
        '> Bash {"command":"bus claims stake --agent taskr-dev bone://taskr/c-1"}',
        '> Bash {"command":"bus claims stake --agent taskr-dev bone://taskr/c-2"}',
        '> Bash {"command":"bus claims stake --agent taskr-dev bone://taskr/c-3"}',
    ]
    if workers:
        lead_log += [
            '> Bash {"command":"botty spawn taskr-dev/w1"}',
            '> Bash {"command":"botty spawn taskr-dev/w2"}',
        ]
    lead_log += [
        "checkpoint: 1/3 children closed",
        "worker taskr-dev/w1 finished c-1",
        "Mission m-1 complete, all children closed",
    ]
    worker_names = "taskr-dev/w1,taskr-dev/w2" if workers else ""
    artifacts = {
        "final-status.env": (
            f"STATUS=completed\nROOT_ID=m-1\nROOT_STATUS=closed\nCHILD_COUNT=3\nCHILDREN_CLOSED=3\n"
            f"WORKER_COUNT={2 if workers else 0}\nWORKER_NAMES={worker_names}\n"
        ),
        "agent-taskr-dev.log": "\n".join(lead_log),
        "channel-history.log": "\n".join(
            [
                "setup: Build taskr",
                "taskr-dev: mission m-1 created with 3 children",
                "taskr-dev: checkpoint 1/3 done",
                "taskr-dev: Mission m-1 complete [task-done]",
            ]
        ),
        "root-record.json": [
            {
                "id": "m-1",
                "title": "Build taskr",
                "labels": ["mission"],
                "status": "closed",
                "description": "Outcome: a working taskr CLI.\nSuccess metrics: cargo build passes.\nConstraints: no new deps.",
                "comments": [{"body": "Mission complete. Key decisions: one shared store module."}],
            }
        ],
        "children.json": [
            {"id": "c-1", "title": "Add list subcommand", "labels": ["mission:m-1"], "status": "closed"},
            {
                "id": "c-2",
                "title": "Add done subcommand",
                "labels": ["mission:m-1"],
                "status": "closed",
                "dependencies": ["c-1"],
            },
            {"id": "c-3", "title": "Add JSON storage", "labels": ["mission:m-1"], "status": "closed"},
        ],
        "workspaces.json": {"workspaces": [{"name": "default", "is_default": True}]},
        "claims.txt": "(no claims)\n",
        "build-checks.json": [
            {"name": "cargo build", "role": "build", "command": "cargo build", "returncode": 0, "passed": True},
            {"name": "smoke run", "role": "bonus", "command": "./target/debug/taskr", "returncode": 0, "passed": True},
        ],
    }
    if workers:
        for worker, child in (("w1", "c-1"), ("w2", "c-2")):
            artifacts[f"agent-taskr-dev_{worker}.log"] = "\n".join(
                [
                    f"Working on {child}",
                    '> Bash {"command":"bus history taskr -n 20"}',
                    f"Closed {child}",
                ]
            )
    return artifacts


def review_artifacts() -> dict[str, object]:
    """A review run that walks every protocol step and gets approved."""
    return {
        "final-status.env": "STATUS=completed\nROOT_ID=bn-7\nROOT_STATUS=done\nREVIEW_ID=cr-1\nREVIEW_LGTM_DONE=true\n",
        "agent-eval-worker.log": "\n".join(
            [
                '> Bash {"command":"botbox protocol resume --agent eval-worker"}',
                "Resuming: Found in-progress bone bn-7",
                '> Bash {"command":"botbox protocol start bn-7"}',
                '> Bash {"command":"bn do bn-7"}',
                '> Bash {"command":"maw ws create eval-ws"}',
                '> Bash {"command":"botbox protocol review bn-7"}',
                '> Bash {"command":"crit reviews create --title greeting"}',
                '> Bash {"command":"bus send greeter review-request @greeter-security cr-1"}',
                '> Bash {"command":"botbox protocol finish bn-7"}',
                "status: Ready",
                '> Bash {"command":"crit reviews mark-merged cr-1"}',
                '> Bash {"command":"botbox protocol cleanup"}',
            ]
        ),
        "channel-history.log": "\n".join(
            [
                "eval-worker: review-request @greeter-security cr-1",
                "greeter-security: LGTM cr-1",
                "eval-worker: bn-7 done, signing off",
            ]
        ),
        "root-record.json": [
            {"id": "bn-7", "title": "Add greeting", "state": "done", "comments": [{"body": "Starting work in eval-ws"}]}
        ],
        "claims.txt": "(no claims)\n",
        "build-checks.json": [
            {
                "name": "cargo test",
                "role": "test",
                "command": "cargo test",
                "returncode": 0,
                "passed": True,
                "output": "test result: ok. 3 passed",
            }
        ],
    }


def review_cycle_artifacts() -> dict[str, object]:
    """A dev and reviewer pair: blocked on a path traversal, fixed, approved and merged."""
    return {
        "final-status.env": (
            "STATUS=completed\nROOT_ID=bd-1\nROOT_STATUS=closed\nREVIEW_ID=cr-1\n"
            "DEV_STATUS=completed\nREVIEWER_STATUS=completed\n"
        ),
        "agent-echo-dev.log": "\n".join(
            [
                "Starting dev-loop iteration 1 for echo-dev",
                '> Bash {"command":"bus claims stake --agent echo-dev bead://echo/bd-1"}',
                '> Bash {"command":"maw ws create echo-dev-ws"}',
                '> Bash {"command":"crit reviews create --title files endpoint"}',
                '> Bash {"command":"crit reviews request cr-1 --reviewers echo-security"}',
                "Review blocked, fixing the path traversal with canonicalize",
                '> Bash {"command":"crit reply cr-1 --thread th-1 done"}',
                '> Bash {"command":"crit reviews request cr-1 --reviewers echo-security"}',
                '> Bash {"command":"maw ws merge echo-dev-ws --destroy"}',
                '> Bash {"command":"crit reviews mark-merged cr-1"}',
                '> Bash {"command":"br sync"}',
                '> Bash {"command":"br close bd-1"}',
            ]
        ),
        "agent-echo-security.log": "\n".join(
            [
                "Review requested by echo-dev for cr-1",
                "> Read ws/echo-dev-ws/src/main.rs",
                "Found a path traversal vulnerability in /files/:name",
                '> Bash {"command":"crit block cr-1 --reason traversal"}',
                "re-review: verified fix uses canonicalize and starts_with",
                '> Bash {"command":"crit lgtm cr-1"}',
            ]
        ),
        "channel-history.log": "\n".join(
            [
                "setup: New task bd-1 [task-request]",
                "echo-dev: spawn-ack, dev-loop starting",
                "echo-dev: claimed bead bd-1 [task-claim]",
                "echo-dev: workspace echo-dev-ws created",
                "echo-dev: review requested -security cr-1 [review-request]",
                "echo-security: BLOCK cr-1, path traversal [review-done]",
                "echo-security: LGTM cr-1 [review-done]",
                "echo-dev: bd-1 complete [task-done]",
            ]
        ),
        "root-record.json": [
            {
                "id": "bd-1",
                "status": "closed",
                "comments": [{"body": "Starting work in echo-dev-ws"}, {"body": "Addressed review feedback"}],
            }
        ],
        "workspaces.json": {"workspaces": [{"name": "default", "is_default": True}]},
        "claims.txt": "(no claims)\n",
        "build-checks.json": [
            {"name": "cargo check", "role": "build", "command": "cargo check", "returncode": 0, "passed": True},
            {
                "name": "path traversal fixed",
                "role": "smoke",
                "command": "grep -qiE canonical main.rs",
                "returncode": 0,
                "passed": True,
            },
        ],
    }


class TestRegistry:
    def test_known_names(self):
        assert registry.names() == ["coordination-mission", "mission", "review", "review-cycle", "single-task"]

    def test_unknown_rubric(self, single_task_scenario):
        with pytest.raises(UnknownRubricError, match="No rubric registered as 'nope'"):
            get_rubric(single_task_scenario, "nope")

    def test_scenario_rubric_is_default(self, mission_scenario):
        assert get_rubric(mission_scenario).name == "mission"
        assert get_rubric(mission_scenario, "coordination-mission").name == "coordination-mission"


class TestSingleTaskRubric:
    """Score a clean single-task run."""

    def test_clean_run_passes_everything(self, tmp_path, write_artifacts, single_task_scenario, single_task_artifacts):
        evidence = write_artifacts(tmp_path / "run", single_task_scenario, single_task_artifacts)

        result = get_rubric(single_task_scenario).score(evidence)

        assert result.headline == "ALL CHECKS PASSED (55/55)"
        assert result.failed == 0
        assert exit_code(result) == EXIT_OK

    def test_workspace_fallback_is_named(self, tmp_path, write_artifacts, single_task_scenario, single_task_artifacts):
        single_task_artifacts["agent-echo-dev.log"] = "\n".join(
            ["Starting dev-loop iteration 1 for echo-dev", '> Bash {"command":"cargo check"}'] * 3
        )
        evidence = write_artifacts(tmp_path / "run", single_task_scenario, single_task_artifacts)

        result = get_rubric(single_task_scenario).score(evidence)

        workspace = outcome(result, "Workspace created")
        assert workspace.status == "pass"
        assert workspace.fallback == "closed-record-implies-workspace"

    def test_leftover_workspace_and_claims(self, tmp_path, write_artifacts, single_task_scenario, single_task_artifacts):
        single_task_artifacts["workspaces.json"] = {
            "workspaces": [{"name": "default", "is_default": True}, {"name": "echo-dev-ws", "is_default": False}]
        }
        single_task_artifacts["claims.txt"] = "echo-dev  bead://echo/bd-1\necho-dev  agent://echo-dev\n"
        evidence = write_artifacts(tmp_path / "run", single_task_scenario, single_task_artifacts)

        result = get_rubric(single_task_scenario).score(evidence)

        assert outcome(result, "Workspace merged (no non-default workspaces remain)").status == "fail"
        claims = outcome(result, "Claims released (no task or workspace claims)")
        assert claims.status == "fail"
        assert claims.detail == "1 task/workspace claims held"
        assert (result.score, result.total) == (45, 55)
        assert result.label == ResultLabel.PASS
        assert exit_code(result) == EXIT_OK
        assert exit_code(result, strict=True) == EXIT_FAIL

    def test_failed_build_warns(self, tmp_path, write_artifacts, single_task_scenario, single_task_artifacts):
        single_task_artifacts["build-checks.json"] = [
            {"name": "cargo check", "role": "build", "command": "cargo check", "returncode": 101, "passed": False}
        ]
        evidence = write_artifacts(tmp_path / "run", single_task_scenario, single_task_artifacts)

        result = get_rubric(single_task_scenario).score(evidence)

        assert outcome(result, "Code implemented and compiles").status == "fail"
        assert "build check cargo check failed" in result.warnings

    def test_scoring_twice_is_identical(self, tmp_path, write_artifacts, single_task_scenario, single_task_artifacts):
        evidence = write_artifacts(tmp_path / "run", single_task_scenario, single_task_artifacts)
        rubric = get_rubric(single_task_scenario)
        assert rubric.score(evidence) == rubric.score(evidence)


class TestMissionRubric:
    def test_complete_mission(self, tmp_path, write_artifacts, mission_scenario):
        evidence = write_artifacts(tmp_path / "run", mission_scenario, mission_artifacts())

        result = get_rubric(mission_scenario).score(evidence)

        assert result.headline == "ALL CHECKS PASSED (115/115)"
        assert result.categories()[:5] == [
            "Mission Recognition",
            "Decomposition",
            "Worker Dispatch",
            "Monitoring",
            "Synthesis",
        ]

    def test_mission_never_created(self, tmp_path, write_artifacts, mission_scenario):
        evidence = write_artifacts(
            tmp_path / "run",
            mission_scenario,
            {"final-status.env": "STATUS=timeout\nROOT_ID=none\n", "agent-taskr-dev.log": "thinking\n"},
        )

        result = get_rubric(mission_scenario).score(evidence)

        assert result.label == ResultLabel.CRITICAL_FAIL
        assert result.headline == "CRITICAL FAIL — mission never created"
        assert (result.score, result.total) == (0, 0)
        assert result.outcomes == ()
        assert exit_code(result) == EXIT_CRITICAL

    def test_no_workers_caps_score(self, tmp_path, write_artifacts, mission_scenario):
        evidence = write_artifacts(tmp_path / "run", mission_scenario, mission_artifacts(workers=False))

        result = get_rubric(mission_scenario).score(evidence)

        assert outcome(result, "Workers spawned").status == "fail"
        assert outcome(result, "2+ workers").status == "fail"
        assert result.total == 115
        assert result.score == 115 * 30 // 100
        cap = result.overrides[0]
        assert cap.kind == "category-cap"
        assert (cap.score_before, cap.score_after) == (105, 34)
        assert result.label == ResultLabel.FAIL
        assert exit_code(result) == EXIT_FAIL

    def test_bonus_skipped_when_build_fails(self, tmp_path, write_artifacts, mission_scenario):
        artifacts = mission_artifacts()
        artifacts["build-checks.json"] = [
            {"name": "cargo build", "role": "build", "command": "cargo build", "returncode": 101, "passed": False},
            {"name": "smoke run", "role": "bonus", "command": "./target/debug/taskr", "returncode": 0, "passed": True},
        ]
        evidence = write_artifacts(tmp_path / "run", mission_scenario, artifacts)

        result = get_rubric(mission_scenario).score(evidence)

        bonus = outcome(result, "smoke run passes")
        assert bonus.status == "skip"
        assert bonus.detail == "build did not pass"
        assert result.total == 110
        assert result.total == sum(o.weight for o in result.outcomes)

    def test_children_labels_from_child_records(self, tmp_path, write_artifacts, mission_scenario):
        artifacts = mission_artifacts()
        artifacts["children.json"] = [
            {"id": child_id, "title": f"Child {child_id} work", "status": "closed"} for child_id in ("c-1", "c-2", "c-3")
        ]
        for child_id in ("c-1", "c-2", "c-3"):
            artifacts[f"child-{child_id}.json"] = [
                {"id": child_id, "title": f"Child {child_id} work", "labels": ["mission:m-1"], "status": "closed"}
            ]
        evidence = write_artifacts(tmp_path / "run", mission_scenario, artifacts)

        result = get_rubric(mission_scenario).score(evidence)

        assert outcome(result, "Children labeled mission:<id>").status == "pass"


class TestCoordinationRubric:
    def test_fallbacks_reported(self, tmp_path, write_artifacts, mission_scenario):
        evidence = write_artifacts(tmp_path / "run", mission_scenario, mission_artifacts())

        result = get_rubric(mission_scenario, "coordination-mission").score(evidence)

        assert outcome(result, "Coordination messages posted").status == "fail"
        posters = outcome(result, "2+ agents posted coordination messages")
        assert posters.fallback == "implicit-coordination-via-build"
        readers = outcome(result, "Workers read coordination messages")
        assert readers.fallback == "any-history-reads"
        assert result.headline == "EXCELLENT (125/130) — 1 checks failed"

    def test_labeled_coordination(self, tmp_path, write_artifacts, mission_scenario):
        artifacts = mission_artifacts()
        artifacts["channel-history.json"] = {
            "messages": [
                {"agent": "taskr-dev/w1", "body": "Store API: load()/save()", "labels": ["coord:interface"]},
                {"agent": "taskr-dev/w2", "body": "Using load()", "labels": ["coord:interface"]},
            ]
        }
        artifacts["agent-taskr-dev_w2.log"] = '> Bash {"command":"bus history taskr -L coord:interface"}\n'
        evidence = write_artifacts(tmp_path / "run", mission_scenario, artifacts)

        result = get_rubric(mission_scenario, "coordination-mission").score(evidence)

        for name in (
            "Coordination messages posted",
            "2+ agents posted coordination messages",
            "Workers read coordination messages",
        ):
            assert outcome(result, name).status == "pass"
            assert outcome(result, name).fallback is None

    def test_one_worker_in_log_and_channel_is_one_poster(self, tmp_path, write_artifacts, mission_scenario):
        artifacts = mission_artifacts()
        artifacts["agent-taskr-dev_w1.log"] = (
            '> Bash {"command":"bus send --agent taskr-dev/w1 taskr \\"Store API\\" -L coord:interface"}\n'
        )
        artifacts["channel-history.json"] = {
            "messages": [{"agent": "taskr-dev/w1", "body": "Store API", "labels": ["coord:interface"]}]
        }
        evidence = write_artifacts(tmp_path / "run", mission_scenario, artifacts)

        result = get_rubric(mission_scenario, "coordination-mission").score(evidence)

        posters = outcome(result, "2+ agents posted coordination messages")
        assert posters.fallback == "implicit-coordination-via-build"


class TestReviewRubric:
    def test_full_protocol(self, tmp_path, write_artifacts, review_scenario):
        evidence = write_artifacts(tmp_path / "run", review_scenario, review_artifacts())

        result = get_rubric(review_scenario).score(evidence)

        assert result.headline == "ALL CHECKS PASSED (180/180)"
        assert result.overrides == ()

    def test_friction_penalty(self, tmp_path, write_artifacts, review_scenario):
        artifacts = review_artifacts()
        artifacts["agent-eval-worker.log"] += "\n" + "\n".join(
            ['> Bash {"command":"crit --help"}'] * 4 + ["Cannot self review, waiting for greeter-security"]
        )
        evidence = write_artifacts(tmp_path / "run", review_scenario, artifacts)

        result = get_rubric(review_scenario).score(evidence)

        assert result.headline == "ALL CHECKS PASSED (165/180, -15 friction)"
        penalty = result.overrides[0]
        assert penalty.kind == "friction-penalty"
        assert "-5 used --help more than 3 times" in penalty.detail
        assert "-10 attempted to self-review" in penalty.detail

    def test_missing_approval(self, tmp_path, write_artifacts, review_scenario):
        artifacts = review_artifacts()
        artifacts["final-status.env"] = "STATUS=timeout\nROOT_ID=bn-7\nROOT_STATUS=doing\nREVIEW_LGTM_DONE=false\n"
        artifacts["root-record.json"] = [{"id": "bn-7", "state": "doing", "comments": []}]
        evidence = write_artifacts(tmp_path / "run", review_scenario, artifacts)

        result = get_rubric(review_scenario).score(evidence)

        assert outcome(result, "Review approved").status == "fail"
        assert outcome(result, "Task closed at end").status == "fail"
        assert outcome(result, "Progress comment posted").status == "fail"
        assert (result.score, result.total) == (150, 180)
        assert result.label == ResultLabel.PASS


class TestReviewCycleRubric:
    def test_full_cycle(self, tmp_path, write_artifacts, review_cycle_scenario):
        evidence = write_artifacts(tmp_path / "run", review_cycle_scenario, review_cycle_artifacts())

        result = get_rubric(review_cycle_scenario).score(evidence)

        assert result.headline == "ALL CHECKS PASSED (88/88)"
        assert result.warnings == ()
        assert outcome(result, "Both agents exited cleanly").detail == "dev: completed, reviewer: completed"

    def test_reviewer_never_exited(self, tmp_path, write_artifacts, review_cycle_scenario):
        artifacts = review_cycle_artifacts()
        artifacts["final-status.env"] = artifacts["final-status.env"].replace(
            "REVIEWER_STATUS=completed", "REVIEWER_STATUS=completed-still-running"
        )
        evidence = write_artifacts(tmp_path / "run", review_cycle_scenario, artifacts)

        result = get_rubric(review_cycle_scenario).score(evidence)

        assert outcome(result, "Both agents exited cleanly").status == "fail"
        assert result.headline == "EXCELLENT (84/88) — 1 checks failed"

    def test_reviewer_evidence_comes_from_the_reviewer_log(self, tmp_path, write_artifacts, review_cycle_scenario):
        artifacts = review_cycle_artifacts()
        del artifacts["agent-echo-security.log"]
        evidence = write_artifacts(tmp_path / "run", review_cycle_scenario, artifacts)

        result = get_rubric(review_cycle_scenario).score(evidence)

        assert outcome(result, "Reviewer blocked the review").status == "fail"
        assert outcome(result, "Reviewer approved").status == "fail"
        # The @mention in the channel still shows the reviewer was woken.
        assert outcome(result, "Reviewer hook fired on @mention").status == "pass"

    def test_build_check_weights(self, tmp_path, write_artifacts, review_cycle_scenario):
        evidence = write_artifacts(tmp_path / "run", review_cycle_scenario, review_cycle_artifacts())

        result = get_rubric(review_cycle_scenario).score(evidence)

        assert outcome(result, "cargo check passes").weight == 5
        assert outcome(result, "path traversal fixed passes").weight == 3

    def test_unclaimed_but_started_record_uses_fallback(self, tmp_path, write_artifacts, review_cycle_scenario):
        artifacts = review_cycle_artifacts()
        artifacts["channel-history.log"] = artifacts["channel-history.log"].replace("claimed bead", "took")
        artifacts["agent-echo-dev.log"] = artifacts["agent-echo-dev.log"].replace("bus claims stake", "bus claims list")
        evidence = write_artifacts(tmp_path / "run", review_cycle_scenario, artifacts)

        result = get_rubric(review_cycle_scenario).score(evidence)

        assert outcome(result, "Claims staked").fallback == "record-reached-work"
