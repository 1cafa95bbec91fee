"""Lifecycle poller: trigger, poll, detect completion or abandonment, capture, clean up."""

import logging
import re
import time
from collections.abc import Callable

from ..artifacts import ArtifactStore
from ..config import CaptureSettings, PollSettings, settings
from ..errors import ProbeError, TriggerError
from ..evidence.bundle import record_status
from ..schemas.run import PollerState, RunStatus, ScenarioRun, check_poller_transition
from ..schemas.scenario import MessageTrigger, ScenarioDefinition
from ..tools import Toolbox
from . import tracking
from .capture import ArtifactCapture, RunObservations
from .snapshot import SnapshotProbe, SystemSnapshot, review_id_of
from .tracking import EntityTracker, PhaseClock

logger = logging.getLogger(__name__)

STATE_FOR_STATUS = {
    RunStatus.COMPLETED: PollerState.COMPLETED,
    RunStatus.COMPLETED_STILL_RUNNING: PollerState.COMPLETED,
    RunStatus.AGENT_EXITED: PollerState.STUCK_ABORTED,
    RunStatus.TIMEOUT: PollerState.TIMED_OUT,
}


def effective_poll_settings(scenario: ScenarioDefinition, base: PollSettings | None = None) -> PollSettings:
    """Configured poll settings with the scenario's overrides applied."""
    base = base or settings.poll
    overrides = scenario.poll.model_dump(exclude_none=True)
    return base.model_copy(update=overrides)


class LifecyclePoller:
    """Drives one ScenarioRun from trigger to Done.

    ``clock`` and ``sleep`` are injectable so tests can run the loop on a
    fake timeline.
    """

    def __init__(
        self,
        scenario: ScenarioDefinition,
        run: ScenarioRun,
        tools: Toolbox,
        store: ArtifactStore,
        poll: PollSettings | None = None,
        capture: CaptureSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.scenario = scenario
        self.run = run
        self.tools = tools
        self.store = store
        self.poll = poll or effective_poll_settings(scenario)
        self.clock = clock
        self.sleep = sleep
        self.probe = SnapshotProbe(scenario, tools, parallel=self.poll.parallel_probes)
        self.capture = ArtifactCapture(scenario, tools, store, capture)

        self.state = PollerState.IDLE
        self.tracker = EntityTracker()
        self.phases = PhaseClock()
        self.start_time = 0.0
        self.last_activity = 0.0
        self.root_id: str | None = run.root_id
        self.root_status = "unknown"
        self.child_count = 0
        self.children_closed = 0
        self.workers: list[str] = []
        self.alive: set[str] | None = None
        self.captured_workers: set[str] = set()
        self.review_id: str | None = None
        self.review_lgtm_done = False
        self._worker_re = re.compile(scenario.agents.worker_pattern)

    # State machine

    def _enter(self, state: PollerState) -> None:
        self.state = check_poller_transition(self.state, state)

    def elapsed(self) -> float:
        return self.clock() - self.start_time

    def execute(self) -> RunStatus:
        """Run the whole lifecycle. Only a trigger failure is expected to raise.

        Once triggered, agents are killed even if capture fails part way.
        """
        self.trigger()
        status = self.poll_until_terminal()
        self._enter(STATE_FOR_STATUS[status])
        self.run.transition(status)
        self.run.root_id = self.root_id
        self.run.save()
        logger.info("final status: %s (%.0fs)", status.value, self.elapsed())

        self._enter(PollerState.CAPTURING)
        try:
            self.capture.capture_all(self.observations(status), self.tracker, self.phases)
        finally:
            self._enter(PollerState.CLEANING_UP)
            self.cleanup()
        self._enter(PollerState.DONE)
        return status

    def trigger(self) -> None:
        """Capture the hook table, then perform the single triggering action."""
        hooks = self.capture.hooks()
        expected = self.scenario.expected_hook
        if expected and not re.search(expected, hooks, re.IGNORECASE):
            logger.warning("expected hook %r not found in hooks list", expected)

        trigger = self.scenario.trigger
        try:
            if isinstance(trigger, MessageTrigger):
                self.tools.bus.send(trigger.agent, self.scenario.channel, trigger.message, trigger.labels)
            else:
                self.tools.supervisor.spawn(
                    trigger.name,
                    trigger.command,
                    env=trigger.env,
                    timeout_sec=trigger.timeout_sec or int(self.poll.timeout_sec),
                    cwd=trigger.cwd,
                )
        except ProbeError as exc:
            raise TriggerError(f"Trigger failed: {exc}") from exc

        self._enter(PollerState.TRIGGERED)
        self.run.transition(RunStatus.TRIGGERED)
        self.start_time = self.clock()
        self.last_activity = self.start_time
        self._enter(PollerState.POLLING)
        self.run.transition(RunStatus.POLLING)
        self.run.save()
        logger.info(
            "triggered %s; polling every %ss (timeout %ss)",
            self.scenario.name,
            self.poll.interval_sec,
            self.poll.timeout_sec,
        )

    def poll_until_terminal(self) -> RunStatus:
        while True:
            if self.elapsed() > self.poll.timeout_sec:
                logger.warning("overall timeout reached (%ss)", self.poll.timeout_sec)
                return RunStatus.TIMEOUT

            self.sleep(self.poll.interval_sec)
            snapshot = self.probe.take(self.root_id)
            self.merge(snapshot)
            self._capture_exited_workers(snapshot)
            self._auto_approve_review(snapshot)
            self._enter(PollerState.POLLING)

            if self.root_status in self.scenario.root.terminal_statuses:
                self.phases.record(tracking.ROOT_CLOSED, self.elapsed())
                logger.info("root %s is %s", self.root_id, self.root_status)
                return self.grace_period(snapshot)

            idle = self.clock() - self.last_activity
            if idle > self.poll.stuck_threshold_sec and snapshot.agents is not None and not snapshot.agents:
                logger.warning("no activity for %.0fs and no agents alive", idle)
                return RunStatus.AGENT_EXITED

    def grace_period(self, snapshot: SystemSnapshot) -> RunStatus:
        """Wait a bounded time for every agent to exit on its own."""
        if snapshot.agents is not None and not snapshot.agents:
            return RunStatus.COMPLETED
        for attempt in range(1, self.poll.grace_attempts + 1):
            self.sleep(self.poll.grace_interval_sec)
            agents = self.probe.list_agents()
            if agents is not None:
                self.merge(SystemSnapshot(agents=agents, root_id=self.root_id))
                if not agents:
                    return RunStatus.COMPLETED
            logger.info("waiting for agents to exit (%d/%d)", attempt, self.poll.grace_attempts)
        return RunStatus.COMPLETED_STILL_RUNNING

    # Snapshot merging (polling thread only)

    def _touch(self, changed: bool, now: float) -> None:
        if changed:
            self.last_activity = self.start_time + now

    def merge(self, snapshot: SystemSnapshot) -> None:
        now = self.elapsed()
        observe = self.tracker.observe

        if snapshot.agents is not None:
            running = set(snapshot.agents)
            self.alive = running
            for agent_id in snapshot.agents:
                self._touch(observe(agent_id, "process", "running", now), now)
                if agent_id == self.scenario.agents.lead:
                    self.phases.record(tracking.LEAD_SPAWN, now)
                if self._worker_re.search(agent_id) and agent_id not in self.workers:
                    self.workers.append(agent_id)
                    self.phases.record(tracking.FIRST_WORKER, now)
                    logger.info("new worker: %s", agent_id)
            for role, agent_id in self.scenario.agents.tracked.items():
                if agent_id in running:
                    self.phases.record(tracking.role_spawn_phase(role), now)
            for entity in self.tracker.of_kind("process"):
                if entity.id not in running:
                    self._touch(observe(entity.id, "process", "exited", now), now)

        if snapshot.root_id and self.root_id is None:
            self.root_id = snapshot.root_id
            logger.info("root record: %s", self.root_id)

        if snapshot.root_record is not None and self.root_id:
            if self.phases.record(tracking.ROOT_FOUND, now):
                self._touch(True, now)
            self.root_status = record_status(snapshot.root_record, self.scenario.root.status_fields)
            self._touch(observe(self.root_id, "task", self.root_status, now), now)
            if self.root_status in self.scenario.root.active_statuses:
                self._touch(True, now)

        if snapshot.children is not None:
            terminal = self.scenario.root.terminal_statuses
            for child in snapshot.children:
                child_id = str(child.get("id", ""))
                if child_id:
                    status = record_status(child, self.scenario.root.status_fields)
                    self._touch(observe(child_id, "mission-child", status, now), now)
            self.child_count = len(snapshot.children)
            self.children_closed = sum(
                1 for child in snapshot.children if record_status(child, self.scenario.root.status_fields) in terminal
            )
            if self.child_count:
                self.phases.record(tracking.FIRST_CHILD, now)

        if snapshot.message_count is not None:
            self._touch(observe(self.scenario.channel, "message-count", snapshot.message_count, now), now)

        if snapshot.reviews is not None:
            for review in snapshot.reviews:
                review_id = review_id_of(review)
                if review_id:
                    state = str(review.get("status") or review.get("state") or "open")
                    self._touch(observe(review_id, "review", state, now), now)
                    self.phases.record(tracking.REVIEW_FOUND, now)
                    if self.review_id is None:
                        self.review_id = review_id

        if snapshot.builds is not None:
            for name, passed in snapshot.builds.items():
                self._touch(observe(f"build:{name}", "task", "pass" if passed else "fail", now), now)

    def _capture_exited_workers(self, snapshot: SystemSnapshot) -> None:
        if snapshot.agents is None:
            return
        for worker in self.workers:
            if worker not in snapshot.agents and worker not in self.captured_workers:
                if self.capture.agent_log(worker, placeholder=None):
                    logger.info("worker exited: %s (log captured)", worker)
                self.captured_workers.add(worker)

    def _auto_approve_review(self, snapshot: SystemSnapshot) -> None:
        review = self.scenario.review
        if not (review.enabled and review.auto_approve) or self.review_lgtm_done or not self.review_id:
            return
        root = self.scenario.root
        active = root.active_statuses or None
        if active is not None and self.root_status not in active:
            return
        if active is None and (self.root_status in root.terminal_statuses or self.root_status == "unknown"):
            return
        try:
            self.tools.review.lgtm(self.review_id, review.message, review.reviewer)
        except ProbeError as exc:
            logger.warning("auto-approve of review %s failed: %s", self.review_id, exc)
            return
        self.review_lgtm_done = True
        logger.info("review %s approved as %s", self.review_id, review.reviewer)
        try:
            self.tools.bus.send(
                review.reviewer,
                self.scenario.channel,
                f"Review {self.review_id}: LGTM @{self.scenario.agents.lead}",
                ["review-done"],
            )
        except ProbeError as exc:
            logger.warning("review-done announcement failed: %s", exc)

    # Capture and cleanup

    def observations(self, status: RunStatus) -> RunObservations:
        return RunObservations(
            status=status,
            elapsed_sec=self.elapsed(),
            root_id=self.root_id,
            root_status=self.root_status,
            child_count=self.child_count,
            children_closed=self.children_closed,
            workers=list(self.workers),
            review_id=self.review_id,
            review_lgtm_done=self.review_lgtm_done,
            agent_statuses=self.agent_statuses(status),
        )

    def agent_statuses(self, status: RunStatus) -> dict[str, str]:
        """Exit status of each tracked role.

        On completion a role still listed at the last probe is
        ``completed-still-running``; otherwise every role shares the run status.
        """
        statuses = {}
        for role, agent_id in self.scenario.agents.tracked.items():
            if status in (RunStatus.COMPLETED, RunStatus.COMPLETED_STILL_RUNNING):
                still_running = self.alive is not None and agent_id in self.alive
                statuses[role] = RunStatus.COMPLETED_STILL_RUNNING.value if still_running else RunStatus.COMPLETED.value
            else:
                statuses[role] = status.value
        return statuses

    def cleanup(self) -> None:
        """Kill the lead, the tracked agents and every remaining agent. Already-exited agents are fine."""
        supervisor = self.tools.supervisor
        named = dict.fromkeys([self.scenario.agents.lead, *self.scenario.agents.tracked.values()])
        for agent_id in named:
            supervisor.kill(agent_id)
        agents = [agent_id for agent_id in self.probe.list_agents() or [] if agent_id not in named]
        for agent_id in agents:
            supervisor.kill(agent_id)
        logger.info("cleaned up %d agent(s)", len(agents) + len(named))
