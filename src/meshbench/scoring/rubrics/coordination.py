"""Coordination-mission rubric: the mission rubric plus evidence that workers
talked to each other over the bus.
"""

from ...evidence.bundle import RunEvidence
from ...schemas.scenario import ScenarioDefinition
from ..checks import FallbackRule, RubricCheck, verdict
from ..rubric import Rubric
from .common import mentions
from .mission import MISSION_NEVER_CREATED, WORKERS_NOT_SPAWNED, mission_checks

COORD_LABEL = "coord:interface"
COORD_SEND_PATTERNS = (r"bus send.*-L coord", r"bus send.*coord:interface")
COORD_READ_PATTERNS = (
    r"bus history.*coord",
    r"bus history.*sibling",
    r"bus search.*(coord|record|pipeline|shared)",
    r"coord:interface",
)

IMPLICIT_COORDINATION_VIA_BUILD = FallbackRule(
    name="implicit-coordination-via-build",
    description="Two or more workers finished every child and the build passed",
    applies=lambda evidence: (
        evidence.build_passed("build")
        and evidence.worker_count >= 2
        and bool(evidence.children)
        and evidence.children_closed == len(evidence.children)
    ),
)

ANY_HISTORY_READS = FallbackRule(
    name="any-history-reads",
    description="Two or more workers read bus history, coordination topic or not",
    applies=lambda evidence: sum(1 for log in evidence.worker_logs.values() if "bus history" in log) >= 2,
)


def coord_messages_posted(evidence: RunEvidence):
    labeled = sum(1 for label in evidence.channel_labels if label == COORD_LABEL)
    posted = (
        labeled > 0
        or mentions(evidence.channel_text, COORD_LABEL)
        or any(
            mentions(log, COORD_LABEL, r"bus send.*coord", r"-L coord")
            for log in evidence.lead_and_worker_logs.values()
        )
    )
    return verdict(posted, f"{labeled} labeled messages")


def multiple_coord_posters(evidence: RunEvidence):
    posters = {name for name, log in evidence.lead_and_worker_logs.items() if mentions(log, *COORD_SEND_PATTERNS)}
    if len(posters) >= 2:
        return verdict(True, f"{len(posters)} agents posted coordination messages")
    # Channel senders replace the log count rather than adding to it: the two
    # name the same agents differently.
    senders = evidence.senders_with_label("coord:")
    if len(senders) >= 2:
        return verdict(True, f"{len(senders)} distinct coordination senders in channel history")
    return verdict(False, f"{len(posters)} agents posted coordination messages")


def workers_read_bus(evidence: RunEvidence):
    readers = [name for name, log in evidence.worker_logs.items() if mentions(log, *COORD_READ_PATTERNS)]
    return verdict(bool(readers), f"{len(readers)} workers read coordination messages")


def build(scenario: ScenarioDefinition) -> Rubric:
    category = "Coordination"
    checks = [
        *mission_checks(scenario, min_workspaces=2, min_claims=3),
        RubricCheck("Coordination messages posted", category, 5, coord_messages_posted),
        RubricCheck(
            "2+ agents posted coordination messages",
            category,
            5,
            multiple_coord_posters,
            fallbacks=(IMPLICIT_COORDINATION_VIA_BUILD,),
        ),
        RubricCheck(
            "Workers read coordination messages",
            category,
            5,
            workers_read_bus,
            fallbacks=(ANY_HISTORY_READS,),
        ),
    ]
    return Rubric(
        name="coordination-mission",
        description="A mission whose workers must coordinate shared interfaces over the bus",
        checks=tuple(checks),
        critical=MISSION_NEVER_CREATED,
        cap=WORKERS_NOT_SPAWNED,
    )
