"""Entity and phase bookkeeping for the lifecycle poller."""

from ..schemas.run import EntityKind, PhaseTimestamp, TrackedEntity

# Phase names recorded during polling
LEAD_SPAWN = "lead_spawn"
ROOT_FOUND = "root_found"
FIRST_CHILD = "first_child"
FIRST_WORKER = "first_worker"
REVIEW_FOUND = "review_found"
ROOT_CLOSED = "root_closed"


def role_spawn_phase(role: str) -> str:
    return f"{role}_spawn"


class EntityTracker:
    """Last observed value of every entity; only value changes advance ``last_changed``."""

    def __init__(self):
        self.entities: dict[str, TrackedEntity] = {}

    def observe(self, entity_id: str, kind: EntityKind, value: str | int | None, now: float) -> bool:
        """Record an observation. Returns True if the entity is new or its value changed."""
        key = f"{kind}:{entity_id}"
        entity = self.entities.get(key)
        if entity is None:
            self.entities[key] = TrackedEntity(id=entity_id, kind=kind, value=value, first_seen=now, last_changed=now)
            return True
        if entity.value == value:
            return False
        self.entities[key] = entity.model_copy(update={"value": value, "last_changed": now})
        return True

    def get(self, entity_id: str, kind: EntityKind) -> TrackedEntity | None:
        return self.entities.get(f"{kind}:{entity_id}")

    def of_kind(self, kind: EntityKind) -> list[TrackedEntity]:
        return [entity for entity in self.entities.values() if entity.kind == kind]

    def dump(self) -> list[dict]:
        return [entity.model_dump() for entity in sorted(self.entities.values(), key=lambda e: (e.kind, e.id))]


class PhaseClock:
    """Named event times, first write wins."""

    def __init__(self):
        self._phases: dict[str, PhaseTimestamp] = {}

    def record(self, name: str, elapsed_sec: float) -> bool:
        """Record a phase once. Returns False if it was already set."""
        if name in self._phases:
            return False
        self._phases[name] = PhaseTimestamp(name=name, elapsed_sec=elapsed_sec)
        return True

    def get(self, name: str) -> float | None:
        phase = self._phases.get(name)
        return phase.elapsed_sec if phase else None

    def __contains__(self, name: str) -> bool:
        return name in self._phases

    def phases(self) -> list[PhaseTimestamp]:
        return list(self._phases.values())

    def render(self) -> str:
        """``name=12s`` lines in recording order."""
        return "".join(f"{phase.name}={phase.elapsed_sec:g}s\n" for phase in self._phases.values())
