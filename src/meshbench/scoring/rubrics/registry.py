"""Registry mapping rubric names to rubric factories."""

from collections.abc import Callable

from ...errors import UnknownRubricError
from ...schemas.scenario import ScenarioDefinition
from ..rubric import Rubric
from . import coordination, mission, review, review_cycle, single_task

RubricFactory = Callable[[ScenarioDefinition], Rubric]


class RubricRegistry:
    """Simple registry mapping rubric names to factories."""

    def __init__(self) -> None:
        self._factories: dict[str, RubricFactory] = {}

    def register(self, name: str, factory: RubricFactory) -> None:
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, name: str, scenario: ScenarioDefinition) -> Rubric:
        if name not in self._factories:
            known = ", ".join(self.names())
            raise UnknownRubricError(f"No rubric registered as {name!r} (known: {known})")
        return self._factories[name](scenario)


registry = RubricRegistry()

registry.register("single-task", single_task.build)
registry.register("mission", mission.build)
registry.register("coordination-mission", coordination.build)
registry.register("review", review.build)
registry.register("review-cycle", review_cycle.build)


def get_rubric(scenario: ScenarioDefinition, name: str | None = None) -> Rubric:
    """The rubric named explicitly, else the one the scenario declares."""
    return registry.resolve(name or scenario.rubric, scenario)
