"""Exception hierarchy for the harness.

Only setup and trigger failures are fatal. Everything the system under test
does wrong is absorbed into run status or failed checks.
"""


class MeshbenchError(Exception):
    """Base class for harness errors."""


class ScenarioError(MeshbenchError):
    """Scenario definition could not be loaded or is inconsistent."""


class SetupError(MeshbenchError):
    """The scenario environment could not be constructed."""


class TriggerError(MeshbenchError):
    """The single triggering action failed."""


class ProbeError(MeshbenchError):
    """A collaborator invocation failed. Absorbed by the poller."""

    def __init__(self, args: list[str], returncode: int, stderr: str = "") -> None:
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{' '.join(args)} exited with {returncode}: {detail}")


class InvalidTransitionError(MeshbenchError):
    """A run or poller state change that the lifecycle does not allow."""


class ArtifactStoreError(MeshbenchError):
    """Base class for artifact store violations."""


class ArtifactExistsError(ArtifactStoreError):
    """An artifact with that name was already captured."""


class ArtifactStoreSealedError(ArtifactStoreError):
    """The store was sealed for scoring and accepts no more writes."""


class UnknownRubricError(MeshbenchError):
    """No rubric registered under the requested name."""
