"""Lifecycle poller that drives a scenario and captures its artifacts."""

from .capture import ArtifactCapture, RunObservations
from .lifecycle import LifecyclePoller, effective_poll_settings
from .snapshot import SnapshotProbe, SystemSnapshot, run_build_check
from .tracking import EntityTracker, PhaseClock

__all__ = [
    "ArtifactCapture",
    "EntityTracker",
    "LifecyclePoller",
    "PhaseClock",
    "RunObservations",
    "SnapshotProbe",
    "SystemSnapshot",
    "effective_poll_settings",
    "run_build_check",
]
