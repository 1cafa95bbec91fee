"""Append-only artifact directory for one scenario run."""

import json
from pathlib import Path
from typing import Any

from .errors import ArtifactExistsError, ArtifactStoreSealedError

SEALED_MARKER = ".sealed"

# Well-known artifact names
FINAL_STATUS = "final-status.env"
PHASE_TIMES = "phase-times.log"
ENTITIES = "entities.json"
HOOKS = "hooks.txt"
CHANNEL_LOG = "channel-history.log"
CHANNEL_JSON = "channel-history.json"
ROOT_RECORD = "root-record.json"
CHILDREN = "children.json"
ALL_RECORDS = "all-records.json"
WORKSPACES = "workspaces.json"
CLAIMS = "claims.txt"
REVIEWS = "reviews.json"
BUILD_CHECKS = "build-checks.json"

# Placeholders written when a capture fails
NO_LOG = "(agent already exited, no tail available)\n"
NO_HISTORY = "(no history)\n"
NO_CLAIMS = "(no claims)\n"
EMPTY_ARRAY = "[]\n"
EMPTY_OBJECT = "{}\n"
EMPTY_MESSAGES = '{"messages":[]}\n'


def agent_log_name(agent_id: str) -> str:
    """Artifact name for an agent's tail log; hierarchical ids are flattened."""
    return f"agent-{agent_id.replace('/', '_')}.log"


def child_record_name(record_id: str) -> str:
    return f"child-{record_id}.json"


def review_record_name(review_id: str) -> str:
    return f"review-{review_id}.txt"


class ArtifactStore:
    """Named, immutable blobs under ``<run_dir>/artifacts``.

    Writes are refused once the store is sealed. Reads never raise for
    missing artifacts; callers pass the default they want.
    """

    def __init__(self, root: Path):
        self.root = root

    @classmethod
    def for_run(cls, run_dir: Path) -> "ArtifactStore":
        return cls(run_dir / "artifacts")

    @property
    def sealed(self) -> bool:
        return (self.root / SEALED_MARKER).exists()

    def path(self, name: str) -> Path:
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def _check_writable(self, name: str) -> Path:
        if self.sealed:
            raise ArtifactStoreSealedError(f"Artifact store {self.root} is sealed; cannot write {name}")
        self.root.mkdir(parents=True, exist_ok=True)
        return self.path(name)

    def put(self, name: str, content: str) -> Path:
        """Write a new artifact. Raises if one already exists under that name."""
        path = self._check_writable(name)
        if path.exists():
            raise ArtifactExistsError(f"Artifact already captured: {name}")
        with open(path, "w") as f:
            f.write(content)
        return path

    def put_if_absent(self, name: str, content: str) -> bool:
        """Write an artifact unless it was already captured. Returns True on write."""
        if self.exists(name):
            return False
        self.put(name, content)
        return True

    def put_json(self, name: str, data: Any) -> Path:
        return self.put(name, json.dumps(data, indent=2, sort_keys=True) + "\n")

    def append_line(self, name: str, line: str) -> Path:
        """Append one line to a log artifact, creating it on first use."""
        path = self._check_writable(name)
        with open(path, "a") as f:
            f.write(line.rstrip("\n") + "\n")
        return path

    def seal(self) -> None:
        """Mark the store read-only. Idempotent."""
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / SEALED_MARKER).touch()

    def read_text(self, name: str, default: str = "") -> str:
        try:
            return self.path(name).read_text(errors="replace")
        except OSError:
            return default

    def read_json(self, name: str, default: Any = None) -> Any:
        """Parse a JSON artifact, returning ``default`` if absent or malformed."""
        text = self.read_text(name)
        if not text.strip():
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return default

    def glob(self, pattern: str) -> list[str]:
        """Artifact names matching a glob pattern, sorted."""
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.glob(pattern) if p.is_file())

    def names(self) -> list[str]:
        return [name for name in self.glob("*") if name != SEALED_MARKER]
