"""Friction signals: wasted agent interactions that do not affect correctness."""

import math
import re
from collections import Counter
from dataclasses import dataclass, field

from ..config import settings
from .extract import extract_line_count

EXIT_FAILURE_PATTERN = r"Exit code [12]\b"
SIBLING_PATTERN = r"Sibling tool call errored"
HELP_PATTERN = r"\s--help\b"
FALLBACK_PATTERN = r"FALLBACK"
RETRY_MENTION_PATTERN = r"retry|again|Retrying"
TOOL_USE_ERROR_PATTERN = r"tool_use_error"
COMMAND_PATTERN = re.compile(r'"command"\s*:\s*"((?:[^"\\]|\\.)+)"')

# Lines preceding an exit-code failure that mean the program under test
# failed on purpose (running the built binary), not the agent's tool use.
EXPECTED_FAILURE_CONTEXT = re.compile(r'cargo run|\./target/|^> Bash.*"command":"cd ')

# (max wasted calls, points, label), checked in order
FRICTION_TIERS = (
    (0, 40, "ZERO FRICTION"),
    (5, 30, "MINOR FRICTION"),
    (15, 20, "MODERATE FRICTION"),
    (30, 10, "SIGNIFICANT FRICTION"),
)
SEVERE_TIER = (0, "SEVERE FRICTION")
FRICTION_MAX_POINTS = FRICTION_TIERS[0][1]


def estimate_retries(exit_failures: int, divisor: int | None = None) -> int:
    """Approximate retries caused by exit-code failures.

    Retries are not observable from logs, so roughly one retry is assumed
    per ``divisor`` failures, rounded up.
    """
    divisor = divisor or settings.friction.retry_divisor
    if exit_failures <= 0:
        return 0
    return math.ceil(exit_failures / divisor)


@dataclass(frozen=True, slots=True)
class FrictionCounts:
    exit_failures: int = 0
    sibling_cancellations: int = 0
    help_lookups: int = 0
    fallbacks: int = 0
    retries: int = 0
    repeated_commands: int = 0

    @property
    def wasted(self) -> int:
        """Wasted calls; FALLBACK lines are reported but not counted."""
        return self.exit_failures + self.sibling_cancellations + self.help_lookups + self.retries

    def __add__(self, other: "FrictionCounts") -> "FrictionCounts":
        return FrictionCounts(
            exit_failures=self.exit_failures + other.exit_failures,
            sibling_cancellations=self.sibling_cancellations + other.sibling_cancellations,
            help_lookups=self.help_lookups + other.help_lookups,
            fallbacks=self.fallbacks + other.fallbacks,
            retries=self.retries + other.retries,
            repeated_commands=max(self.repeated_commands, other.repeated_commands),
        )


def max_repeated_command(log: str) -> int:
    """Occurrences of the most repeated identical tool command."""
    counts = Counter(COMMAND_PATTERN.findall(log or ""))
    return max(counts.values(), default=0)


def count_friction(log: str) -> FrictionCounts:
    exit_failures = extract_line_count(log, EXIT_FAILURE_PATTERN)
    return FrictionCounts(
        exit_failures=exit_failures,
        sibling_cancellations=extract_line_count(log, SIBLING_PATTERN, ignore_case=True),
        help_lookups=extract_line_count(log, HELP_PATTERN),
        fallbacks=extract_line_count(log, FALLBACK_PATTERN, ignore_case=True),
        retries=estimate_retries(exit_failures),
        repeated_commands=max_repeated_command(log),
    )


def count_tool_errors(log: str) -> int:
    """Tool errors in an agent log.

    Counts ``tool_use_error`` lines plus exit-code failures, except those
    directly following a line that ran the program under test.
    """
    if not log:
        return 0
    count = extract_line_count(log, TOOL_USE_ERROR_PATTERN)
    previous = ""
    for line in log.splitlines():
        if re.search(EXIT_FAILURE_PATTERN, line) and not EXPECTED_FAILURE_CONTEXT.search(previous):
            count += 1
        previous = line
    return count


def count_help_lookups(log: str) -> int:
    return extract_line_count(log, r"--help")


def count_retry_mentions(log: str) -> int:
    return extract_line_count(log, RETRY_MENTION_PATTERN)


def friction_tier(wasted: int) -> tuple[int, str]:
    """Points and tier label for a number of wasted calls."""
    for limit, points, label in FRICTION_TIERS:
        if wasted <= limit:
            return points, label
    return SEVERE_TIER


@dataclass
class FrictionReport:
    """Per-log friction counts and the resulting tiered score."""

    per_log: dict[str, FrictionCounts] = field(default_factory=dict)

    @property
    def totals(self) -> FrictionCounts:
        total = FrictionCounts()
        for counts in self.per_log.values():
            total = total + counts
        return total

    @property
    def score(self) -> int:
        return friction_tier(self.totals.wasted)[0]

    @property
    def tier(self) -> str:
        return friction_tier(self.totals.wasted)[1]

    @property
    def clean_logs(self) -> int:
        return sum(1 for counts in self.per_log.values() if counts.wasted == 0)


def analyze_logs(logs: dict[str, str]) -> FrictionReport:
    """Friction for each named log; estimated retries are computed per log."""
    return FrictionReport(per_log={name: count_friction(text) for name, text in logs.items()})
