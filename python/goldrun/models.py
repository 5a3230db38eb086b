"""Value types shared by the execution engine.

Everything here is immutable once constructed: workers build a
:class:`TestCase`, produce one :class:`ExecutionOutcome`, and hand both back
to the scheduler, which derives a :class:`ComparisonOutcome`.
"""

from __future__ import annotations

import enum
import types
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .options import RunOptions, StreamMode

# ---------------------------------------------------------------------------
# Exit status variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExitCode:
    """The process exited normally with ``code``."""

    code: int

    @property
    def kind(self) -> str:
        return 'exit'

    def describe(self) -> str:
        return f'exit {self.code}'

    def to_json(self) -> dict[str, Any]:
        return {'kind': 'exit', 'code': self.code}


@dataclass(frozen=True)
class Signaled:
    """The process was terminated by ``signal``."""

    signal: int

    @property
    def kind(self) -> str:
        return 'signal'

    def describe(self) -> str:
        return f'killed by signal {self.signal}'

    def to_json(self) -> dict[str, Any]:
        return {'kind': 'signal', 'signal': self.signal}


@dataclass(frozen=True)
class TimedOut:
    """The process did not finish within its timeout and was killed."""

    @property
    def kind(self) -> str:
        return 'timeout'

    def describe(self) -> str:
        return 'timed out'

    def to_json(self) -> dict[str, Any]:
        return {'kind': 'timeout'}


@dataclass(frozen=True)
class SpawnFailed:
    """The process could not be started, or its streams could not be read."""

    reason: str

    @property
    def kind(self) -> str:
        return 'spawn_failed'

    def describe(self) -> str:
        return f'failed to run: {self.reason}'

    def to_json(self) -> dict[str, Any]:
        return {'kind': 'spawn_failed', 'reason': self.reason}


ExitStatus = Union[ExitCode, Signaled, TimedOut, SpawnFailed]


def exit_status_from_json(data: Mapping[str, Any]) -> ExitStatus:
    """Inverse of ``ExitStatus.to_json``.

    Raises:
        ValueError, TypeError, KeyError: on malformed input.
    """
    if not isinstance(data, Mapping):
        raise TypeError('exit status must be an object')
    kind = data['kind']
    if kind == 'exit':
        return ExitCode(_require_int(data['code']))
    if kind == 'signal':
        return Signaled(_require_int(data['signal']))
    if kind == 'timeout':
        return TimedOut()
    if kind == 'spawn_failed':
        reason = data['reason']
        if not isinstance(reason, str):
            raise TypeError('reason must be a string')
        return SpawnFailed(reason)
    raise ValueError(f'unknown exit status kind: {kind!r}')


def _require_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f'expected an integer, got {value!r}')
    return value


def is_failure_status(status: ExitStatus) -> bool:
    """Statuses that fail a task no matter what the baseline says."""
    return isinstance(status, (TimedOut, SpawnFailed))


# ---------------------------------------------------------------------------
# Test cases and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TestCase:
    """One unit of work: ``command`` run with ``file_path`` on stdin."""

    __test__ = False  # not a pytest class

    file_path: str
    command: str
    working_directory: str = '.'
    environment: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 10.0
    stdout_mode: StreamMode = StreamMode.BOTH
    stderr_mode: StreamMode = StreamMode.PRINT

    def __post_init__(self) -> None:
        # Workers share nothing mutable; freeze the environment as well.
        object.__setattr__(self, 'environment', types.MappingProxyType(dict(self.environment)))


@dataclass(frozen=True)
class ExecutionOutcome:
    """What happened when a :class:`TestCase` ran.

    ``stdout`` / ``stderr`` are ``None`` unless the stream's mode retains
    bytes. For ``TimedOut`` they hold whatever arrived before the kill and are
    only meant for display.
    """

    exit_status: ExitStatus
    stdout: Optional[bytes] = None
    stderr: Optional[bytes] = None
    wall_duration: float = 0.0


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BaselineRecord:
    """The trusted result for one file, plus the options it was recorded with."""

    exit_status: ExitStatus
    options: RunOptions
    stdout: Optional[bytes] = None
    stderr: Optional[bytes] = None


@dataclass(frozen=True)
class Database:
    """A baseline database: last-used options and one record per file."""

    global_options: RunOptions
    records: Mapping[str, BaselineRecord] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Comparison and batch results
# ---------------------------------------------------------------------------


class Verdict(str, enum.Enum):
    NEW = 'new'
    UNCHANGED = 'unchanged'
    CHANGED = 'changed'
    MISSING = 'missing'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ComparisonOutcome:
    """Classification of one file against its baseline.

    ``details`` holds short human-readable reasons for a ``CHANGED``
    verdict; ``diffs`` maps a stream name to a unified diff.
    """

    verdict: Verdict
    details: tuple[str, ...] = ()
    diffs: Mapping[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.verdict in (Verdict.CHANGED, Verdict.MISSING)

    @property
    def message(self) -> str:
        return '; '.join(self.details)


@dataclass(frozen=True)
class TaskResult:
    case: TestCase
    outcome: ExecutionOutcome
    comparison: ComparisonOutcome

    @property
    def file_path(self) -> str:
        return self.case.file_path


@dataclass
class BatchReport:
    """Aggregated results of a batch, in input file order."""

    results: list[TaskResult] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        counts = {
            'new': 0,
            'unchanged': 0,
            'changed': 0,
            'missing': len(self.missing),
            'timed_out': 0,
            'spawn_failed': 0,
        }
        for result in self.results:
            counts[result.comparison.verdict.value] += 1
            status = result.outcome.exit_status
            if isinstance(status, TimedOut):
                counts['timed_out'] += 1
            elif isinstance(status, SpawnFailed):
                counts['spawn_failed'] += 1
        return counts

    @property
    def failed(self) -> bool:
        return bool(self.missing) or any(r.comparison.failed for r in self.results)

    def __len__(self) -> int:
        return len(self.results)
