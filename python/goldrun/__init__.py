"""goldrun: golden-output regression testing for command-line programs.

Run a shell command once per input file, capture its exit status and
output, and compare the results against a recorded baseline database.
"""

from __future__ import annotations

from .capture import OutputSink, run_test_case
from .compare import compare
from .errors import (
    ConfigurationError,
    DatabaseCorrupt,
    DatabaseError,
    DatabaseNotFound,
    GoldrunError,
    PersistError,
)
from .models import (
    BaselineRecord,
    BatchReport,
    ComparisonOutcome,
    Database,
    ExecutionOutcome,
    ExitCode,
    ExitStatus,
    Signaled,
    SpawnFailed,
    TaskResult,
    TestCase,
    TimedOut,
    Verdict,
)
from .modes import Invocation, Mode, ModeResult, execute
from .options import OptionOverrides, RunOptions, StreamMode, resolve_options
from .progress import ProgressReporter
from .scheduler import run_batch

__all__ = [
    'BaselineRecord',
    'BatchReport',
    'ComparisonOutcome',
    'ConfigurationError',
    'Database',
    'DatabaseCorrupt',
    'DatabaseError',
    'DatabaseNotFound',
    'ExecutionOutcome',
    'ExitCode',
    'ExitStatus',
    'GoldrunError',
    'Invocation',
    'Mode',
    'ModeResult',
    'OptionOverrides',
    'OutputSink',
    'PersistError',
    'ProgressReporter',
    'RunOptions',
    'Signaled',
    'SpawnFailed',
    'StreamMode',
    'TaskResult',
    'TestCase',
    'TimedOut',
    'Verdict',
    'compare',
    'execute',
    'resolve_options',
    'run_batch',
    'run_test_case',
]
