"""The run / record / update workflows.

Each mode is its own entry point; they share only the batch execution in
:func:`_execute_batch`:

- ``run``: options from the command line, no database, nothing persisted.
- ``record``: options from the command line; results become the new
  baseline. An existing database is loaded only so records for files outside
  this run survive.
- ``update``: options resolved as command line > stored > defaults; files
  default to the stored keys; results are compared against and then merged
  into the stored baseline.

Setup errors are raised before any task runs. Persistence is skipped with
``dry_run``.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Callable, Optional

from . import database
from .capture import OutputSink
from .environment import build_environment
from .errors import EXIT_OK, EXIT_TESTS_FAILED, ConfigurationError, DatabaseNotFound
from .files import existing_files, resolve_files
from .log import QUIET
from .models import BaselineRecord, BatchReport, Database, TestCase
from .options import OptionOverrides, RunOptions, resolve_options
from .progress import ProgressReporter
from .scheduler import run_batch

logger = logging.getLogger(__name__)


class Mode(str, enum.Enum):
    RUN = 'run'
    RECORD = 'record'
    UPDATE = 'update'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Invocation:
    """Everything the command line decided, before anything runs."""

    mode: Mode
    overrides: OptionOverrides
    database_path: Optional[str] = None
    dry_run: bool = False
    prune: bool = False
    jobs: Optional[int] = None
    verbosity: int = 0


@dataclass
class ModeResult:
    mode: Mode
    options: RunOptions
    report: BatchReport
    database: Optional[Database] = None
    persisted: bool = False

    @property
    def exit_code(self) -> int:
        return EXIT_TESTS_FAILED if self.report.failed else EXIT_OK


# ---------------------------------------------------------------------------
# Batch construction
# ---------------------------------------------------------------------------


def build_cases(files: Sequence[str], options: RunOptions) -> list[TestCase]:
    """One :class:`TestCase` per file, all sharing the batch options."""
    env = build_environment(options.preserve_env, options.env)
    return [
        TestCase(
            file_path=path,
            command=options.command,
            working_directory=options.base_dir,
            environment=env,
            timeout=options.timeout,
            stdout_mode=options.stdout_mode,
            stderr_mode=options.stderr_mode,
        )
        for path in files
    ]


def _glob_files(options: RunOptions) -> list[str]:
    if not options.files:
        raise ConfigurationError('no file pattern given')
    files = resolve_files(options.files, options.base_dir)
    if not files:
        raise ConfigurationError(f'no files match {options.files!r} in {options.base_dir}')
    return files


def _execute_batch(
    invocation: Invocation,
    options: RunOptions,
    files: Sequence[str],
    baseline: Optional[Mapping[str, BaselineRecord]],
    sink: Optional[OutputSink],
) -> BatchReport:
    logger.debug('effective options: %s', options)
    logger.debug('%d files to test', len(files))
    cases = build_cases(files, options)
    reporter = ProgressReporter(len(cases), invocation.verbosity)
    sink = sink or OutputSink(enabled=invocation.verbosity > QUIET)
    return run_batch(cases, baseline, jobs=invocation.jobs, reporter=reporter, sink=sink)


def _save(invocation: Invocation, path: str, merged: Database) -> bool:
    if invocation.dry_run:
        logger.info('dry run: not writing %s', path)
        return False
    database.persist(merged, path)
    return True


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run(invocation: Invocation, sink: Optional[OutputSink]) -> ModeResult:
    options = resolve_options(invocation.overrides)
    files = _glob_files(options)
    report = _execute_batch(invocation, options, files, None, sink)
    return ModeResult(Mode.RUN, options, report)


def _record(invocation: Invocation, sink: Optional[OutputSink]) -> ModeResult:
    if not invocation.database_path:
        raise ConfigurationError('record mode needs a database path')
    path = invocation.database_path
    options = resolve_options(invocation.overrides)
    files = _glob_files(options)
    try:
        existing: Optional[Database] = database.load(path)
    except DatabaseNotFound:
        existing = None

    # A new baseline: nothing is compared against earlier records.
    report = _execute_batch(invocation, options, files, None, sink)
    merged = database.merge(existing, report, options, prune=invocation.prune)
    persisted = _save(invocation, path, merged)
    return ModeResult(Mode.RECORD, options, report, merged, persisted)


def _update(invocation: Invocation, sink: Optional[OutputSink]) -> ModeResult:
    if not invocation.database_path:
        raise ConfigurationError('update mode needs a database path')
    path = invocation.database_path
    stored = database.load(path)
    options = resolve_options(invocation.overrides, stored.global_options)

    if invocation.overrides.files:
        files = _glob_files(options)
    else:
        files = existing_files(stored.records, options.base_dir)
        if not files:
            raise ConfigurationError(f'none of the recorded files exist in {options.base_dir}')

    report = _execute_batch(invocation, options, files, stored.records, sink)
    merged = database.merge(stored, report, options, prune=invocation.prune)
    persisted = _save(invocation, path, merged)
    return ModeResult(Mode.UPDATE, options, report, merged, persisted)


_HANDLERS: dict[Mode, Callable[[Invocation, Optional[OutputSink]], ModeResult]] = {
    Mode.RUN: _run,
    Mode.RECORD: _record,
    Mode.UPDATE: _update,
}


def execute(invocation: Invocation, *, sink: Optional[OutputSink] = None) -> ModeResult:
    """Run the workflow selected by ``invocation.mode``.

    Raises:
        ConfigurationError, DatabaseNotFound, DatabaseCorrupt: setup errors,
            raised before any test runs.
        PersistError: if the database could not be written after the batch.
    """
    return _HANDLERS[invocation.mode](invocation, sink)
