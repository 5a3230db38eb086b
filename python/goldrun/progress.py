"""Progress reporting for a running batch.

At verbosity 1 every task start and finish is logged. At verbosity 2 a
background ticker also logs ``N/M finished`` lines; the interval between
ticks starts at half a second and doubles after each tick up to 30 seconds,
so short batches get timely feedback and long ones are not flooded.

Workers only ever append to lists here, so reporting never makes them wait.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from typing import Optional

from .models import TaskResult, TestCase

INITIAL_INTERVAL = 0.5
MAX_INTERVAL = 30.0

TASK_EVENTS_VERBOSITY = 1
TICKS_VERBOSITY = 2


def tick_intervals(initial: float = INITIAL_INTERVAL, ceiling: float = MAX_INTERVAL) -> Iterator[float]:
    """Yield ``initial``, then double it after each tick, capped at ``ceiling``."""
    interval = min(initial, ceiling)
    while True:
        yield interval
        interval = min(interval * 2, ceiling)


class ProgressReporter:
    """Batch-scoped observer of task starts and finishes.

    Use as a context manager around the batch: entering starts the ticker
    (when verbosity calls for it), leaving cancels it.
    """

    def __init__(
        self,
        total: int,
        verbosity: int = 0,
        *,
        logger: Optional[logging.Logger] = None,
        initial_interval: float = INITIAL_INTERVAL,
        max_interval: float = MAX_INTERVAL,
    ) -> None:
        self.total = total
        self.verbosity = verbosity
        self._logger = logger or logging.getLogger(__name__)
        self._initial_interval = initial_interval
        self._max_interval = max_interval
        # Append-only; len() gives the counters.
        self._started: list[str] = []
        self._finished: list[str] = []
        self._cancel = threading.Event()
        self._ticker: Optional[threading.Thread] = None
        self._start_time = time.monotonic()

    # -- Counters --------------------------------------------------------------

    @property
    def started(self) -> int:
        return len(self._started)

    @property
    def finished(self) -> int:
        return len(self._finished)

    # -- Worker hooks ----------------------------------------------------------

    def task_started(self, case: TestCase) -> None:
        self._started.append(case.file_path)
        if self.verbosity >= TASK_EVENTS_VERBOSITY:
            self._logger.info('Testing %s', case.file_path)

    def task_finished(self, result: TaskResult) -> None:
        self._finished.append(result.file_path)
        if self.verbosity >= TASK_EVENTS_VERBOSITY:
            comparison = result.comparison
            line = f'{comparison.verdict} after {result.outcome.wall_duration * 1000:.0f}ms: {result.file_path}'
            if comparison.details:
                line += f' ({comparison.message})'
            self._logger.info('%s', line)

    # -- Ticker ----------------------------------------------------------------

    def start(self) -> None:
        self._start_time = time.monotonic()
        if self.verbosity < TICKS_VERBOSITY or self._ticker is not None:
            return
        self._ticker = threading.Thread(target=self._tick_loop, name='goldrun-progress', daemon=True)
        self._ticker.start()

    def stop(self) -> None:
        self._cancel.set()
        if self._ticker is not None:
            self._ticker.join()
            self._ticker = None

    def __enter__(self) -> ProgressReporter:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def summary_line(self) -> str:
        elapsed = time.monotonic() - self._start_time
        running = self.started - self.finished
        return f'Progress: {self.finished}/{self.total} finished, {running} running, {elapsed:.0f}s elapsed'

    def _tick_loop(self) -> None:
        for interval in tick_intervals(self._initial_interval, self._max_interval):
            if self._cancel.wait(interval):
                return
            self._logger.debug('%s', self.summary_line())
