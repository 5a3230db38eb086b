"""Fanning a batch of test cases out over a bounded worker pool."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .capture import OutputSink, run_test_case
from .compare import compare
from .models import BaselineRecord, BatchReport, TaskResult, TestCase
from .options import default_jobs
from .progress import ProgressReporter

logger = logging.getLogger(__name__)


def run_task(
    case: TestCase,
    baseline: Optional[BaselineRecord],
    reporter: ProgressReporter,
    sink: OutputSink,
) -> TaskResult:
    """Run one case end to end: spawn, capture, compare."""
    reporter.task_started(case)
    outcome = run_test_case(case, sink)
    result = TaskResult(case=case, outcome=outcome, comparison=compare(outcome, baseline))
    reporter.task_finished(result)
    return result


def run_batch(
    cases: Sequence[TestCase],
    baseline: Optional[Mapping[str, BaselineRecord]] = None,
    *,
    jobs: Optional[int] = None,
    reporter: Optional[ProgressReporter] = None,
    sink: Optional[OutputSink] = None,
) -> BatchReport:
    """Run every case and aggregate the results.

    Cases are dispatched in input order to at most ``jobs`` concurrent
    workers. Each case has its own timeout, so a hung test occupies one
    worker slot and nothing else. The report lists results in input order
    whatever the completion order was.

    Args:
        cases: Test cases, one per file, with unique ``file_path``.
        baseline: Stored records keyed by file path; ``None`` for run mode.
        jobs: Worker pool size (default: twice the CPU count).
        reporter: Progress observer (default: a silent one).
        sink: Destination for live ``print``/``both`` output.

    Returns:
        BatchReport with one result per case plus the baseline paths that
        were not part of this batch.
    """
    baseline = baseline or {}
    jobs = jobs or default_jobs()
    reporter = reporter or ProgressReporter(len(cases))
    sink = sink or OutputSink()

    paths = [case.file_path for case in cases]
    if len(set(paths)) != len(paths):
        raise ValueError('file paths in a batch must be unique')

    logger.debug('running %d tasks on %d workers', len(cases), jobs)
    results: list[Optional[TaskResult]] = [None] * len(cases)
    with reporter, ThreadPoolExecutor(max_workers=jobs, thread_name_prefix='goldrun-worker') as executor:
        futures = [
            executor.submit(run_task, case, baseline.get(case.file_path), reporter, sink)
            for case in cases
        ]
        for index, future in enumerate(futures):
            results[index] = future.result()

    current = set(paths)
    missing = sorted(path for path in baseline if path not in current)
    return BatchReport(results=[r for r in results if r is not None], missing=missing)
