"""Classifying an execution outcome against its baseline record."""

from __future__ import annotations

import difflib
from typing import Optional

from .models import (
    BaselineRecord,
    ComparisonOutcome,
    ExecutionOutcome,
    TimedOut,
    Verdict,
    is_failure_status,
)

STREAMS = ('stdout', 'stderr')


def compare(outcome: ExecutionOutcome, baseline: Optional[BaselineRecord]) -> ComparisonOutcome:
    """Compare one outcome with its baseline.

    Verdict logic:
    - CHANGED if the run timed out or could not be started, with or without
      a baseline
    - NEW if there is no baseline
    - CHANGED if exit statuses differ (a recorded timeout matches nothing)
    - CHANGED if a stream saved on either side is missing on the other side
      or its bytes differ
    - UNCHANGED otherwise

    Streams saved on neither side (modes ``none``/``print``) are ignored.
    Capture only retains bytes for saving modes, so a ``None`` stream on
    ``outcome`` means "not saved".

    Args:
        outcome: The result of this run.
        baseline: The stored record for the file, if any.

    Returns:
        ComparisonOutcome with verdict, reasons, and per-stream diffs.
    """
    status = outcome.exit_status
    if is_failure_status(status):
        return ComparisonOutcome(Verdict.CHANGED, details=(status.describe(),))

    if baseline is None:
        return ComparisonOutcome(Verdict.NEW)

    details: list[str] = []
    diffs: dict[str, str] = {}

    if isinstance(baseline.exit_status, TimedOut) or baseline.exit_status != status:
        details.append(
            f'exit status differs (baseline: {baseline.exit_status.describe()}, '
            f'current: {status.describe()})'
        )

    for stream in STREAMS:
        expected = getattr(baseline, stream)
        actual = getattr(outcome, stream)
        if expected is None and actual is None:
            continue
        if expected is None:
            details.append(f'{stream} not saved in baseline')
        elif actual is None:
            details.append(f'{stream} no longer saved')
        elif expected != actual:
            details.append(f'{stream} differs')
            diffs[stream] = generate_diff(expected, actual, stream)

    if details:
        return ComparisonOutcome(Verdict.CHANGED, details=tuple(details), diffs=diffs)
    return ComparisonOutcome(Verdict.UNCHANGED)


def generate_diff(expected: bytes, actual: bytes, stream: str = 'stdout') -> str:
    """Generate a unified diff between baseline and current bytes.

    Bytes are decoded as UTF-8 with replacement characters for display only;
    the comparison itself is byte-exact.
    """
    expected_lines = expected.decode('utf-8', errors='replace').splitlines(keepends=True)
    actual_lines = actual.decode('utf-8', errors='replace').splitlines(keepends=True)
    diff = difflib.unified_diff(
        expected_lines,
        actual_lines,
        fromfile=f'baseline/{stream}',
        tofile=f'current/{stream}',
    )
    text = ''.join(diff)
    if not text:
        # Same text after decoding, e.g. invalid UTF-8 replaced identically.
        return f'{stream}: {len(expected)} bytes in baseline, {len(actual)} bytes now\n'
    return text
