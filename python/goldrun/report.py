"""Human and machine readable batch reports.

- :class:`TerminalReporter`: coloured summary on stdout.
- :func:`build_json_report`: JSON-serializable dict for ``--json``.
- :func:`build_junit_xml`: JUnit XML for CI systems (``--junit``).
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO
from xml.sax.saxutils import escape as xml_escape

from .models import BatchReport, SpawnFailed, TaskResult, TimedOut, Verdict

# ---------------------------------------------------------------------------
# Result labels
# ---------------------------------------------------------------------------


def result_label(result: TaskResult) -> str:
    """Short upper-case label: NEW, PASS, CHANGED, TIMEOUT or ERROR."""
    status = result.outcome.exit_status
    if isinstance(status, TimedOut):
        return 'TIMEOUT'
    if isinstance(status, SpawnFailed):
        return 'ERROR'
    return {
        Verdict.NEW: 'NEW',
        Verdict.UNCHANGED: 'PASS',
        Verdict.CHANGED: 'CHANGED',
    }[result.comparison.verdict]


def result_to_json(result: TaskResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        'file': result.file_path,
        'verdict': result.comparison.verdict.value,
        'label': result_label(result),
        'exit_status': result.outcome.exit_status.to_json(),
        'duration_ms': round(result.outcome.wall_duration * 1000, 1),
    }
    if result.comparison.details:
        data['message'] = result.comparison.message
    if result.comparison.diffs:
        data['diff'] = dict(result.comparison.diffs)
    return data


# ---------------------------------------------------------------------------
# Report generation: JSON
# ---------------------------------------------------------------------------


def build_json_report(report: BatchReport, mode: str, command: str) -> dict[str, Any]:
    """Build a JSON-serializable report from a batch.

    Args:
        report: The finished batch.
        mode: ``run``, ``record`` or ``update``.
        command: The command that was tested.

    Returns:
        Report dict with metadata, counts and per-file results.
    """
    return {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'mode': mode,
        'command': command,
        'total': len(report),
        'counts': report.counts,
        'failed': report.failed,
        'results': [result_to_json(r) for r in report.results],
        'missing': list(report.missing),
    }


# ---------------------------------------------------------------------------
# Report generation: JUnit XML
# ---------------------------------------------------------------------------


def build_junit_xml(report: BatchReport, suite_name: str = 'goldrun') -> str:
    """Build a JUnit XML report.

    Changed files and missing files are ``<failure>`` elements; timeouts and
    spawn failures are ``<error>`` elements.
    """
    errors = sum(1 for r in report.results if result_label(r) in ('TIMEOUT', 'ERROR'))
    failures = sum(1 for r in report.results if result_label(r) == 'CHANGED') + len(report.missing)
    total = len(report) + len(report.missing)

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<testsuite name="{xml_escape(suite_name)}" tests="{total}" '
        f'failures="{failures}" errors="{errors}" skipped="0">',
    ]

    for r in report.results:
        name = xml_escape(r.file_path, {'"': '&quot;'})
        lines.append(f'  <testcase name="{name}" classname="{xml_escape(suite_name)}" '
                     f'time="{r.outcome.wall_duration:.3f}">')
        label = result_label(r)
        message = xml_escape(r.comparison.message, {'"': '&quot;'})
        if label == 'CHANGED':
            diff_text = '\n'.join(r.comparison.diffs.values())
            lines.append(f'    <failure message="{message}">{xml_escape(diff_text)}</failure>')
        elif label in ('TIMEOUT', 'ERROR'):
            lines.append(f'    <error message="{message}"/>')
        lines.append('  </testcase>')

    for path in report.missing:
        name = xml_escape(path, {'"': '&quot;'})
        lines.append(f'  <testcase name="{name}" classname="{xml_escape(suite_name)}" time="0.000">')
        lines.append('    <failure message="file missing from this run"/>')
        lines.append('  </testcase>')

    lines.append('</testsuite>')
    return '\n'.join(lines)


# ---------------------------------------------------------------------------
# Terminal output (colored)
# ---------------------------------------------------------------------------

# ANSI color codes
_COLORS = {
    'green': '\033[32m',
    'red': '\033[31m',
    'yellow': '\033[33m',
    'cyan': '\033[36m',
    'dim': '\033[2m',
    'bold': '\033[1m',
    'reset': '\033[0m',
}

_LABEL_COLORS = {
    'PASS': 'green',
    'NEW': 'cyan',
    'CHANGED': 'red',
    'MISSING': 'red',
    'TIMEOUT': 'yellow',
    'ERROR': 'red',
}


class TerminalReporter:
    """Writes the end-of-batch summary.

    ``verbosity`` follows the command line: below 0 nothing is written, 0
    lists only failing files, 1 and above lists every file with diffs and
    the output of new files.
    """

    def __init__(self, verbosity: int = 0, stream: Optional[TextIO] = None) -> None:
        self.verbosity = verbosity
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stdout

    def _color(self, text: str, color: str) -> str:
        """Wrap text in ANSI color codes if the stream is a TTY."""
        isatty = getattr(self.stream, 'isatty', None)
        if not (isatty and isatty()):
            return text
        return f"{_COLORS.get(color, '')}{text}{_COLORS['reset']}"

    def _label(self, label: str) -> str:
        return self._color(f'{label:>8}', _LABEL_COLORS.get(label, 'dim'))

    def _print(self, text: str = '') -> None:
        print(text, file=self.stream)

    def print_summary(self, report: BatchReport, *, persisted_to: Optional[str] = None) -> None:
        if self.verbosity < 0:
            return
        verbose = self.verbosity > 0

        for r in report.results:
            label = result_label(r)
            if label == 'PASS' and not verbose:
                continue
            if label == 'NEW' and not verbose:
                continue
            self._print(f'  {self._label(label)}  {r.file_path}')
            if r.comparison.details:
                self._print(f"            {self._color(r.comparison.message, 'dim')}")
            if verbose:
                self._print_diffs(r)
                if label == 'NEW':
                    self._print_output(r)

        for path in report.missing:
            self._print(f"  {self._label('MISSING')}  {path}")

        counts = report.counts
        width = 60
        self._print()
        self._print('-' * width)
        parts = [
            f" {self._color('PASS:', 'green')} {counts['unchanged']}",
            f" {self._color('NEW:', 'cyan')} {counts['new']}",
            f" {self._color('CHANGED:', 'red')} {counts['changed']}",
        ]
        if counts['timed_out']:
            parts.append(f" TIMEOUT: {counts['timed_out']}")
        if counts['spawn_failed']:
            parts.append(f" ERROR: {counts['spawn_failed']}")
        if counts['missing']:
            parts.append(f" MISSING: {counts['missing']}")
        parts.append(f' Total: {len(report)}')
        self._print(' '.join(parts))
        if persisted_to:
            self._print(f' Saved baseline to {persisted_to}')
        self._print('-' * width)

    def _print_diffs(self, r: TaskResult) -> None:
        for diff_text in r.comparison.diffs.values():
            for dl in diff_text.splitlines():
                if dl.startswith('+') and not dl.startswith('+++'):
                    self._print(f"            {self._color(dl, 'green')}")
                elif dl.startswith('-') and not dl.startswith('---'):
                    self._print(f"            {self._color(dl, 'red')}")
                else:
                    self._print(f'            {dl}')

    def _print_output(self, r: TaskResult) -> None:
        for stream in ('stdout', 'stderr'):
            data = getattr(r.outcome, stream)
            if not data:
                continue
            self._print(f"            {self._color(f'[{stream}]', 'dim')}")
            for line in data.decode('utf-8', errors='replace').splitlines():
                self._print(f'            {line}')
