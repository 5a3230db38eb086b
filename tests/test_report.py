from __future__ import annotations

import io

from inline_snapshot import snapshot

from goldrun.models import (
    BatchReport,
    ComparisonOutcome,
    ExecutionOutcome,
    ExitCode,
    SpawnFailed,
    TaskResult,
    TestCase,
    TimedOut,
    Verdict,
)
from goldrun.report import TerminalReporter, build_json_report, build_junit_xml, result_label


def _result(path, status, verdict, details=(), diffs=None, stdout=None) -> TaskResult:
    return TaskResult(
        case=TestCase(file_path=path, command='cat'),
        outcome=ExecutionOutcome(status, stdout=stdout, wall_duration=0.5),
        comparison=ComparisonOutcome(verdict, details=tuple(details), diffs=diffs or {}),
    )


def _report() -> BatchReport:
    return BatchReport(
        results=[
            _result('pass.txt', ExitCode(0), Verdict.UNCHANGED),
            _result('new.txt', ExitCode(0), Verdict.NEW, stdout=b'fresh\n'),
            _result(
                'changed.txt',
                ExitCode(0),
                Verdict.CHANGED,
                ['stdout differs'],
                {'stdout': '--- baseline/stdout\n+++ current/stdout\n@@ -1 +1 @@\n-a\n+b\n'},
            ),
            _result('slow.txt', TimedOut(), Verdict.CHANGED, ['timed out']),
            _result('broken.txt', SpawnFailed('boom'), Verdict.CHANGED, ['failed to run: boom']),
        ],
        missing=['gone.txt'],
    )


def test_labels():
    assert [result_label(r) for r in _report().results] == snapshot(['PASS', 'NEW', 'CHANGED', 'TIMEOUT', 'ERROR'])


def test_terminal_summary_default():
    out = io.StringIO()
    TerminalReporter(0, out).print_summary(_report())
    assert out.getvalue() == snapshot("""\
   CHANGED  changed.txt
            stdout differs
   TIMEOUT  slow.txt
            timed out
     ERROR  broken.txt
            failed to run: boom
   MISSING  gone.txt

------------------------------------------------------------
 PASS: 1  NEW: 1  CHANGED: 3  TIMEOUT: 1  ERROR: 1  MISSING: 1  Total: 5
------------------------------------------------------------
""")


def test_terminal_summary_verbose_includes_diffs_and_new_output():
    out = io.StringIO()
    TerminalReporter(1, out).print_summary(_report(), persisted_to='golden.json')
    text = out.getvalue()
    assert '      PASS  pass.txt' in text
    assert '            +b' in text
    assert '            fresh' in text
    assert ' Saved baseline to golden.json' in text


def test_terminal_summary_quiet():
    out = io.StringIO()
    TerminalReporter(-1, out).print_summary(_report())
    assert out.getvalue() == ''


def test_json_report():
    report = build_json_report(_report(), 'update', 'cat')
    assert report['counts'] == snapshot(
        {'new': 1, 'unchanged': 1, 'changed': 3, 'missing': 1, 'timed_out': 1, 'spawn_failed': 1}
    )
    assert report['failed'] is True
    assert report['missing'] == ['gone.txt']
    assert report['results'][3] == snapshot(
        {
            'file': 'slow.txt',
            'verdict': 'changed',
            'label': 'TIMEOUT',
            'exit_status': {'kind': 'timeout'},
            'duration_ms': 500.0,
            'message': 'timed out',
        }
    )


def test_junit_xml():
    xml = build_junit_xml(_report())
    assert xml.splitlines()[1] == snapshot(
        '<testsuite name="goldrun" tests="6" failures="2" errors="2" skipped="0">'
    )
    assert '<error message="timed out"/>' in xml
    assert '<failure message="file missing from this run"/>' in xml
