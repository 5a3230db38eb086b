from __future__ import annotations

from inline_snapshot import snapshot

from goldrun.compare import compare, generate_diff
from goldrun.models import (
    BaselineRecord,
    ExecutionOutcome,
    ExitCode,
    Signaled,
    SpawnFailed,
    TimedOut,
    Verdict,
)
from goldrun.options import RunOptions

OPTIONS = RunOptions(command='cat')


def _baseline(status=ExitCode(0), stdout=b'hello\n', stderr=None) -> BaselineRecord:
    return BaselineRecord(exit_status=status, options=OPTIONS, stdout=stdout, stderr=stderr)


def test_no_baseline_is_new():
    result = compare(ExecutionOutcome(ExitCode(1), stdout=b'x'), None)
    assert result.verdict == Verdict.NEW
    assert not result.failed


def test_identical_is_unchanged():
    result = compare(ExecutionOutcome(ExitCode(0), stdout=b'hello\n'), _baseline())
    assert result.verdict == Verdict.UNCHANGED
    assert result.details == ()


def test_exit_status_differs():
    result = compare(ExecutionOutcome(ExitCode(2), stdout=b'hello\n'), _baseline())
    assert result.verdict == Verdict.CHANGED
    assert result.message == snapshot('exit status differs (baseline: exit 0, current: exit 2)')


def test_signal_vs_exit_code():
    result = compare(ExecutionOutcome(Signaled(9), stdout=b'hello\n'), _baseline())
    assert result.message == snapshot('exit status differs (baseline: exit 0, current: killed by signal 9)')


def test_stdout_differs_with_diff():
    result = compare(ExecutionOutcome(ExitCode(0), stdout=b'goodbye\n'), _baseline())
    assert result.verdict == Verdict.CHANGED
    assert result.details == ('stdout differs',)
    assert result.diffs['stdout'] == snapshot("""\
--- baseline/stdout
+++ current/stdout
@@ -1 +1 @@
-hello
+goodbye
""")


def test_stream_saved_on_one_side_only():
    result = compare(ExecutionOutcome(ExitCode(0), stdout=b'hello\n', stderr=b''), _baseline())
    assert result.details == ('stderr not saved in baseline',)

    result = compare(ExecutionOutcome(ExitCode(0)), _baseline())
    assert result.details == ('stdout no longer saved',)


def test_streams_saved_on_neither_side_are_ignored():
    result = compare(ExecutionOutcome(ExitCode(0)), _baseline(stdout=None))
    assert result.verdict == Verdict.UNCHANGED


def test_timeout_is_changed_even_without_baseline():
    result = compare(ExecutionOutcome(TimedOut()), None)
    assert result.verdict == Verdict.CHANGED
    assert result.message == 'timed out'


def test_recorded_timeout_never_matches():
    result = compare(ExecutionOutcome(ExitCode(0), stdout=b'hello\n'), _baseline(status=TimedOut(), stdout=None))
    assert result.verdict == Verdict.CHANGED
    assert result.details == snapshot(
        (
            'exit status differs (baseline: timed out, current: exit 0)',
            'stdout not saved in baseline',
        )
    )


def test_spawn_failure_is_changed():
    result = compare(ExecutionOutcome(SpawnFailed('No such file or directory: a.txt')), _baseline())
    assert result.verdict == Verdict.CHANGED
    assert result.message == snapshot('failed to run: No such file or directory: a.txt')


def test_comparison_is_byte_exact():
    result = compare(ExecutionOutcome(ExitCode(0), stdout=b'hello\r\n'), _baseline())
    assert result.verdict == Verdict.CHANGED


def test_diff_of_undecodable_bytes_falls_back_to_sizes():
    assert generate_diff(b'\xff', b'\xfe', 'stdout') == snapshot('stdout: 1 bytes in baseline, 1 bytes now\n')
