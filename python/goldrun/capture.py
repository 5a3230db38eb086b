"""Running one test case in a subprocess and capturing its output streams.

The command runs as ``bash -c <command>`` with the test file connected to
its standard input. Each child gets its own session so a timeout can take
down the whole process tree, and :func:`_spawned` guarantees that nothing
outlives the task on any exit path.
"""

from __future__ import annotations

import contextlib
import functools
import logging
import os
import shutil
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any, Optional, TextIO

from .models import ExecutionOutcome, ExitCode, ExitStatus, Signaled, SpawnFailed, TestCase, TimedOut
from .options import StreamMode

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
# Time a process group gets between SIGTERM and SIGKILL.
_KILL_GRACE = 1.0


# ---------------------------------------------------------------------------
# Live output forwarding
# ---------------------------------------------------------------------------


class OutputSink:
    """Forwards live child output to the parent's stdout/stderr.

    Chunks from concurrent tasks may interleave, but each chunk is written
    whole. A disabled sink (``-q``) drops everything.
    """

    def __init__(
        self,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        *,
        enabled: bool = True,
    ) -> None:
        self._stdout = stdout
        self._stderr = stderr
        self._enabled = enabled
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def write(self, stream_name: str, chunk: bytes) -> None:
        if not self._enabled or not chunk:
            return
        if stream_name == 'stdout':
            stream = self._stdout or sys.stdout
        else:
            stream = self._stderr or sys.stderr
        with self._lock:
            buffer = getattr(stream, 'buffer', None)
            if buffer is not None:
                stream.flush()
                buffer.write(chunk)
                buffer.flush()
            else:
                stream.write(chunk.decode('utf-8', errors='replace'))
                stream.flush()


# ---------------------------------------------------------------------------
# Stream readers
# ---------------------------------------------------------------------------


class _StreamReader(threading.Thread):
    """Drains one pipe until EOF, keeping and/or forwarding chunks."""

    def __init__(self, stream_name: str, pipe: IO[bytes], mode: StreamMode, sink: OutputSink) -> None:
        super().__init__(name=f'goldrun-{stream_name}', daemon=True)
        self.stream_name = stream_name
        self.error: Optional[BaseException] = None
        self._pipe = pipe
        self._mode = mode
        self._sink = sink
        self._chunks: list[bytes] = []

    def run(self) -> None:
        try:
            while True:
                chunk = self._pipe.read1(_CHUNK_SIZE)  # type: ignore[attr-defined]
                if not chunk:
                    break
                if self._mode.saves:
                    self._chunks.append(chunk)
                if self._mode.prints:
                    self._sink.write(self.stream_name, chunk)
        except (OSError, ValueError) as exc:
            self.error = exc
        finally:
            with contextlib.suppress(OSError):
                self._pipe.close()

    def data(self) -> Optional[bytes]:
        if not self._mode.saves:
            return None
        return b''.join(list(self._chunks))


# ---------------------------------------------------------------------------
# Process lifetime
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def _shell() -> str:
    return shutil.which('bash') or '/bin/bash'


def _popen_group_kwargs() -> dict[str, Any]:
    if os.name == 'nt':
        return {'creationflags': getattr(subprocess, 'CREATE_NEW_PROCESS_GROUP', 0)}
    return {'start_new_session': True}


def _signal_group(pgid: int, sig: int) -> None:
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pgid, sig)


def _terminate_process_tree(proc: subprocess.Popen[bytes], *, grace: float = _KILL_GRACE) -> None:
    """SIGTERM the child's process group, then SIGKILL whatever is left."""
    if os.name == 'nt':
        with contextlib.suppress(OSError):
            proc.kill()
    else:
        _signal_group(proc.pid, signal.SIGTERM)
        with contextlib.suppress(subprocess.TimeoutExpired):
            proc.wait(timeout=grace)
        _signal_group(proc.pid, signal.SIGKILL)
    with contextlib.suppress(subprocess.TimeoutExpired):
        proc.wait(timeout=grace)


@contextlib.contextmanager
def _spawned(argv: list[str], **popen_kwargs: Any) -> Iterator[subprocess.Popen[bytes]]:
    """Start a child in its own process group; wait for or kill it on exit."""
    proc = subprocess.Popen(argv, **popen_kwargs, **_popen_group_kwargs())
    logger.debug('spawned pid %d: %s', proc.pid, argv)
    try:
        yield proc
    finally:
        if proc.poll() is None:
            _terminate_process_tree(proc)
        elif os.name != 'nt':
            # The child is gone; take down any background descendants it left.
            _signal_group(proc.pid, signal.SIGKILL)


def _pipe_for(mode: StreamMode) -> int:
    return subprocess.DEVNULL if mode is StreamMode.NONE else subprocess.PIPE


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_test_case(case: TestCase, sink: Optional[OutputSink] = None) -> ExecutionOutcome:
    """Run ``case`` once and describe what happened.

    The timeout starts now and covers both process exit and draining the
    output streams, so a background child holding a pipe open cannot hang
    the task.

    Args:
        case: The test case to run.
        sink: Destination for ``print``/``both`` streams (default: this
            process's stdout/stderr).

    Returns:
        The outcome. Failures to start or read the process are reported as
        ``SpawnFailed`` rather than raised.
    """
    sink = sink or OutputSink()
    start = time.monotonic()
    try:
        return _run(case, sink, start)
    except (OSError, ValueError) as exc:
        # ValueError: Popen rejects NUL bytes and '=' in variable names.
        logger.debug('could not run %s: %s', case.file_path, exc)
        return ExecutionOutcome(
            exit_status=SpawnFailed(_describe_error(exc)),
            wall_duration=time.monotonic() - start,
        )


def _run(case: TestCase, sink: OutputSink, start: float) -> ExecutionOutcome:
    deadline = start + case.timeout
    input_path = Path(case.working_directory) / case.file_path

    with open(input_path, 'rb') as stdin, _spawned(
        [_shell(), '-c', case.command],
        cwd=case.working_directory,
        env=dict(case.environment),
        stdin=stdin,
        stdout=_pipe_for(case.stdout_mode),
        stderr=_pipe_for(case.stderr_mode),
    ) as proc:
        readers = []
        if proc.stdout is not None:
            readers.append(_StreamReader('stdout', proc.stdout, case.stdout_mode, sink))
        if proc.stderr is not None:
            readers.append(_StreamReader('stderr', proc.stderr, case.stderr_mode, sink))
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            proc.wait(timeout=_remaining(deadline))
        except subprocess.TimeoutExpired:
            timed_out = True
        else:
            for reader in readers:
                reader.join(_remaining(deadline))
            timed_out = any(reader.is_alive() for reader in readers)

        if timed_out:
            logger.debug('%s timed out after %.1fs, killing pid %d', case.file_path, case.timeout, proc.pid)
            _terminate_process_tree(proc)
            for reader in readers:
                reader.join(_KILL_GRACE)
        returncode = proc.returncode

    captured = {reader.stream_name: reader for reader in readers}
    status = _exit_status(returncode, timed_out, readers)
    return ExecutionOutcome(
        exit_status=status,
        stdout=captured['stdout'].data() if 'stdout' in captured else None,
        stderr=captured['stderr'].data() if 'stderr' in captured else None,
        wall_duration=time.monotonic() - start,
    )


def _exit_status(returncode: Optional[int], timed_out: bool, readers: list[_StreamReader]) -> ExitStatus:
    if timed_out:
        return TimedOut()
    for reader in readers:
        if reader.error is not None:
            return SpawnFailed(f'error reading {reader.stream_name}: {reader.error}')
    if returncode is None:
        return SpawnFailed('process did not report an exit status')
    if returncode < 0:
        return Signaled(-returncode)
    return ExitCode(returncode)


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, OSError) and exc.filename is not None:
        return f'{exc.strerror or exc}: {exc.filename}'
    return str(exc)
