"""Run options, their built-in defaults, and precedence resolution.

Options come from three places, highest priority first:

1. the command line (:class:`OptionOverrides`, every field optional),
2. the ``global_options`` stored in a database (update mode only),
3. the built-in defaults below.

:func:`resolve_options` collapses them into a fully populated
:class:`RunOptions`.
"""

from __future__ import annotations

import enum
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .errors import ConfigurationError


class StreamMode(str, enum.Enum):
    """What to do with one of the child's output streams."""

    NONE = 'none'
    SAVE = 'save'
    PRINT = 'print'
    BOTH = 'both'

    @property
    def saves(self) -> bool:
        """Bytes are retained for comparison and persistence."""
        return self in (StreamMode.SAVE, StreamMode.BOTH)

    @property
    def prints(self) -> bool:
        """Bytes are forwarded live to the parent's own stream."""
        return self in (StreamMode.PRINT, StreamMode.BOTH)

    def __str__(self) -> str:
        return self.value


DEFAULT_STDOUT_MODE = StreamMode.BOTH
DEFAULT_STDERR_MODE = StreamMode.PRINT
DEFAULT_PRESERVE_ENV = False
DEFAULT_TIMEOUT = 10.0


def default_jobs() -> int:
    """Worker pool size when ``--jobs`` is not given."""
    return 2 * (os.cpu_count() or 1)


def _valid_timeout(timeout: float) -> bool:
    return math.isfinite(timeout) and timeout > 0


@dataclass(frozen=True)
class RunOptions:
    """Fully resolved options for one batch."""

    command: str
    directory: Optional[str] = None
    files: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)
    preserve_env: bool = DEFAULT_PRESERVE_ENV
    timeout: float = DEFAULT_TIMEOUT
    stdout_mode: StreamMode = DEFAULT_STDOUT_MODE
    stderr_mode: StreamMode = DEFAULT_STDERR_MODE

    @property
    def base_dir(self) -> str:
        return self.directory or '.'

    def to_json(self) -> dict[str, Any]:
        return {
            'command': self.command,
            'directory': self.directory,
            'files': self.files,
            'env': dict(self.env),
            'preserve_env': self.preserve_env,
            'timeout': float(self.timeout),
            'stdout_mode': self.stdout_mode.value,
            'stderr_mode': self.stderr_mode.value,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> RunOptions:
        """Build options from their stored form.

        Raises:
            ValueError, TypeError, KeyError: if ``data`` is malformed. The
                database layer turns these into ``DatabaseCorrupt``.
        """
        if not isinstance(data, Mapping):
            raise TypeError('options must be an object')
        command = data['command']
        if not isinstance(command, str):
            raise TypeError('command must be a string')
        if '\x00' in command:
            raise ValueError('command contains a NUL byte')
        env = data.get('env', {})
        if not isinstance(env, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in env.items()
        ):
            raise TypeError('env must map strings to strings')
        for key, value in env.items():
            if not key or '=' in key or '\x00' in key or '\x00' in value:
                raise ValueError(f'invalid environment variable {key!r}')
        timeout = data.get('timeout', DEFAULT_TIMEOUT)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not _valid_timeout(timeout):
            raise ValueError(f'invalid timeout: {timeout!r}')
        preserve_env = data.get('preserve_env', DEFAULT_PRESERVE_ENV)
        if not isinstance(preserve_env, bool):
            raise TypeError('preserve_env must be a boolean')
        for key in ('directory', 'files'):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise TypeError(f'{key} must be a string or null')
        return cls(
            command=command,
            directory=data.get('directory'),
            files=data.get('files'),
            env=dict(env),
            preserve_env=preserve_env,
            timeout=float(timeout),
            stdout_mode=StreamMode(data.get('stdout_mode', DEFAULT_STDOUT_MODE.value)),
            stderr_mode=StreamMode(data.get('stderr_mode', DEFAULT_STDERR_MODE.value)),
        )


@dataclass(frozen=True)
class OptionOverrides:
    """Options given on the command line; ``None`` means "not specified"."""

    command: Optional[str] = None
    directory: Optional[str] = None
    files: Optional[str] = None
    env: Optional[Mapping[str, str]] = None
    preserve_env: Optional[bool] = None
    timeout: Optional[float] = None
    stdout_mode: Optional[StreamMode] = None
    stderr_mode: Optional[StreamMode] = None


def resolve_options(
    overrides: OptionOverrides,
    stored: Optional[RunOptions] = None,
) -> RunOptions:
    """Apply command line > stored > default precedence.

    A non-empty command-line environment replaces the stored environment as a
    whole; entries are never merged key by key.

    Args:
        overrides: Values given on the command line.
        stored: The database's ``global_options``, if any.

    Returns:
        The effective options for this batch.

    Raises:
        ConfigurationError: if no command is available or the timeout is not
            positive.
    """
    base = stored
    if base is None:
        if overrides.command is None:
            raise ConfigurationError('no command given')
        base = RunOptions(command=overrides.command)

    if overrides.timeout is not None and not _valid_timeout(overrides.timeout):
        raise ConfigurationError(f'timeout must be a positive number of seconds, got {overrides.timeout}')

    changes: dict[str, Any] = {}
    for name in ('command', 'directory', 'files', 'preserve_env', 'timeout', 'stdout_mode', 'stderr_mode'):
        value = getattr(overrides, name)
        if value is not None:
            changes[name] = value
    if overrides.env:
        changes['env'] = dict(overrides.env)
    if 'timeout' in changes:
        changes['timeout'] = float(changes['timeout'])
    return replace(base, **changes)
