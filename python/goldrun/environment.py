"""Assembling the environment handed to each child process."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Optional

from .errors import ConfigurationError


def parse_env_assignments(entries: Iterable[str]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` command-line entries.

    Each entry must contain exactly one ``=`` and a non-empty key. Later
    entries win over earlier ones with the same key.

    Raises:
        ConfigurationError: on a malformed entry.
    """
    env: dict[str, str] = {}
    for entry in entries:
        if entry.count('=') != 1:
            raise ConfigurationError(f'invalid --env entry {entry!r}: expected exactly one "="')
        key, value = entry.split('=')
        if not key:
            raise ConfigurationError(f'invalid --env entry {entry!r}: empty variable name')
        env[key] = value
    return env


def build_environment(
    preserve: bool,
    overrides: Mapping[str, str],
    inherited: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Return the environment for a child process.

    Args:
        preserve: Start from the inherited environment instead of an empty one.
        overrides: Explicit variables; these always win.
        inherited: Environment to preserve (defaults to ``os.environ``).

    Returns:
        A fresh dict; callers may keep it without affecting other tasks.
    """
    env: dict[str, str] = {}
    if preserve:
        env.update(os.environ if inherited is None else inherited)
    env.update(overrides)
    return env
