"""Resolving a glob pattern into the ordered list of files to test."""

from __future__ import annotations

import glob
import os
from collections.abc import Iterable
from pathlib import Path, PurePath


def resolve_files(pattern: str, base_dir: str = '.') -> list[str]:
    """Expand ``pattern`` relative to ``base_dir``.

    ``**`` matches any number of directories. Directories and other
    non-regular files are dropped.

    Args:
        pattern: Glob pattern, relative to ``base_dir``.
        base_dir: Directory the pattern (and the returned paths) are relative to.

    Returns:
        Sorted, de-duplicated paths relative to ``base_dir`` using ``/``
        separators. Empty if nothing matched.
    """
    base = Path(base_dir)
    matches = glob.glob(pattern, root_dir=base, recursive=True)
    return _normalize(m for m in matches if (base / m).is_file())


def existing_files(paths: Iterable[str], base_dir: str = '.') -> list[str]:
    """Keep the entries of ``paths`` that still exist under ``base_dir``."""
    base = Path(base_dir)
    return _normalize(p for p in paths if (base / p).is_file())


def _normalize(paths: Iterable[str]) -> list[str]:
    seen = {PurePath(os.path.normpath(p)).as_posix() for p in paths}
    return sorted(seen)
