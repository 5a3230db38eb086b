from __future__ import annotations

import logging
from pathlib import Path

import pytest

from goldrun.capture import OutputSink


@pytest.fixture(autouse=True)
def _reset_goldrun_logger():
    yield
    logger = logging.getLogger('goldrun')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def silent_sink() -> OutputSink:
    return OutputSink(enabled=False)


@pytest.fixture
def make_files(tmp_path: Path):
    """Create files under ``tmp_path`` from a ``{relative path: content}`` dict."""

    def make(files: dict[str, str | bytes]) -> Path:
        for name, content in files.items():
            path = tmp_path / name
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
        return tmp_path

    return make
