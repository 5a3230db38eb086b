"""Fatal error taxonomy and process exit codes.

Per-task problems (timeouts, spawn failures) are never raised; they are
recorded as :mod:`goldrun.models` exit statuses and flow through the normal
aggregation path. Only setup and persistence problems become exceptions.
"""

from __future__ import annotations

EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_SETUP_ERROR = 2
EXIT_PERSIST_ERROR = 3


class GoldrunError(Exception):
    """Base class for errors that abort an invocation."""

    exit_code = EXIT_SETUP_ERROR


class ConfigurationError(GoldrunError):
    """Invalid options, bad ``--env`` entries, or no files to test."""


class DatabaseError(GoldrunError):
    """Base class for problems with the baseline database file."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f'{path}: {message}')
        self.path = path


class DatabaseNotFound(DatabaseError):
    def __init__(self, path: str) -> None:
        super().__init__(path, 'database file does not exist')


class DatabaseCorrupt(DatabaseError):
    pass


class PersistError(DatabaseError):
    """Writing the database failed; the previous file is left untouched."""

    exit_code = EXIT_PERSIST_ERROR
