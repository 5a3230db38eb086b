"""Loading, merging and atomically persisting the baseline database.

The file is pretty-printed JSON with sorted keys so it diffs well under
version control, and so that loading and re-saving an unchanged database
reproduces it byte for byte::

    {
      "global_options": {...},
      "records": {
        "a.txt": {
          "exit_status": {"code": 0, "kind": "exit"},
          "options": {...},
          "stdout": "hello\\n"
        }
      },
      "version": 1
    }

Streams that are valid UTF-8 are stored as strings, anything else as
``{"base64": "..."}``. A missing stream key means the stream was not saved.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import stat
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from .errors import DatabaseCorrupt, DatabaseNotFound, PersistError
from .models import BaselineRecord, BatchReport, Database, TimedOut, exit_status_from_json
from .options import RunOptions

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

PathLike = Union[str, 'os.PathLike[str]']

# ---------------------------------------------------------------------------
# Stream encoding
# ---------------------------------------------------------------------------


def encode_stream(data: bytes) -> Union[str, dict[str, str]]:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return {'base64': base64.b64encode(data).decode('ascii')}


def decode_stream(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    if isinstance(value, Mapping) and isinstance(value.get('base64'), str):
        try:
            return base64.b64decode(value['base64'], validate=True)
        except binascii.Error as exc:
            raise ValueError(f'invalid base64 stream: {exc}') from exc
    raise TypeError(f'invalid stream value: {value!r}')


# ---------------------------------------------------------------------------
# (De)serialization
# ---------------------------------------------------------------------------


def record_to_json(record: BaselineRecord) -> dict[str, Any]:
    data: dict[str, Any] = {
        'exit_status': record.exit_status.to_json(),
        'options': record.options.to_json(),
    }
    if record.stdout is not None:
        data['stdout'] = encode_stream(record.stdout)
    if record.stderr is not None:
        data['stderr'] = encode_stream(record.stderr)
    return data


def record_from_json(data: Mapping[str, Any]) -> BaselineRecord:
    if not isinstance(data, Mapping):
        raise TypeError('record must be an object')
    return BaselineRecord(
        exit_status=exit_status_from_json(data['exit_status']),
        options=RunOptions.from_json(data['options']),
        stdout=decode_stream(data['stdout']) if 'stdout' in data else None,
        stderr=decode_stream(data['stderr']) if 'stderr' in data else None,
    )


def database_to_json(db: Database) -> dict[str, Any]:
    return {
        'version': FORMAT_VERSION,
        'global_options': db.global_options.to_json(),
        'records': {path: record_to_json(record) for path, record in db.records.items()},
    }


def database_from_json(data: Any) -> Database:
    if not isinstance(data, Mapping):
        raise TypeError('top level must be an object')
    version = data.get('version', FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise ValueError(f'unsupported format version {version!r}')
    records = data.get('records', {})
    if not isinstance(records, Mapping):
        raise TypeError('records must be an object')
    return Database(
        global_options=RunOptions.from_json(data['global_options']),
        records={str(path): record_from_json(record) for path, record in records.items()},
    )


def dumps(db: Database) -> str:
    return json.dumps(database_to_json(db), indent=2, sort_keys=True, ensure_ascii=False) + '\n'


# ---------------------------------------------------------------------------
# Load / merge / persist
# ---------------------------------------------------------------------------


def load(path: PathLike) -> Database:
    """Read a database file.

    Raises:
        DatabaseNotFound: if ``path`` does not exist.
        DatabaseCorrupt: if it cannot be read, is not JSON, or does not match
            the schema.
    """
    name = os.fspath(path)
    try:
        text = Path(path).read_text(encoding='utf-8')
    except FileNotFoundError:
        raise DatabaseNotFound(name) from None
    except (OSError, UnicodeDecodeError) as exc:
        raise DatabaseCorrupt(name, f'cannot read database: {exc}') from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DatabaseCorrupt(name, f'invalid JSON: {exc}') from exc

    try:
        db = database_from_json(data)
    except (KeyError, TypeError, ValueError) as exc:
        detail = f'missing field {exc}' if isinstance(exc, KeyError) else str(exc)
        raise DatabaseCorrupt(name, f'invalid database: {detail}') from exc

    logger.debug('loaded %d records from %s', len(db.records), name)
    return db


def merge(
    db: Optional[Database],
    report: BatchReport,
    options: RunOptions,
    *,
    prune: bool = False,
) -> Database:
    """Fold a batch's results into a database, returning a new one.

    Every result in ``report`` becomes the record for its path, replacing any
    earlier one. Records for paths outside the batch are kept unless
    ``prune`` is set. ``options`` become the new ``global_options``.

    Output captured before a timeout is partial and is never stored.
    """
    records: dict[str, BaselineRecord] = {}
    if db is not None and not prune:
        records.update(db.records)

    for result in report.results:
        outcome = result.outcome
        keep_streams = not isinstance(outcome.exit_status, TimedOut)
        records[result.file_path] = BaselineRecord(
            exit_status=outcome.exit_status,
            options=options,
            stdout=outcome.stdout if keep_streams else None,
            stderr=outcome.stderr if keep_streams else None,
        )
    return Database(global_options=options, records=records)


def persist(db: Database, path: PathLike) -> None:
    """Atomically write ``db`` to ``path``.

    The content goes to a temporary file next to ``path`` which then
    replaces it, so the previous database survives any failure.

    Raises:
        PersistError: if the file cannot be written.
    """
    target = Path(path)
    text = dumps(db)
    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f'.{target.name}.', suffix='.tmp', dir=target.parent)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, _file_mode(target))
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise PersistError(os.fspath(path), f'cannot write database: {exc}') from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning('could not remove temporary file %s', tmp_name)
    logger.debug('wrote %d records to %s', len(db.records), target)


def _file_mode(target: Path) -> int:
    """Keep an existing file's permissions; otherwise honour the umask."""
    try:
        return stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask
