"""Command-line interface.

Examples::

    goldrun run 'wc -l' 'tests/*.txt'
    goldrun record './parse' '**/*.in' golden.json -t 30
    goldrun -v update golden.json
    goldrun -n update golden.json --command './parse --fast'
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional

from .environment import parse_env_assignments
from .errors import EXIT_PERSIST_ERROR, GoldrunError
from .log import QUIET, configure_logging
from .modes import Invocation, Mode, ModeResult, execute
from .options import (
    DEFAULT_PRESERVE_ENV,
    DEFAULT_STDERR_MODE,
    DEFAULT_STDOUT_MODE,
    DEFAULT_TIMEOUT,
    OptionOverrides,
    StreamMode,
)
from .report import TerminalReporter, build_json_report, build_junit_xml

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f'must be at least 1, got {number}')
    return number


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    modes = [m.value for m in StreamMode]
    parser.add_argument(
        '-d', '--directory',
        default=None,
        help='Directory the file pattern is relative to and commands run in (default: .)',
    )
    parser.add_argument(
        '--stdout-mode',
        choices=modes,
        default=None,
        help=f'What to do with stdout: none, save, print or both (default: {DEFAULT_STDOUT_MODE})',
    )
    parser.add_argument(
        '--stderr-mode',
        choices=modes,
        default=None,
        help=f'What to do with stderr (default: {DEFAULT_STDERR_MODE})',
    )
    parser.add_argument(
        '-e', '--env',
        action='append',
        default=[],
        metavar='KEY=VALUE',
        help='Set an environment variable for the command (repeatable)',
    )
    parser.add_argument(
        '-E', '--preserve-env',
        action=argparse.BooleanOptionalAction,
        default=None,
        help=f'Start from the current environment instead of an empty one (default: {DEFAULT_PRESERVE_ENV})',
    )
    parser.add_argument(
        '-t', '--timeout',
        type=float,
        default=None,
        help=f'Per-file timeout in seconds (default: {DEFAULT_TIMEOUT:g})',
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='goldrun',
        description='Golden-output regression testing for command-line programs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Exit status:
              0  every file passed (or was newly recorded)
              1  at least one file changed, timed out, failed to start or is missing
              2  invalid options or unreadable database
              3  the database could not be written
        """),
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Show every file and its diffs; -vv adds progress ticks and debug logging',
    )
    verbosity.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Print nothing; only the exit status reports the result',
    )
    parser.add_argument(
        '-n', '--dry-run',
        action='store_true',
        help='Run the tests but never write the database',
    )
    parser.add_argument(
        '-j', '--jobs',
        type=_positive_int,
        default=None,
        help='Number of files tested concurrently (default: twice the CPU count)',
    )
    parser.add_argument('--json', default=None, metavar='PATH', help='Write a JSON report to this file path')
    parser.add_argument('--junit', default=None, metavar='PATH', help='Write JUnit XML results to this file path')

    sub = parser.add_subparsers(dest='mode', required=True, metavar='MODE')

    run = sub.add_parser('run', help='Run a command over files without a baseline')
    run.add_argument('command', help='Shell command; each file is fed to it on stdin')
    run.add_argument('files', help='Glob pattern of input files (** matches directories)')
    _add_run_options(run)

    record = sub.add_parser('record', help='Run a command over files and save the results as the baseline')
    record.add_argument('command', help='Shell command; each file is fed to it on stdin')
    record.add_argument('files', help='Glob pattern of input files (** matches directories)')
    record.add_argument('database', help='Baseline database file to create or overwrite')
    _add_run_options(record)
    record.add_argument('--prune', action='store_true', help='Drop records for files not in this run')

    update = sub.add_parser('update', help='Re-run a recorded baseline and report what changed')
    update.add_argument('database', help='Existing baseline database file')
    update.add_argument('--command', default=None, help='Replace the recorded command')
    update.add_argument('--files', default=None, help='Replace the recorded file list with a glob pattern')
    _add_run_options(update)
    update.add_argument('--prune', action='store_true', help='Drop records for files not in this run')

    return parser


def _invocation(args: argparse.Namespace) -> Invocation:
    verbosity = QUIET if args.quiet else args.verbose
    overrides = OptionOverrides(
        command=args.command,
        directory=args.directory,
        files=args.files,
        env=parse_env_assignments(args.env),
        preserve_env=args.preserve_env,
        timeout=args.timeout,
        stdout_mode=StreamMode(args.stdout_mode) if args.stdout_mode else None,
        stderr_mode=StreamMode(args.stderr_mode) if args.stderr_mode else None,
    )
    return Invocation(
        mode=Mode(args.mode),
        overrides=overrides,
        database_path=getattr(args, 'database', None),
        dry_run=args.dry_run,
        prune=getattr(args, 'prune', False),
        jobs=args.jobs,
        verbosity=verbosity,
    )


def _write_reports(args: argparse.Namespace, result: ModeResult) -> bool:
    """Write ``--json`` / ``--junit`` files; False if any could not be written."""
    ok = True
    if args.json:
        report = build_json_report(result.report, str(result.mode), result.options.command)
        ok &= _write_text(args.json, json.dumps(report, indent=2) + '\n', 'JSON report')
    if args.junit:
        ok &= _write_text(args.junit, build_junit_xml(result.report) + '\n', 'JUnit XML')
    return ok


def _write_text(path: str, text: str, what: str) -> bool:
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding='utf-8')
    except OSError as exc:
        logger.error('could not write %s to %s: %s', what, path, exc)
        return False
    logger.info('%s written to %s', what, path)
    return True


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Process exit code, see ``goldrun --help``.
    """
    args = build_parser().parse_args(argv)
    verbosity = QUIET if args.quiet else args.verbose
    configure_logging(verbosity)

    try:
        invocation = _invocation(args)
        result = execute(invocation)
    except GoldrunError as exc:
        logger.error('%s', exc)
        return exc.exit_code

    TerminalReporter(verbosity).print_summary(
        result.report,
        persisted_to=invocation.database_path if result.persisted else None,
    )
    if not _write_reports(args, result):
        return EXIT_PERSIST_ERROR
    return result.exit_code


if __name__ == '__main__':
    sys.exit(main())
