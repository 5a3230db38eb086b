"""Tests for the command-line entry point and its exit codes."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from xml.etree import ElementTree

import pytest

import goldrun
from goldrun.cli import build_parser, main


@pytest.fixture
def root(make_files):
    return make_files({'a.txt': 'one\n', 'b.txt': 'two\n'})


def _record(root, command='echo hello', *extra):
    return main(['record', command, '*.txt', str(root / 'golden.json'), '-d', str(root), '--stdout-mode', 'save', *extra])


def test_record_then_update_passes(root, capsys):
    assert _record(root) == 0
    assert main(['update', str(root / 'golden.json')]) == 0
    out = capsys.readouterr().out
    assert 'PASS: 2' in out
    assert 'Saved baseline to' in out


def test_changed_output_exits_1(root, capsys):
    _record(root)
    capsys.readouterr()
    assert main(['update', str(root / 'golden.json'), '--command', 'echo bye']) == 1
    out = capsys.readouterr().out
    assert 'CHANGED  a.txt' in out
    assert 'stdout differs' in out
    # Diffs only at -v.
    assert '+bye' not in out


def test_verbose_shows_diffs(root, capsys):
    _record(root)
    capsys.readouterr()
    assert main(['-v', '-n', 'update', str(root / 'golden.json'), '--command', 'echo bye']) == 1
    out = capsys.readouterr().out
    assert '-hello' in out
    assert '+bye' in out
    assert 'Saved baseline' not in out


def test_quiet_prints_nothing(root, capsys):
    assert main(['-q', 'run', 'cat; echo err >&2', '*.txt', '-d', str(root)]) == 0
    assert capsys.readouterr() == ('', '')


def test_run_prints_output_live(root, capsys):
    assert main(['run', 'cat', 'a.txt', '-d', str(root)]) == 0
    assert 'one\n' in capsys.readouterr().out


def test_missing_file_in_update_exits_1(root, capsys):
    _record(root)
    (root / 'b.txt').unlink()
    assert main(['update', str(root / 'golden.json')]) == 1
    assert 'MISSING  b.txt' in capsys.readouterr().out


def test_bad_env_entry_exits_2(root, capsys):
    assert main(['run', 'cat', '*.txt', '-d', str(root), '-e', 'NOEQUALS']) == 2
    assert 'invalid --env entry' in capsys.readouterr().err


def test_missing_database_exits_2(tmp_path, capsys):
    assert main(['update', str(tmp_path / 'nope.json')]) == 2
    assert 'database file does not exist' in capsys.readouterr().err


def test_no_matching_files_exits_2(root):
    assert main(['run', 'cat', '*.nothing', '-d', str(root)]) == 2


def test_unwritable_database_exits_3(root, capsys):
    code = main(['record', 'cat', '*.txt', str(root / 'no-such-dir' / 'golden.json'), '-d', str(root)])
    assert code == 3
    assert 'cannot write database' in capsys.readouterr().err


def test_env_and_preserve_flags(root, monkeypatch):
    monkeypatch.setenv('GOLDRUN_OUTER', 'outer')
    assert _record(root, 'echo "$GOLDRUN_OUTER/$X"', '-E', '-e', 'X=1') == 0
    db = json.loads((root / 'golden.json').read_text())
    assert db['records']['a.txt']['stdout'] == 'outer/1\n'
    assert db['global_options']['preserve_env'] is True

    # --no-preserve-env overrides the stored value.
    assert main(['-n', 'update', str(root / 'golden.json'), '--no-preserve-env']) == 1


def test_json_and_junit_reports(root, tmp_path):
    _record(root)
    json_path = tmp_path / 'out' / 'report.json'
    junit_path = tmp_path / 'out' / 'report.xml'
    code = main([
        '-q', '-n', '--json', str(json_path), '--junit', str(junit_path),
        'update', str(root / 'golden.json'), '--command', 'echo bye',
    ])
    assert code == 1

    report = json.loads(json_path.read_text())
    assert report['mode'] == 'update'
    assert report['command'] == 'echo bye'
    assert report['counts']['changed'] == 2
    assert [r['verdict'] for r in report['results']] == ['changed', 'changed']

    suite = ElementTree.parse(junit_path).getroot()
    assert suite.get('tests') == '2'
    assert suite.get('failures') == '2'
    assert len(suite.findall('testcase/failure')) == 2


def test_invalid_choice_is_an_argparse_error(root):
    with pytest.raises(SystemExit) as exc_info:
        main(['run', 'cat', '*.txt', '--stdout-mode', 'loud'])
    assert exc_info.value.code == 2


def test_parser_defaults_leave_options_unset():
    args = build_parser().parse_args(['update', 'db.json'])
    assert (args.command, args.files, args.timeout, args.preserve_env, args.stdout_mode) == (
        None, None, None, None, None,
    )
    assert args.env == []


def test_module_entry_point():
    env = dict(os.environ, PYTHONPATH=str(Path(goldrun.__file__).resolve().parent.parent))
    proc = subprocess.run(
        [sys.executable, '-m', 'goldrun', '--help'],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )
    assert proc.returncode == 0
    assert 'record' in proc.stdout


@pytest.mark.parametrize('timeout', ['nan', 'inf', '0', '-2'])
def test_invalid_timeout_exits_2(root, capsys, timeout):
    assert main(['run', 'cat', '*.txt', '-d', str(root), '-t', timeout]) == 2
    captured = capsys.readouterr()
    assert 'timeout must be a positive number of seconds' in captured.err
    assert 'TIMEOUT' not in captured.out


def test_hand_edited_database_with_unusable_env_exits_2(root, capsys):
    _record(root)
    path = root / 'golden.json'
    data = json.loads(path.read_text())
    data['global_options']['env'] = {'A=B': 'x'}
    path.write_text(json.dumps(data))

    assert main(['update', str(path)]) == 2
    assert 'invalid environment variable' in capsys.readouterr().err
