from __future__ import annotations

import pytest

from goldrun.environment import build_environment, parse_env_assignments
from goldrun.errors import ConfigurationError


def test_parse_assignments():
    assert parse_env_assignments(['A=1', 'B=', 'A=2']) == {'A': '2', 'B': ''}


@pytest.mark.parametrize('entry', ['NOEQUALS', 'A=1=2', '=value'])
def test_parse_rejects_malformed_entries(entry):
    with pytest.raises(ConfigurationError, match='invalid --env entry'):
        parse_env_assignments([entry])


def test_empty_environment_by_default():
    assert build_environment(False, {'A': '1'}, inherited={'HOME': '/root'}) == {'A': '1'}


def test_preserve_inherits_and_overrides_win():
    env = build_environment(True, {'HOME': '/tmp'}, inherited={'HOME': '/root', 'LANG': 'C'})
    assert env == {'HOME': '/tmp', 'LANG': 'C'}


def test_preserve_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv('GOLDRUN_TEST_VAR', 'yes')
    assert build_environment(True, {})['GOLDRUN_TEST_VAR'] == 'yes'
