"""
Command line tests against the simulated echo provider.
"""

import json

import matplotlib
import pytest
import yaml

from chiroptera.cli import main

matplotlib.use('Agg')


@pytest.fixture
def log_args(tmp_path):
    return ['--log-dir', str(tmp_path / 'logs')]


def test_ping_simulated_json(log_args, capsys):
    code = main(log_args + ['ping', '--simulate-distance', '1.0', '--count', '3', '--json'])

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert len(data['pings']) == 3
    for ping in data['pings']:
        assert ping['distanceMeters'] == pytest.approx(1.0, abs=0.01)
        assert ping['confidence'] > 0.5
    assert data['measurement']['sampleCount'] == 3
    assert data['measurement']['standardDeviation'] == pytest.approx(0.0, abs=1e-9)
    assert data['session']['totalPings'] == 3
    assert data['session']['state'] == 'completed'


def test_ping_text_output(log_args, capsys):
    code = main(log_args + ['ping', '--preset', 'indoor', '--simulate-distance', '2.0',
                            '--count', '2', '--direction', '1', '0', '0'])

    assert code == 0
    out = capsys.readouterr().out
    assert out.count('距离') == 2
    assert '聚合' in out


def test_ping_rejects_zero_direction(log_args, capsys):
    code = main(log_args + ['ping', '--simulate-distance', '1.0', '--direction', '0', '0', '0'])

    assert code == 2
    assert 'INVALID_ARGUMENT' in capsys.readouterr().err


def test_validate(log_args, tmp_path, capsys):
    good = tmp_path / 'good.yaml'
    good.write_text(yaml.safe_dump({'preset': 'outdoor', 'name': 'yard'}), encoding='utf-8')
    bad = tmp_path / 'bad.yaml'
    bad.write_text(yaml.safe_dump({'chirp': {'frequency_end': 30000}}), encoding='utf-8')

    assert main(log_args + ['validate', str(good)]) == 0
    assert 'yard' in capsys.readouterr().out
    assert main(log_args + ['validate', str(bad)]) == 2
    assert 'INVALID_CONFIG' in capsys.readouterr().err


def test_unreadable_profiles_report_error_code(log_args, tmp_path, capsys):
    broken = tmp_path / 'broken.yaml'
    broken.write_text('chirp: [1, 2\n', encoding='utf-8')

    assert main(log_args + ['validate', str(tmp_path / 'absent.yaml')]) == 2
    assert 'INVALID_CONFIG' in capsys.readouterr().err
    assert main(log_args + ['ping', '--config', str(broken), '--simulate-distance', '1.0']) == 2
    assert 'INVALID_CONFIG' in capsys.readouterr().err


def test_diagnose_writes_figure(log_args, tmp_path, capsys):
    out = tmp_path / 'diag.png'

    code = main(log_args + ['diagnose', '--simulate-distance', '0.5', '--out', str(out)])

    assert code == 0
    assert out.exists() and out.stat().st_size > 0
    assert '0.5' in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert 'usage' in capsys.readouterr().out
