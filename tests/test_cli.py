"""
CLI tests for the commands that run without Google credentials.
"""

import pytest
import yaml

from calmirror.cli import main
from calmirror.config import create_example_config
from calmirror.store import StateDatabase


@pytest.fixture
def config_path(tmp_path):
    data = yaml.safe_load(create_example_config())
    data["data_dir"] = str(tmp_path / "data")
    data.pop("log_file")
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_config_example(capsys):
    assert main(["config", "--example"]) == 0
    assert "mirror_rules:" in capsys.readouterr().out


def test_config_shows_rules(config_path, capsys):
    assert main(["--config", str(config_path), "config"]) == 0
    out = capsys.readouterr().out
    assert "[work_to_personal] work.primary → personal.primary" in out
    assert "Configuration is valid" in out


def test_missing_config_file(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "absent.yaml"), "sync"]) == 1
    assert "Configuration file not found" in capsys.readouterr().out


def test_sync_list(config_path, capsys):
    assert main(["--config", str(config_path), "sync", "--list"]) == 0
    assert "work_to_personal" in capsys.readouterr().out


def test_sync_unknown_rule(config_path, capsys):
    assert main(["--config", str(config_path), "sync", "nope"]) == 1
    assert "Mirror rule 'nope' not found" in capsys.readouterr().out


def test_purge_requires_explicit_target(config_path, capsys):
    assert main(["--config", str(config_path), "purge"]) == 1
    assert "SAFETY ERROR" in capsys.readouterr().out


def test_status_reports_stored_state(config_path, tmp_path, capsys):
    with StateDatabase(tmp_path / "data" / "state.db") as db:
        pair_key = "me@company.com|me@gmail.com"
        db.sync_state_store(pair_key).set_sync_token("tok")
        db.sync_state_store(pair_key).increment_error_count()
        db.mapping_store(pair_key).set_mapping("S1", "T1")

    assert main(["--config", str(config_path), "status"]) == 0
    out = capsys.readouterr().out
    assert "Sync token: ✅ present" in out
    assert "Consecutive errors: 1/3" in out
    assert "Mirrored events: 1" in out
