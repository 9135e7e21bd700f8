"""Test engine settings loading."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest
from pydantic import ValidationError

from taskweave.settings import Settings


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()

    assert settings.dag_max_nodes == 10000
    assert settings.dag_max_edges == 50000
    assert settings.dag_enforce_limits is False
    assert settings.dag_max_ready_tasks_limit == 100
    assert settings.telemetry_enabled is False


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DAG_MAX_NODES", "5")
    monkeypatch.setenv("DAG_ENFORCE_LIMITS", "true")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    settings = Settings()
    assert settings.dag_max_nodes == 5
    assert settings.dag_enforce_limits is True
    assert settings.log_level == "DEBUG"


def test_env_file_is_read(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("DAG_MAX_EDGES=7\nSOMETHING_ELSE=ignored\n")

    assert Settings().dag_max_edges == 7


def test_invalid_limits_rejected(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Settings(dag_max_nodes=0)
