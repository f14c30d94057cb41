from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from switchyard_cli.main import app
from switchyard_core import __version__
from typer.testing import CliRunner

runner = CliRunner()

CONFIG = """
[logging]
level = "WARNING"

[adapters.echo]
version = "1.0.0"
max_context_tokens = 100000
languages = ["python"]
multi_file = true
features = { comprehension = true, explanation = true, generation = true, refactoring = true }
"""


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger = logging.getLogger("switchyard")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "switchyard.toml"
    path.write_text(CONFIG)
    return path


def _tasks(tmp_path: Path, tasks) -> Path:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps(tasks))
    return path


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"switchyard {__version__}" in result.output


class TestAdapters:
    def test_lists_configured_adapters(self, config_file):
        result = runner.invoke(app, ["adapters", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Configured Adapters" in result.output
        assert "echo" in result.output
        assert "1 adapter version(s)" in result.output

    def test_no_adapters(self, tmp_path):
        empty = tmp_path / "empty.toml"
        empty.write_text('[logging]\nlevel = "WARNING"\n')
        result = runner.invoke(app, ["adapters", "-c", str(empty)])
        assert result.exit_code == 0
        assert "No adapters configured." in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["adapters", "-c", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestRoute:
    def test_routes_tasks(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, [
            {"id": "a", "type": "comprehension", "description": "explain python"},
            {"id": "b", "type": "comprehension", "description": "explain python"},
        ])
        result = runner.invoke(app, ["route", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "Routing Decisions" in result.output
        assert "echo v1.0.0" in result.output
        assert "grouped" in result.output

    def test_unroutable_task(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, {"id": "a", "type": "validation", "description": "check"})
        result = runner.invoke(app, ["route", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 1
        assert "Routing failed" in result.output

    def test_invalid_json(self, tmp_path, config_file):
        path = tmp_path / "tasks.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["route", str(path), "-c", str(config_file)])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_task_without_id(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, [{"type": "comprehension"}])
        result = runner.invoke(app, ["route", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 1
        assert "Malformed task" in result.output

    def test_extension_that_is_not_an_object(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, [
            {"id": "a", "type": "comprehension", "extensions": {"x": "abc"}},
        ])
        result = runner.invoke(app, ["route", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 1
        assert "Malformed task" in result.output
        assert "Traceback" not in result.output


class TestRun:
    def test_runs_tasks(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, [
            {"id": "a", "type": "comprehension", "description": "explain python"},
            {
                "id": "b",
                "type": "refactoring",
                "description": "tidy python",
                "context": {"files": [f"src/m{i}.py" for i in range(12)]},
            },
        ])
        result = runner.invoke(app, ["run", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 0, result.output
        assert "Execution Results" in result.output
        assert "sequential:success" in result.output
        assert "batched:success" in result.output

    def test_failures_set_exit_code(self, tmp_path, config_file):
        tasks = _tasks(tmp_path, {"id": "a", "type": "validation", "description": "check"})
        result = runner.invoke(app, ["run", str(tasks), "-c", str(config_file)])
        assert result.exit_code == 1
        assert "unroutable" in result.output
        assert "1 task(s) failed." in result.output


class TestConfigCommand:
    def test_shows_project_config(self, tmp_path, config_file, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "home"))
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Project (switchyard.toml)" in result.output

    def test_nothing_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "home"))
        result = runner.invoke(app, ["config", "--global"])
        assert result.exit_code == 1
        assert "not found" in result.output
