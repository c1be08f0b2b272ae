"""
Sessions CLI Test Suite

Coverage:
  - schedule: cadence printed from a fixed start time
  - threshold: anti-spam curve for given proposal counts
  - config: text and JSON output, invalid configuration
"""

import json
import os

import pytest
from click.testing import CliRunner

from civitas_helpers import T0, TOTAL_SUPPLY

from civitas.cli import cli
from civitas.cli.sessions import format_time


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CIVITAS_"):
            monkeypatch.delenv(name)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def empty_config(tmp_path):
    path = tmp_path / "civitas.toml"
    path.write_text("")
    return str(path)


def test_format_time():
    assert format_time(1210982400) == "2008-05-17 00:00:00 UTC"


class TestScheduleCommand:

    def test_two_sessions(self, runner, empty_config):
        result = runner.invoke(cli, ["schedule", "-c", empty_config, "--at", str(T0), "-n", "2"])
        assert result.exit_code == 0, result.output
        assert "Period length: 1209600s" in result.output
        assert "Session #1" in result.output
        assert "Session #2" in result.output
        assert f"Voting:     {format_time(1210982400)}" in result.output
        assert f"Voting:     {format_time(1210982400 + 1209600)}" in result.output

    def test_count_bounds(self, runner, empty_config):
        result = runner.invoke(cli, ["schedule", "-c", empty_config, "-n", "0"])
        assert result.exit_code != 0


class TestThresholdCommand:

    def test_counts(self, runner, empty_config):
        result = runner.invoke(
            cli,
            ["threshold", "-s", str(TOTAL_SUPPLY), "-c", empty_config, "-n", "12", "-n", "20"],
        )
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[1].split() == ["12", "871122"]
        assert lines[2].split() == ["20", "4000050"]

    def test_default_range(self, runner, empty_config):
        result = runner.invoke(cli, ["threshold", "-s", "100", "-c", empty_config])
        assert result.exit_code == 0
        assert len(result.output.splitlines()) == 1 + 26

    def test_supply_required(self, runner):
        result = runner.invoke(cli, ["threshold"])
        assert result.exit_code != 0


class TestConfigCommand:

    def test_json(self, runner, empty_config):
        result = runner.invoke(cli, ["config", "-c", empty_config, "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["session_rule"]["campaign_period"] == 432000
        assert data["governance"]["retention_count"] == 10

    def test_text(self, runner, empty_config):
        result = runner.invoke(cli, ["config", "-c", empty_config])
        assert "[session_rule]" in result.output
        assert "voting_period = 172800" in result.output

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "civitas.toml"
        path.write_text("[session_rule]\nopen_proposals = 30\n")
        result = runner.invoke(cli, ["config", "-c", str(path)])
        assert result.exit_code == 1
        assert "Invalid [session_rule]" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert "civitas-sessions" in result.output
