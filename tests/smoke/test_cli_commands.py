"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(args: list[str], timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m src.hlpe'
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    result = subprocess.run(
        [sys.executable, "-m", "src.hlpe", *args],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env={**os.environ, "HLPE_LOG_LEVEL": "WARNING"},
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def snapshot_file(tmp_path, sample_payload):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(sample_payload), encoding="utf-8")
    return path


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        code, stdout, stderr = run_cli_command(["--help"])

        assert code == 0, f"Help failed: {stderr}"
        assert "analyze" in stdout
        assert "config" in stdout

    def test_analyze_help(self):
        code, stdout, stderr = run_cli_command(["analyze", "--help"])

        assert code == 0, f"Analyze help failed: {stderr}"
        assert "--seed" in stdout


class TestCLIConfig:
    def test_config_shows_settings(self):
        code, stdout, stderr = run_cli_command(["config"])

        assert code == 0, f"Config failed: {stderr}"
        assert "throttle_seconds" in stdout
        assert "Medicine" in stdout


class TestCLIAnalyze:
    def test_analyze_tables(self, snapshot_file):
        code, stdout, stderr = run_cli_command(["analyze", str(snapshot_file)])

        assert code == 0, f"Analyze failed: {stderr}"
        assert "Data Updated" in stdout
        assert "Study Plan" in stdout

    def test_analyze_json(self, snapshot_file):
        code, stdout, stderr = run_cli_command(["analyze", str(snapshot_file), "--json", "--seed", "1"])

        assert code == 0, f"Analyze failed: {stderr}"
        messages = json.loads(stdout)
        assert [m["type"] for m in messages] == ["DATA_UPDATED", "ANALYSIS_COMPLETE"]
        assert messages[0]["payload"]["updatedUserMetrics"] == {"userElo": 999}

    def test_analyze_write(self, snapshot_file):
        code, _, stderr = run_cli_command(["analyze", str(snapshot_file), "--write", "--json"])

        assert code == 0, f"Analyze failed: {stderr}"
        saved = json.loads(snapshot_file.read_text(encoding="utf-8"))
        assert saved["userMetrics"]["userElo"] == 999
        elo = {q["id"]: q["elo"] for q in saved["batches"][0]["questions"]}
        assert elo == {"q1": 984, "q2": 1017}

    def test_analyze_write_keeps_unreadable_records(self, snapshot_file):
        stored = json.loads(snapshot_file.read_text(encoding="utf-8"))
        stored["batches"].append({"name": "batch without id", "questions": []})
        snapshot_file.write_text(json.dumps(stored), encoding="utf-8")

        code, _, stderr = run_cli_command(["analyze", str(snapshot_file), "--write", "--json"])

        assert code == 0, f"Analyze failed: {stderr}"
        saved = json.loads(snapshot_file.read_text(encoding="utf-8"))
        assert len(saved["batches"]) == 2
        assert saved["batches"][1] == {"name": "batch without id", "questions": []}
        assert saved["batches"][0]["questions"][0]["elo"] == 984
        # Fields the pass did not touch are written back as stored
        assert "subject" not in saved["batches"][0]["questions"][0]

    def test_missing_file(self, tmp_path):
        code, stdout, _ = run_cli_command(["analyze", str(tmp_path / "nope.json")])

        assert code == 1
        assert "Cannot read" in stdout
