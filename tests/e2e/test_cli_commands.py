"""
End-to-end tests for CLI commands
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from confirm_gate.cli import cli

SRC_DIR = Path(__file__).resolve().parents[2] / "src"


@pytest.mark.e2e
class TestCLIProcess:
    """Run the CLI as a separate interpreter"""

    def run_cli(self, *args):
        """Helper to run CLI commands"""
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
        cmd = [sys.executable, "-m", "confirm_gate.cli"] + list(args)
        return subprocess.run(cmd, capture_output=True, text=True, timeout=30, env=env)

    def test_cli_help(self):
        result = self.run_cli("--help")

        assert result.returncode == 0, f"--help should succeed: {result.stderr}"
        for command in ("serve", "prune", "status"):
            assert command in result.stdout

    def test_serve_help_lists_legacy_options(self):
        result = self.run_cli("serve", "--help")

        assert result.returncode == 0, f"serve --help should succeed: {result.stderr}"
        assert "--base-url" in result.stdout
        assert "--smtp-host" in result.stdout


@pytest.mark.e2e
class TestCLICommands:
    """Invoke commands in-process against a temporary data directory"""

    @pytest.fixture
    def runner(self, monkeypatch):
        for name in ("CONFIRM_PIN", "DATA_FILE", "CONFIG_FILE", "CONFIRM_GATE_CONFIG"):
            monkeypatch.delenv(name, raising=False)
        return CliRunner()

    def test_status_empty(self, runner, tmp_path):
        result = runner.invoke(cli, ["status", "--data", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "Setup complete: no" in result.output
        assert str(tmp_path / "tokens.json") in result.output

    def test_status_reads_existing_documents(self, runner, tmp_path):
        (tmp_path / "tokens.json").write_text(
            json.dumps(
                {
                    "a" * 32: {
                        "action": "deploy",
                        "details": "",
                        "status": "used",
                        "code": "ALPHA-1000-BRAVO",
                        "created_at": 0,
                        "expires_at": 4_102_444_800_000,
                    }
                }
            )
        )
        (tmp_path / "config.json").write_text(json.dumps({"setup_complete": True, "email": "ops@example.com"}))

        result = runner.invoke(cli, ["status", "--data", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "Setup complete: yes" in result.output
        assert "Recovery email: configured" in result.output
        assert "used       1" in result.output

    def test_prune_removes_expired(self, runner, tmp_path):
        tokens_file = tmp_path / "custom-tokens.json"
        tokens_file.write_text(
            json.dumps(
                {
                    "b" * 32: {
                        "action": "old",
                        "details": "",
                        "status": "pending",
                        "code": None,
                        "created_at": 0,
                        "expires_at": 1000,
                    }
                }
            )
        )

        result = runner.invoke(
            cli, ["prune", "--data", str(tmp_path), "--tokens-file", str(tokens_file)]
        )

        assert result.exit_code == 0, result.output
        assert "Pruned 1 expired token(s); 0 remaining." in result.output
        assert json.loads(tokens_file.read_text()) == {}

    def test_missing_config_file_exits_2(self, runner, tmp_path):
        result = runner.invoke(cli, ["status", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 2
        assert "Configuration error" in result.output
