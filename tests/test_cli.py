"""Tests for the console-operator CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from console_operator.cli import cli
from console_operator.spec_loader import load_console

ENV = {"CONSOLE_FILE": None, "STORE_DIR": None, "TARGET_NAMESPACE": None, "LOG_LEVEL": None}


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CLI runs from replacing the root log handlers."""
    monkeypatch.setattr("console_operator.cli.setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner(env=ENV)


@pytest.fixture
def paths(tmp_path: Path) -> list[str]:
    return [
        "--console-file",
        str(tmp_path / "console.yaml"),
        "--store-dir",
        str(tmp_path / "store"),
    ]


class TestInit:
    """Tests for the init command."""

    def test_writes_console(self, runner: CliRunner, paths: list[str], tmp_path: Path) -> None:
        result = runner.invoke(cli, [*paths, "init", "--count", "2"])

        assert result.exit_code == 0, result.output
        assert load_console(tmp_path / "console.yaml").spec.count == 2

    def test_refuses_to_overwrite(self, runner: CliRunner, paths: list[str]) -> None:
        runner.invoke(cli, [*paths, "init"])

        result = runner.invoke(cli, [*paths, "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_force_overwrites(self, runner: CliRunner, paths: list[str], tmp_path: Path) -> None:
        runner.invoke(cli, [*paths, "init"])

        result = runner.invoke(cli, [*paths, "init", "--force", "--count", "3"])

        assert result.exit_code == 0
        assert load_console(tmp_path / "console.yaml").spec.count == 3

    def test_invalid_custom_host(self, runner: CliRunner, paths: list[str]) -> None:
        result = runner.invoke(cli, [*paths, "init", "--custom-host", "not a host"])

        assert result.exit_code == 1
        assert "Invalid console spec" in result.output

    def test_count_out_of_range(self, runner: CliRunner, paths: list[str]) -> None:
        result = runner.invoke(cli, [*paths, "init", "--count", "11"])

        assert result.exit_code == 2


class TestSync:
    """Tests for the single-pass sync command."""

    def sync(self, runner: CliRunner, paths: list[str]):
        return runner.invoke(cli, [*paths, "sync", "--router-domain", "apps.example.com"])

    def test_converges_over_passes(
        self, runner: CliRunner, paths: list[str], tmp_path: Path
    ) -> None:
        """Test repeated syncs against the file store converge."""
        runner.invoke(cli, [*paths, "init"])
        runner.invoke(cli, [*paths, "install-oauthclient"])

        outputs = [self.sync(runner, paths) for _ in range(4)]

        assert all(r.exit_code == 0 for r in outputs), [r.output for r in outputs]
        assert "progressed" in outputs[0].output
        assert "Stopped at:   route" in outputs[0].output
        assert "converged" in outputs[3].output
        assert "OAuth secret: valid" in outputs[3].output

        status = load_console(tmp_path / "console.yaml").status
        assert status.default_host_name == "console-openshift-console.apps.example.com"

    def test_missing_oauth_client_fails(self, runner: CliRunner, paths: list[str]) -> None:
        """Test a missing prerequisite exits non-zero."""
        runner.invoke(cli, [*paths, "init"])

        outputs = [self.sync(runner, paths) for _ in range(3)]

        assert outputs[0].exit_code == 0
        assert outputs[2].exit_code == 1
        assert "failed" in outputs[2].output
        assert "oauth client for console does not exist" in outputs[2].output

    def test_missing_console_file(self, runner: CliRunner, paths: list[str]) -> None:
        result = self.sync(runner, paths)

        assert result.exit_code == 1
        assert "Could not load console" in result.output

    def test_invalid_namespace(self, runner: CliRunner, paths: list[str]) -> None:
        """Test configuration errors are reported, not raised."""
        runner.invoke(cli, [*paths, "init"])

        result = runner.invoke(cli, [*paths, "sync", "--namespace", "Not_Valid"])

        assert result.exit_code == 1
        assert "TARGET_NAMESPACE" in result.output


class TestStatus:
    def test_shows_status(self, runner: CliRunner, paths: list[str]) -> None:
        runner.invoke(cli, [*paths, "init"])

        result = runner.invoke(cli, [*paths, "status"])

        assert result.exit_code == 0
        assert yaml.safe_load(result.output) == {
            "status": {"defaultHostName": "", "oauthSecret": "unknown"}
        }

    def test_missing_file(self, runner: CliRunner, paths: list[str]) -> None:
        result = runner.invoke(cli, [*paths, "status"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestInstallOAuthClient:
    def test_installs_once(self, runner: CliRunner, paths: list[str], tmp_path: Path) -> None:
        first = runner.invoke(cli, [*paths, "install-oauthclient"])
        second = runner.invoke(cli, [*paths, "install-oauthclient"])

        assert first.exit_code == 0
        assert "Installed OAuthClient console" in first.output
        assert second.exit_code == 0
        assert "already installed" in second.output
        assert (tmp_path / "store" / "oauthclient" / "console.yaml").exists()


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
