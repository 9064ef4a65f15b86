"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from filingdesk.cli import cli
from filingdesk.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".filingdesk" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "polling:" in result.output
    assert _config_path(tmp_path).exists()


def test_config_view_masks_api_token(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["FILINGDESK__API__TOKEN"] = "s3cr3t-token"

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "s3cr3t-token" not in result.output
    assert "********" in result.output

    unmasked = runner.invoke(cli, ["config", "view", "--no-env"], env=env)
    assert "********" not in unmasked.output


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "polling.interval_seconds", "--value", "2.5"], env=env
    )

    assert result.exit_code == 0
    assert "2.5" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path))
    config = manager.load(include_env=False)
    assert config.polling.interval_seconds == pytest.approx(2.5)


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "polling.max_attempts", "--value", "many"], env=env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_config_edit_applies_changes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    manager = ConfigManager(config_path=_config_path(tmp_path))
    manager.ensure_exists()

    def _mock_edit(text: str, **_: Any) -> str:
        return text.replace("interval_seconds: 5.0", "interval_seconds: 2.0")

    monkeypatch.setattr("filingdesk.cli.click.edit", _mock_edit)

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code == 0
    assert "updated" in result.output.lower()

    config = manager.load(include_env=False)
    assert config.polling.interval_seconds == pytest.approx(2.0)


def test_config_edit_cancel_leaves_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    monkeypatch.setattr("filingdesk.cli.click.edit", lambda text, **_: None)

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code == 0
    assert "cancelled" in result.output.lower()


def test_config_edit_rejects_invalid_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    manager = ConfigManager(config_path=_config_path(tmp_path))
    manager.ensure_exists()
    before = manager.read_text()

    monkeypatch.setattr(
        "filingdesk.cli.click.edit",
        lambda text, **_: text.replace("max_attempts: 120", "max_attempts: many"),
    )

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output
    assert manager.read_text() == before


def test_config_edit_without_changes_reports_up_to_date(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    ConfigManager(config_path=_config_path(tmp_path)).ensure_exists()

    monkeypatch.setattr("filingdesk.cli.click.edit", lambda text, **_: text)

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code == 0
    assert "already up to date" in result.output
