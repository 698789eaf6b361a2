"""Tests for CLI commands."""

import json
import re
from pathlib import Path

import pytest
import typer

from ember.cli.app import app
from ember.cli.commands.cron import format_countdown

from tests.conftest import T0


def _add(cli_runner, *args: str) -> str:
    result = cli_runner.invoke(app, ["cron", "add", *args])
    assert result.exit_code == 0, result.stdout
    match = re.search(r"\(([0-9a-f]{8})\)", result.stdout)
    assert match, result.stdout
    return match.group(1)


def _store(ember_home: Path) -> dict:
    return json.loads((ember_home / "cron" / "jobs.json").read_text())


class TestCronAdd:
    """Tests for 'ember cron add'."""

    def test_add_every(self, cli_runner, ember_home):
        job_id = _add(cli_runner, "--name", "Stretch", "--message", "Stand up", "--every", "60")

        [record] = _store(ember_home)["jobs"]
        assert record["id"] == job_id
        assert record["name"] == "Stretch"
        assert record["schedule"] == {"kind": "every", "everyMs": 60_000}
        assert record["payload"]["message"] == "Stand up"

    def test_add_cron_with_timezone(self, cli_runner, ember_home):
        _add(
            cli_runner,
            "-n", "Standup",
            "-m", "Post the standup reminder",
            "--cron", "0 9 * * 1-5",
            "--tz", "America/New_York",
            "--deliver", "--channel", "telegram", "--to", "12345",
        )

        [record] = _store(ember_home)["jobs"]
        assert record["schedule"] == {
            "kind": "cron",
            "expr": "0 9 * * 1-5",
            "tz": "America/New_York",
        }
        assert record["payload"]["deliver"] is True
        assert record["payload"]["channel"] == "telegram"
        assert record["payload"]["to"] == "12345"

    def test_add_at_in_past_warns(self, cli_runner, ember_home):
        result = cli_runner.invoke(
            app,
            ["cron", "add", "-n", "Old", "-m", "Too late", "--at", "2000-01-01T00:00:00Z"],
        )

        assert result.exit_code == 0
        assert "no upcoming run" in result.stdout

    def test_tz_requires_cron(self, cli_runner, ember_home):
        result = cli_runner.invoke(
            app, ["cron", "add", "-n", "x", "-m", "y", "--every", "60", "--tz", "UTC"]
        )

        assert result.exit_code == 1
        assert "--tz can only be used with --cron" in result.stdout
        assert not (ember_home / "cron" / "jobs.json").exists()

    @pytest.mark.parametrize(
        "schedule_args",
        [[], ["--every", "60", "--cron", "* * * * *"]],
    )
    def test_exactly_one_schedule(self, cli_runner, schedule_args):
        result = cli_runner.invoke(app, ["cron", "add", "-n", "x", "-m", "y", *schedule_args])

        assert result.exit_code == 1
        assert "exactly one of" in result.stdout

    async def test_add_without_schedule_exits(self, ember_home):
        from ember.cli.commands.cron import _cron_add
        from ember.config import get_default_config

        with pytest.raises(typer.Exit):
            await _cron_add(
                get_default_config(),
                name="x",
                message="y",
                every=None,
                cron_expr=None,
                tz=None,
                at=None,
                deliver=False,
                to=None,
                channel=None,
                delete_after_run=False,
            )

        assert not (ember_home / "cron" / "jobs.json").exists()

    def test_invalid_timezone_rejected(self, cli_runner, ember_home):
        result = cli_runner.invoke(
            app,
            ["cron", "add", "-n", "x", "-m", "y", "--cron", "0 9 * * *", "--tz", "Nope/Zone"],
        )

        assert result.exit_code == 1
        assert "Invalid timezone" in result.stdout
        assert not (ember_home / "cron" / "jobs.json").exists()

    def test_invalid_at_rejected(self, cli_runner):
        result = cli_runner.invoke(app, ["cron", "add", "-n", "x", "-m", "y", "--at", "soonish"])

        assert result.exit_code == 1
        assert "Invalid datetime" in result.stdout


class TestCronList:
    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["cron", "list"])

        assert result.exit_code == 0
        assert "No scheduled jobs." in result.stdout

    def test_lists_enabled_jobs(self, cli_runner):
        enabled_id = _add(cli_runner, "-n", "Visible", "-m", "a", "--every", "60")
        disabled_id = _add(cli_runner, "-n", "Hidden", "-m", "b", "--every", "60")
        cli_runner.invoke(app, ["cron", "enable", disabled_id, "--disable"])

        result = cli_runner.invoke(app, ["cron", "list"])
        assert result.exit_code == 0
        assert enabled_id in result.stdout
        assert disabled_id not in result.stdout
        assert "Total: 1 job(s)" in result.stdout

        result = cli_runner.invoke(app, ["cron", "list", "--all"])
        assert disabled_id in result.stdout
        assert "Total: 2 job(s)" in result.stdout


class TestCronRemove:
    def test_remove(self, cli_runner, ember_home):
        job_id = _add(cli_runner, "-n", "Temp", "-m", "a", "--every", "60")

        result = cli_runner.invoke(app, ["cron", "remove", job_id])

        assert result.exit_code == 0
        assert f"Removed job {job_id}" in result.stdout
        assert _store(ember_home)["jobs"] == []

    def test_remove_unknown(self, cli_runner):
        result = cli_runner.invoke(app, ["cron", "remove", "missing0"])

        assert result.exit_code == 1
        assert "Job missing0 not found" in result.stdout


class TestCronEnable:
    def test_disable_and_enable(self, cli_runner, ember_home):
        job_id = _add(cli_runner, "-n", "Toggle", "-m", "a", "--every", "60")

        result = cli_runner.invoke(app, ["cron", "enable", job_id, "--disable"])
        assert result.exit_code == 0
        assert "Job 'Toggle' disabled" in result.stdout
        [record] = _store(ember_home)["jobs"]
        assert record["enabled"] is False
        assert "nextRunAtMs" not in record["state"]

        result = cli_runner.invoke(app, ["cron", "enable", job_id])
        assert result.exit_code == 0
        assert "Job 'Toggle' enabled" in result.stdout
        [record] = _store(ember_home)["jobs"]
        assert record["enabled"] is True
        assert record["state"]["nextRunAtMs"] > T0

    def test_enable_unknown(self, cli_runner):
        result = cli_runner.invoke(app, ["cron", "enable", "missing0"])
        assert result.exit_code == 1


class TestCronRun:
    def test_run_records_result(self, cli_runner, ember_home):
        job_id = _add(cli_runner, "-n", "Now", "-m", "a", "--every", "3600")

        result = cli_runner.invoke(app, ["cron", "run", job_id])

        assert result.exit_code == 0
        assert "Job executed" in result.stdout
        [record] = _store(ember_home)["jobs"]
        assert record["state"]["lastStatus"] == "ok"
        assert "lastRunAtMs" in record["state"]

    def test_run_refused_when_cron_disabled(self, cli_runner, ember_home):
        job_id = _add(cli_runner, "-n", "Now", "-m", "a", "--every", "3600")
        (ember_home / "config.toml").write_text("[cron]\nenabled = false\n")

        result = cli_runner.invoke(app, ["cron", "run", job_id])

        assert result.exit_code == 1
        assert "Cron is disabled" in result.stdout
        [record] = _store(ember_home)["jobs"]
        assert "lastRunAtMs" not in record["state"]

        status = cli_runner.invoke(app, ["cron", "status"])
        assert status.exit_code == 0
        assert "Cron is disabled" in status.stdout

    def test_run_unknown(self, cli_runner):
        result = cli_runner.invoke(app, ["cron", "run", "missing0"])

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestCronStatus:
    def test_empty(self, cli_runner, ember_home):
        result = cli_runner.invoke(app, ["cron", "status"])

        assert result.exit_code == 0
        assert "Jobs: 0 (0 enabled)" in result.stdout
        assert "Next wake: none" in result.stdout
        # Reading status never creates the store
        assert not (ember_home / "cron" / "jobs.json").exists()

    def test_with_jobs(self, cli_runner):
        _add(cli_runner, "-n", "One", "-m", "a", "--every", "60")

        result = cli_runner.invoke(app, ["cron", "status"])

        assert "Jobs: 1 (1 enabled)" in result.stdout
        assert "Next wake: 20" in result.stdout


class TestConfigOption:
    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["--config", str(tmp_path / "missing.toml"), "cron", "list"]
        )

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_store_path_from_config(self, cli_runner, tmp_path):
        store = tmp_path / "custom" / "jobs.json"
        config_file = tmp_path / "config.toml"
        config_file.write_text(f'[cron]\nstore_path = "{store}"\n')

        result = cli_runner.invoke(
            app,
            ["-c", str(config_file), "cron", "add", "-n", "x", "-m", "y", "--every", "60"],
        )

        assert result.exit_code == 0
        assert len(json.loads(store.read_text())["jobs"]) == 1


class TestFormatCountdown:
    @pytest.mark.parametrize(
        ("delta_ms", "expected"),
        [
            (30_000, "in 30s"),
            (5 * 60_000, "in 5m"),
            (2 * 3_600_000, "in 2h"),
            (2 * 3_600_000 + 15 * 60_000, "in 2h 15m"),
            (3 * 86_400_000, "in 3d"),
            (3 * 86_400_000 + 4 * 3_600_000, "in 3d 4h"),
        ],
    )
    def test_future(self, delta_ms: int, expected: str):
        assert format_countdown(T0 + delta_ms, T0) == expected

    def test_due(self):
        assert "now" in format_countdown(T0 - 1, T0)

    def test_none(self):
        assert format_countdown(None, T0) == "[dim]-[/dim]"
