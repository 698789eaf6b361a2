"""Shared test fixtures and factories."""

import logging
from collections.abc import AsyncGenerator, Iterator
from pathlib import Path

import pytest

from ember.config.paths import get_ember_home
from ember.cron import CronService, JobDefinition, JobExecution, JobStore, Schedule

# 2026-01-01T00:00:00Z
T0 = 1_767_225_600_000


class FakeClock:
    """Settable epoch-ms clock for deterministic ticks."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_definition(
    name: str = "Test Job",
    schedule: Schedule | None = None,
    message: str = "Do the thing",
    **kwargs,
) -> JobDefinition:
    return JobDefinition(
        name=name,
        schedule=schedule or Schedule.every(60_000),
        message=message,
        **kwargs,
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def ember_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point EMBER_HOME at a temp directory for every test."""
    home = tmp_path / "ember-home"
    monkeypatch.setenv("EMBER_HOME", str(home))
    monkeypatch.setenv("TZ", "UTC")
    get_ember_home.cache_clear()
    yield home
    get_ember_home.cache_clear()


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """Undo configure_logging() calls made by CLI and logging tests."""
    from ember.logging import JSONLHandler

    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler, JSONLHandler) or type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


# =============================================================================
# Cron Fixtures
# =============================================================================


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "cron" / "jobs.json"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def executions() -> list[JobExecution]:
    return []


@pytest.fixture
async def service(
    store_path: Path, clock: FakeClock, executions: list[JobExecution]
) -> AsyncGenerator[CronService, None]:
    """Stopped service on a fake clock that records completions."""
    svc = CronService(JobStore(store_path), timezone="UTC", clock=clock)

    @svc.on_executed
    async def record(execution: JobExecution) -> None:
        executions.append(execution)

    yield svc
    await svc.stop()
