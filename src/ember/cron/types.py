"""Cron job types.

Public types:
- Schedule / ScheduleKind: When a job fires (one-shot, interval, cron expression)
- JobPayload: Opaque message plus delivery routing for the job callback
- JobState: Next/last run bookkeeping
- Job / JobDefinition: A persisted job and the input used to create one
- JobExecution: Completion notification emitted after each run
- ServiceStatus / ServiceState: Derived engine status
"""

import copy
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ScheduleKind(str, Enum):
    AT = "at"
    EVERY = "every"
    CRON = "cron"


@dataclass(frozen=True)
class Schedule:
    """When a job fires.

    Only the fields relevant to ``kind`` are set: ``at_ms`` for AT,
    ``every_ms`` for EVERY, ``expr``/``tz`` for CRON.
    """

    kind: ScheduleKind
    at_ms: int | None = None
    every_ms: int | None = None
    expr: str | None = None
    tz: str | None = None  # IANA name; None = configured/local timezone

    @classmethod
    def at(cls, at_ms: int) -> "Schedule":
        return cls(kind=ScheduleKind.AT, at_ms=at_ms)

    @classmethod
    def every(cls, every_ms: int) -> "Schedule":
        return cls(kind=ScheduleKind.EVERY, every_ms=every_ms)

    @classmethod
    def cron(cls, expr: str, tz: str | None = None) -> "Schedule":
        return cls(kind=ScheduleKind.CRON, expr=expr, tz=tz)

    def describe(self) -> str:
        """Short human-readable form for listings."""
        if self.kind is ScheduleKind.AT:
            if self.at_ms is None:
                return "at ?"
            when = datetime.fromtimestamp(self.at_ms / 1000, UTC)
            return f"at {when.strftime('%Y-%m-%d %H:%M')} UTC"
        if self.kind is ScheduleKind.EVERY:
            return f"every {(self.every_ms or 0) // 1000}s"
        if self.tz:
            return f"cron {self.expr} ({self.tz})"
        return f"cron {self.expr}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.at_ms is not None:
            data["atMs"] = self.at_ms
        if self.every_ms is not None:
            data["everyMs"] = self.every_ms
        if self.expr is not None:
            data["expr"] = self.expr
        if self.tz is not None:
            data["tz"] = self.tz
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Schedule":
        """Parse a persisted schedule.

        Raises:
            ValueError: If the kind is missing or unknown.
        """
        kind = ScheduleKind(str(data.get("kind", "")).lower())
        return cls(
            kind=kind,
            at_ms=_optional_int(data.get("atMs")),
            every_ms=_optional_int(data.get("everyMs")),
            expr=data.get("expr"),
            tz=data.get("tz"),
        )


@dataclass
class JobPayload:
    """What the job callback receives. Not interpreted by the engine."""

    message: str
    deliver: bool = False
    channel: str | None = None  # Target channel/provider (e.g. "telegram")
    to: str | None = None  # Target chat/user id within the channel

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": "agent_turn",
            "message": self.message,
            "deliver": self.deliver,
        }
        if self.channel is not None:
            data["channel"] = self.channel
        if self.to is not None:
            data["to"] = self.to
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobPayload":
        return cls(
            message=str(data.get("message", "")),
            deliver=bool(data.get("deliver", False)),
            channel=data.get("channel"),
            to=data.get("to"),
        )


@dataclass
class JobState:
    next_run_at_ms: int | None = None
    last_run_at_ms: int | None = None
    last_status: str | None = None  # "ok" | "error"
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.next_run_at_ms is not None:
            data["nextRunAtMs"] = self.next_run_at_ms
        if self.last_run_at_ms is not None:
            data["lastRunAtMs"] = self.last_run_at_ms
        if self.last_status is not None:
            data["lastStatus"] = self.last_status
        if self.last_error is not None:
            data["lastError"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobState":
        return cls(
            next_run_at_ms=_optional_int(data.get("nextRunAtMs")),
            last_run_at_ms=_optional_int(data.get("lastRunAtMs")),
            last_status=data.get("lastStatus"),
            last_error=data.get("lastError"),
        )


@dataclass
class JobDefinition:
    """Input to ``CronService.add_job``."""

    name: str
    schedule: Schedule
    message: str
    deliver: bool = False
    channel: str | None = None
    to: str | None = None
    delete_after_run: bool = False  # Only meaningful for AT schedules


@dataclass
class Job:
    """A persisted unit of scheduled work."""

    id: str
    name: str
    schedule: Schedule
    payload: JobPayload
    enabled: bool = True
    delete_after_run: bool = False
    state: JobState = field(default_factory=JobState)
    created_at_ms: int = 0
    updated_at_ms: int = 0

    @property
    def next_run_at(self) -> datetime | None:
        return _ms_to_datetime(self.state.next_run_at_ms)

    @property
    def last_run_at(self) -> datetime | None:
        return _ms_to_datetime(self.state.last_run_at_ms)

    def is_due(self, now_ms: int) -> bool:
        return (
            self.enabled
            and self.state.next_run_at_ms is not None
            and self.state.next_run_at_ms <= now_ms
        )

    def snapshot(self) -> "Job":
        """Detached copy safe to hand outside the registry lock."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "schedule": self.schedule.to_dict(),
            "payload": self.payload.to_dict(),
            "state": self.state.to_dict(),
            "createdAtMs": self.created_at_ms,
            "updatedAtMs": self.updated_at_ms,
            "deleteAfterRun": self.delete_after_run,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Parse a persisted job record.

        Raises:
            ValueError: If the record lacks an id or a valid schedule.
        """
        job_id = data.get("id")
        if not job_id or not isinstance(job_id, str):
            raise ValueError("Job record has no id")
        return cls(
            id=job_id,
            name=str(data.get("name", "")),
            enabled=bool(data.get("enabled", True)),
            schedule=Schedule.from_dict(data.get("schedule") or {}),
            payload=JobPayload.from_dict(data.get("payload") or {}),
            delete_after_run=bool(data.get("deleteAfterRun", False)),
            state=JobState.from_dict(data.get("state") or {}),
            created_at_ms=int(data.get("createdAtMs", 0)),
            updated_at_ms=int(data.get("updatedAtMs", 0)),
        )


@dataclass(frozen=True)
class JobExecution:
    """Completion notification for a single job run."""

    job: Job
    success: bool
    response: str | None = None
    error: str | None = None


class ServiceState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


@dataclass(frozen=True)
class ServiceStatus:
    running: bool
    total_jobs: int
    enabled_jobs: int
    next_wake_at_ms: int | None = None

    @property
    def next_wake_at(self) -> datetime | None:
        return _ms_to_datetime(self.next_wake_at_ms)


# What a job does when it fires; returns an optional response, raises on failure
JobCallback = Callable[[Job], Awaitable[str | None]]

# Receives one JobExecution per executed job
JobListener = Callable[[JobExecution], Awaitable[None]]


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected integer, got {value!r}")
    return int(value)


def _ms_to_datetime(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, UTC)
