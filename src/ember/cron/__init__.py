"""Cron subsystem - persisted scheduled jobs.

Public API:
- CronService: Job registry, wake timer and executor behind one lock
- JobStore: JSON document persistence for the job collection
- next_run_ms / validate_schedule: Schedule evaluation and validation

Types:
- Job, JobDefinition, JobPayload, JobState: Job data model
- Schedule, ScheduleKind: One-shot, interval and cron-expression schedules
- JobExecution: Completion notification emitted after each run
- JobCallback, JobListener: Async hooks supplied by the host
"""

from ember.cron.schedule import (
    InvalidScheduleError,
    next_run_ms,
    parse_at,
    validate_schedule,
)
from ember.cron.service import CronService
from ember.cron.store import JobStore
from ember.cron.types import (
    Job,
    JobCallback,
    JobDefinition,
    JobExecution,
    JobListener,
    JobPayload,
    JobState,
    Schedule,
    ScheduleKind,
    ServiceState,
    ServiceStatus,
)

__all__ = [
    "CronService",
    "InvalidScheduleError",
    "Job",
    "JobCallback",
    "JobDefinition",
    "JobExecution",
    "JobListener",
    "JobPayload",
    "JobState",
    "JobStore",
    "Schedule",
    "ScheduleKind",
    "ServiceState",
    "ServiceStatus",
    "next_run_ms",
    "parse_at",
    "validate_schedule",
]
