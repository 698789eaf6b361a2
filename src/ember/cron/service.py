"""Cron service: job registry, executor and lifecycle.

All registry and timer state transitions happen under one ``asyncio.Lock``.
Job callbacks run outside it, so a slow job never blocks ``add_job`` or
``list_jobs``. Timer-fired batches and manual runs are additionally
serialized by a second lock so two batches never overlap.

Example:
    service = CronService(JobStore(path), on_job=run_agent_turn)

    @service.on_executed
    async def deliver(execution: JobExecution) -> None:
        ...

    await service.start()
    await service.add_job(
        JobDefinition(name="standup", schedule=Schedule.cron("0 9 * * 1-5"),
                      message="Post the standup reminder")
    )
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from ember.cron.schedule import next_run_ms, validate_schedule
from ember.cron.store import JobStore
from ember.cron.timer import WakeTimer
from ember.cron.types import (
    Job,
    JobCallback,
    JobDefinition,
    JobExecution,
    JobListener,
    JobPayload,
    JobState,
    ScheduleKind,
    ServiceState,
    ServiceStatus,
)

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class CronService:
    """Keeps a persisted job collection and fires jobs when they are due.

    Mutations (add/remove/enable) work whether or not the service is
    running; only a running service arms the wake timer and executes due
    jobs.
    """

    def __init__(
        self,
        store: JobStore | Path,
        on_job: JobCallback | None = None,
        *,
        timezone: str | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the service.

        Args:
            store: Job store, or the path of the JSON file backing one.
            on_job: What a job does when it fires. Without one, runs succeed
                with no response.
            timezone: Fallback IANA timezone for cron schedules without tz.
            clock: Returns the current epoch time in milliseconds.
        """
        self._store = store if isinstance(store, JobStore) else JobStore(store)
        self._on_job = on_job
        self._timezone = timezone
        self._clock = clock
        self._lock = asyncio.Lock()
        self._run_lock = asyncio.Lock()
        self._jobs: list[Job] = []
        self._loaded = False
        self._state = ServiceState.STOPPED
        self._timer = WakeTimer(self.run_due_jobs)
        self._listeners: list[JobListener] = []

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is ServiceState.RUNNING

    def on_executed(self, listener: JobListener) -> JobListener:
        """Decorator to register a completion listener."""
        self._listeners.append(listener)
        return listener

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        async with self._lock:
            if self._state is not ServiceState.STOPPED:
                return
            self._state = ServiceState.STARTING
            self._ensure_loaded()

            # Time may have passed while the process was down
            now = self._clock()
            for job in self._jobs:
                if job.enabled:
                    job.state.next_run_at_ms = self._compute_next_run(job, now)

            self._store.save(self._jobs)
            self._state = ServiceState.RUNNING
            self._arm_timer()
            job_count = len(self._jobs)

        logger.info("cron_service_started", extra={"cron.job_count": job_count})

    async def stop(self) -> None:
        """Stop firing jobs.

        A batch already in progress is allowed to finish; this waits for it.
        """
        async with self._lock:
            if self._state is ServiceState.STOPPED:
                return
            self._state = ServiceState.STOPPED
            self._timer.cancel()

        await self._timer.drain()
        logger.info("cron_service_stopped")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def add_job(self, definition: JobDefinition) -> Job:
        """Create, persist and schedule a job.

        Raises:
            InvalidScheduleError: If the schedule is rejected. Nothing is
                mutated or persisted in that case.
        """
        validate_schedule(definition.schedule)

        async with self._lock:
            self._ensure_loaded()
            now = self._clock()
            job = Job(
                id=self._new_id(),
                name=definition.name,
                schedule=definition.schedule,
                payload=JobPayload(
                    message=definition.message,
                    deliver=definition.deliver,
                    channel=definition.channel,
                    to=definition.to,
                ),
                enabled=True,
                delete_after_run=definition.delete_after_run,
                created_at_ms=now,
                updated_at_ms=now,
            )
            job.state = JobState(next_run_at_ms=self._compute_next_run(job, now))

            self._jobs.append(job)
            self._store.save(self._jobs)
            self._arm_timer()
            snapshot = job.snapshot()

        logger.info(
            "cron_job_added",
            extra={
                "cron.job_id": snapshot.id,
                "cron.job_name": snapshot.name,
                "cron.schedule": snapshot.schedule.describe(),
            },
        )
        return snapshot

    async def remove_job(self, job_id: str) -> bool:
        async with self._lock:
            self._ensure_loaded()
            remaining = [job for job in self._jobs if job.id != job_id]
            if len(remaining) == len(self._jobs):
                return False
            self._jobs = remaining
            self._store.save(self._jobs)
            self._arm_timer()

        logger.info("cron_job_removed", extra={"cron.job_id": job_id})
        return True

    async def enable_job(self, job_id: str, enabled: bool) -> Job | None:
        async with self._lock:
            self._ensure_loaded()
            job = self._find(job_id)
            if job is None:
                return None

            now = self._clock()
            job.enabled = enabled
            job.updated_at_ms = now
            job.state.next_run_at_ms = (
                self._compute_next_run(job, now) if enabled else None
            )

            self._store.save(self._jobs)
            self._arm_timer()
            snapshot = job.snapshot()

        logger.info(
            "cron_job_enabled" if enabled else "cron_job_disabled",
            extra={"cron.job_id": job_id},
        )
        return snapshot

    async def get_job(self, job_id: str) -> Job | None:
        async with self._lock:
            self._ensure_loaded()
            job = self._find(job_id)
            return job.snapshot() if job else None

    async def list_jobs(self, include_disabled: bool = False) -> list[Job]:
        """List jobs soonest-first; jobs with no next run sort last."""
        async with self._lock:
            self._ensure_loaded()
            jobs = [j for j in self._jobs if include_disabled or j.enabled]
            jobs.sort(
                key=lambda j: (
                    j.state.next_run_at_ms is None,
                    j.state.next_run_at_ms or 0,
                )
            )
            return [job.snapshot() for job in jobs]

    async def get_status(self) -> ServiceStatus:
        async with self._lock:
            self._ensure_loaded()
            return ServiceStatus(
                running=self.running,
                total_jobs=len(self._jobs),
                enabled_jobs=sum(1 for j in self._jobs if j.enabled),
                next_wake_at_ms=self._next_wake_ms(),
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_due_jobs(self) -> int:
        """Execute every due job in registry order, one at a time.

        This is what the wake timer runs. The store is written and the timer
        re-armed once, after the whole batch.

        Returns:
            Number of jobs executed.
        """
        async with self._run_lock:
            async with self._lock:
                if not self.running:
                    return 0
                now = self._clock()
                due = [job for job in self._jobs if job.is_due(now)]

            if due:
                logger.debug("cron_batch_started", extra={"cron.due_count": len(due)})

            executed = 0
            for job in due:
                async with self._lock:
                    # Removed, disabled or rescheduled since the batch was collected
                    still_due = job.is_due(now) and any(j is job for j in self._jobs)
                if not still_due:
                    continue
                await self._execute(job)
                executed += 1

            async with self._lock:
                if due:
                    self._store.save(self._jobs)
                self._arm_timer()

        return executed

    async def run_job(self, job_id: str) -> bool:
        """Execute one job now, regardless of its enabled flag.

        Must not be awaited from inside a job callback or listener, since
        those run while the execution lock is held.

        Returns:
            False if no job has this id.
        """
        async with self._run_lock:
            async with self._lock:
                self._ensure_loaded()
                job = self._find(job_id)
                if job is None:
                    return False

            await self._execute(job)

            async with self._lock:
                self._store.save(self._jobs)
                self._arm_timer()

        return True

    async def _execute(self, job: Job) -> JobExecution:
        async with self._lock:
            job.state.last_run_at_ms = self._clock()
            snapshot = job.snapshot()

        logger.info(
            "cron_job_started",
            extra={"cron.job_id": job.id, "cron.job_name": job.name},
        )

        response: str | None = None
        error: str | None = None
        try:
            if self._on_job is not None:
                response = await self._on_job(snapshot)
            success = True
        except Exception as e:
            success = False
            error = str(e) or type(e).__name__
            logger.exception(
                "cron_job_failed",
                extra={"cron.job_id": job.id, "error.message": error},
            )

        async with self._lock:
            finished = self._clock()
            job.state.last_status = "ok" if success else "error"
            job.state.last_error = error
            job.updated_at_ms = finished

            if job.schedule.kind is ScheduleKind.AT:
                if job.delete_after_run:
                    self._jobs = [j for j in self._jobs if j is not job]
                else:
                    job.enabled = False
                    job.state.next_run_at_ms = None
            elif job.enabled:
                # From completion time: slow jobs push their own next run back
                job.state.next_run_at_ms = self._compute_next_run(job, finished)
            else:
                job.state.next_run_at_ms = None

            execution = JobExecution(
                job=job.snapshot(), success=success, response=response, error=error
            )

        if success:
            logger.info(
                "cron_job_completed",
                extra={
                    "cron.job_id": job.id,
                    "cron.duration_ms": finished - (job.state.last_run_at_ms or 0),
                },
            )

        await self._notify(execution)
        return execution

    async def _notify(self, execution: JobExecution) -> None:
        for listener in list(self._listeners):
            try:
                await listener(execution)
            except Exception as e:
                logger.exception(
                    "cron_listener_failed",
                    extra={"cron.job_id": execution.job.id, "error.message": str(e)},
                )

    # ------------------------------------------------------------------
    # Internal helpers (callers hold self._lock)
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._jobs = self._store.load()
            self._loaded = True

    def _find(self, job_id: str) -> Job | None:
        return next((job for job in self._jobs if job.id == job_id), None)

    def _new_id(self) -> str:
        existing = {job.id for job in self._jobs}
        while True:
            job_id = uuid.uuid4().hex[:8]
            if job_id not in existing:
                return job_id

    def _compute_next_run(self, job: Job, now: int) -> int | None:
        next_run = next_run_ms(job.schedule, now, self._timezone)
        if next_run is None and job.schedule.kind is ScheduleKind.CRON:
            logger.warning(
                "cron_next_run_unavailable",
                extra={
                    "cron.job_id": job.id,
                    "cron.expr": job.schedule.expr,
                    "cron.tz": job.schedule.tz or self._timezone,
                },
            )
        return next_run

    def _next_wake_ms(self) -> int | None:
        times = [
            job.state.next_run_at_ms
            for job in self._jobs
            if job.enabled and job.state.next_run_at_ms is not None
        ]
        return min(times) if times else None

    def _arm_timer(self) -> None:
        if not self.running:
            self._timer.cancel()
            return
        self._timer.arm(self._next_wake_ms(), self._clock())
