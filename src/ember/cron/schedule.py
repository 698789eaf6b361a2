"""Schedule evaluation and validation.

``next_run_ms`` is pure and never raises: a schedule that cannot be evaluated
yields ``None`` and the job goes dormant. ``validate_schedule`` is the strict
counterpart used before a job is created.
"""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from ember.config.paths import get_system_timezone
from ember.cron.types import Schedule, ScheduleKind

CRON_FIELD_COUNT = 5


class InvalidScheduleError(ValueError):
    """Raised when a schedule is rejected at creation time."""


def next_run_ms(
    schedule: Schedule,
    now_ms: int,
    default_timezone: str | None = None,
) -> int | None:
    """Compute the next epoch-ms at which ``schedule`` fires after ``now_ms``.

    Args:
        schedule: The schedule to evaluate.
        now_ms: Current epoch time in milliseconds.
        default_timezone: IANA timezone for cron schedules without their own
            ``tz``. Falls back to the system timezone.

    Returns:
        Epoch milliseconds of the next run, or None if the schedule will not
        fire again (or cannot be evaluated).
    """
    if schedule.kind is ScheduleKind.AT:
        if schedule.at_ms is not None and schedule.at_ms > now_ms:
            return schedule.at_ms
        return None

    if schedule.kind is ScheduleKind.EVERY:
        if schedule.every_ms is not None and schedule.every_ms > 0:
            return now_ms + schedule.every_ms
        return None

    if schedule.kind is ScheduleKind.CRON:
        try:
            return _next_cron_ms(schedule, now_ms, default_timezone)
        except Exception:
            return None

    return None


def _next_cron_ms(
    schedule: Schedule, now_ms: int, default_timezone: str | None
) -> int | None:
    if not schedule.expr or len(schedule.expr.split()) != CRON_FIELD_COUNT:
        return None

    tz = ZoneInfo(schedule.tz or default_timezone or get_system_timezone())
    base = datetime.fromtimestamp(now_ms / 1000, tz)
    itr = croniter(schedule.expr, base)

    # Cron expressions are evaluated in local time so "0 8 * * *" stays at
    # 8 AM across DST changes; the result is converted back to epoch ms.
    next_ms = int(itr.get_next(datetime).timestamp() * 1000)
    while next_ms <= now_ms:
        next_ms = int(itr.get_next(datetime).timestamp() * 1000)
    return next_ms


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def validate_schedule(schedule: Schedule) -> None:
    """Reject schedules that can never be evaluated.

    Raises:
        InvalidScheduleError: If a required field is missing, the cron
            expression is malformed, or the timezone is unknown.
    """
    if schedule.kind is ScheduleKind.AT:
        if schedule.at_ms is None:
            raise InvalidScheduleError("'at' schedule requires at_ms")
        return

    if schedule.kind is ScheduleKind.EVERY:
        if schedule.every_ms is None:
            raise InvalidScheduleError("'every' schedule requires every_ms")
        return

    if not schedule.expr:
        raise InvalidScheduleError("'cron' schedule requires an expression")
    if len(schedule.expr.split()) != CRON_FIELD_COUNT or not croniter.is_valid(
        schedule.expr
    ):
        raise InvalidScheduleError(f"Invalid cron expression: {schedule.expr}")
    if schedule.tz and not is_valid_timezone(schedule.tz):
        raise InvalidScheduleError(f"Invalid timezone: {schedule.tz}")


def parse_at(value: str, default_timezone: str | None = None) -> int:
    """Parse an ISO 8601 timestamp into epoch milliseconds.

    Naive timestamps are interpreted in ``default_timezone`` (or the system
    timezone).

    Raises:
        InvalidScheduleError: If the timestamp cannot be parsed.
    """
    try:
        when = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidScheduleError(f"Invalid datetime format: {value}") from e

    if when.tzinfo is None:
        tz_name = default_timezone or get_system_timezone()
        if not is_valid_timezone(tz_name):
            raise InvalidScheduleError(f"Invalid timezone: {tz_name}")
        when = when.replace(tzinfo=ZoneInfo(tz_name))
    return int(when.timestamp() * 1000)
