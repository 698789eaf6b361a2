"""Cron tool letting the agent schedule reminders and recurring tasks."""

from typing import Any

from ember.cron import (
    CronService,
    InvalidScheduleError,
    JobDefinition,
    Schedule,
    parse_at,
)
from ember.tools.base import Tool, ToolContext, ToolResult

NAME_MAX_LENGTH = 30


class CronTool(Tool):
    """Add, list and remove cron jobs from a conversation.

    Jobs created here deliver their response back to the chat the tool was
    called from.
    """

    def __init__(self, service: CronService, timezone: str | None = None) -> None:
        """Initialize cron tool.

        Args:
            service: The cron service jobs are registered with.
            timezone: Timezone for naive ``at`` timestamps.
        """
        self._service = service
        self._timezone = timezone

    @property
    def name(self) -> str:
        return "cron"

    @property
    def description(self) -> str:
        return (
            "Schedule reminders and recurring tasks. Actions: add, list, remove. "
            "For add, give a message and one of every_seconds, cron_expr or at."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add", "list", "remove"],
                },
                "message": {
                    "type": "string",
                    "description": (
                        "The complete prompt to process when triggered. Must be "
                        "self-contained, e.g. 'Remind the user to stretch'."
                    ),
                },
                "every_seconds": {
                    "type": "integer",
                    "description": "Run repeatedly every N seconds.",
                },
                "cron_expr": {
                    "type": "string",
                    "description": (
                        "5-field cron expression, e.g. '0 8 * * *' (daily 8am)."
                    ),
                },
                "tz": {
                    "type": "string",
                    "description": "IANA timezone for cron_expr, e.g. 'Europe/Paris'.",
                },
                "at": {
                    "type": "string",
                    "description": "ISO 8601 time for a one-time run.",
                },
                "job_id": {
                    "type": "string",
                    "description": "Job ID for remove.",
                },
            },
            "required": ["action"],
        }

    async def execute(
        self,
        input_data: dict[str, Any],
        context: ToolContext,
    ) -> ToolResult:
        action = str(input_data.get("action") or "").lower()
        if action == "add":
            return await self._add(input_data, context)
        if action == "list":
            return await self._list()
        if action == "remove":
            return await self._remove(input_data.get("job_id"))
        return ToolResult.error(f"Unknown action: {action}")

    async def _add(self, input_data: dict[str, Any], context: ToolContext) -> ToolResult:
        message = input_data.get("message")
        if not message or not isinstance(message, str):
            return ToolResult.error("message is required for add")

        if not context.provider or not context.chat_id:
            return ToolResult.error("No session context (channel/chat_id)")

        every_seconds = input_data.get("every_seconds")
        cron_expr = input_data.get("cron_expr")
        tz = input_data.get("tz")
        at = input_data.get("at")

        for key, value in (("cron_expr", cron_expr), ("tz", tz), ("at", at)):
            if value is not None and not isinstance(value, str):
                return ToolResult.error(f"{key} must be a string")

        if tz and not cron_expr:
            return ToolResult.error("tz can only be used with cron_expr")

        delete_after_run = False
        try:
            if every_seconds is not None:
                schedule = Schedule.every(int(every_seconds) * 1000)
            elif cron_expr:
                schedule = Schedule.cron(cron_expr, tz)
            elif at:
                schedule = Schedule.at(parse_at(at, self._timezone))
                delete_after_run = True
            else:
                return ToolResult.error(
                    "Either every_seconds, cron_expr, or at is required"
                )

            job = await self._service.add_job(
                JobDefinition(
                    name=message[:NAME_MAX_LENGTH],
                    schedule=schedule,
                    message=message,
                    deliver=True,
                    channel=context.provider,
                    to=context.chat_id,
                    delete_after_run=delete_after_run,
                )
            )
        except (InvalidScheduleError, ValueError, TypeError) as e:
            return ToolResult.error(str(e))

        return ToolResult.success(
            f"Created job '{job.name}' (id: {job.id})", job_id=job.id
        )

    async def _list(self) -> ToolResult:
        jobs = await self._service.list_jobs()
        if not jobs:
            return ToolResult.success("No scheduled jobs.")
        lines = [
            f"- {job.name} (id: {job.id}, {job.schedule.describe()})" for job in jobs
        ]
        return ToolResult.success("Scheduled jobs:\n" + "\n".join(lines))

    async def _remove(self, job_id: str | None) -> ToolResult:
        if not job_id:
            return ToolResult.error("job_id is required for remove")
        if await self._service.remove_job(job_id):
            return ToolResult.success(f"Removed job {job_id}")
        return ToolResult.error(f"Job {job_id} not found")
