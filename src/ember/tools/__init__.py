"""Agent tools."""

from ember.tools.base import Tool, ToolContext, ToolResult
from ember.tools.cron import CronTool

__all__ = [
    "CronTool",
    "Tool",
    "ToolContext",
    "ToolResult",
]
