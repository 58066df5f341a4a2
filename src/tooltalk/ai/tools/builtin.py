"""Small built-in tools, selectable by name from the ``ai.tools`` config list."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from tooltalk.ai.tools.base import Tool
from tooltalk.ai.tools.function import function_tool


class ReverseTextArgs(BaseModel):
    text: str = Field(description="The string to reverse.")


@function_tool(name="reverse_text")
async def reverse_text(args: ReverseTextArgs) -> str:
    """Reverse a string of text character by character."""
    return args.text[::-1]


class CurrentTimeTool(Tool):
    """Report the current wall-clock time in a given IANA timezone."""

    @property
    def name(self) -> str:
        return "current_time"

    @property
    def description(self) -> str:
        return "Get the current date and time, optionally in a specific IANA timezone (default: UTC)."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": "IANA timezone name such as 'Europe/Berlin' (default: 'UTC')",
                },
            },
            "required": [],
        }

    async def run(self, **kwargs: Any) -> str:
        tz_name = kwargs.get("timezone") or "UTC"
        tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
        now = datetime.now(tz)
        return now.isoformat(timespec="seconds")


def builtin_tools() -> list[Tool]:
    return [reverse_text, CurrentTimeTool()]
