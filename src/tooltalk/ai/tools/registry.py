"""Tool registry for discovering and managing available tools."""

from __future__ import annotations

from pydantic import BaseModel

from tooltalk.ai.models import ToolSpec
from tooltalk.ai.tools.base import Tool
from tooltalk.ai.tools.function import FunctionTool, ToolFunction
from tooltalk.log import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Name-keyed registry of tools available to an engine.

    Registering a name that already exists replaces the previous tool.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        name = tool.definition().name
        if name in self._tools:
            logger.info("tool_replaced", tool_name=name)
        else:
            logger.info("tool_registered", tool_name=name)
        self._tools[name] = tool

    def register_function(
        self,
        name: str,
        description: str,
        function: ToolFunction,
        args_model: type[BaseModel] | None = None,
    ) -> FunctionTool:
        tool = FunctionTool(name, description, function, args_model)
        self.register(tool)
        return tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_tools_by_names(self, names: list[str]) -> list[Tool]:
        """Get a subset of tools by name list."""
        return [self._tools[n] for n in names if n in self._tools]

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def is_empty(self) -> bool:
        return not self._tools

    def definitions(self) -> list[ToolSpec]:
        """Wire-ready definitions of every registered tool. Order is not guaranteed."""
        return [ToolSpec(function=tool.definition()) for tool in self._tools.values()]

    def discover_and_register(self, names: list[str] | None = None) -> None:
        """Register built-in tools, optionally restricted to ``names``."""
        from tooltalk.ai.tools.builtin import builtin_tools

        for tool in builtin_tools():
            if names is None or tool.name in names:
                self.register(tool)

        if names:
            missing = sorted(set(names) - set(self._tools))
            if missing:
                logger.warning("unknown_builtin_tools", tool_names=missing)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
