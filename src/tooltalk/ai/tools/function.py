"""Wrap plain coroutines as tools, deriving the schema from a pydantic argument model."""

from __future__ import annotations

import inspect
import typing
from typing import Any, Awaitable, Callable, Union

from pydantic import BaseModel, ValidationError

from tooltalk.ai.tools.base import Tool
from tooltalk.errors import ParseError

ToolFunction = Callable[[Any], Union[Awaitable[Any], Any]]


def _infer_args_model(function: ToolFunction) -> type[BaseModel]:
    """Return the pydantic model annotated on the function's first parameter."""
    params = list(inspect.signature(function).parameters.values())
    if not params:
        raise TypeError(f"{function!r} must take a single pydantic model argument")
    hints = typing.get_type_hints(function)
    annotation = hints.get(params[0].name)
    if not (inspect.isclass(annotation) and issubclass(annotation, BaseModel)):
        raise TypeError(
            f"First parameter of {function!r} must be annotated with a pydantic model, got {annotation!r}"
        )
    return annotation


class FunctionTool(Tool):
    """A tool backed by a function taking one pydantic model argument.

    The function may be sync or async; its return value is converted with
    ``str()`` before being handed back to the model.
    """

    def __init__(
        self,
        name: str,
        description: str,
        function: ToolFunction,
        args_model: type[BaseModel] | None = None,
    ):
        self._name = name
        self._description = description
        self._function = function
        self._args_model = args_model or _infer_args_model(function)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._args_model.model_json_schema()

    @property
    def args_model(self) -> type[BaseModel]:
        return self._args_model

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        if self.strict:
            unexpected = set(arguments) - set(self._args_model.model_fields)
            if unexpected:
                raise ParseError(
                    f"Invalid arguments for '{self.name}': unexpected fields {sorted(unexpected)}"
                )
        try:
            self._args_model.model_validate(arguments)
        except ValidationError as e:
            raise ParseError(f"Invalid arguments for '{self.name}': {e}") from e

    async def run(self, **kwargs: Any) -> str:
        args = self._args_model.model_validate(kwargs)
        result = self._function(args)
        if inspect.isawaitable(result):
            result = await result
        return str(result)


def function_tool(
    name: str | None = None, description: str | None = None
) -> Callable[[ToolFunction], FunctionTool]:
    """Decorator form of :class:`FunctionTool`; defaults to the function's name and docstring."""

    def decorator(function: ToolFunction) -> FunctionTool:
        return FunctionTool(
            name or function.__name__,
            description or inspect.getdoc(function) or "",
            function,
        )

    return decorator
