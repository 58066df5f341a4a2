"""Abstract tool interface for model-callable capabilities."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

import jsonschema

from tooltalk.ai.models import ToolDefinition
from tooltalk.errors import ParseError, ToolError


def decode_arguments(arguments_json: str) -> dict[str, Any]:
    """Decode the model's JSON argument string into a keyword mapping."""
    if not arguments_json or not arguments_json.strip():
        return {}
    try:
        arguments = json.loads(arguments_json)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse tool arguments: {e}") from e
    if not isinstance(arguments, dict):
        raise ParseError(f"Tool arguments must be a JSON object, got {type(arguments).__name__}")
    return arguments


class Tool(ABC):
    """Base class for all model-callable tools.

    Subclasses declare a JSON Schema for their arguments and implement
    :meth:`run`. Callers go through :meth:`execute`, which decodes and validates
    the raw argument string before the tool body ever sees it.
    """

    #: Emit ``additionalProperties: false`` and ``strict: true`` in the definition.
    strict: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the model."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the model."""
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def run(self, **kwargs: Any) -> str:
        """Run the tool on validated arguments and return a text result."""
        ...

    def definition(self) -> ToolDefinition:
        schema = dict(self.input_schema)
        if self.strict:
            schema["additionalProperties"] = False
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=schema,
            strict=True if self.strict else None,
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check decoded arguments against the declared schema."""
        try:
            jsonschema.validate(arguments, self.definition().parameters)
        except jsonschema.ValidationError as e:
            raise ParseError(f"Invalid arguments for '{self.name}': {e.message}") from e
        except jsonschema.SchemaError as e:
            raise ToolError(f"Tool '{self.name}' declares an invalid schema: {e.message}") from e

    async def execute(self, arguments_json: str) -> str:
        """Decode, validate and run. Failures inside the tool body become ToolError."""
        arguments = decode_arguments(arguments_json)
        self.validate_arguments(arguments)
        try:
            return await self.run(**arguments)
        except ToolError:
            raise
        except Exception as e:
            raise ToolError(f"Error executing {self.name}: {e}") from e
