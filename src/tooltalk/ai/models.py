"""Transcript, tool and chat-completion models shared by the engine and its endpoints."""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tooltalk.core.types import Role


class FunctionCall(BaseModel):
    """Name and JSON-encoded arguments of a requested function."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    arguments: str = ""


class ToolCall(BaseModel):
    """A request from the model to call a tool."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_fields(cls, data: Any) -> Any:
        # Older payloads carry name/arguments beside the id instead of under "function".
        if not isinstance(data, dict) or ("name" not in data and "arguments" not in data):
            return data
        data = dict(data)
        function = dict(data.get("function") or {})
        name = data.pop("name", None)
        arguments = data.pop("arguments", None)
        if name is not None:
            function["name"] = name
        if arguments is not None:
            function["arguments"] = arguments
        if isinstance(function.get("arguments"), dict):
            function["arguments"] = json.dumps(function["arguments"])
        data["function"] = function
        return data

    @classmethod
    def create(cls, call_id: str, name: str, arguments_json: str) -> ToolCall:
        return cls(id=call_id, function=FunctionCall(name=name, arguments=arguments_json))

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments_json(self) -> str:
        return self.function.arguments


class Message(BaseModel):
    """One entry of the conversation transcript.

    Messages are frozen: the transcript only ever grows by appending new ones.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None

    @model_validator(mode="after")
    def _require_tool_call_id(self) -> Message:
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool messages must reference the tool_call_id they answer")
        return self

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool_result(cls, content: str, tool_name: str, tool_call_id: str) -> Message:
        return cls(role=Role.TOOL, content=content, name=tool_name, tool_call_id=tool_call_id)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ToolDefinition(BaseModel):
    """Metadata the model needs to decide when and how to call a tool."""

    name: str
    description: str
    parameters: dict[str, Any]
    strict: Optional[bool] = None


class ToolSpec(BaseModel):
    """Wire wrapper around a tool definition."""

    type: str = "function"
    function: ToolDefinition


class ChatRequest(BaseModel):
    """Snapshot of everything sent to the model for one turn."""

    model: str
    messages: list[Message]
    tools: Optional[list[ToolSpec]] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    response_format: Optional[dict[str, str]] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatChoice(BaseModel):
    index: int = 0
    message: Message
    finish_reason: Optional[str] = None


class ChatResponse(BaseModel):
    """Reply from a model endpoint. Unknown wire fields are ignored."""

    id: str = ""
    model: str = ""
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None


class SessionState(BaseModel):
    """Transcript plus running token counter; exactly what gets cached and persisted."""

    messages: list[Message] = Field(default_factory=list)
    token_count: int = Field(default=0, ge=0)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def snapshot(self) -> SessionState:
        """Copy detached from later appends. Messages are frozen, so a shallow copy suffices."""
        return SessionState(messages=list(self.messages), token_count=self.token_count)
