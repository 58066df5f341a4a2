"""Exception hierarchy shared by the engine, session manager and backends."""

from __future__ import annotations

from typing import Optional


class ToolTalkError(Exception):
    """Base class for every error raised by tooltalk."""

    category = "tooltalk"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(ToolTalkError):
    """Bad or missing credentials, or malformed settings."""

    category = "config"


class RequestError(ToolTalkError):
    """Transport or endpoint failure while talking to the model."""

    category = "request"

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ParseError(ToolTalkError):
    """Malformed model output or tool arguments."""

    category = "parse"


class ToolError(ToolTalkError):
    """Tool lookup or execution failure."""

    category = "tool"


class AgentError(ToolTalkError):
    """Protocol, turn-limit and storage coordination failures."""

    category = "agent"


class SessionNotFoundError(AgentError):
    """No cached or persisted session exists for the requested id."""

    def __init__(self, session_id: str):
        super().__init__(f"Agent not found: {session_id}")
        self.session_id = session_id


class SerializationError(ToolTalkError):
    """Encoding or decoding of persisted or wire data failed."""

    category = "serialization"
