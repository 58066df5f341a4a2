"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class ConversationMetadata:
    """Listing projection of a stored conversation; no transcript attached."""

    id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    token_count: int = 0
    name: Optional[str] = None


@dataclass
class MessageRecord:
    """One row of the ``messages`` table."""

    conversation_id: str
    position: int
    role: str  # "system" | "user" | "assistant" | "tool"
    content: Optional[str] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls_json: Optional[str] = None
    id: Optional[str] = None
