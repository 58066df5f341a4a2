"""Persistence contract for conversation state."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from tooltalk.ai.models import SessionState
from tooltalk.storage.models import ConversationMetadata


def new_session_id() -> str:
    return str(uuid.uuid4())


class UpdateClock:
    """UTC clock that never returns the same instant twice.

    Listing orders by ``updated_at``; two persists landing on the same clock
    tick would otherwise tie.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


class PersistenceStore(ABC):
    """Durable storage of conversation state keyed by session id.

    Every operation raises AgentError when the backend fails.
    """

    @abstractmethod
    async def store(self, session_id: str, state: SessionState, name: Optional[str] = None) -> None:
        """Upsert ``state``; the transcript fully replaces any stored one.

        ``name`` sets the conversation name; ``None`` keeps the current one.
        """
        ...

    @abstractmethod
    async def load(self, session_id: str) -> SessionState | None:
        """Return the stored state, or None if the id is unknown."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove the conversation. Unknown ids are ignored."""
        ...

    @abstractmethod
    async def list_conversations(self, limit: int, offset: int = 0) -> list[ConversationMetadata]:
        """Metadata ordered by ``updated_at``, most recent first."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
