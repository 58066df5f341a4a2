"""Volatile in-process persistence store."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from tooltalk.ai.models import SessionState
from tooltalk.storage.base import PersistenceStore, UpdateClock
from tooltalk.storage.models import ConversationMetadata


class MemoryStore(PersistenceStore):
    """Dict-backed store for tests and single-process development.

    States are copied on the way in and out so callers never share a
    transcript list with the store.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, tuple[SessionState, ConversationMetadata]] = {}
        self._clock = UpdateClock()

    async def store(self, session_id: str, state: SessionState, name: Optional[str] = None) -> None:
        now = self._clock.now()
        existing = self._conversations.get(session_id)
        if existing is not None:
            meta = replace(
                existing[1],
                updated_at=now,
                message_count=state.message_count,
                token_count=state.token_count,
                name=name if name is not None else existing[1].name,
            )
        else:
            meta = ConversationMetadata(
                id=session_id,
                name=name,
                created_at=now,
                updated_at=now,
                message_count=state.message_count,
                token_count=state.token_count,
            )
        self._conversations[session_id] = (state.snapshot(), meta)

    async def load(self, session_id: str) -> SessionState | None:
        entry = self._conversations.get(session_id)
        return entry[0].snapshot() if entry else None

    async def delete(self, session_id: str) -> None:
        self._conversations.pop(session_id, None)

    async def list_conversations(self, limit: int, offset: int = 0) -> list[ConversationMetadata]:
        metadata = sorted(
            (meta for _, meta in self._conversations.values()),
            key=lambda m: m.updated_at,
            reverse=True,
        )
        return [replace(m) for m in metadata[offset : offset + limit]]

    def __len__(self) -> int:
        return len(self._conversations)
