"""SQLite-backed conversation repository."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Optional

import aiosqlite
from pydantic import ValidationError

from tooltalk.ai.models import Message, SessionState, ToolCall
from tooltalk.errors import AgentError, SerializationError
from tooltalk.log import get_logger
from tooltalk.storage.base import PersistenceStore, UpdateClock
from tooltalk.storage.database import Database
from tooltalk.storage.models import ConversationMetadata, MessageRecord

logger = get_logger(__name__)


class ConversationRepository(PersistenceStore):
    """Conversations and their messages in two tables, replayed by position.

    The repository shares one connection; a lock keeps each write
    transaction from interleaving with another coroutine's statements.
    """

    def __init__(self, db: Database):
        self._db = db
        self._lock = asyncio.Lock()
        self._clock = UpdateClock()

    async def store(self, session_id: str, state: SessionState, name: Optional[str] = None) -> None:
        records = [self._message_to_record(session_id, i, m) for i, m in enumerate(state.messages)]
        now = self._clock.now().isoformat()
        async with self._lock:
            conn = self._db.conn
            try:
                await conn.execute(
                    """INSERT INTO conversations
                       (id, name, created_at, updated_at, message_count, token_count)
                       VALUES (?, ?, ?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET
                           name = COALESCE(excluded.name, conversations.name),
                           updated_at = excluded.updated_at,
                           message_count = excluded.message_count,
                           token_count = excluded.token_count""",
                    (session_id, name, now, now, state.message_count, state.token_count),
                )
                await conn.execute("DELETE FROM messages WHERE conversation_id = ?", (session_id,))
                await conn.executemany(
                    """INSERT INTO messages
                       (id, conversation_id, role, content, name, tool_call_id, tool_calls, position)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (
                            r.id,
                            r.conversation_id,
                            r.role,
                            r.content,
                            r.name,
                            r.tool_call_id,
                            r.tool_calls_json,
                            r.position,
                        )
                        for r in records
                    ],
                )
                await conn.commit()
            except aiosqlite.Error as e:
                await self._rollback()
                raise AgentError(f"Failed to store conversation {session_id}: {e}") from e
            except BaseException:
                # cancelled mid-transaction; the next commit on this connection must not pick it up
                await self._rollback()
                raise
        logger.debug("conversation_stored", session_id=session_id, messages=len(records))

    async def load(self, session_id: str) -> SessionState | None:
        async with self._lock:
            try:
                cursor = await self._db.conn.execute(
                    "SELECT token_count FROM conversations WHERE id = ?", (session_id,)
                )
                row = await cursor.fetchone()
                if row is None:
                    return None
                cursor = await self._db.conn.execute(
                    """SELECT * FROM messages
                       WHERE conversation_id = ?
                       ORDER BY position ASC""",
                    (session_id,),
                )
                rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                raise AgentError(f"Failed to load conversation {session_id}: {e}") from e

        messages = [self._record_to_message(self._row_to_record(r)) for r in rows]
        return SessionState(messages=messages, token_count=row["token_count"])

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            try:
                # messages go with it through ON DELETE CASCADE
                await self._db.conn.execute("DELETE FROM conversations WHERE id = ?", (session_id,))
                await self._db.conn.commit()
            except aiosqlite.Error as e:
                await self._rollback()
                raise AgentError(f"Failed to delete conversation {session_id}: {e}") from e
            except BaseException:
                await self._rollback()
                raise
        logger.debug("conversation_deleted", session_id=session_id)

    async def list_conversations(self, limit: int, offset: int = 0) -> list[ConversationMetadata]:
        async with self._lock:
            try:
                cursor = await self._db.conn.execute(
                    """SELECT * FROM conversations
                       ORDER BY updated_at DESC
                       LIMIT ? OFFSET ?""",
                    (limit, offset),
                )
                rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                raise AgentError(f"Failed to list conversations: {e}") from e
        return [
            ConversationMetadata(
                id=row["id"],
                name=row["name"],
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
                message_count=row["message_count"],
                token_count=row["token_count"],
            )
            for row in rows
        ]

    async def close(self) -> None:
        await self._db.close()

    async def _rollback(self) -> None:
        # shielded so a second cancellation cannot abandon the rollback itself
        await asyncio.shield(self._db.conn.rollback())

    @staticmethod
    def _message_to_record(session_id: str, position: int, message: Message) -> MessageRecord:
        tool_calls_json = None
        if message.tool_calls is not None:
            tool_calls_json = json.dumps([tc.model_dump(mode="json") for tc in message.tool_calls])
        return MessageRecord(
            id=f"{session_id}-msg-{position}",
            conversation_id=session_id,
            position=position,
            role=str(message.role),
            content=message.content,
            name=message.name,
            tool_call_id=message.tool_call_id,
            tool_calls_json=tool_calls_json,
        )

    @staticmethod
    def _row_to_record(row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            conversation_id=row["conversation_id"],
            position=row["position"],
            role=row["role"],
            content=row["content"],
            name=row["name"],
            tool_call_id=row["tool_call_id"],
            tool_calls_json=row["tool_calls"],
        )

    @staticmethod
    def _record_to_message(record: MessageRecord) -> Message:
        try:
            tool_calls = None
            if record.tool_calls_json is not None:
                tool_calls = [ToolCall.model_validate(tc) for tc in json.loads(record.tool_calls_json)]
            return Message(
                role=record.role,
                content=record.content,
                name=record.name,
                tool_call_id=record.tool_call_id,
                tool_calls=tool_calls,
            )
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            raise SerializationError(f"Corrupt message {record.id}: {e}") from e
