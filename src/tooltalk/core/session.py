"""Session manager: a bounded cache of live engines in front of a persistence store."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

import structlog

from tooltalk.ai.client import ModelEndpoint
from tooltalk.ai.engine import Engine, SessionBinding
from tooltalk.ai.tools.registry import ToolRegistry
from tooltalk.config import AIConfig, ManagerConfig
from tooltalk.core.locks import ReadWriteLock
from tooltalk.core.types import EvictionPolicy
from tooltalk.errors import SessionNotFoundError
from tooltalk.log import get_logger
from tooltalk.storage.base import PersistenceStore, new_session_id
from tooltalk.storage.models import ConversationMetadata

logger = get_logger(__name__)


@dataclass(eq=False)
class SessionHandle:
    """A cached engine plus the lock that serializes turns on it.

    ``retired`` is set once the handle leaves the cache; whoever still holds
    it must resolve the id again.
    """

    id: str
    engine: Engine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    retired: bool = False

    @property
    def busy(self) -> bool:
        return self.lock.locked()


class SessionManager:
    """Creates, caches, evicts and routes turns to per-session engines.

    The cache table sits behind a reader/writer lock that is never held
    across an endpoint, tool or store call. Each session's turn loop runs
    under that session's own lock, so different sessions proceed in parallel
    while turns on one session queue up.
    """

    def __init__(
        self,
        endpoint: ModelEndpoint,
        store: PersistenceStore,
        tools: ToolRegistry | None = None,
        ai_config: AIConfig | None = None,
        config: ManagerConfig | None = None,
    ):
        self._endpoint = endpoint
        self._store = store
        self._tools = tools if tools is not None else ToolRegistry()
        self._ai_config = ai_config or AIConfig()
        self._config = config or ManagerConfig()
        self._cache: OrderedDict[str, SessionHandle] = OrderedDict()
        self._cache_lock = ReadWriteLock()

    @property
    def store(self) -> PersistenceStore:
        return self._store

    @property
    def capacity(self) -> int:
        return self._config.max_cached_sessions

    def cached_ids(self) -> list[str]:
        """Cached session ids, next eviction candidate first."""
        return list(self._cache)

    def cache_size(self) -> int:
        return len(self._cache)

    def _new_engine(self, session_id: str) -> Engine:
        return Engine(
            self._endpoint,
            tools=self._tools,
            config=self._ai_config,
            binding=SessionBinding(session_id, self._store),
        )

    async def create(self, name: Optional[str] = None) -> str:
        """Start a new session and persist its initial state. Returns the new id."""
        session_id = new_session_id()
        engine = self._new_engine(session_id)
        await engine.save(name=name)
        await self._insert(SessionHandle(session_id, engine))
        logger.info("session_created", session_id=session_id, name=name)
        return session_id

    async def get(self, session_id: str) -> SessionHandle:
        """Return the cached handle, loading it from the store on a miss.

        Raises SessionNotFoundError if the store has no such session.
        """
        handle = await self._lookup(session_id)
        if handle is not None:
            return handle

        engine = self._new_engine(session_id)
        if not await engine.load():
            raise SessionNotFoundError(session_id)
        logger.info("session_loaded", session_id=session_id, messages=engine.message_count)
        return await self._insert(SessionHandle(session_id, engine))

    async def run(self, session_id: str, text: str) -> str:
        """Run one turn loop on the session and return the final answer."""
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            while True:
                handle = await self.get(session_id)
                async with handle.lock:
                    if handle.retired:
                        # evicted or deleted while we waited
                        continue
                    return await handle.engine.run(text)

    async def delete(self, session_id: str) -> None:
        """Remove the session from the cache and the store. Unknown ids are ignored."""
        async with self._cache_lock.write():
            handle = self._cache.pop(session_id, None)
            if handle is not None:
                handle.retired = True

        if handle is not None:
            # let an in-flight turn finish and persist before the record goes
            async with handle.lock:
                await self._store.delete(session_id)
        else:
            await self._store.delete(session_id)
        logger.info("session_deleted", session_id=session_id)

    async def list_conversations(self, limit: int = 100, offset: int = 0) -> list[ConversationMetadata]:
        return await self._store.list_conversations(limit, offset)

    async def _lookup(self, session_id: str) -> SessionHandle | None:
        if self._config.eviction == EvictionPolicy.ACCESS:
            async with self._cache_lock.write():
                handle = self._cache.get(session_id)
                if handle is not None:
                    self._cache.move_to_end(session_id)
                return handle

        async with self._cache_lock.read():
            return self._cache.get(session_id)

    async def _insert(self, handle: SessionHandle) -> SessionHandle:
        async with self._cache_lock.write():
            existing = self._cache.get(handle.id)
            if existing is not None:
                # a concurrent miss got here first
                return existing
            self._cache[handle.id] = handle
            self._evict(keep=handle.id)
        return handle

    def _evict(self, keep: str) -> None:
        """Drop oldest idle handles until the cache is back at capacity. Caller holds the write lock."""
        overflow = len(self._cache) - self._config.max_cached_sessions
        if overflow <= 0:
            return
        for session_id, handle in list(self._cache.items()):
            if overflow <= 0:
                break
            if session_id == keep or handle.busy:
                continue
            del self._cache[session_id]
            handle.retired = True
            overflow -= 1
            logger.info("session_evicted", session_id=session_id)
        if overflow > 0:
            logger.warning("cache_over_capacity", size=len(self._cache), capacity=self.capacity)
