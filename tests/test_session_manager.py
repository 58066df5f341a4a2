"""Tests for the session manager: lifecycle, caching, eviction and concurrency."""

import asyncio
import uuid

import pytest

from tooltalk.config import AIConfig, ManagerConfig
from tooltalk.core.session import SessionManager
from tooltalk.core.types import EvictionPolicy
from tooltalk.errors import AgentError, ParseError, SessionNotFoundError
from tooltalk.storage.memory import MemoryStore

from conftest import EchoEndpoint, ScriptedEndpoint, text_reply


def make_manager(endpoint=None, store=None, capacity=100, eviction=EvictionPolicy.INSERTION, **ai):
    return SessionManager(
        endpoint or EchoEndpoint(),
        store if store is not None else MemoryStore(),
        ai_config=AIConfig(model="test-model", **ai),
        config=ManagerConfig(max_cached_sessions=capacity, eviction=eviction),
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_is_durable_and_cached(self, store):
        manager = make_manager(store=store, system_prompt="sys")
        session_id = await manager.create(name="demo")

        assert uuid.UUID(session_id).version == 4
        assert manager.cached_ids() == [session_id]
        state = await store.load(session_id)
        assert state.message_count == 1
        listed = await manager.list_conversations()
        assert [(m.id, m.name) for m in listed] == [(session_id, "demo")]

    @pytest.mark.asyncio
    async def test_run_returns_answer_and_persists(self, store):
        manager = make_manager(store=store)
        session_id = await manager.create()

        assert await manager.run(session_id, "hello") == "echo: hello"
        state = await store.load(session_id)
        assert state.message_count == 2
        assert state.token_count == 5

    @pytest.mark.asyncio
    async def test_message_and_token_counts_grow(self):
        manager = make_manager()
        session_id = await manager.create()
        previous_messages, previous_tokens = 0, 0
        for text in ("a", "b", "c"):
            await manager.run(session_id, text)
            engine = (await manager.get(session_id)).engine
            assert engine.message_count >= previous_messages + 2
            assert engine.token_count >= previous_tokens
            previous_messages, previous_tokens = engine.message_count, engine.token_count

    @pytest.mark.asyncio
    async def test_get_unknown_id_raises_not_found(self):
        manager = make_manager()
        with pytest.raises(SessionNotFoundError, match="Agent not found: nope"):
            await manager.get("nope")
        assert manager.cache_size() == 0

    @pytest.mark.asyncio
    async def test_not_found_is_an_agent_error(self):
        manager = make_manager()
        with pytest.raises(AgentError):
            await manager.run("nope", "hi")

    @pytest.mark.asyncio
    async def test_delete_removes_from_cache_and_store(self, store):
        manager = make_manager(store=store)
        keep = await manager.create()
        gone = await manager.create()

        await manager.delete(gone)
        assert gone not in manager.cached_ids()
        with pytest.raises(SessionNotFoundError):
            await manager.get(gone)
        assert [m.id for m in await manager.list_conversations()] == [keep]

    @pytest.mark.asyncio
    async def test_delete_unknown_id_is_quiet(self):
        manager = make_manager()
        await manager.delete("never-existed")

    @pytest.mark.asyncio
    async def test_failed_run_is_not_persisted(self):
        endpoint = ScriptedEndpoint([text_reply("first"), text_reply("")])
        store = MemoryStore()
        manager = make_manager(endpoint=endpoint, store=store)
        session_id = await manager.create()

        await manager.run(session_id, "one")
        with pytest.raises(ParseError):
            await manager.run(session_id, "two")
        assert (await store.load(session_id)).message_count == 2

    @pytest.mark.asyncio
    async def test_list_paginates_most_recent_first(self):
        manager = make_manager()
        ids = [await manager.create() for _ in range(3)]
        await manager.run(ids[0], "bump")

        listed = [m.id for m in await manager.list_conversations(limit=2)]
        assert listed == [ids[0], ids[2]]
        assert [m.id for m in await manager.list_conversations(limit=2, offset=2)] == [ids[1]]
        assert await manager.list_conversations(offset=10) == []


# ---------------------------------------------------------------------------
# Cache and eviction
# ---------------------------------------------------------------------------


class TestEviction:
    @pytest.mark.asyncio
    async def test_cache_bounded_after_many_creates(self):
        manager = make_manager(capacity=3)
        ids = [await manager.create() for _ in range(5)]

        assert manager.cache_size() == 3
        assert manager.cached_ids() == ids[2:]

    @pytest.mark.asyncio
    async def test_evicted_session_reloads_with_history(self, store):
        manager = make_manager(store=store, capacity=2)
        first = await manager.create()
        await manager.run(first, "remember me")
        await manager.create()
        await manager.create()
        assert first not in manager.cached_ids()

        handle = await manager.get(first)
        assert handle.engine.message_count == 2
        assert first in manager.cached_ids()
        assert manager.cache_size() == 2
        assert await manager.run(first, "again") == "echo: again"

    @pytest.mark.asyncio
    async def test_eviction_retires_handle(self):
        manager = make_manager(capacity=1)
        first = await manager.create()
        handle = await manager.get(first)
        await manager.create()
        assert handle.retired

        reloaded = await manager.get(first)
        assert reloaded is not handle
        assert not reloaded.retired

    @pytest.mark.asyncio
    async def test_insertion_policy_ignores_access(self):
        manager = make_manager(capacity=2)
        a = await manager.create()
        b = await manager.create()
        await manager.get(a)
        await manager.create()
        assert a not in manager.cached_ids()
        assert b in manager.cached_ids()

    @pytest.mark.asyncio
    async def test_access_policy_keeps_recently_used(self):
        manager = make_manager(capacity=2, eviction=EvictionPolicy.ACCESS)
        a = await manager.create()
        b = await manager.create()
        await manager.get(a)
        await manager.create()
        assert a in manager.cached_ids()
        assert b not in manager.cached_ids()

    @pytest.mark.asyncio
    async def test_busy_session_is_not_evicted(self):
        manager = make_manager(capacity=1)
        busy = await manager.create()
        handle = await manager.get(busy)

        async with handle.lock:
            other = await manager.create()
            assert busy in manager.cached_ids()
            assert other in manager.cached_ids()
            assert not handle.retired

        # the next insert catches up once the busy session is idle
        await manager.create()
        assert manager.cache_size() == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_handle(self):
        store = MemoryStore()
        seed = make_manager(store=store)
        session_id = await seed.create()

        manager = make_manager(store=store)
        handles = await asyncio.gather(*(manager.get(session_id) for _ in range(5)))
        assert all(h is handles[0] for h in handles)
        assert manager.cache_size() == 1


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_same_session_turns_never_interleave(self):
        endpoint = EchoEndpoint(delay=0.01)
        manager = make_manager(endpoint=endpoint)
        session_id = await manager.create()

        answers = await asyncio.gather(
            *(manager.run(session_id, f"m{i}") for i in range(4))
        )
        assert sorted(answers) == [f"echo: m{i}" for i in range(4)]
        assert endpoint.max_in_flight == 1
        # every start is immediately followed by its own end
        for start, end in zip(endpoint.log[::2], endpoint.log[1::2]):
            assert start.replace("start:", "") == end.replace("end:", "")
        assert (await manager.get(session_id)).engine.message_count == 8

    @pytest.mark.asyncio
    async def test_different_sessions_run_in_parallel(self):
        endpoint = EchoEndpoint(delay=0.05)
        manager = make_manager(endpoint=endpoint)
        a = await manager.create()
        b = await manager.create()

        await asyncio.gather(manager.run(a, "x"), manager.run(b, "y"))
        assert endpoint.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_run_after_eviction_while_waiting_uses_fresh_engine(self):
        store = MemoryStore()
        manager = make_manager(store=store, capacity=1)
        session_id = await manager.create()
        handle = await manager.get(session_id)

        await handle.lock.acquire()
        queued = asyncio.create_task(manager.run(session_id, "two"))
        await asyncio.sleep(0)
        handle.lock.release()
        # evict before the queued run wakes up on the old handle
        await manager.create()
        assert handle.retired

        assert await queued == "echo: two"
        assert handle.engine.message_count == 0
        fresh = await manager.get(session_id)
        assert fresh is not handle
        assert fresh.engine.message_count == 2
        state = await store.load(session_id)
        assert [m.content for m in state.messages] == ["two", "echo: two"]

    @pytest.mark.asyncio
    async def test_delete_waits_for_in_flight_turn(self):
        endpoint = EchoEndpoint(delay=0.02)
        store = MemoryStore()
        manager = make_manager(endpoint=endpoint, store=store)
        session_id = await manager.create()

        running = asyncio.create_task(manager.run(session_id, "hi"))
        await asyncio.sleep(0)
        await manager.delete(session_id)
        assert await running == "echo: hi"
        assert await store.load(session_id) is None

    @pytest.mark.asyncio
    async def test_timeout_leaves_session_usable(self):
        endpoint = EchoEndpoint(delay=0.2)
        store = MemoryStore()
        manager = make_manager(endpoint=endpoint, store=store)
        session_id = await manager.create()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(manager.run(session_id, "slow"), timeout=0.02)
        assert (await store.load(session_id)).message_count == 0

        endpoint.delay = 0
        assert await manager.run(session_id, "fast") == "echo: fast"
