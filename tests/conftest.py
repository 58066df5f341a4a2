"""Shared fixtures: scripted and echoing model endpoints, stores, tools."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

import pytest
import pytest_asyncio
from pydantic import BaseModel

from tooltalk.ai.client import ModelEndpoint
from tooltalk.ai.models import ChatChoice, ChatRequest, ChatResponse, Message, ToolCall, Usage
from tooltalk.ai.tools.registry import ToolRegistry
from tooltalk.core.types import Role
from tooltalk.storage.conversation_repo import ConversationRepository
from tooltalk.storage.database import Database
from tooltalk.storage.memory import MemoryStore

# ---------------------------------------------------------------------------
# Canned replies
# ---------------------------------------------------------------------------


def text_reply(content: str | None, tokens: int = 10, finish_reason: str = "stop") -> ChatResponse:
    return ChatResponse(
        id="resp",
        model="test-model",
        choices=[
            ChatChoice(
                message=Message(role=Role.ASSISTANT, content=content),
                finish_reason=finish_reason,
            )
        ],
        usage=Usage(prompt_tokens=tokens - 1, completion_tokens=1, total_tokens=tokens),
    )


def tool_reply(*calls: tuple[str, str, str], tokens: int = 10) -> ChatResponse:
    """Reply asking for ``(call_id, tool_name, arguments_json)`` calls."""
    return ChatResponse(
        id="resp",
        model="test-model",
        choices=[
            ChatChoice(
                message=Message(
                    role=Role.ASSISTANT,
                    tool_calls=[ToolCall.create(*call) for call in calls],
                ),
                finish_reason="tool_calls",
            )
        ],
        usage=Usage(prompt_tokens=tokens - 1, completion_tokens=1, total_tokens=tokens),
    )


# ---------------------------------------------------------------------------
# Fake endpoints
# ---------------------------------------------------------------------------


class ScriptedEndpoint(ModelEndpoint):
    """Replays canned responses in order and records every request."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses: deque[Any] = deque(responses or [])
        self.requests: list[ChatRequest] = []
        self.closed = False

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def send(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("ScriptedEndpoint ran out of responses")
        item = self.responses.popleft()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class EchoEndpoint(ModelEndpoint):
    """Answers every request with the last user message, optionally after a delay.

    Tracks how many requests are in flight at once.
    """

    def __init__(self, delay: float = 0.0, tokens: int = 5):
        self.delay = delay
        self.tokens = tokens
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0
        self.log: list[str] = []

    async def send(self, request: ChatRequest) -> ChatResponse:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        last_user = next(m.content for m in reversed(request.messages) if m.role == Role.USER)
        self.log.append(f"start:{last_user}")
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        self.log.append(f"end:{last_user}")
        return text_reply(f"echo: {last_user}", tokens=self.tokens)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class AddArgs(BaseModel):
    a: int
    b: int


async def add(args: AddArgs) -> int:
    return args.a + args.b


@pytest.fixture
def registry() -> ToolRegistry:
    tools = ToolRegistry()
    tools.register_function("add", "Add two integers.", add)
    return tools


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    db = Database(str(tmp_path / "tooltalk.db"))
    await db.initialize()
    store = ConversationRepository(db)
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """Each persistence backend in turn."""
    if request.param == "memory":
        yield MemoryStore()
        return
    db = Database(str(tmp_path / "tooltalk.db"))
    await db.initialize()
    repo = ConversationRepository(db)
    yield repo
    await repo.close()
