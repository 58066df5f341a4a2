"""Turn loop that drives one conversation to a final answer, dispatching tool calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tooltalk.ai.client import ModelEndpoint
from tooltalk.ai.models import ChatRequest, Message, SessionState, ToolCall
from tooltalk.ai.tools.registry import ToolRegistry
from tooltalk.config import AIConfig
from tooltalk.errors import AgentError, ParseError, ToolError
from tooltalk.log import get_logger
from tooltalk.storage.base import PersistenceStore

logger = get_logger(__name__)


@dataclass
class SessionBinding:
    """Ties an engine to a session id in a persistence store."""

    id: str
    store: PersistenceStore


class Engine:
    """Owns a transcript and runs the request/tool-dispatch loop over it.

    ``run`` mutates the transcript in place. If it fails part way, everything
    appended so far stays in memory; only a successful run is persisted, and
    only when the engine has a :class:`SessionBinding`.
    """

    def __init__(
        self,
        endpoint: ModelEndpoint,
        tools: ToolRegistry | None = None,
        config: AIConfig | None = None,
        state: SessionState | None = None,
        binding: SessionBinding | None = None,
    ):
        self._endpoint = endpoint
        self._tools = tools if tools is not None else ToolRegistry()
        self._config = config or AIConfig()
        self._binding = binding
        if state is not None:
            self._state = state.snapshot()
        else:
            self._state = SessionState()
            if self._config.system_prompt:
                self._state.messages.append(Message.system(self._config.system_prompt))

    @property
    def id(self) -> Optional[str]:
        return self._binding.id if self._binding else None

    @property
    def state(self) -> SessionState:
        return self._state.snapshot()

    @property
    def message_count(self) -> int:
        return self._state.message_count

    @property
    def token_count(self) -> int:
        return self._state.token_count

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def push_user_message(self, content: str) -> None:
        self._state.messages.append(Message.user(content))

    def push_assistant_message(self, content: str) -> None:
        self._state.messages.append(Message.assistant(content))

    async def run(self, user_input: str) -> str:
        """Append ``user_input`` and loop until the model produces a final answer.

        Raises AgentError once ``max_turns`` requests have been sent without
        an answer, ToolError for unknown or failing tools, ParseError for
        replies that are neither an answer nor a tool request, and whatever
        the endpoint raises.
        """
        self.push_user_message(user_input)
        max_turns = self._config.max_turns
        turns = 0

        while True:
            if turns >= max_turns:
                raise AgentError(f"Agent exceeded maximum turns ({max_turns})")
            turns += 1

            request = self._prepare_request()
            logger.debug(
                "turn_request",
                turn=turns,
                messages=len(request.messages),
                tools=len(request.tools or []),
            )
            response = await self._endpoint.send(request)

            if response.usage is not None:
                self._state.token_count += response.usage.total_tokens

            if not response.choices:
                raise ParseError("No response choices received")

            choice = response.choices[0]
            message = choice.message
            self._state.messages.append(message)

            if message.tool_calls:
                for call in message.tool_calls:
                    await self._execute_tool_call(call)
                continue

            if message.content and message.content.strip():
                if self._binding is not None:
                    await self.save()
                logger.debug("turn_complete", turns=turns, token_count=self._state.token_count)
                return message.content

            if choice.finish_reason == "tool_calls":
                continue

            raise ParseError(
                f"Assistant returned empty message with finish_reason: {choice.finish_reason}"
            )

    def _prepare_request(self) -> ChatRequest:
        tools = None if self._tools.is_empty() else self._tools.definitions()
        return ChatRequest(
            model=self._config.model,
            messages=list(self._state.messages),
            tools=tools,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            response_format={"type": "json_object"} if self._config.json_mode else None,
        )

    async def _execute_tool_call(self, call: ToolCall) -> None:
        tool = self._tools.get(call.name)
        if tool is None:
            raise ToolError(f"Tool not found: {call.name}")
        if not call.id:
            raise ParseError(f"Tool call for '{call.name}' has no id")

        logger.info("tool_dispatch", tool_name=call.name, call_id=call.id)
        result = await tool.execute(call.arguments_json)
        self._state.messages.append(Message.tool_result(result, call.name, call.id))

    # -- persistence --

    def _require_binding(self) -> SessionBinding:
        if self._binding is None:
            raise AgentError("Engine is not bound to a persistence store")
        return self._binding

    async def save(self, name: Optional[str] = None) -> None:
        binding = self._require_binding()
        await binding.store.store(binding.id, self._state.snapshot(), name=name)

    async def load(self) -> bool:
        """Replace in-memory state with the stored one. False if nothing is stored."""
        binding = self._require_binding()
        state = await binding.store.load(binding.id)
        if state is None:
            return False
        self._state = state.snapshot()
        return True

    async def delete(self) -> None:
        binding = self._require_binding()
        await binding.store.delete(binding.id)
