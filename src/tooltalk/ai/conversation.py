"""Convert the chat transcript to and from the Anthropic Messages API format."""

from __future__ import annotations

import json
from typing import Any

from tooltalk.ai.models import ChatChoice, ChatResponse, Message, ToolCall, ToolSpec, Usage
from tooltalk.core.types import Role

# Anthropic stop reasons mapped onto chat-completion finish reasons
_FINISH_REASONS = {
    "tool_use": "tool_calls",
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
}


def build_messages(history: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Convert a transcript into an Anthropic ``(system, messages)`` pair.

    System messages are lifted out into the separate system prompt. Assistant
    tool calls become ``tool_use`` blocks, and consecutive tool results are
    grouped into one user message of ``tool_result`` blocks.
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []
    i = 0

    while i < len(history):
        record = history[i]

        if record.role == Role.SYSTEM:
            if record.content:
                system_parts.append(record.content)
            i += 1

        elif record.role == Role.USER:
            messages.append({"role": "user", "content": record.content or ""})
            i += 1

        elif record.role == Role.ASSISTANT:
            if record.tool_calls:
                content_blocks: list[dict[str, Any]] = []
                if record.content:
                    content_blocks.append({"type": "text", "text": record.content})
                for call in record.tool_calls:
                    try:
                        tool_input = json.loads(call.arguments_json) if call.arguments_json else {}
                    except json.JSONDecodeError:
                        tool_input = {}
                    content_blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": tool_input,
                        }
                    )
                messages.append({"role": "assistant", "content": content_blocks})
            elif record.content and record.content.strip():
                messages.append({"role": "assistant", "content": record.content})
            # empty assistant turns are dropped; the Messages API rejects blank text
            i += 1

        else:
            # Collect consecutive tool results into one user message
            result_blocks: list[dict[str, Any]] = []
            while i < len(history) and history[i].role == Role.TOOL:
                result_blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": history[i].tool_call_id,
                        "content": history[i].content or "",
                    }
                )
                i += 1
            messages.append({"role": "user", "content": result_blocks})

    return "\n\n".join(system_parts), messages


def build_tools(specs: list[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "name": spec.function.name,
            "description": spec.function.description,
            "input_schema": spec.function.parameters,
        }
        for spec in specs
    ]


def parse_response(response: Any) -> ChatResponse:
    """Turn an Anthropic ``Message`` into a single-choice chat response."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(ToolCall.create(block.id, block.name, json.dumps(block.input)))

    message = Message(
        role=Role.ASSISTANT,
        content="\n".join(text_parts) if text_parts else None,
        tool_calls=tool_calls or None,
    )

    usage = None
    if response.usage is not None:
        usage = Usage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

    finish_reason = _FINISH_REASONS.get(response.stop_reason, response.stop_reason)
    return ChatResponse(
        id=response.id,
        model=response.model,
        choices=[ChatChoice(index=0, message=message, finish_reason=finish_reason)],
        usage=usage,
    )
