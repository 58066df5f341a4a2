"""Model endpoint abstraction with OpenAI-compatible HTTP and Anthropic SDK backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

import anthropic
import httpx
from pydantic import ValidationError

from tooltalk.ai.conversation import build_messages, build_tools, parse_response
from tooltalk.ai.models import ChatRequest, ChatResponse
from tooltalk.config import AnthropicConfig, AppConfig, OpenAIConfig
from tooltalk.core.types import EndpointBackend
from tooltalk.errors import ConfigError, ParseError, RequestError, SerializationError
from tooltalk.log import get_logger

logger = get_logger(__name__)


class ModelEndpoint(ABC):
    """Abstract base class for anything that can answer a chat request.

    Endpoints own network resources: release them with :meth:`close`, or use
    the endpoint as an async context manager.
    """

    @abstractmethod
    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send one request snapshot and return the model's reply.

        Raises RequestError on transport or HTTP failure.
        """
        ...

    async def close(self) -> None:
        """Release transport resources. Safe to call more than once."""

    async def __aenter__(self) -> ModelEndpoint:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class OpenAIClient(ModelEndpoint):
    """OpenAI chat-completions backend over httpx."""

    def __init__(self, config: OpenAIConfig, transport: httpx.AsyncBaseTransport | None = None):
        if not config.api_key:
            raise ConfigError("API key not provided")

        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        if config.organization:
            headers["OpenAI-Organization"] = config.organization

        try:
            self._client = httpx.AsyncClient(
                base_url=config.base_url.rstrip("/"),
                headers=headers,
                timeout=config.timeout,
                transport=transport,
            )
        except (UnicodeEncodeError, ValueError) as e:
            raise ConfigError(f"Invalid API key or organization header: {e}") from e
        self._config = config

    @property
    def config(self) -> OpenAIConfig:
        return self._config

    async def send(self, request: ChatRequest) -> ChatResponse:
        logger.debug("api_request", model=request.model, message_count=len(request.messages))
        try:
            response = await self._client.post("/chat/completions", json=request.to_wire())
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            raise RequestError(f"Request failed: {e!r}", retryable=True) from e
        except httpx.HTTPError as e:
            raise RequestError(f"Request failed: {e!r}") from e

        if not response.is_success:
            status = response.status_code
            raise RequestError(
                f"HTTP error {status}: {response.text}",
                status_code=status,
                retryable=status == 429 or status >= 500,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SerializationError(f"Response body is not valid JSON: {e}") from e

        try:
            chat = ChatResponse.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Unexpected chat completion shape: {e}") from e

        logger.debug(
            "api_response",
            model=chat.model,
            choices=len(chat.choices),
            total_tokens=chat.usage.total_tokens if chat.usage else None,
        )
        return chat

    async def close(self) -> None:
        await self._client.aclose()


class AnthropicClient(ModelEndpoint):
    """Anthropic Messages API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig):
        if not config.api_key:
            raise ConfigError("Anthropic API key not provided")

        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def send(self, request: ChatRequest) -> ChatResponse:
        system, messages = build_messages(request.messages)
        kwargs: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens or 1024,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.tools:
            kwargs["tools"] = build_tools(request.tools)
        if request.response_format:
            logger.debug("response_format_ignored", backend="anthropic")

        logger.debug("api_request", model=request.model, message_count=len(messages))
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise RequestError(
                f"HTTP error {e.status_code}: {e.message}",
                status_code=e.status_code,
                retryable=e.status_code == 429 or e.status_code >= 500,
            ) from e
        except anthropic.APIConnectionError as e:
            raise RequestError(f"Request failed: {e}", retryable=True) from e
        except anthropic.APIError as e:
            raise RequestError(f"Request failed: {e}") from e

        logger.debug(
            "api_response",
            model=request.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return parse_response(response)

    async def close(self) -> None:
        await self._client.close()


def create_endpoint(config: AppConfig) -> ModelEndpoint:
    """Build the endpoint selected by ``ai.backend``, failing fast on missing settings."""
    from tooltalk.ai.retry import RetryingEndpoint

    match config.ai.backend:
        case EndpointBackend.OPENAI:
            if not config.openai:
                raise ConfigError("ai.backend is 'openai' but no 'openai' section in config")
            endpoint: ModelEndpoint = OpenAIClient(config.openai)
            if config.openai.max_retries > 0:
                endpoint = RetryingEndpoint(
                    endpoint,
                    max_retries=config.openai.max_retries,
                    initial_delay=config.openai.retry_delay,
                )
            return endpoint
        case EndpointBackend.ANTHROPIC:
            if not config.anthropic:
                raise ConfigError("ai.backend is 'anthropic' but no 'anthropic' section in config")
            return AnthropicClient(config.anthropic)
        case _:
            raise ConfigError(f"Unknown AI backend: {config.ai.backend}")
