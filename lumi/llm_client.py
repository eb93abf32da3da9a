"""Chat completion client for OpenAI-compatible and Ollama endpoints."""
import json
from typing import AsyncIterator, Dict, List, Optional

import httpx
import structlog

from lumi import config
from lumi.errors import ConfigurationError
from lumi.providers import (
    OLLAMA_WIRE,
    OPENAI_WIRE,
    get_provider_spec,
    http_session,
    resolve_api_key,
)

logger = structlog.get_logger()


class ChatClient:
    """Async chat client for one provider."""

    def __init__(
        self,
        provider: str = None,
        model: str = None,
        timeout: float = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the chat client.

        Args:
            provider: Provider name (defaults to config.CHAT_PROVIDER)
            model: Model to use (defaults to config.CHAT_MODEL, then the provider default)
            timeout: Request timeout in seconds
            client: Optional shared httpx client

        Raises:
            ConfigurationError: If the provider is unknown, cannot chat, or lacks a credential
        """
        spec = get_provider_spec(provider or config.CHAT_PROVIDER)
        if spec.chat_wire is None:
            raise ConfigurationError(f"Provider {spec.name!r} does not support chat")

        self.provider = spec.name
        self.wire = spec.chat_wire
        self.base_url = spec.base_url.rstrip("/")
        self.api_key = resolve_api_key(spec)
        self.model = model or config.CHAT_MODEL or spec.default_chat_model
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._client = client

    def _request(
        self, messages: List[Dict[str, str]], model: str, stream: bool, temperature: Optional[float]
    ) -> tuple:
        """Build ``(url, payload, headers)`` for the provider's wire format."""
        payload = {"model": model, "messages": messages, "stream": stream}

        if self.wire == OLLAMA_WIRE:
            if temperature is not None:
                payload["options"] = {"temperature": temperature}
            return f"{self.base_url}/api/chat", payload, {}

        if temperature is not None:
            payload["temperature"] = temperature
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return f"{self.base_url}/chat/completions", payload, headers

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Send a chat completion request and return the reply text.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model override
            temperature: Sampling temperature

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.model
        url, payload, headers = self._request(messages, model, False, temperature)

        try:
            async with http_session(self._client, self.timeout) as client:
                logger.info(
                    "chat_request",
                    provider=self.provider,
                    model=model,
                    message_count=len(messages),
                )
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()

        except httpx.ConnectError as e:
            logger.error("chat_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "chat_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        if self.wire == OPENAI_WIRE:
            content = data["choices"][0]["message"]["content"] or ""
        else:
            content = data.get("message", {}).get("content", "")

        logger.info("chat_response", provider=self.provider, model=model, response_length=len(content))
        return content.strip()

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream the reply as content deltas.

        Yields:
            Non-empty text fragments in order

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or self.model
        url, payload, headers = self._request(messages, model, True, temperature)

        logger.info(
            "chat_stream_request",
            provider=self.provider,
            model=model,
            message_count=len(messages),
        )

        try:
            async with http_session(self._client, self.timeout) as client:
                async with client.stream("POST", url, json=payload, headers=headers) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        delta, done = self._parse_stream_line(line)
                        if delta:
                            yield delta
                        if done:
                            break

        except httpx.HTTPError as e:
            logger.error("chat_stream_error", error=str(e), provider=self.provider)
            raise

    def _parse_stream_line(self, line: str) -> tuple:
        """Return ``(delta, done)`` for one line of a streamed response."""
        line = line.strip()
        if not line:
            return "", False

        if self.wire == OLLAMA_WIRE:
            chunk = json.loads(line)
            return chunk.get("message", {}).get("content", ""), bool(chunk.get("done"))

        if not line.startswith("data:"):
            return "", False  # SSE comments and keep-alives
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return "", True

        chunk = json.loads(data)
        choices = chunk.get("choices") or [{}]
        return (choices[0].get("delta") or {}).get("content") or "", False
