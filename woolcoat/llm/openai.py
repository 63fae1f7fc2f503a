"""
OpenAI-compatible LLM adapter.

Module: woolcoat/llm/openai.py

Talks to any endpoint implementing the OpenAI chat completions API, which
includes OpenAI itself and DashScope's compatible mode.
"""

import json
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .base import LLMAdapter, LLMError, LLMMessage, LLMResponse, MessageRole


class OpenAIAdapter(LLMAdapter):
    """Adapter for OpenAI-compatible chat completion endpoints."""

    provider = "openai"

    API_BASE_URL: str = "https://api.openai.com/v1"
    DEFAULT_MODEL: str = "gpt-4o"

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            model: Model identifier
            api_key: API key (defaults to OPENAI_API_KEY env var)
            base_url: Endpoint base URL (defaults to the OpenAI API)
            timeout: Default request timeout in seconds
            **kwargs: Additional configuration

        Raises:
            ValueError: If no API key is available
        """
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("API key required for OpenAI-compatible provider")

        super().__init__(model, api_key, **kwargs)
        self.base_url = (base_url or self.API_BASE_URL).rstrip("/")
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def _convert_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        result = []
        for msg in messages:
            # Role may be enum or plain string (use_enum_values)
            role = msg.role.value if isinstance(msg.role, MessageRole) else msg.role
            result.append({"role": role, "content": msg.content})
        return result

    def _build_payload(
        self,
        messages: List[LLMMessage],
        temperature: float,
        max_tokens: Optional[int],
        stream: bool,
        extra: Dict[str, Any],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": temperature,
        }
        if stream:
            payload["stream"] = True
        if max_tokens:
            payload["max_tokens"] = max_tokens
        payload.update(extra)
        return payload

    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion via POST /chat/completions.

        Raises:
            LLMError: If the request fails
        """
        payload = self._build_payload(messages, temperature, max_tokens, False, kwargs)

        try:
            response = await self.client.post(
                "/chat/completions", json=payload, timeout=timeout or self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"Chat completion request failed: {e.response.text}",
                provider=self.provider,
                original_error=e,
            )
        except Exception as e:
            raise LLMError(
                f"Unexpected error calling chat completions: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

        choice = (data.get("choices") or [{}])[0]
        content = choice.get("message", {}).get("content") or ""
        usage = data.get("usage") or {}

        return LLMResponse(
            content=content,
            finish_reason=choice.get("finish_reason") or "unknown",
            model=data.get("model", self.model),
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
            raw_response=data,
        )

    async def stream_complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """
        Generate a streaming completion from server-sent events.

        Yields:
            Content chunks as they arrive

        Raises:
            LLMError: If the request fails
        """
        payload = self._build_payload(messages, temperature, max_tokens, True, kwargs)

        try:
            async with self.client.stream(
                "POST", "/chat/completions", json=payload, timeout=timeout or self.timeout
            ) as response:
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:]
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    delta = (event.get("choices") or [{}])[0].get("delta", {})
                    if delta.get("content"):
                        yield delta["content"]

        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"Streaming request failed with status {e.response.status_code}",
                provider=self.provider,
                original_error=e,
            )
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(
                f"Unexpected error in streaming: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

    async def validate_api_key(self) -> bool:
        """
        Validate the API key by listing models.

        Raises:
            LLMError: If validation fails
        """
        try:
            response = await self.client.get("/models")
            response.raise_for_status()
            return True
        except Exception as e:
            raise LLMError(
                f"API key validation failed: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "OpenAIAdapter":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
