"""
Ollama LLM adapter.

Module: woolcoat/llm/ollama.py

Local model adapter used as the default fallback provider. Talks to the
Ollama ``/api/chat`` endpoint, which streams newline-delimited JSON.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .base import LLMAdapter, LLMError, LLMMessage, LLMResponse, MessageRole


class OllamaAdapter(LLMAdapter):
    """Adapter for a local Ollama server."""

    provider = "ollama"

    DEFAULT_BASE_URL: str = "http://localhost:11434"
    DEFAULT_MODEL: str = "qwen2:7b"

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(model, api_key, **kwargs)
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    def _payload(
        self,
        messages: List[LLMMessage],
        temperature: float,
        max_tokens: Optional[int],
        stream: bool,
    ) -> Dict[str, Any]:
        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        return {
            "model": self.model,
            "messages": [
                {
                    "role": m.role.value if isinstance(m.role, MessageRole) else m.role,
                    "content": m.content,
                }
                for m in messages
            ],
            "stream": stream,
            "options": options,
        }

    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion from the local model.

        Raises:
            LLMError: If the request fails
        """
        payload = self._payload(messages, temperature, max_tokens, stream=False)
        try:
            response = await self.client.post(
                "/api/chat", json=payload, timeout=timeout or self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"Ollama request failed: {e.response.text}",
                provider=self.provider,
                original_error=e,
            )
        except Exception as e:
            raise LLMError(
                f"Unexpected error calling Ollama: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        return LLMResponse(
            content=data.get("message", {}).get("content", ""),
            finish_reason=data.get("done_reason") or "stop",
            model=data.get("model", self.model),
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
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
        Stream a completion from the local model.

        Yields:
            Content chunks as they arrive
        """
        payload = self._payload(messages, temperature, max_tokens, stream=True)
        try:
            async with self.client.stream(
                "POST", "/api/chat", json=payload, timeout=timeout or self.timeout
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    chunk = event.get("message", {}).get("content")
                    if chunk:
                        yield chunk
                    if event.get("done"):
                        break
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"Ollama streaming failed with status {e.response.status_code}",
                provider=self.provider,
                original_error=e,
            )
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(
                f"Unexpected error in Ollama streaming: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

    async def validate_api_key(self) -> bool:
        """Check the Ollama server is reachable (no key needed)."""
        try:
            response = await self.client.get("/api/tags")
            response.raise_for_status()
            return True
        except Exception as e:
            raise LLMError(
                f"Ollama server unreachable: {str(e)}",
                provider=self.provider,
                original_error=e,
            )

    async def aclose(self) -> None:
        await self.client.aclose()
