"""
Mock LLM adapter for testing and development.

Module: woolcoat/llm/mock.py

Simulates LLM responses without network calls. Responses can be scripted as
a queue of strings or exceptions so tests can drive the agent core through
exact model outputs and gateway failures.
"""

from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, Iterable, List, Optional, Union

import anyio

from .base import LLMAdapter, LLMError, LLMMessage, LLMResponse

ScriptedResponse = Union[str, Exception]


class MockLLMAdapter(LLMAdapter):
    """
    Mock LLM adapter for testing.

    Returns scripted responses in order, then falls back to a template
    response once the script runs out.
    """

    provider = "mock"

    def __init__(
        self,
        model: str = "mock-model",
        api_key: Optional[str] = None,
        responses: Optional[Iterable[ScriptedResponse]] = None,
        response_template: str = "Mock response to: {prompt}",
        delay_ms: int = 0,
        **kwargs: Any,
    ) -> None:
        """
        Initialize mock adapter.

        Args:
            model: Mock model identifier
            api_key: Not used, but accepted for interface compatibility
            responses: Scripted outputs; an Exception entry is raised instead
            response_template: Template used after the script is exhausted
            delay_ms: Simulated latency in milliseconds
            **kwargs: Additional configuration
        """
        super().__init__(model, api_key, **kwargs)
        self.responses: Deque[ScriptedResponse] = deque(responses or [])
        self.response_template = response_template
        self.delay_ms = delay_ms
        self.call_count = 0
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: ScriptedResponse) -> None:
        """Append scripted responses."""
        self.responses.extend(responses)

    def _next_content(self, messages: List[LLMMessage]) -> str:
        if self.responses:
            scripted = self.responses.popleft()
            if isinstance(scripted, LLMError):
                raise scripted
            if isinstance(scripted, Exception):
                raise LLMError(str(scripted), provider=self.provider, original_error=scripted)
            return scripted

        user_messages = [msg for msg in messages if msg.role == "user"]
        last_prompt = user_messages[-1].content if user_messages else "no prompt"
        return self.response_template.format(prompt=last_prompt[:50])

    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a mock completion.

        Raises:
            LLMError: When the next scripted response is an exception
        """
        if self.delay_ms:
            await anyio.sleep(self.delay_ms / 1000.0)

        self.call_count += 1
        self.calls.append({"messages": list(messages), "temperature": temperature})

        content = self._next_content(messages)

        prompt_tokens = sum(self.count_tokens(msg.content) for msg in messages)
        completion_tokens = self.count_tokens(content)

        return LLMResponse(
            content=content,
            finish_reason="stop",
            model=self.model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            raw_response={
                "mock": True,
                "call_count": self.call_count,
                "temperature": temperature,
            },
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
        Stream the mock completion word by word.

        Yields:
            Chunks of the mock response
        """
        response = await self.complete(messages, temperature, max_tokens, timeout, **kwargs)

        words = response.content.split(" ")
        for i, word in enumerate(words):
            if self.delay_ms:
                await anyio.sleep(self.delay_ms / 1000.0 / len(words))
            yield word if i == len(words) - 1 else word + " "

    async def validate_api_key(self) -> bool:
        """Validate mock API key (always succeeds)."""
        return True
