"""
Tests for LLM provider adapters and the adapter factory.

Module: tests/test_llm/test_adapters.py
"""

import json
from typing import Callable, List, Union

import httpx
import pytest

from woolcoat.config import AgentSettings
from woolcoat.llm import (
    LLMError,
    LLMMessage,
    LLMProvider,
    MockLLMAdapter,
    create_adapter,
    create_gateway,
)
from woolcoat.llm.ollama import OllamaAdapter
from woolcoat.llm.openai import OpenAIAdapter

Handler = Callable[[httpx.Request], httpx.Response]

MESSAGES = [LLMMessage.system("be brief"), LLMMessage.user("hello")]


def use_transport(adapter: Union[OpenAIAdapter, OllamaAdapter], handler: Handler) -> None:
    adapter.client = httpx.AsyncClient(
        base_url=adapter.base_url,
        headers=adapter.client.headers,
        transport=httpx.MockTransport(handler),
    )


class TestMockLLMAdapter:
    """Tests for MockLLMAdapter."""

    @pytest.mark.asyncio
    async def test_scripted_then_template(self) -> None:
        """Test scripted responses come first, then the template."""
        adapter = MockLLMAdapter(responses=["scripted"])

        first = await adapter.complete(MESSAGES)
        second = await adapter.complete(MESSAGES)

        assert first.content == "scripted"
        assert second.content == "Mock response to: hello"
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_scripted_exception_wrapped(self) -> None:
        """Test a scripted plain exception surfaces as LLMError."""
        adapter = MockLLMAdapter()
        adapter.queue(TimeoutError("slow"))

        with pytest.raises(LLMError) as exc_info:
            await adapter.complete(MESSAGES)

        assert isinstance(exc_info.value.original_error, TimeoutError)

    @pytest.mark.asyncio
    async def test_stream_words(self) -> None:
        """Test streaming yields word chunks that join to the full text."""
        adapter = MockLLMAdapter(responses=["one two three"])

        chunks = [chunk async for chunk in adapter.stream_complete(MESSAGES)]

        assert chunks == ["one ", "two ", "three"]

    @pytest.mark.asyncio
    async def test_validate(self) -> None:
        """Test the mock always validates."""
        assert await MockLLMAdapter().validate_api_key() is True


class TestOpenAIAdapter:
    """Tests for OpenAIAdapter against a mocked transport."""

    def test_requires_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing key is rejected."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        with pytest.raises(ValueError):
            OpenAIAdapter(model="qwen-plus")

    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        """Test a chat completion request and response mapping."""
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "model": "qwen-plus",
                    "choices": [
                        {"message": {"role": "assistant", "content": "Hi!"}, "finish_reason": "stop"}
                    ],
                    "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
                },
            )

        adapter = OpenAIAdapter(model="qwen-plus", api_key="sk-test", base_url="https://llm.test/v1")
        use_transport(adapter, handler)

        response = await adapter.complete(MESSAGES, temperature=0.1, max_tokens=64)

        assert response.content == "Hi!"
        assert response.usage["total_tokens"] == 7
        request = seen[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "qwen-plus"
        assert body["temperature"] == 0.1
        assert body["max_tokens"] == 64
        assert body["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
        ]
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        """Test a non-2xx status raises LLMError."""
        adapter = OpenAIAdapter(api_key="sk-test", base_url="https://llm.test/v1")
        use_transport(adapter, lambda request: httpx.Response(429, text="rate limited"))

        with pytest.raises(LLMError) as exc_info:
            await adapter.complete(MESSAGES)

        assert "rate limited" in str(exc_info.value)
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_stream(self) -> None:
        """Test server-sent events are decoded into content chunks."""
        events = [
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
        ]
        body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body.encode())

        adapter = OpenAIAdapter(api_key="sk-test", base_url="https://llm.test/v1")
        use_transport(adapter, handler)

        chunks = [chunk async for chunk in adapter.stream_complete(MESSAGES)]

        assert chunks == ["Hel", "lo"]


class TestOllamaAdapter:
    """Tests for OllamaAdapter against a mocked transport."""

    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        """Test the /api/chat response mapping."""

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/api/chat"
            assert body["stream"] is False
            assert body["options"]["temperature"] == 0.2
            return httpx.Response(
                200,
                json={
                    "model": "qwen2:7b",
                    "message": {"role": "assistant", "content": "local reply"},
                    "done": True,
                    "prompt_eval_count": 4,
                    "eval_count": 3,
                },
            )

        adapter = OllamaAdapter()
        use_transport(adapter, handler)

        response = await adapter.complete(MESSAGES, temperature=0.2)

        assert response.content == "local reply"
        assert response.usage["total_tokens"] == 7

    @pytest.mark.asyncio
    async def test_stream(self) -> None:
        """Test newline-delimited JSON is decoded into content chunks."""
        lines = [
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": "cal"}, "done": False},
            {"message": {"content": ""}, "done": True},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        adapter = OllamaAdapter()
        use_transport(adapter, lambda request: httpx.Response(200, content=body.encode()))

        chunks = [chunk async for chunk in adapter.stream_complete(MESSAGES)]

        assert chunks == ["lo", "cal"]


class TestFactory:
    """Tests for create_adapter and create_gateway."""

    def test_create_mock(self) -> None:
        """Test the mock provider by name."""
        adapter = create_adapter("MOCK", model="m")

        assert isinstance(adapter, MockLLMAdapter)
        assert adapter.model == "m"

    def test_create_openai(self) -> None:
        """Test the OpenAI-compatible provider with a base URL."""
        adapter = create_adapter(LLMProvider.OPENAI, api_key="sk-test", base_url="https://x.test/v1/")

        assert isinstance(adapter, OpenAIAdapter)
        assert adapter.base_url == "https://x.test/v1"

    def test_unsupported(self) -> None:
        """Test unknown providers are rejected."""
        with pytest.raises(ValueError):
            create_adapter("carrier-pigeon")

    def test_create_gateway_with_fallback(self) -> None:
        """Test settings produce a gateway with primary and fallback."""
        settings = AgentSettings(
            llm_provider="mock",
            fallback_provider="ollama",
            gateway_max_retries=4,
            breaker_failure_threshold=2,
        )

        gateway = create_gateway(settings)

        assert isinstance(gateway.primary, MockLLMAdapter)
        assert isinstance(gateway.fallback, OllamaAdapter)
        assert gateway.fallback.model == "qwen2:7b"
        assert gateway.max_retries == 4
        assert gateway.breaker.failure_threshold == 2
