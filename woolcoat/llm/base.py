"""
Abstract base adapter for LLM providers.

Module: woolcoat/llm/base.py

Defines the contract every provider adapter implements so that the model
gateway can swap primary and fallback providers freely.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Role of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class LLMMessage(BaseModel):
    """A role-tagged message in an LLM conversation."""

    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> "LLMMessage":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "LLMMessage":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "LLMMessage":
        return cls(role=MessageRole.ASSISTANT, content=content)


class LLMResponse(BaseModel):
    """Completion returned by a provider adapter."""

    content: str
    finish_reason: str
    model: str
    usage: Dict[str, int] = Field(
        default_factory=lambda: {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    )
    raw_response: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LLMAdapter(ABC):
    """
    Contract shared by every provider adapter.

    All adapters implement this interface so that providers (OpenAI-compatible
    endpoints, Ollama, the mock) are interchangeable behind the gateway.
    """

    provider: str = "unknown"

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any) -> None:
        """
        Store the model identifier and credentials.

        Args:
            model: Model identifier (e.g., "qwen-plus", "gpt-4o", "qwen2:7b")
            api_key: API key for the provider (if required)
            **kwargs: Provider-specific configuration options
        """
        self.model = model
        self.api_key = api_key
        self.config = kwargs

    @abstractmethod
    async def complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            timeout: Request timeout in seconds
            **kwargs: Provider-specific parameters

        Returns:
            LLM response with content and metadata

        Raises:
            LLMError: If the request fails
        """

    @abstractmethod
    def stream_complete(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """
        Generate a streaming completion from the LLM.

        Implementations are async generators.

        Yields:
            Content chunks as they arrive

        Raises:
            LLMError: If the request fails
        """

    @abstractmethod
    async def validate_api_key(self) -> bool:
        """
        Check that the provider is reachable with the configured credentials.

        Returns:
            True if the provider is reachable with the configured credentials
        """

    async def aclose(self) -> None:
        """Release any network resources held by the adapter."""

    def count_tokens(self, text: str) -> int:
        """
        Estimate token count for a text string.

        Args:
            text: Input text

        Returns:
            Estimated token count
        """
        # Rough estimate, about 4 characters per token
        return len(text) // 4


class LLMError(Exception):
    """Raised by adapters when a provider call fails."""

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        """
        Initialize LLM error.

        Args:
            message: Error message
            provider: Provider name
            original_error: Original exception if wrapping another error
        """
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error
