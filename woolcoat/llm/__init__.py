"""
LLM adapters and the model gateway.

Module: woolcoat/llm/__init__.py
"""

from .base import LLMAdapter, LLMError, LLMMessage, LLMResponse, MessageRole
from .factory import LLMProvider, create_adapter, create_gateway
from .gateway import (
    UNAVAILABLE_MESSAGE,
    ChunkCallback,
    CircuitBreaker,
    CircuitState,
    GatewayResponse,
    GatewayStatus,
    LLMGateway,
)
from .mock import MockLLMAdapter

__all__ = [
    # Base types
    "LLMAdapter",
    "LLMError",
    "LLMMessage",
    "LLMResponse",
    "MessageRole",
    # Gateway
    "ChunkCallback",
    "CircuitBreaker",
    "CircuitState",
    "GatewayResponse",
    "GatewayStatus",
    "LLMGateway",
    "UNAVAILABLE_MESSAGE",
    # Factory
    "LLMProvider",
    "create_adapter",
    "create_gateway",
    "MockLLMAdapter",
]
