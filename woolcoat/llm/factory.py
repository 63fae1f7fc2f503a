"""
LLM adapter factory.

Module: woolcoat/llm/factory.py

Builds provider adapters and the model gateway from ``AgentSettings``.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from .base import LLMAdapter
from .gateway import CircuitBreaker, LLMGateway

if TYPE_CHECKING:
    from woolcoat.config import AgentSettings

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    MOCK = "mock"


def create_adapter(
    provider: Union[str, LLMProvider],
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 60.0,
    **kwargs: Any,
) -> LLMAdapter:
    """
    Create an LLM adapter for a provider.

    Args:
        provider: LLM provider (openai, ollama, mock)
        model: Model identifier (provider default when omitted)
        api_key: API key, where the provider needs one
        base_url: Endpoint override
        timeout: Default request timeout in seconds
        **kwargs: Additional provider-specific options

    Returns:
        Configured LLM adapter instance

    Raises:
        ValueError: If the provider is not supported
    """
    if isinstance(provider, str):
        try:
            provider = LLMProvider(provider.lower())
        except ValueError:
            raise ValueError(f"Unsupported provider: {provider}")

    logger.info(f"Creating {provider.value} adapter with model: {model or 'default'}")

    if provider == LLMProvider.OPENAI:
        from .openai import OpenAIAdapter

        return OpenAIAdapter(
            model=model or OpenAIAdapter.DEFAULT_MODEL,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            **kwargs,
        )

    elif provider == LLMProvider.OLLAMA:
        from .ollama import OllamaAdapter

        return OllamaAdapter(
            model=model or OllamaAdapter.DEFAULT_MODEL,
            base_url=base_url,
            timeout=timeout,
            **kwargs,
        )

    from .mock import MockLLMAdapter

    return MockLLMAdapter(model=model or "mock-model", **kwargs)


def create_gateway(settings: "AgentSettings") -> LLMGateway:
    """
    Build the model gateway with primary and optional fallback providers.

    Args:
        settings: Agent settings

    Returns:
        Configured gateway
    """
    primary = create_adapter(
        settings.llm_provider,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout_seconds,
    )

    fallback = None
    if settings.fallback_provider:
        fallback = create_adapter(
            settings.fallback_provider,
            model=settings.fallback_model,
            base_url=settings.fallback_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    return LLMGateway(
        primary,
        fallback=fallback,
        max_retries=settings.gateway_max_retries,
        retry_backoff=settings.gateway_retry_backoff_seconds,
        breaker=CircuitBreaker(
            failure_threshold=settings.breaker_failure_threshold,
            reset_seconds=settings.breaker_reset_seconds,
        ),
    )
