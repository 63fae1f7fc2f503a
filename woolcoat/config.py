"""
Configuration for the woolcoat agent core.

Module: woolcoat/config.py

Uses pydantic-settings for environment variable management with type validation.
Every field can be overridden with a ``WOOLCOAT_`` prefixed environment variable
or a ``.env`` file in the working directory.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """Configuration for the agent core, its collaborators and the HTTP service."""

    model_config = SettingsConfigDict(
        env_prefix="WOOLCOAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    host: str = Field(default="0.0.0.0", description="Host to bind the service")
    port: int = Field(default=8080, description="Port to bind the service")
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    api_keys: List[str] = Field(
        default_factory=list, description="Accepted X-API-Key values (empty disables auth)"
    )
    stream_max_concurrency: int = Field(
        default=8, ge=1, description="Maximum concurrent streaming responses"
    )

    # Model Gateway Configuration
    llm_provider: str = Field(
        default="openai", description="Primary LLM provider (openai, ollama, mock)"
    )
    llm_model: str = Field(default="qwen-plus", description="Primary model identifier")
    llm_api_key: Optional[str] = Field(default=None, description="Primary provider API key")
    llm_base_url: Optional[str] = Field(
        default="https://dashscope.aliyuncs.com/compatible-mode/v1",
        description="Primary provider base URL (OpenAI-compatible endpoint)",
    )
    llm_timeout_seconds: float = Field(default=60.0, description="Per-request LLM timeout")
    fallback_provider: Optional[str] = Field(
        default=None, description="Fallback LLM provider used when the primary fails"
    )
    fallback_model: str = Field(default="qwen2:7b", description="Fallback model identifier")
    fallback_base_url: Optional[str] = Field(
        default="http://localhost:11434", description="Fallback provider base URL"
    )
    gateway_max_retries: int = Field(
        default=2, ge=0, description="Retries against the primary provider per call"
    )
    gateway_retry_backoff_seconds: float = Field(
        default=0.5, ge=0.0, description="Base delay for exponential retry backoff"
    )
    breaker_failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures before the circuit opens"
    )
    breaker_reset_seconds: float = Field(
        default=30.0, ge=0.0, description="Seconds before an open circuit is retried"
    )

    # Agent Core Configuration
    tool_call_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    reflection_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    plan_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    reflection_max_attempts: int = Field(
        default=3, ge=1, description="Corrective attempts after a tool failure"
    )
    reflection_backoff_seconds: float = Field(
        default=0.0, ge=0.0, description="Pause between corrective attempts"
    )
    max_plan_steps: int = Field(default=5, ge=1, description="Maximum steps in a task plan")
    default_user_id: str = Field(default="default_user", description="User id when none given")
    prompt_dir: Optional[str] = Field(
        default=None, description="Directory overriding the bundled prompt templates"
    )

    # Tool Configuration
    markdown_export_path: str = Field(
        default="./agent-export/markdown/", description="Directory for exported Markdown files"
    )
    summary_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    # Session Memory Configuration
    session_backend: str = Field(
        default="memory", description="Session and long-term memory store (memory, redis)"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    session_ttl_hours: int = Field(default=24, ge=1, description="Session history TTL in hours")
    session_max_tokens: int = Field(
        default=4000, ge=1, description="Token budget kept per session history"
    )
    token_coefficient: float = Field(
        default=2.0, gt=0.0, description="Estimated tokens per character of content"
    )
    long_memory_max_tokens: int = Field(
        default=1024, ge=1, description="Token budget for long-term memory in the chat prompt"
    )

    # Knowledge Base Configuration
    document_allowed_suffixes: List[str] = Field(
        default_factory=lambda: ["md", "txt"], description="Accepted upload file suffixes"
    )
    document_chunk_size: int = Field(default=500, ge=1, description="Chunk length in characters")
    document_chunk_overlap: int = Field(
        default=50, ge=0, description="Characters shared by consecutive chunks"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"log_level must be one of {allowed_levels}")
        return v_upper

    @field_validator("llm_provider", "fallback_provider")
    @classmethod
    def validate_llm_provider(cls, v: Optional[str]) -> Optional[str]:
        """Validate LLM provider is supported."""
        if v is None:
            return v
        allowed_providers = {"openai", "ollama", "mock"}
        v_lower = v.lower()
        if v_lower not in allowed_providers:
            raise ValueError(f"llm provider must be one of {allowed_providers}")
        return v_lower

    @field_validator("session_backend")
    @classmethod
    def validate_session_backend(cls, v: str) -> str:
        """Validate session backend is supported."""
        allowed_backends = {"memory", "redis"}
        v_lower = v.lower()
        if v_lower not in allowed_backends:
            raise ValueError(f"session_backend must be one of {allowed_backends}")
        return v_lower


# Global settings instance
settings = AgentSettings()
