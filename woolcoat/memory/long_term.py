"""
Long-term user memory.

Module: woolcoat/memory/long_term.py

Durable facts about a user (preferences, profile notes) grouped by memory
type and ranked by weight. Chat folds the highest weighted preferences into
its system prompt.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List

import anyio
from pydantic import BaseModel, Field, field_validator
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

MEMORY_KEY_PREFIX = "agent:memory:long:"
DEFAULT_MEMORY_TYPE = "preference"
DEFAULT_WEIGHT = 0.5
MAX_RECALLED = 10


class MemoryStoreError(Exception):
    """Raised when the long-term memory backend cannot be reached."""

    pass


class UserMemory(BaseModel):
    """One long-term memory entry."""

    memory_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str = Field(..., min_length=1)
    memory_type: str = Field(default=DEFAULT_MEMORY_TYPE, min_length=1)
    content: str = Field(..., min_length=1)
    weight: float = DEFAULT_WEIGHT
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("user_id", "memory_type", "content", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("weight", mode="before")
    @classmethod
    def clamp_weight(cls, v: Any) -> float:
        """Missing weights default to 0.5; others are clamped to [0, 1]."""
        if v is None:
            return DEFAULT_WEIGHT
        return max(0.0, min(1.0, float(v)))


def rank_memories(memories: List[UserMemory], limit: int = MAX_RECALLED) -> List[UserMemory]:
    """Highest weight first, newest first among equal weights."""
    ranked = sorted(memories, key=lambda m: (m.weight, m.created_at), reverse=True)
    return ranked[:limit]


def trim_text(text: str, max_tokens: int, coefficient: float) -> str:
    """Keep the tail of ``text`` that fits ``max_tokens``."""
    if not text or len(text) * coefficient <= max_tokens:
        return text
    keep = int(max_tokens / coefficient)
    return text[len(text) - keep :] if keep > 0 else ""


def format_memories(memories: List[UserMemory], max_tokens: int, coefficient: float) -> str:
    """
    Render memories as prompt lines, trimmed to a token budget.

    Args:
        memories: Ranked memories
        max_tokens: Token budget for the rendered block
        coefficient: Tokens per character

    Returns:
        One ``User preference`` line per memory, or an empty string
    """
    text = "\n".join(f"- User preference: {m.content} (weight {m.weight:.2f})" for m in memories)
    return trim_text(text, max_tokens, coefficient)


class LongTermMemoryStore(ABC):
    """Interface for long-term memory backends."""

    @abstractmethod
    async def save(self, memory: UserMemory) -> UserMemory:
        """Persist a memory entry."""

    @abstractmethod
    async def get(
        self, user_id: str, memory_type: str = DEFAULT_MEMORY_TYPE, limit: int = MAX_RECALLED
    ) -> List[UserMemory]:
        """Return a user's memories of one type, highest weight first."""

    @abstractmethod
    async def delete(self, user_id: str, memory_type: str, memory_id: str) -> bool:
        """Delete one memory entry; False when it does not exist."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryLongTermMemoryStore(LongTermMemoryStore):
    """Process-local memory store for development and tests."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, UserMemory]] = {}
        self._lock = anyio.Lock()

    @staticmethod
    def _bucket(user_id: str, memory_type: str) -> str:
        return f"{user_id}:{memory_type}"

    async def save(self, memory: UserMemory) -> UserMemory:
        async with self._lock:
            bucket = self._entries.setdefault(self._bucket(memory.user_id, memory.memory_type), {})
            bucket[memory.memory_id] = memory
        logger.debug(f"Saved {memory.memory_type} memory {memory.memory_id} for user {memory.user_id}")
        return memory

    async def get(
        self, user_id: str, memory_type: str = DEFAULT_MEMORY_TYPE, limit: int = MAX_RECALLED
    ) -> List[UserMemory]:
        bucket = self._entries.get(self._bucket(user_id, memory_type), {})
        return rank_memories(list(bucket.values()), limit)

    async def delete(self, user_id: str, memory_type: str, memory_id: str) -> bool:
        async with self._lock:
            bucket = self._entries.get(self._bucket(user_id, memory_type), {})
            return bucket.pop(memory_id, None) is not None


class RedisLongTermMemoryStore(LongTermMemoryStore):
    """
    Redis-backed memory store.

    Each user and memory type is a hash under
    ``agent:memory:long:{user_id}:{memory_type}`` mapping memory ids to JSON
    entries. Entries do not expire. The Redis client is borrowed, so closing
    is left to its owner.
    """

    def __init__(self, client: Redis) -> None:
        self.client = client

    def _key(self, user_id: str, memory_type: str) -> str:
        return f"{MEMORY_KEY_PREFIX}{user_id}:{memory_type}"

    async def save(self, memory: UserMemory) -> UserMemory:
        key = self._key(memory.user_id, memory.memory_type)
        try:
            await self.client.hset(key, memory.memory_id, memory.model_dump_json())
        except RedisError as e:
            raise MemoryStoreError(f"Failed to save memory for user {memory.user_id}: {e}") from e
        logger.info(f"Saved {memory.memory_type} memory for user {memory.user_id}")
        return memory

    async def get(
        self, user_id: str, memory_type: str = DEFAULT_MEMORY_TYPE, limit: int = MAX_RECALLED
    ) -> List[UserMemory]:
        try:
            raw = await self.client.hgetall(self._key(user_id, memory_type))
        except RedisError as e:
            raise MemoryStoreError(f"Failed to read memories for user {user_id}: {e}") from e
        memories = [UserMemory.model_validate(json.loads(value)) for value in raw.values()]
        return rank_memories(memories, limit)

    async def delete(self, user_id: str, memory_type: str, memory_id: str) -> bool:
        try:
            removed = await self.client.hdel(self._key(user_id, memory_type), memory_id)
        except RedisError as e:
            raise MemoryStoreError(f"Failed to delete memory {memory_id}: {e}") from e
        return removed > 0
