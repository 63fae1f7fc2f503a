"""
Session message storage.

Module: woolcoat/memory/session_store.py

Short-term conversational history per session. The agent core only appends
to it (task summaries); the HTTP and CLI layers may read it back. Histories
are trimmed to a token budget: system messages are always kept, then the
newest other messages that still fit.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional

import anyio
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from woolcoat.llm import LLMMessage, MessageRole

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "agent:session:messages:"


class SessionStoreError(Exception):
    """Raised when the session backend cannot be reached."""

    pass


def estimate_tokens(messages: List[LLMMessage], coefficient: float) -> int:
    """Estimate tokens as total content length times a coefficient."""
    return int(sum(len(m.content) for m in messages) * coefficient)


def trim_messages(
    messages: List[LLMMessage], max_tokens: int, coefficient: float
) -> List[LLMMessage]:
    """
    Trim a history to fit ``max_tokens``.

    Args:
        messages: Full history, oldest first
        max_tokens: Token budget
        coefficient: Tokens per character

    Returns:
        System messages followed by the newest other messages that fit
    """
    if estimate_tokens(messages, coefficient) <= max_tokens:
        return messages

    system = [m for m in messages if m.role == MessageRole.SYSTEM.value]
    others = [m for m in messages if m.role != MessageRole.SYSTEM.value]

    used = estimate_tokens(system, coefficient)
    kept: List[LLMMessage] = []
    for message in reversed(others):
        cost = int(len(message.content) * coefficient)
        if used + cost > max_tokens:
            break
        kept.insert(0, message)
        used += cost

    logger.info(
        f"Session history over token budget, trimmed {len(messages)} -> "
        f"{len(system) + len(kept)} messages (~{used} tokens)"
    )
    return system + kept


class SessionStore(ABC):
    """Interface for session history backends."""

    def __init__(self, max_tokens: int = 4000, token_coefficient: float = 2.0) -> None:
        self.max_tokens = max_tokens
        self.token_coefficient = token_coefficient

    @abstractmethod
    async def append(self, session_id: str, message: LLMMessage) -> None:
        """Append a message to a session, trimming to the token budget."""

    @abstractmethod
    async def get_messages(self, session_id: str) -> List[LLMMessage]:
        """Return a session's history, oldest first (empty when unknown)."""

    @abstractmethod
    async def clear(self, session_id: str) -> None:
        """Delete a session's history."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemorySessionStore(SessionStore):
    """Process-local session store for development and tests."""

    def __init__(self, max_tokens: int = 4000, token_coefficient: float = 2.0) -> None:
        super().__init__(max_tokens, token_coefficient)
        self._sessions: Dict[str, List[LLMMessage]] = {}
        self._lock = anyio.Lock()

    async def append(self, session_id: str, message: LLMMessage) -> None:
        async with self._lock:
            messages = self._sessions.get(session_id, []) + [message]
            self._sessions[session_id] = trim_messages(
                messages, self.max_tokens, self.token_coefficient
            )
        logger.debug(f"Session {session_id} now holds {len(self._sessions[session_id])} messages")

    async def get_messages(self, session_id: str) -> List[LLMMessage]:
        return list(self._sessions.get(session_id, []))

    async def clear(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)


class RedisSessionStore(SessionStore):
    """
    Redis-backed session store.

    Each session is a JSON list under ``agent:session:messages:{session_id}``
    with a sliding TTL refreshed on every write.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        ttl_hours: int = 24,
        max_tokens: int = 4000,
        token_coefficient: float = 2.0,
    ) -> None:
        super().__init__(max_tokens, token_coefficient)
        self.redis_url = redis_url
        self.ttl_hours = ttl_hours
        self.pool: Optional[ConnectionPool] = None
        self.client: Optional[Redis] = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        self.pool = ConnectionPool.from_url(
            self.redis_url, decode_responses=True, max_connections=10
        )
        self.client = Redis(connection_pool=self.pool)
        await self.client.ping()
        logger.info(f"Connected session store to {self.redis_url}")

    async def close(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.aclose()

    def _key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    def require_client(self) -> Redis:
        if not self.client:
            raise RuntimeError("Redis client not connected")
        return self.client

    async def append(self, session_id: str, message: LLMMessage) -> None:
        client = self.require_client()
        messages = await self.get_messages(session_id)
        messages = trim_messages(messages + [message], self.max_tokens, self.token_coefficient)
        payload = json.dumps([m.model_dump(mode="json") for m in messages], ensure_ascii=False)
        try:
            await client.setex(self._key(session_id), timedelta(hours=self.ttl_hours), payload)
        except RedisError as e:
            raise SessionStoreError(f"Failed to save session {session_id}: {e}") from e
        logger.info(f"Saved message to session {session_id}, {len(messages)} messages kept")

    async def get_messages(self, session_id: str) -> List[LLMMessage]:
        client = self.require_client()
        try:
            raw = await client.get(self._key(session_id))
        except RedisError as e:
            raise SessionStoreError(f"Failed to read session {session_id}: {e}") from e
        if not raw:
            return []
        return [LLMMessage.model_validate(item) for item in json.loads(raw)]

    async def clear(self, session_id: str) -> None:
        client = self.require_client()
        try:
            await client.delete(self._key(session_id))
        except RedisError as e:
            raise SessionStoreError(f"Failed to clear session {session_id}: {e}") from e
