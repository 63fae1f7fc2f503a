"""Session and long-term memory backends."""

from .long_term import (
    DEFAULT_MEMORY_TYPE,
    InMemoryLongTermMemoryStore,
    LongTermMemoryStore,
    MemoryStoreError,
    RedisLongTermMemoryStore,
    UserMemory,
    format_memories,
)
from .session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
    SessionStoreError,
    trim_messages,
)

__all__ = [
    "DEFAULT_MEMORY_TYPE",
    "InMemoryLongTermMemoryStore",
    "InMemorySessionStore",
    "LongTermMemoryStore",
    "MemoryStoreError",
    "RedisLongTermMemoryStore",
    "RedisSessionStore",
    "SessionStore",
    "SessionStoreError",
    "UserMemory",
    "format_memories",
    "trim_messages",
]
