"""
Storage-agnostic session persistence.

One contract (SessionStore) for durable, expiring, identifier-addressed
session records, with adapters for an in-process cache, Redis, SQL
databases and MongoDB.
"""

from sessionstores.errors import (
    BackendError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    IdentifierExhaustedError,
    SessionStoreError,
)
from sessionstores.session import (
    ExpiredDeletion,
    ExpirySweeper,
    MemorySessionStore,
    MongoDBSessionStore,
    RedisSessionStore,
    SessionRecord,
    SessionStore,
    SqlSessionStore,
)

__version__ = "0.1.0"

__all__ = [
    "SessionRecord",
    "SessionStore",
    "ExpiredDeletion",
    "ExpirySweeper",
    "MemorySessionStore",
    "RedisSessionStore",
    "SqlSessionStore",
    "MongoDBSessionStore",
    "SessionStoreError",
    "BackendError",
    "EncodeError",
    "DecodeError",
    "ConfigurationError",
    "IdentifierExhaustedError",
]
