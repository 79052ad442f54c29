"""
Session persistence module.

This module provides the session store contract, the shared record codec
and identifier generator, one adapter per storage engine, and the
periodic sweeper that removes expired sessions from engines without
native expiration.
"""

from sessionstores.session.codec import decode_record, encode_record
from sessionstores.session.identifier import generate_session_id
from sessionstores.session.memory_store import MemorySessionStore
from sessionstores.session.mongodb_store import MongoDBSessionStore
from sessionstores.session.record import SessionRecord, utc_now
from sessionstores.session.redis_store import RedisSessionStore
from sessionstores.session.sql_store import SqlSessionStore
from sessionstores.session.store import ExpiredDeletion, SessionStore
from sessionstores.session.sweeper import ExpirySweeper, SweeperState

__all__ = [
    "SessionRecord",
    "SessionStore",
    "ExpiredDeletion",
    "ExpirySweeper",
    "SweeperState",
    "MemorySessionStore",
    "RedisSessionStore",
    "SqlSessionStore",
    "MongoDBSessionStore",
    "decode_record",
    "encode_record",
    "generate_session_id",
    "utc_now",
]
