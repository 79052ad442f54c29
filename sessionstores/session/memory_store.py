"""
In-memory session store backed by cachetools.

Records expire natively: each cache entry's time-to-use is the record's
expiry_date, measured on the store's clock, so expired sessions are never
returned and are dropped lazily by the cache. Entries hold encoded bytes,
so callers never share mutable state with the cache.

Not suitable for multi-process deployments: sessions live in one process
and are lost on restart.
"""

import logging
import threading
from typing import Optional

from cachetools import TLRUCache

from sessionstores.session.codec import decode_record, encode_record
from sessionstores.session.naming import validate_namespace
from sessionstores.session.record import SessionRecord
from sessionstores.session.store import Clock, DEFAULT_MAX_CREATE_ATTEMPTS, ExpiredDeletion, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CAPACITY = 10_000


class MemorySessionStore(SessionStore, ExpiredDeletion):
    """
    Session store that keeps records in a per-process TLRU cache.

    When max_capacity is reached the cache evicts entries on its own, so a
    live session may be dropped under memory pressure.

    delete_expired() is optional here; it only frees memory held by
    entries that have expired but not yet been touched.
    """

    backend_name = "memory"
    native_expiration = True

    def __init__(
        self,
        max_capacity: int = DEFAULT_MAX_CAPACITY,
        namespace: str = "sessions",
        clock: Optional[Clock] = None,
        max_create_attempts: int = DEFAULT_MAX_CREATE_ATTEMPTS,
        id_generator=None,
    ):
        """
        Initialize the memory store.

        Args:
            max_capacity: Maximum number of sessions held at once.
            namespace: Label for this cache, used in logs.
            clock: Source of "now" for expiry.
            max_create_attempts: Identifier attempts before create() gives up.
            id_generator: Produces fresh identifiers.
        """
        super().__init__(
            clock=clock,
            max_create_attempts=max_create_attempts,
            id_generator=id_generator,
        )
        if max_capacity < 1:
            raise ValueError("max_capacity must be at least 1")
        self.namespace = validate_namespace(namespace)
        self.max_capacity = max_capacity
        self._lock = threading.Lock()
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_capacity,
            ttu=lambda _key, entry, _now: entry[0],
            timer=lambda: self.now().timestamp(),
        )

    async def _try_create(self, record: SessionRecord) -> bool:
        payload = encode_record(record)
        with self._lock:
            if record.id in self._cache:
                return False
            self._put(record, payload)
        return True

    async def save(self, record: SessionRecord) -> None:
        session_id = self._require_id(record)
        payload = encode_record(record)
        with self._lock:
            if record.expiry_date <= self.now():
                # The cache skips already-expired entries, so drop any old value
                self._cache.pop(session_id, None)
                return
            self._put(record, payload)

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            entry = self._cache.get(session_id)
        if entry is None:
            return None
        record = decode_record(entry[1])
        return record if self._is_live(record) else None

    async def delete(self, session_id: str) -> None:
        with self._lock:
            self._cache.pop(session_id, None)

    async def delete_expired(self) -> None:
        with self._lock:
            expired = self._cache.expire()
        logger.debug("Expired memory sessions reclaimed", extra={
            "extra_data": {"namespace": self.namespace, "count": len(expired or ())}
        })

    def _put(self, record: SessionRecord, payload: bytes) -> None:
        self._cache[record.id] = (record.expiry_date.timestamp(), payload)
