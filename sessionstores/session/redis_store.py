"""
Redis-based session store implementation.

Records are stored as MessagePack blobs under the session identifier,
with an absolute expiration (PXAT) equal to the record's expiry_date, so
Redis evicts expired sessions itself and no sweeper is needed.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from redis.exceptions import RedisError

from sessionstores.errors import NotConnectedError
from sessionstores.session.codec import decode_record, encode_record
from sessionstores.session.naming import validate_namespace
from sessionstores.session.record import SessionRecord
from sessionstores.session.store import Clock, DEFAULT_MAX_CREATE_ATTEMPTS, SessionStore

logger = logging.getLogger(__name__)


def _expiry_ms(expiry_date: datetime) -> int:
    # PXAT rejects non-positive values; 1ms is in the past, so the key
    # expires immediately, which is what a pre-1970 expiry means anyway.
    return max(1, int(expiry_date.timestamp() * 1000))


class RedisSessionStore(SessionStore):
    """
    Redis-backed session store implementation.

    create() uses SET NX so an existing identifier is never overwritten;
    save() is an unconditional SET. Both carry PXAT so the key expires
    exactly at the record's expiry_date.

    Attributes:
        redis_url: Redis connection URL, used by connect()
        namespace: Optional key prefix; keys are "<namespace>:<id>" when set
        client: Redis async client (injected, or created by connect())
    """

    backend_name = "redis"
    native_expiration = True
    backend_exceptions = (RedisError,)

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[Any] = None,
        namespace: Optional[str] = None,
        clock: Optional[Clock] = None,
        max_create_attempts: int = DEFAULT_MAX_CREATE_ATTEMPTS,
        id_generator=None,
    ):
        """
        Initialize the Redis session store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0").
                Required unless a client is injected.
            client: An existing redis.asyncio client. The store does not
                close injected clients.
            namespace: Optional key prefix, validated as a safe name.
            clock: Source of "now" for the expiry re-check on load.
            max_create_attempts: Identifier attempts before create() gives up.
            id_generator: Produces fresh identifiers.
        """
        super().__init__(
            clock=clock,
            max_create_attempts=max_create_attempts,
            id_generator=id_generator,
        )
        if redis_url is None and client is None:
            raise ValueError("Either redis_url or client must be provided")
        self.redis_url = redis_url
        self.namespace = validate_namespace(namespace) if namespace is not None else None
        self.client = client
        self._owns_client = False

    async def connect(self) -> None:
        """
        Create the Redis client from redis_url.

        No-op when a client is already set (injected or connected).
        """
        if self.client is not None:
            return
        import redis.asyncio as redis
        self.client = redis.from_url(self.redis_url)
        self._owns_client = True

    async def disconnect(self) -> None:
        """
        Close the Redis connection if this store created it.

        Should be called during application shutdown to cleanly
        release resources.
        """
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False

    async def close(self) -> None:
        await self.disconnect()

    def _get_key(self, session_id: str) -> str:
        """
        Generate the Redis key for a session.

        Args:
            session_id: The session identifier.

        Returns:
            The bare identifier, or "<namespace>:<id>" when a namespace is set.
        """
        if self.namespace:
            return f"{self.namespace}:{session_id}"
        return session_id

    def _require_client(self) -> Any:
        if self.client is None:
            raise NotConnectedError(
                "Redis client not connected. Call connect() first.",
                details={"backend": self.backend_name},
            )
        return self.client

    async def _set(self, record: SessionRecord, nx: bool) -> bool:
        client = self._require_client()
        payload = encode_record(record)
        with self._backend_call("create" if nx else "save", record.id):
            result = await client.set(
                self._get_key(record.id),
                payload,
                pxat=_expiry_ms(record.expiry_date),
                nx=nx,
            )
        return bool(result)

    async def _try_create(self, record: SessionRecord) -> bool:
        return await self._set(record, nx=True)

    async def save(self, record: SessionRecord) -> None:
        self._require_id(record)
        await self._set(record, nx=False)

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        client = self._require_client()
        with self._backend_call("load", session_id):
            payload = await client.get(self._get_key(session_id))

        if payload is None:
            return None

        record = decode_record(payload)
        # Guards against clock skew between this process and Redis
        return record if self._is_live(record) else None

    async def delete(self, session_id: str) -> None:
        client = self._require_client()
        with self._backend_call("delete", session_id):
            await client.delete(self._get_key(session_id))

    async def health_check(self) -> bool:
        """
        Check connectivity and health of the Redis store.

        Returns:
            True if Redis answers PING, False otherwise.
        """
        if self.client is None:
            return False

        try:
            result = await self.client.ping()
            return result is True
        except Exception:
            return False
