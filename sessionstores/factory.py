"""
Backend selection.

Builds the configured SessionStore and, where the backend needs one, its
ExpirySweeper. Callers depend on the SessionStore interface only; which
adapter they get is decided here from Settings.
"""

import logging
from typing import Optional

from sqlalchemy.pool import StaticPool

from sessionstores.config.settings import BackendType, Settings, get_settings
from sessionstores.session.memory_store import MemorySessionStore
from sessionstores.session.mongodb_store import MongoDBSessionStore
from sessionstores.session.redis_store import RedisSessionStore
from sessionstores.session.sql_store import SqlSessionStore
from sessionstores.session.store import ExpiredDeletion, SessionStore
from sessionstores.session.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

# Used in development when the backend's URL is not configured
DEV_REDIS_URL = "redis://localhost:6379/0"
DEV_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEV_MONGODB_URL = "mongodb://localhost:27017"


def create_session_store(settings: Optional[Settings] = None) -> SessionStore:
    """
    Build the session store selected by settings.backend.

    The store is not connected yet; use open_session_store() to also
    connect and bootstrap the schema.

    Args:
        settings: Settings to use. Defaults to get_settings().

    Raises:
        ConfigurationError: If the namespace or database dialect is invalid.
    """
    settings = settings or get_settings()
    backend = settings.backend

    if backend == BackendType.MEMORY:
        store: SessionStore = MemorySessionStore(
            max_capacity=settings.memory_max_capacity,
            namespace=settings.namespace,
            max_create_attempts=settings.max_create_attempts,
        )
    elif backend == BackendType.REDIS:
        store = RedisSessionStore(
            redis_url=settings.redis_url or DEV_REDIS_URL,
            namespace=settings.namespace,
            max_create_attempts=settings.max_create_attempts,
        )
    elif backend == BackendType.SQL:
        engine_kwargs = {}
        database_url = settings.database_url
        if not database_url:
            # A single shared connection keeps one in-memory database alive
            database_url = DEV_DATABASE_URL
            engine_kwargs["poolclass"] = StaticPool
        store = SqlSessionStore(
            database_url=database_url,
            table_name=settings.namespace,
            user_id_data_key=settings.user_id_data_key,
            max_create_attempts=settings.max_create_attempts,
            **engine_kwargs,
        )
    elif backend == BackendType.MONGODB:
        store = MongoDBSessionStore(
            mongodb_url=settings.mongodb_url or DEV_MONGODB_URL,
            database_name=settings.mongodb_database,
            collection_name=settings.namespace,
            max_create_attempts=settings.max_create_attempts,
        )
    else:
        raise ValueError(f"Unknown session backend: {backend!r}")

    logger.info("Session store configured", extra={
        "extra_data": {"backend": store.backend_name, "namespace": settings.namespace}
    })
    return store


async def open_session_store(settings: Optional[Settings] = None) -> SessionStore:
    """
    Build, connect and bootstrap the configured session store.

    Connects adapters that own a client (Redis, MongoDB) and runs
    ensure_schema(), which is idempotent. If either step fails the store
    is closed before the error propagates.
    """
    store = create_session_store(settings)
    try:
        connect = getattr(store, "connect", None)
        if connect is not None:
            await connect()
        await store.ensure_schema()
    except BaseException:
        await store.close()
        raise
    return store


def create_sweeper(
    store: SessionStore,
    settings: Optional[Settings] = None,
) -> Optional[ExpirySweeper]:
    """
    Build an ExpirySweeper for stores that need one.

    Returns:
        None when sweeping is disabled (no interval configured) or the
        backend evicts expired records natively.
    """
    settings = settings or get_settings()
    if settings.sweep_interval_seconds is None:
        return None
    if store.native_expiration or not isinstance(store, ExpiredDeletion):
        return None
    return ExpirySweeper(store, settings.sweep_interval_seconds)
