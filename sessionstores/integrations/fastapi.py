"""
FastAPI wiring for session stores.

Provides a lifespan that opens the configured store, starts its expiry
sweeper and tears both down on shutdown, plus a dependency that hands the
store to route handlers. Cookie handling stays with the application.

Example:
    app = FastAPI(lifespan=session_store_lifespan())

    @app.get("/counter")
    async def counter(store: SessionStore = Depends(get_session_store)):
        ...
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, Request

from sessionstores.config.settings import Settings
from sessionstores.errors import NotConnectedError
from sessionstores.factory import create_sweeper, open_session_store
from sessionstores.session.store import SessionStore

logger = logging.getLogger(__name__)


def session_store_lifespan(
    settings: Optional[Settings] = None,
) -> Callable[[FastAPI], AsyncIterator[None]]:
    """
    Build a FastAPI lifespan managing the session store.

    On startup the store is connected and its schema ensured, and the
    sweeper (if the backend needs one) is started. Both are exposed as
    app.state.session_store and app.state.session_sweeper.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        store = await open_session_store(settings)
        sweeper = create_sweeper(store, settings)
        if sweeper is not None:
            sweeper.start()
        app.state.session_store = store
        app.state.session_sweeper = sweeper
        logger.info("Session store started", extra={
            "extra_data": {"backend": store.backend_name, "sweeper": sweeper is not None}
        })
        try:
            yield
        finally:
            if sweeper is not None:
                await sweeper.stop()
            await store.close()
            app.state.session_store = None
            app.state.session_sweeper = None
            logger.info("Session store stopped")

    return lifespan


def get_session_store(request: Request) -> SessionStore:
    """
    FastAPI dependency returning the store opened by the lifespan.

    Raises:
        NotConnectedError: If the lifespan has not run.
    """
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise NotConnectedError("Session store is not initialized; install session_store_lifespan")
    return store
