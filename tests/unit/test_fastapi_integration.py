"""
Tests for the FastAPI lifespan and store dependency.
"""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from sessionstores.config.settings import Settings
from sessionstores.errors import NotConnectedError
from sessionstores.integrations.fastapi import get_session_store, session_store_lifespan
from sessionstores.session.record import SessionRecord
from sessionstores.session.store import SessionStore
from sessionstores.session.sweeper import SweeperState


def make_settings(**kwargs) -> Settings:
    with patch.dict(os.environ, {}, clear=True):
        return Settings(_env_file=None, **kwargs)


def build_app(settings=None, with_lifespan=True) -> FastAPI:
    app = FastAPI(lifespan=session_store_lifespan(settings) if with_lifespan else None)

    @app.post("/sessions")
    async def create_session(store: SessionStore = Depends(get_session_store)):
        record = SessionRecord.new({"counter": 0}, ttl=timedelta(minutes=5))
        await store.create(record)
        return {"id": record.id}

    @app.post("/sessions/{session_id}/increment")
    async def increment(session_id: str, store: SessionStore = Depends(get_session_store)):
        record = await store.load(session_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Session not found")
        record.data["counter"] += 1
        await store.save(record)
        return record.data

    return app


class TestSessionStoreLifespan:
    """Tests for session_store_lifespan()."""

    @pytest.mark.parametrize("backend", ["memory", "sql"])
    def test_counter_round_trip(self, backend):
        app = build_app(make_settings(backend=backend))

        with TestClient(app) as client:
            session_id = client.post("/sessions").json()["id"]
            client.post(f"/sessions/{session_id}/increment")
            response = client.post(f"/sessions/{session_id}/increment")

            assert response.status_code == 200
            assert response.json() == {"counter": 2}
            assert client.post("/sessions/unknown/increment").status_code == 404

    def test_memory_backend_has_no_sweeper(self):
        app = build_app(make_settings(backend="memory"))

        with TestClient(app):
            assert app.state.session_sweeper is None
            assert app.state.session_store is not None

        assert app.state.session_store is None

    def test_sql_sweeper_started_and_stopped(self):
        app = build_app(make_settings(backend="sql", sweep_interval_seconds=3600))

        with TestClient(app):
            sweeper = app.state.session_sweeper
            assert sweeper.is_running

        assert sweeper.state == SweeperState.STOPPED
        assert not sweeper.is_running
        assert app.state.session_sweeper is None


class TestGetSessionStore:
    """Tests for the get_session_store dependency."""

    def test_without_lifespan(self):
        app = build_app(with_lifespan=False)

        with TestClient(app) as client:
            with pytest.raises(NotConnectedError):
                client.post("/sessions")
