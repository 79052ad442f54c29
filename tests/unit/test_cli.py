"""
Tests for the sessionstores maintenance commands.
"""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sessionstores.__main__ import build_parser, main
from sessionstores.config.settings import Settings
from sessionstores.errors import BackendError

pytestmark = pytest.mark.usefixtures("restore_root_logger")


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_sweep_options(self):
        args = build_parser().parse_args(["sweep", "--forever", "--interval", "2.5"])

        assert args.command == "sweep"
        assert args.forever is True
        assert args.interval == 2.5


class TestCommands:
    """Tests for migrate, sweep and check against real development backends."""

    @pytest.mark.parametrize("backend", ["memory", "sql"])
    @pytest.mark.parametrize("command", ["migrate", "sweep", "check"])
    def test_commands_succeed(self, backend, command):
        with patch.dict(os.environ, {"SESSION_BACKEND": backend}, clear=True):
            assert main([command]) == 0

    def test_invalid_configuration(self):
        with patch.dict(os.environ, {"SESSION_BACKEND": "cassandra"}, clear=True):
            assert main(["check"]) == 1

    def test_unhealthy_backend(self):
        store = MagicMock(backend_name="redis")
        store.health_check = AsyncMock(return_value=False)
        store.close = AsyncMock()

        with patch.dict(os.environ, {}, clear=True):
            with patch("sessionstores.__main__.open_session_store", AsyncMock(return_value=store)):
                assert main(["check"]) == 1

        store.close.assert_awaited_once()

    def test_backend_failure(self):
        failure = AsyncMock(side_effect=BackendError("connection refused"))

        with patch.dict(os.environ, {}, clear=True):
            with patch("sessionstores.__main__.open_session_store", failure):
                assert main(["migrate"]) == 1

    def test_forever_requires_interval(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None, backend="sql", sweep_interval_seconds=None)
            with patch("sessionstores.__main__.get_settings", return_value=settings):
                assert main(["sweep", "--forever"]) == 2
