"""Shared test fixtures for cloudcli.

Provides reusable fixtures for isolated config environments, session
stores, fake token endpoints, output state, and running CLI commands.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import httpx
import pytest

from cloudcli.auth.session_store import SessionStore
from cloudcli.auth.token_client import TokenExchangeClient
from cloudcli.models import ServerTimeouts, Session
from cloudcli.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets HOME, XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of
    tmp_path so that tests never touch real user config, and clears the
    CLOUDCLI_DEV_* overrides.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "CLOUDCLI_DEV_API_BASE_URL",
        "CLOUDCLI_DEV_WEB_BASE_URL",
        "CLOUDCLI_DEV_SIGNIN_PORT",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    """A SessionStore writing into a not-yet-existing directory under tmp_path."""
    return SessionStore(tmp_path / "cfg" / "cloud" / "auth.yaml")


@pytest.fixture
def u1_session() -> Session:
    return Session(user_id="u1", token="t1", created_at=T0)


# ---------------------------------------------------------------------------
# Fake token endpoint
# ---------------------------------------------------------------------------


TokenHandler = Callable[[httpx.Request], httpx.Response]


def token_ok(user_id: str = "u2", token: str = "t2") -> TokenHandler:
    """A token endpoint that accepts any code."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"userId": user_id, "token": token})

    return handler


def make_token_client(
    handler: TokenHandler,
    api_base_url: str = "https://api.test",
) -> TokenExchangeClient:
    """Build a TokenExchangeClient whose HTTP traffic goes to *handler*."""
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TokenExchangeClient(api_base_url, client=client)


@pytest.fixture
def fast_timeouts() -> ServerTimeouts:
    """Short listener deadlines so shutdown paths finish quickly in tests."""
    return ServerTimeouts(read_header=1.0, read=1.0, write=1.0, idle=1.0, shutdown_grace=0.5)


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
