from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from logtrace_relay.main import create_app
from logtrace_relay.realtime.connection import ClientConnection
from logtrace_relay.realtime.coordinator import SessionCoordinator
from logtrace_relay.realtime.dispatch import DispatchContext, on_connect


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "PORT",
        "LOGTRACE_PORT",
        "LOGTRACE_HOST",
        "LOGTRACE_CORS_ORIGINS",
        "LOGTRACE_OUTBOX_SIZE",
        "LOGTRACE_ENABLE_STREAM_LIST",
        "LOGTRACE_EMPTY_STREAM_TTL",
        "LOGTRACE_ENV",
        "LOGTRACE_LOG_LEVEL",
        "LOGTRACE_LOG_FILE",
        "LOGTRACE_LOG_MAX_BYTES",
        "LOGTRACE_LOG_BACKUP_COUNT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LOGTRACE_LOG_TO_FILE", "false")


@pytest.fixture
def coordinator() -> SessionCoordinator:
    return SessionCoordinator()


@pytest.fixture
def connect(coordinator):
    """Register a fresh connection and return it with its node id."""

    def _connect() -> tuple[ClientConnection, str]:
        conn = ClientConnection()
        node_id = coordinator.connect(conn)
        return conn, node_id

    return _connect


@pytest.fixture
def ctx(coordinator) -> DispatchContext:
    return DispatchContext(coordinator=coordinator)


@pytest.fixture
def attach(ctx):
    """Connect through the dispatch layer and swallow the node-assigned frame."""

    def _attach() -> tuple[ClientConnection, str]:
        conn = ClientConnection()
        node_id = on_connect(ctx, conn)
        conn.drain()
        return conn, node_id

    return _attach


@pytest.fixture
def client():
    app = create_app()
    with TestClient(app) as c:
        yield c


def events(conn: ClientConnection, name: str | None = None) -> list[dict[str, Any]]:
    """Drain queued frames; optionally keep only the data of one event kind."""
    frames = conn.drain()
    if name is None:
        return frames
    return [f["data"] for f in frames if f["event"] == name]
