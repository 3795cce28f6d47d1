"""Runtime singletons (settings, coordinator) for the relay server."""

from __future__ import annotations

from typing import Optional

from logtrace_relay.config import Settings, load_settings
from logtrace_relay.realtime.coordinator import SessionCoordinator
from logtrace_relay.realtime.dispatch import DispatchContext


_settings: Optional[Settings] = None
_coordinator: Optional[SessionCoordinator] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_coordinator() -> SessionCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = SessionCoordinator()
    return _coordinator


def get_dispatch_context() -> DispatchContext:
    return DispatchContext(
        coordinator=get_coordinator(),
        enable_stream_list=get_settings().enable_stream_list,
    )


def reset() -> None:
    """Drop the singletons (tests, and re-creating the app in-process)."""
    global _settings, _coordinator
    _settings = None
    _coordinator = None
