from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

import pytest

from logtrace_relay.config import Settings, load_settings
from logtrace_relay.logging_utils import NODE_ID_CTX, NodeIdFilter, configure_logging, resolve_level
from logtrace_relay.main import create_app


def test_defaults():
    settings = load_settings()
    assert settings == Settings()
    assert settings.port == 3000
    assert settings.cors_origins == ["*"]
    assert settings.enable_stream_list is True
    assert settings.empty_stream_ttl == 0


def test_port_precedence(monkeypatch):
    monkeypatch.setenv("LOGTRACE_PORT", "4000")
    assert load_settings().port == 4000
    monkeypatch.setenv("PORT", "5000")
    assert load_settings().port == 5000


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LOGTRACE_CORS_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("LOGTRACE_ENABLE_STREAM_LIST", "off")
    monkeypatch.setenv("LOGTRACE_EMPTY_STREAM_TTL", "300")
    monkeypatch.setenv("LOGTRACE_OUTBOX_SIZE", "0")
    monkeypatch.setenv("LOGTRACE_ENV", "production")

    settings = load_settings()
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert settings.enable_stream_list is False
    assert settings.empty_stream_ttl == 300
    assert settings.outbox_size == 1
    assert settings.env == "production"


def test_bad_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("LOGTRACE_EMPTY_STREAM_TTL", "-5")
    settings = load_settings()
    assert settings.port == 3000
    assert settings.empty_stream_ttl == 0


def test_node_filter_stamps_records():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = NODE_ID_CTX.set("node-abc12345")
    try:
        assert NodeIdFilter().filter(record) is True
    finally:
        NODE_ID_CTX.reset(token)
    assert record.node == "node-abc12345"


def test_log_settings_fall_back_on_bad_numbers(monkeypatch):
    monkeypatch.setenv("LOGTRACE_LOG_TO_FILE", "yes")
    monkeypatch.setenv("LOGTRACE_LOG_MAX_BYTES", "10MB")
    monkeypatch.setenv("LOGTRACE_LOG_BACKUP_COUNT", "many")
    monkeypatch.setenv("LOGTRACE_LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.log_to_file is True
    assert settings.log_max_bytes == 10 * 1024 * 1024
    assert settings.log_backup_count == 5
    assert resolve_level(settings.log_level) == logging.DEBUG
    assert resolve_level("chatty") == logging.INFO


@pytest.fixture
def file_handlers():
    """Remove any rotating file handlers a test attaches to the root logger."""
    root = logging.getLogger()
    before = set(root.handlers)
    level = root.level
    yield lambda: [h for h in root.handlers if isinstance(h, RotatingFileHandler) and h not in before]
    for h in [h for h in root.handlers if h not in before]:
        root.removeHandler(h)
        h.close()
    root.setLevel(level)


def test_app_starts_with_file_logging_and_bad_sizes(monkeypatch, tmp_path, file_handlers):
    log_file = tmp_path / "logs" / "relay.log"
    monkeypatch.setenv("LOGTRACE_LOG_TO_FILE", "true")
    monkeypatch.setenv("LOGTRACE_LOG_FILE", str(log_file))
    monkeypatch.setenv("LOGTRACE_LOG_MAX_BYTES", "10MB")

    create_app()

    [handler] = file_handlers()
    assert handler.baseFilename == os.path.abspath(log_file)
    assert handler.maxBytes == 10 * 1024 * 1024
    assert log_file.parent.is_dir()


def test_configure_logging_does_not_duplicate_file_handler(tmp_path, file_handlers):
    settings = Settings(log_to_file=True, log_file=str(tmp_path / "relay.log"))
    configure_logging(settings)
    configure_logging(settings)
    assert len(file_handlers()) == 1
