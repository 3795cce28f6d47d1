"""Logging setup for the relay.

Every record carries the node id of the connection being served (or `-`
outside one), so a single client's session can be followed through the log.
"""

from __future__ import annotations

import contextvars
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from logtrace_relay.config import Settings


NODE_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("node_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d [node=%(node)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class NodeIdFilter(logging.Filter):
    """Stamp `record.node` from NODE_ID_CTX."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (Filter.filter)
        record.node = NODE_ID_CTX.get("-")
        return True


def resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _prepare(handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    if not any(isinstance(f, NodeIdFilter) for f in handler.filters):
        handler.addFilter(NodeIdFilter())


def _log_file_path(settings: Settings) -> Path:
    if settings.log_file:
        return Path(settings.log_file).expanduser()
    return Path.cwd() / "var" / "logs" / "relay.log"


def _has_file_handler(root: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(path)
        for h in root.handlers
    )


def configure_logging(settings: Settings) -> None:
    """Apply `settings` to the root logger; safe to call more than once (uvicorn reload, tests)."""
    level = resolve_level(settings.log_level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        _prepare(handler, level, formatter)

    if settings.log_to_file:
        path = _log_file_path(settings)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # Keep serving with console logging only.
            logging.getLogger(__name__).exception("cannot create log directory %s", path.parent)
        else:
            if not _has_file_handler(root, path):
                fh = RotatingFileHandler(
                    filename=str(path),
                    maxBytes=settings.log_max_bytes,
                    backupCount=settings.log_backup_count,
                    encoding="utf-8",
                )
                _prepare(fh, level, formatter)
                root.addHandler(fh)

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
