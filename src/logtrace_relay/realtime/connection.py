"""Outbound side of one client connection (transport-agnostic)."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ClientConnection:
    """Identity-hashed handle the registries key on.

    Frames are queued here and drained by whatever transport owns the
    connection; `send` never blocks.
    """

    queue: "asyncio.Queue[dict[str, Any]]" = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    conn_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False

    @classmethod
    def with_outbox(cls, maxsize: int) -> "ClientConnection":
        return cls(queue=asyncio.Queue(maxsize=maxsize))

    def send(self, message: dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            # Slow consumer: drop, no retry.
            logger.warning("outbox full, dropping frame conn=%s event=%s", self.conn_id, message.get("event"))
            return False
        return True

    def close(self) -> None:
        self.closed = True

    def drain(self) -> list[dict[str, Any]]:
        """Pop every queued frame without waiting."""
        frames = []
        while True:
            try:
                frames.append(self.queue.get_nowait())
            except asyncio.QueueEmpty:
                return frames
