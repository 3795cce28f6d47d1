"""Best-effort fan-out of frames to a stream's current members."""

from __future__ import annotations

import logging
from typing import Any

from logtrace_relay.realtime.registry import StreamRegistry


logger = logging.getLogger(__name__)


class BroadcastFanout:
    def __init__(self, streams: StreamRegistry) -> None:
        self._streams = streams

    def deliver(self, stream_id: str, message: dict[str, Any]) -> int:
        """Queue `message` for every member at call time; returns how many accepted it."""
        members = self._streams.members(stream_id)
        delivered = 0
        for conn in members:
            if conn.send(message):
                delivered += 1
        if members:
            logger.debug(
                "fanout stream_id=%s event=%s members=%d delivered=%d",
                stream_id,
                message.get("event"),
                len(members),
                delivered,
            )
        return delivered
