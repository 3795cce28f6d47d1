"""Session coordinator: the single writer of the connection and stream registries.

Every public method is one atomic unit. Nothing inside awaits, and the whole
body runs under one lock covering both registries, so a join can never
interleave with a leave or a disconnect of the same connection, and two joins
to the same stream can never corrupt its member set.

Failures raise a `RelayError` before any state is touched.
"""

from __future__ import annotations

import hmac
import logging
import threading
import time
from typing import Callable, Optional

from logtrace_relay.errors import EmptyPayload, InvalidRequest, NoStream, StreamNotFound, Unauthorized
from logtrace_relay.models import LogBroadcast, MembershipList, StreamSummary, frame
from logtrace_relay.realtime.connection import ClientConnection
from logtrace_relay.realtime.fanout import BroadcastFanout
from logtrace_relay.realtime.registry import (
    ConnectionRegistry,
    NodeInfo,
    StreamDescriptor,
    StreamRegistry,
    now_ms,
)


logger = logging.getLogger(__name__)

DEFAULT_LEVEL = "INFO"


def _tokens_match(stored: str, presented: Optional[str]) -> bool:
    if presented is None:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


class SessionCoordinator:
    def __init__(
        self,
        connections: Optional[ConnectionRegistry] = None,
        streams: Optional[StreamRegistry] = None,
    ) -> None:
        self._connections = connections or ConnectionRegistry()
        self._streams = streams or StreamRegistry()
        self._fanout = BroadcastFanout(self._streams)
        self._lock = threading.Lock()

    # -- connection lifecycle -------------------------------------------------

    def connect(self, conn: ClientConnection) -> str:
        with self._lock:
            node_id = self._connections.register(conn)
        logger.info("connect node_id=%s conn=%s", node_id, conn.conn_id)
        return node_id

    def disconnect(self, conn: ClientConnection) -> bool:
        """Drop `conn` from its stream and forget it. Safe to call repeatedly."""
        with self._lock:
            info = self._connections.lookup(conn)
            if info is None:
                conn.close()
                return False
            if info.stream_id is not None and self._streams.remove_member(info.stream_id, conn):
                # Already out of the member set: neither listed nor notified.
                self._notify_membership(info.stream_id)
            self._connections.unregister(conn)
            conn.close()
        logger.info("disconnect node_id=%s stream_id=%s", info.node_id, info.stream_id)
        return True

    # -- stream operations ----------------------------------------------------

    def create_stream(
        self,
        conn: ClientConnection,
        name: Optional[str],
        credential_token: Optional[str],
    ) -> StreamDescriptor:
        if not name or not credential_token:
            raise InvalidRequest()
        with self._lock:
            info = self._require_node(conn)
            stream_id = self._streams.create(name, credential_token)
            stream = self._streams.get(stream_id)
        assert stream is not None
        logger.info("stream create stream_id=%s name_chars=%d by=%s", stream_id, len(name), info.node_id)
        return stream

    def join_stream(
        self,
        conn: ClientConnection,
        stream_id: Optional[str],
        credential_token: Optional[str],
        on_joined: Optional[Callable[[StreamDescriptor], None]] = None,
    ) -> StreamDescriptor:
        """Move `conn` into `stream_id`.

        `on_joined` runs inside the critical section after membership is updated
        and before the new stream hears about it, so the joiner's result frame is
        queued ahead of the membership broadcast.
        """
        with self._lock:
            info = self._require_node(conn)
            stream = self._streams.get(stream_id)
            if stream is None:
                logger.warning("stream join rejected (not found) stream_id=%s node_id=%s", stream_id, info.node_id)
                raise StreamNotFound()
            if not _tokens_match(stream.credential_token, credential_token):
                logger.warning("stream join rejected (bad token) stream_id=%s node_id=%s", stream_id, info.node_id)
                raise Unauthorized()

            previous = info.stream_id
            if previous is not None and previous != stream.stream_id:
                if self._streams.remove_member(previous, conn):
                    self._notify_membership(previous)

            self._streams.add_member(stream.stream_id, conn)
            self._connections.set_stream(conn, stream.stream_id)
            if on_joined is not None:
                on_joined(stream)
            self._notify_membership(stream.stream_id)

        logger.info(
            "stream join stream_id=%s node_id=%s previous=%s members=%d",
            stream.stream_id,
            info.node_id,
            previous,
            len(stream.members),
        )
        return stream

    def leave_stream(self, conn: ClientConnection) -> Optional[str]:
        """Returns the stream left, or None when there was no membership."""
        with self._lock:
            info = self._connections.lookup(conn)
            if info is None or info.stream_id is None:
                return None
            stream_id = info.stream_id
            if self._streams.remove_member(stream_id, conn):
                self._notify_membership(stream_id)
            self._connections.set_stream(conn, None)
        logger.info("stream leave stream_id=%s node_id=%s", stream_id, info.node_id)
        return stream_id

    def push_log(
        self,
        conn: ClientConnection,
        payload: Optional[str],
        level: Optional[str] = None,
    ) -> LogBroadcast:
        with self._lock:
            info = self._connections.lookup(conn)
            if info is None or info.stream_id is None:
                raise NoStream()
            if not payload:
                raise EmptyPayload()
            message = LogBroadcast(
                stream_id=info.stream_id,
                node_id=info.node_id,
                payload=payload,
                level=level or DEFAULT_LEVEL,
                timestamp=now_ms(),
            )
            # Includes the sender.
            delivered = self._fanout.deliver(info.stream_id, frame("log-broadcast", message))
        logger.debug(
            "log push stream_id=%s level=%s payload_chars=%d delivered=%d",
            message.stream_id,
            message.level,
            len(payload),
            delivered,
        )
        return message

    def list_streams(self) -> list[StreamSummary]:
        with self._lock:
            return [
                StreamSummary(
                    id=s.stream_id,
                    name=s.name,
                    member_count=len(s.members),
                    created_at=s.created_at,
                )
                for s in self._streams
            ]

    # -- introspection --------------------------------------------------------

    def node_info(self, conn: ClientConnection) -> Optional[NodeInfo]:
        with self._lock:
            info = self._connections.lookup(conn)
            return NodeInfo(node_id=info.node_id, stream_id=info.stream_id) if info else None

    def membership(self, stream_id: str) -> list[str]:
        with self._lock:
            return self._streams.list_member_node_ids(stream_id, self._connections.lookup)

    # -- housekeeping ---------------------------------------------------------

    def reap_empty_streams(self, ttl_seconds: float, now: Optional[float] = None) -> list[str]:
        """Forget streams that have had no members for at least `ttl_seconds`."""
        if ttl_seconds <= 0:
            return []
        current = time.monotonic() if now is None else now
        reaped = []
        with self._lock:
            for stream in self._streams:
                if stream.members or stream.empty_since is None:
                    continue
                if current - stream.empty_since >= ttl_seconds:
                    self._streams.discard(stream.stream_id)
                    reaped.append(stream.stream_id)
        for stream_id in reaped:
            logger.info("stream reaped (empty) stream_id=%s", stream_id)
        return reaped

    # -- internals (caller holds the lock) ------------------------------------

    def _require_node(self, conn: ClientConnection) -> NodeInfo:
        info = self._connections.lookup(conn)
        if info is None:
            raise InvalidRequest("Connection is not registered")
        return info

    def _notify_membership(self, stream_id: str) -> None:
        nodes = self._streams.list_member_node_ids(stream_id, self._connections.lookup)
        self._fanout.deliver(stream_id, frame("membership-list", MembershipList(stream_id=stream_id, nodes=nodes)))
