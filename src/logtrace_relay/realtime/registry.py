"""In-memory registries for connections and streams (single-process, no persistence).

Both registries are plain containers. They do no I/O and no locking: the
session coordinator is their only writer and keeps them consistent with each
other.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

from logtrace_relay.realtime.connection import ClientConnection


def now_ms() -> int:
    """Current Unix time in milliseconds (wire timestamps)."""
    return int(time.time() * 1000)


def generate_node_id() -> str:
    return "node-" + uuid.uuid4().hex[:8]


def generate_stream_id() -> str:
    return str(uuid.uuid4())


@dataclass
class NodeInfo:
    node_id: str
    stream_id: Optional[str] = None


@dataclass(eq=False)
class StreamDescriptor:
    stream_id: str
    name: str
    credential_token: str
    created_at: int
    # dict used as an insertion-ordered set
    members: Dict[ClientConnection, None] = field(default_factory=dict)
    # monotonic time the member set last became empty, None while occupied
    empty_since: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.members and self.empty_since is None:
            self.empty_since = time.monotonic()


class ConnectionRegistry:
    def __init__(self, id_factory: Callable[[], str] = generate_node_id) -> None:
        self._nodes: Dict[ClientConnection, NodeInfo] = {}
        self._issued: set[str] = set()
        self._id_factory = id_factory

    def register(self, conn: ClientConnection) -> str:
        existing = self._nodes.get(conn)
        if existing is not None:
            return existing.node_id
        node_id = self._id_factory()
        # Node ids are never handed out twice within a process lifetime.
        while node_id in self._issued:
            node_id = self._id_factory()
        self._issued.add(node_id)
        self._nodes[conn] = NodeInfo(node_id=node_id)
        return node_id

    def lookup(self, conn: ClientConnection) -> Optional[NodeInfo]:
        return self._nodes.get(conn)

    def set_stream(self, conn: ClientConnection, stream_id: Optional[str]) -> None:
        info = self._nodes.get(conn)
        if info is not None:
            info.stream_id = stream_id

    def unregister(self, conn: ClientConnection) -> Optional[NodeInfo]:
        return self._nodes.pop(conn, None)

    def __len__(self) -> int:
        return len(self._nodes)


class StreamRegistry:
    def __init__(self, id_factory: Callable[[], str] = generate_stream_id) -> None:
        self._streams: Dict[str, StreamDescriptor] = {}
        self._id_factory = id_factory

    def create(self, name: str, credential_token: str) -> str:
        stream_id = self._id_factory()
        while stream_id in self._streams:
            stream_id = self._id_factory()
        self._streams[stream_id] = StreamDescriptor(
            stream_id=stream_id,
            name=name,
            credential_token=credential_token,
            created_at=now_ms(),
        )
        return stream_id

    def get(self, stream_id: Optional[str]) -> Optional[StreamDescriptor]:
        if stream_id is None:
            return None
        return self._streams.get(stream_id)

    def add_member(self, stream_id: str, conn: ClientConnection) -> None:
        stream = self._streams.get(stream_id)
        if stream is None:
            return
        stream.members[conn] = None
        stream.empty_since = None

    def remove_member(self, stream_id: str, conn: ClientConnection) -> bool:
        stream = self._streams.get(stream_id)
        if stream is None or conn not in stream.members:
            return False
        del stream.members[conn]
        if not stream.members:
            stream.empty_since = time.monotonic()
        return True

    def members(self, stream_id: str) -> list[ClientConnection]:
        stream = self._streams.get(stream_id)
        return list(stream.members) if stream is not None else []

    def list_member_node_ids(
        self,
        stream_id: str,
        lookup: Callable[[ClientConnection], Optional[NodeInfo]],
    ) -> list[str]:
        nodes = []
        for conn in self.members(stream_id):
            # A member may be mid-teardown with its registry entry already gone.
            info = lookup(conn)
            if info is not None:
                nodes.append(info.node_id)
        return nodes

    def discard(self, stream_id: str) -> Optional[StreamDescriptor]:
        return self._streams.pop(stream_id, None)

    def __iter__(self) -> Iterator[StreamDescriptor]:
        return iter(list(self._streams.values()))

    def __len__(self) -> int:
        return len(self._streams)
