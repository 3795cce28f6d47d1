from __future__ import annotations

import itertools

from logtrace_relay.realtime.connection import ClientConnection
from logtrace_relay.realtime.registry import ConnectionRegistry, StreamRegistry


def test_node_ids_are_distinct():
    registry = ConnectionRegistry()
    ids = {registry.register(ClientConnection()) for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("node-") for i in ids)


def test_node_id_never_reissued_after_unregister():
    # A factory that keeps proposing the same id first.
    seq = itertools.chain(["node-a", "node-a", "node-a"], (f"node-{n}" for n in itertools.count()))
    registry = ConnectionRegistry(id_factory=lambda: next(seq))

    first = ClientConnection()
    assert registry.register(first) == "node-a"
    registry.unregister(first)

    second = ClientConnection()
    assert registry.register(second) != "node-a"


def test_register_same_connection_keeps_identity():
    registry = ConnectionRegistry()
    conn = ClientConnection()
    assert registry.register(conn) == registry.register(conn)
    assert len(registry) == 1


def test_set_stream_and_unregister():
    registry = ConnectionRegistry()
    conn = ClientConnection()
    registry.register(conn)

    registry.set_stream(conn, "s1")
    assert registry.lookup(conn).stream_id == "s1"

    registry.set_stream(conn, None)
    assert registry.lookup(conn).stream_id is None

    assert registry.unregister(conn) is not None
    assert registry.unregister(conn) is None
    assert registry.lookup(conn) is None


def test_stream_ids_are_distinct():
    streams = StreamRegistry()
    ids = [streams.create("same-name", "tok") for _ in range(200)]
    assert len(set(ids)) == 200


def test_stream_id_collision_is_retried():
    seq = iter(["dup", "dup", "other"])
    streams = StreamRegistry(id_factory=lambda: next(seq))
    assert streams.create("a", "t") == "dup"
    assert streams.create("b", "t") == "other"


def test_add_member_ignores_unknown_stream():
    streams = StreamRegistry()
    streams.add_member("missing", ClientConnection())
    assert streams.get("missing") is None
    assert streams.members("missing") == []


def test_membership_is_idempotent():
    streams = StreamRegistry()
    sid = streams.create("alpha", "t1")
    conn = ClientConnection()

    streams.add_member(sid, conn)
    streams.add_member(sid, conn)
    assert streams.members(sid) == [conn]

    assert streams.remove_member(sid, conn) is True
    assert streams.remove_member(sid, conn) is False
    assert streams.remove_member("missing", conn) is False
    assert streams.members(sid) == []


def test_member_node_ids_skip_vanished_connections():
    connections = ConnectionRegistry()
    streams = StreamRegistry()
    sid = streams.create("alpha", "t1")

    a, b = ClientConnection(), ClientConnection()
    node_a = connections.register(a)
    connections.register(b)
    streams.add_member(sid, a)
    streams.add_member(sid, b)

    connections.unregister(b)
    assert streams.list_member_node_ids(sid, connections.lookup) == [node_a]


def test_empty_since_tracks_member_set():
    streams = StreamRegistry()
    sid = streams.create("alpha", "t1")
    stream = streams.get(sid)
    assert stream.empty_since is not None

    conn = ClientConnection()
    streams.add_member(sid, conn)
    assert stream.empty_since is None

    streams.remove_member(sid, conn)
    assert stream.empty_since is not None
