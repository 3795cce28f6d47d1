"""Event dispatch: maps inbound event names to coordinator operations.

Each handler validates the inbound payload, calls the coordinator, and queues
the result frame on the originating connection. Failures are reported only to
that connection; nothing here touches the registries directly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from logtrace_relay.errors import InvalidRequest, RelayError, Unauthorized
from logtrace_relay.models import (
    ErrorFrame,
    LeaveResult,
    LogPushRequest,
    NodeAssigned,
    PushResult,
    StreamCreateRequest,
    StreamJoinRequest,
    StreamListResult,
    StreamResult,
    frame,
)
from logtrace_relay.realtime.connection import ClientConnection
from logtrace_relay.realtime.coordinator import SessionCoordinator
from logtrace_relay.realtime.registry import StreamDescriptor


logger = logging.getLogger(__name__)


@dataclass
class DispatchContext:
    coordinator: SessionCoordinator
    enable_stream_list: bool = True


Handler = Callable[[DispatchContext, ClientConnection, Dict[str, Any]], None]


def _stream_failure(exc: RelayError) -> StreamResult:
    return StreamResult(success=False, error=exc.message, code=exc.code)


def handle_stream_create(ctx: DispatchContext, conn: ClientConnection, data: Dict[str, Any]) -> None:
    try:
        req = StreamCreateRequest.model_validate(data)
        stream = ctx.coordinator.create_stream(conn, req.stream_name, req.credential_token)
    except ValidationError:
        result = _stream_failure(InvalidRequest())
    except RelayError as exc:
        result = _stream_failure(exc)
    else:
        result = StreamResult(success=True, stream_id=stream.stream_id, stream_name=stream.name)
    conn.send(frame("stream-create-result", result))


def handle_stream_join(ctx: DispatchContext, conn: ClientConnection, data: Dict[str, Any]) -> None:
    def joined(stream: StreamDescriptor) -> None:
        result = StreamResult(success=True, stream_id=stream.stream_id, stream_name=stream.name)
        conn.send(frame("stream-join-result", result))

    # Success is answered from inside the join, ahead of the membership broadcast.
    try:
        req = StreamJoinRequest.model_validate(data)
        ctx.coordinator.join_stream(conn, req.stream_id, req.credential_token, on_joined=joined)
    except ValidationError:
        conn.send(frame("stream-join-result", _stream_failure(InvalidRequest())))
    except RelayError as exc:
        conn.send(frame("stream-join-result", _stream_failure(exc)))


def handle_stream_leave(ctx: DispatchContext, conn: ClientConnection, data: Dict[str, Any]) -> None:
    ctx.coordinator.leave_stream(conn)
    conn.send(frame("stream-leave-result", LeaveResult()))


def handle_log_push(ctx: DispatchContext, conn: ClientConnection, data: Dict[str, Any]) -> None:
    try:
        req = LogPushRequest.model_validate(data)
        ctx.coordinator.push_log(conn, req.payload, req.level)
    except ValidationError:
        result = PushResult(success=False, error="Malformed log payload", code=InvalidRequest.code)
    except RelayError as exc:
        result = PushResult(success=False, error=exc.message, code=exc.code)
    else:
        result = PushResult(success=True)
    conn.send(frame("log-push-result", result))


def handle_stream_list(ctx: DispatchContext, conn: ClientConnection, data: Dict[str, Any]) -> None:
    # Diagnostic and unauthenticated: any connected client sees every stream's
    # id and name. Turn off with LOGTRACE_ENABLE_STREAM_LIST=false.
    if not ctx.enable_stream_list:
        exc = Unauthorized("Stream listing is disabled")
        result = StreamListResult(error=exc.message, code=exc.code)
    else:
        result = StreamListResult(streams=ctx.coordinator.list_streams())
    conn.send(frame("stream-list-result", result))


EVENT_HANDLERS: Dict[str, Handler] = {
    "stream-create": handle_stream_create,
    "stream-join": handle_stream_join,
    "stream-leave": handle_stream_leave,
    "log-push": handle_log_push,
    "stream-list": handle_stream_list,
}


def on_connect(ctx: DispatchContext, conn: ClientConnection) -> str:
    node_id = ctx.coordinator.connect(conn)
    conn.send(frame("node-assigned", NodeAssigned(node_id=node_id)))
    return node_id


def on_disconnect(ctx: DispatchContext, conn: ClientConnection) -> None:
    ctx.coordinator.disconnect(conn)


def dispatch(ctx: DispatchContext, conn: ClientConnection, event: Optional[str], data: Any) -> None:
    """Run one inbound event to completion."""
    handler = EVENT_HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        logger.warning("unknown event=%r conn=%s", event, conn.conn_id)
        conn.send(frame("error", ErrorFrame(error="Unknown event", event=event if isinstance(event, str) else None)))
        return

    # A non-object payload is treated as empty; handlers then report the missing fields.
    payload = data if isinstance(data, dict) else {}
    if data is not None and not isinstance(data, dict):
        logger.warning("non-object payload event=%s conn=%s", event, conn.conn_id)

    try:
        handler(ctx, conn, payload)
    except Exception:
        # Operations raise before mutating, so shared state is intact here.
        logger.exception("handler failed event=%s conn=%s", event, conn.conn_id)
        conn.send(frame("error", ErrorFrame(error="Internal error", event=event)))


def dispatch_text(ctx: DispatchContext, conn: ClientConnection, text: str) -> None:
    """Decode one `{"event": ..., "data": ...}` text frame and dispatch it."""
    try:
        message = json.loads(text)
    except ValueError:
        logger.warning("unparseable frame chars=%d conn=%s", len(text), conn.conn_id)
        conn.send(frame("error", ErrorFrame(error="Malformed frame")))
        return
    if not isinstance(message, dict):
        conn.send(frame("error", ErrorFrame(error="Malformed frame")))
        return
    dispatch(ctx, conn, message.get("event"), message.get("data"))
