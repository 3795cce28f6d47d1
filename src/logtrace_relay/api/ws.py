from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from logtrace_relay.logging_utils import NODE_ID_CTX
from logtrace_relay.realtime.connection import ClientConnection
from logtrace_relay.realtime.dispatch import dispatch_text, on_connect, on_disconnect
from logtrace_relay.runtime import get_dispatch_context, get_settings


logger = logging.getLogger(__name__)


router = APIRouter(tags=["relay"])


async def _pump(websocket: WebSocket, conn: ClientConnection) -> None:
    """Drain the connection's outbox onto the socket until it goes away."""
    while True:
        message = await conn.queue.get()
        try:
            await websocket.send_json(message)
        except Exception as e:
            # Socket closed underneath us; whatever is still queued is lost.
            logger.debug("sender stopped conn=%s reason=%r", conn.conn_id, e)
            return


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket) -> None:
    """One relay client.

    - Assigns a node id and sends `node-assigned`
    - Dispatches inbound frames strictly in arrival order
    - Cleans up membership on disconnect, however it happens
    """
    ctx = get_dispatch_context()
    await websocket.accept()

    conn = ClientConnection.with_outbox(get_settings().outbox_size)
    node_id = on_connect(ctx, conn)
    token = NODE_ID_CTX.set(node_id)
    sender = asyncio.create_task(_pump(websocket, conn), name=f"relay-send-{node_id}")

    logger.info(
        "ws connect node_id=%s client=%s",
        node_id,
        websocket.client.host if websocket.client else None,
    )
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("ws disconnect node_id=%s code=%s", node_id, message.get("code"))
                break
            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            dispatch_text(ctx, conn, text or "")
    except WebSocketDisconnect as e:
        logger.info("ws disconnect node_id=%s code=%s", node_id, e.code)
    finally:
        on_disconnect(ctx, conn)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        NODE_ID_CTX.reset(token)
