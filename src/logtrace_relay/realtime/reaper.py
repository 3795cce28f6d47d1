"""Opt-in background eviction of streams that stayed empty too long."""

from __future__ import annotations

import asyncio
import logging

from logtrace_relay.realtime.coordinator import SessionCoordinator


logger = logging.getLogger(__name__)


async def reap_forever(coordinator: SessionCoordinator, ttl_seconds: int) -> None:
    # Check a few times per TTL so a stream outlives its TTL by at most ~25%.
    interval = max(1.0, ttl_seconds / 4)
    logger.info("empty-stream reaper started ttl_seconds=%s interval=%.1f", ttl_seconds, interval)
    while True:
        await asyncio.sleep(interval)
        try:
            reaped = coordinator.reap_empty_streams(ttl_seconds)
        except Exception:
            # Later passes still run.
            logger.exception("empty-stream reaper pass failed")
            continue
        if reaped:
            logger.info("empty-stream reaper removed=%d", len(reaped))
