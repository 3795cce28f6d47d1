from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from logtrace_relay import runtime
from logtrace_relay.api.health import router as health_router
from logtrace_relay.api.ws import router as ws_router
from logtrace_relay.logging_utils import configure_logging
from logtrace_relay.realtime.reaper import reap_forever


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = runtime.get_settings()
    logger.info(
        "LogTrace relay started port=%s cors=%s mode=%s stream_list=%s empty_stream_ttl=%s",
        settings.port,
        ",".join(settings.cors_origins),
        settings.env,
        settings.enable_stream_list,
        settings.empty_stream_ttl,
    )

    reaper = None
    if settings.empty_stream_ttl > 0:
        reaper = asyncio.create_task(reap_forever(runtime.get_coordinator(), settings.empty_stream_ttl))
    try:
        yield
    finally:
        logger.info("LogTrace relay shutting down")
        if reaper is not None:
            reaper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reaper
        logger.info("LogTrace relay closed")


def create_app() -> FastAPI:
    load_dotenv()
    # Fresh registries and settings for every app instance.
    runtime.reset()
    settings = runtime.get_settings()
    configure_logging(settings)

    app = FastAPI(title="LogTrace Relay", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def request_log_middleware(request, call_next):  # type: ignore[no-untyped-def]
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.exception(
                "http request failed method=%s path=%s duration_ms=%.1f",
                request.method,
                request.url.path,
                duration_ms,
            )
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "http done method=%s path=%s status=%s duration_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    # CORS
    allow_any = settings.cors_origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=not allow_any,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health_router)
    app.include_router(ws_router)

    return app


app = create_app()
