from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from logtrace_relay.models import HealthResponse
from logtrace_relay.realtime.registry import now_ms


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=now_ms())


@router.get("/", response_class=PlainTextResponse)
def index() -> str:
    return "LogTrace Relay Server"
