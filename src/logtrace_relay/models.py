"""Pydantic models for the relay's wire frames."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Inbound (client -> server). Fields stay optional so a missing value reaches the
# coordinator and is reported with the proper error kind; wrong types fail validation.


class StreamCreateRequest(WireModel):
    stream_name: Optional[str] = None
    credential_token: Optional[str] = None


class StreamJoinRequest(WireModel):
    stream_id: Optional[str] = None
    credential_token: Optional[str] = None


class LogPushRequest(WireModel):
    payload: Optional[str] = Field(default=None, description="Opaque ciphertext, base64")
    level: Optional[str] = None


# Outbound (server -> client)


class NodeAssigned(WireModel):
    node_id: str


class StreamResult(WireModel):
    """Result of stream-create and stream-join."""

    success: bool
    stream_id: Optional[str] = None
    stream_name: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class LeaveResult(WireModel):
    success: Literal[True] = True


class PushResult(WireModel):
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None


class LogBroadcast(WireModel):
    """A pushed log entry; exists only for the duration of one fan-out."""

    stream_id: str
    node_id: str
    payload: str
    level: str
    timestamp: int


class MembershipList(WireModel):
    stream_id: str
    nodes: list[str] = Field(default_factory=list)


class StreamSummary(WireModel):
    id: str
    name: str
    member_count: int
    created_at: int


class StreamListResult(WireModel):
    streams: list[StreamSummary] = Field(default_factory=list)
    error: Optional[str] = None
    code: Optional[str] = None


class ErrorFrame(WireModel):
    error: str
    event: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: int


def frame(event: str, data: WireModel) -> dict[str, Any]:
    return {"event": event, "data": data.wire()}
