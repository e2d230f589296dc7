from __future__ import annotations

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    status: str
    message: str
    timestamp: str


class HealthResponse(BaseModel):
    status: str
    uptime_seconds: float = Field(ge=0.0)
    memory: dict[str, int]
    timestamp: str


class StatsResponse(BaseModel):
    active_conversations: int = Field(ge=0)
    users_in_flight: int = Field(ge=0)
    timestamp: str
