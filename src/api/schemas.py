"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class VoiceTokenRequest(BaseModel):
    identity: str = Field(default="dialer-user", min_length=1, max_length=121)


class VoiceTokenResponse(BaseModel):
    token: str = Field(description="Twilio Voice SDK access token (JWT).")


class ErrorResponse(BaseModel):
    error: str
