"""Twilio helper endpoints.

This module provides:
- Voice SDK access tokens for the browser dialer.
- The call status callback receiver (acknowledge and log only).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from api.schemas import VoiceTokenRequest, VoiceTokenResponse
from integrations.twilio_client import VoiceTokenConfig, build_voice_access_token, get_voice_token_config
from recordings.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def get_voice_token_cfg() -> VoiceTokenConfig | None:
    try:
        return get_voice_token_config()
    except ConfigurationError:
        return None


@router.post("/generate-token", response_model=VoiceTokenResponse)
async def generate_voice_token(
    payload: VoiceTokenRequest | None = Body(default=None),
    cfg: VoiceTokenConfig | None = Depends(get_voice_token_cfg),
):
    if cfg is None:
        return JSONResponse(status_code=500, content={"error": "Missing Twilio env vars"})

    identity = payload.identity if payload else VoiceTokenRequest().identity
    try:
        token = build_voice_access_token(cfg, identity)
    except Exception:
        LOGGER.exception("Voice token generation failed for identity=%s", identity)
        return JSONResponse(status_code=500, content={"error": "Token generation failed"})

    return VoiceTokenResponse(token=token)


@router.post("/call-status", response_class=PlainTextResponse)
async def twilio_call_status(request: Request) -> str:
    # Twilio retries on non-2xx, so this always acknowledges.
    try:
        form = await request.form()
    except Exception:
        LOGGER.exception("Unreadable call status callback")
        return "OK"

    call_record_id = (
        request.query_params.get("call_record_id")
        or form.get("call_record_id")
        or form.get("CallRecordId")
        or ""
    )
    LOGGER.info(
        "Call status callback record=%s sid=%s status=%s to=%s from=%s ts=%s",
        call_record_id,
        form.get("CallSid"),
        form.get("CallStatus"),
        form.get("To"),
        form.get("From"),
        form.get("Timestamp"),
    )
    return "OK"


@router.get("/call-status", response_class=PlainTextResponse)
async def twilio_call_status_probe() -> Response:
    return PlainTextResponse("twilioCallStatus is live (POST required).")
