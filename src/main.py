"""Entry point for the telephony recording relay service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.middleware import install_request_context
from api.recording_routes import router as recording_router
from api.routes import build_health_check_router
from api.routes import router as health_router
from api.twilio_routes import router as twilio_router
from config.logging_setup import configure_logging
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

settings = get_settings()

configure_logging(settings.log_level)

app = FastAPI(
    title="Telephony Recording Relay",
    description="Twilio helper endpoints and an authenticated call recording stream.",
)
install_request_context(app)

app.include_router(health_router)
app.include_router(build_health_check_router())
app.include_router(recording_router)
app.include_router(twilio_router)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"msg": "Something went wrong"})
