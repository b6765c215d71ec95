"""Authenticated call recording stream.

``GET|HEAD /stream-call-recording?token=...`` verifies the signed token,
finds the recording on Twilio and relays the audio, honouring ``Range``.
Every response from this route carries CORS headers so browser players get
a readable JSON error instead of an opaque network failure.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.dependencies import get_recording_proxy
from api.schemas import ErrorResponse
from config.settings import get_settings
from recordings.cancellation import CancellationToken, watch_disconnect
from recordings.errors import InternalError, RecordingProxyError, RequestCancelled
from recordings.proxy import RecordingStreamProxy

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["recordings"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type, Authorization",
    "Access-Control-Expose-Headers": "Content-Range, Accept-Ranges",
}


def apply_cors(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


def _error(status_code: int, message: str) -> Response:
    return apply_cors(JSONResponse(status_code=status_code, content={"error": message}))


@router.options("/stream-call-recording")
async def stream_call_recording_preflight() -> Response:
    return apply_cors(Response(status_code=204))


@router.api_route(
    "/stream-call-recording",
    methods=["GET", "HEAD"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 404, 500, 502)},
)
async def stream_call_recording(
    request: Request,
    token: str | None = None,
    proxy: RecordingStreamProxy = Depends(get_recording_proxy),
) -> Response:
    cancel = CancellationToken()
    watcher = asyncio.create_task(
        watch_disconnect(
            request,
            cancel,
            poll_interval=get_settings().disconnect_poll_interval_seconds,
        )
    )
    try:
        response = await proxy.stream(
            token,
            cancel=cancel,
            range_header=request.headers.get("range"),
            is_head=request.method == "HEAD",
            watcher=watcher,
        )
    except RequestCancelled as exc:
        watcher.cancel()
        LOGGER.info("Recording request abandoned: %s", exc.detail)
        return _error(exc.status_code, exc.detail)
    except RecordingProxyError as exc:
        watcher.cancel()
        if exc.status_code >= 500:
            LOGGER.error("Recording stream failed: %s", exc.detail)
        return _error(exc.status_code, exc.detail)
    except Exception as exc:
        watcher.cancel()
        LOGGER.exception("Recording stream crashed")
        internal = InternalError(str(exc) or None)
        return _error(internal.status_code, internal.detail)

    return apply_cors(response)
