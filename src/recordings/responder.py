"""Mirror an upstream recording response to the client."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx
from starlette.background import BackgroundTask
from starlette.responses import Response, StreamingResponse

from recordings.cancellation import CancellationToken
from recordings.errors import RequestCancelled
from recordings.fetcher import UpstreamResult

LOGGER = logging.getLogger(__name__)

Cleanup = Callable[[], Awaitable[None]]


def stream_headers(result: UpstreamResult) -> dict[str, str]:
    upstream = result.response.headers
    headers = {
        "Content-Type": upstream.get("content-type") or result.candidate.media_type,
        "Accept-Ranges": "bytes",
        "Cache-Control": "no-store",
        "Content-Disposition": 'inline; filename="recording"',
    }
    content_range = upstream.get("content-range")
    if content_range:
        headers["Content-Range"] = content_range
    content_length = upstream.get("content-length")
    if content_length:
        headers["Content-Length"] = content_length
    return headers


async def pipe_body(
    response: httpx.Response,
    cancel: CancellationToken,
    cleanup: Cleanup,
) -> AsyncIterator[bytes]:
    """Yield upstream chunks as they arrive, never holding more than one."""

    chunks = response.aiter_raw()
    sent = 0
    try:
        while True:
            try:
                chunk = await cancel.guard(chunks.__anext__())
            except StopAsyncIteration:
                break
            sent += len(chunk)
            yield chunk
    except RequestCancelled:
        LOGGER.info("Recording stream cancelled after %d bytes (%s)", sent, cancel.reason)
    except (httpx.HTTPError, httpx.StreamError) as exc:
        LOGGER.warning("Upstream recording stream broke after %d bytes: %s", sent, exc)
    finally:
        await cleanup()


async def build_stream_response(
    result: UpstreamResult,
    *,
    is_head: bool,
    cancel: CancellationToken,
    cleanup: Cleanup,
) -> Response:
    """Copy status and headers; stream the body for GET, send none for HEAD.

    ``cleanup`` closes the upstream response and HTTP client. For HEAD it runs
    before returning; for GET it runs once the body has been relayed or the
    stream was cut short.
    """

    headers = stream_headers(result)
    status_code = result.response.status_code

    if is_head:
        await cleanup()
        response = Response(status_code=status_code, headers=headers)
        if "Content-Length" not in headers and "content-length" in response.headers:
            # Upstream size unknown.
            del response.headers["content-length"]
        return response

    media_type = headers.pop("Content-Type")
    return StreamingResponse(
        pipe_body(result.response, cancel, cleanup),
        status_code=status_code,
        headers=headers,
        media_type=media_type,
        background=BackgroundTask(cleanup),
    )
