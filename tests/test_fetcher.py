from __future__ import annotations

import asyncio

import httpx
import pytest

from integrations.twilio_client import UpstreamCredentials
from recordings.cancellation import CancellationToken, watch_disconnect
from recordings.errors import RequestCancelled, UpstreamUnavailable
from recordings.fetcher import UpstreamFetcher
from recordings.resolver import RecordingCandidate

MP3 = RecordingCandidate("https://api.twilio.com/rec/RE1.mp3", "audio/mpeg")
WAV = RecordingCandidate("https://api.twilio.com/rec/RE1.wav", "audio/wav")
CREDS = UpstreamCredentials(primary="Basic primary", secondary="Basic secondary")


def _fetch(upstream, candidates, credentials=CREDS, **kwargs):
    async def _go():
        async with upstream.client() as client:
            result = await UpstreamFetcher(client).fetch(
                candidates, credentials, cancel=CancellationToken(), **kwargs
            )
            body = await result.response.aread()
            await result.response.aclose()
            return result, body

    return asyncio.run(_go())


def test_first_success_wins_and_later_candidates_untouched(upstream):
    upstream.add("GET", MP3.url, httpx.Response(200, content=b"mp3-bytes"))
    upstream.add("GET", WAV.url, httpx.Response(200, content=b"wav-bytes"))

    result, body = _fetch(upstream, [MP3, WAV])

    assert result.candidate == MP3
    assert body == b"mp3-bytes"
    assert upstream.calls(WAV.url) == []
    assert upstream.requests[0].headers["Authorization"] == "Basic primary"
    assert upstream.requests[0].headers["Accept"] == "audio/mpeg, audio/*"


def test_forbidden_primary_retried_with_secondary(upstream):
    upstream.add(
        "GET",
        MP3.url,
        httpx.Response(403, content=b"nope"),
        httpx.Response(200, content=b"secondary-bytes"),
    )

    result, body = _fetch(upstream, [MP3, WAV])

    assert body == b"secondary-bytes"
    auths = [r.headers["Authorization"] for r in upstream.calls(MP3.url)]
    assert auths == ["Basic primary", "Basic secondary"]
    assert upstream.calls(WAV.url) == []


def test_no_retry_without_secondary_credential(upstream):
    upstream.add("GET", MP3.url, httpx.Response(401))
    upstream.add("GET", WAV.url, httpx.Response(200, content=b"wav"))

    result, _ = _fetch(upstream, [MP3, WAV], credentials=UpstreamCredentials(primary="Basic only"))

    assert result.candidate == WAV
    assert len(upstream.calls(MP3.url)) == 1


def test_range_forwarded_verbatim(upstream):
    upstream.add(
        "GET",
        MP3.url,
        httpx.Response(206, headers={"Content-Range": "bytes 100-199/5000"}, content=b"x" * 100),
    )

    result, _ = _fetch(upstream, [MP3], range_header="bytes=100-199")

    assert result.response.status_code == 206
    assert upstream.requests[0].headers["Range"] == "bytes=100-199"


def test_redirects_are_followed(upstream):
    upstream.add("GET", MP3.url, httpx.Response(302, headers={"Location": "https://media.example/RE1.mp3"}))
    upstream.add("GET", "https://media.example/RE1.mp3", httpx.Response(200, content=b"cdn"))

    result, body = _fetch(upstream, [MP3])

    assert body == b"cdn"
    assert result.candidate == MP3


def test_transport_error_moves_to_next_candidate(upstream):
    async def explode(request):
        raise httpx.ConnectError("refused", request=request)

    upstream.add("GET", MP3.url, explode)
    upstream.add("GET", WAV.url, httpx.Response(200, content=b"wav"))

    result, body = _fetch(upstream, [MP3, WAV])
    assert result.candidate == WAV
    assert body == b"wav"


def test_empty_success_is_not_a_winner(upstream):
    upstream.add("GET", MP3.url, httpx.Response(204))
    upstream.add("GET", WAV.url, httpx.Response(200, content=b"wav"))

    result, _ = _fetch(upstream, [MP3, WAV])
    assert result.candidate == WAV


def test_all_attempts_failing_is_upstream_unavailable(upstream):
    upstream.add("GET", MP3.url, httpx.Response(403))
    upstream.add("GET", WAV.url, httpx.Response(401))

    with pytest.raises(UpstreamUnavailable) as excinfo:
        _fetch(upstream, [MP3, WAV])

    assert excinfo.value.status_code == 502
    assert len(upstream.requests) == 4


def test_head_requests_upstream_head(upstream):
    upstream.add("HEAD", MP3.url, httpx.Response(200, headers={"Content-Length": "5000"}))

    result, body = _fetch(upstream, [MP3], method="HEAD")

    assert upstream.requests[0].method == "HEAD"
    assert result.response.headers["content-length"] == "5000"
    assert body == b""


def test_cancellation_aborts_in_flight_fetch(upstream):
    aborted: list[bool] = []

    async def hang(request):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            aborted.append(True)
            raise
        return httpx.Response(200, content=b"late")

    upstream.add("GET", MP3.url, hang)

    async def _go():
        cancel = CancellationToken()
        async with upstream.client() as client:
            fetch = asyncio.create_task(
                UpstreamFetcher(client).fetch([MP3, WAV], CREDS, cancel=cancel)
            )
            await asyncio.sleep(0.05)
            cancel.cancel()
            with pytest.raises(RequestCancelled):
                await fetch
        return bool(aborted)

    assert asyncio.run(_go()) is True
    assert upstream.calls(WAV.url) == []


class DisconnectingRequest:
    """Stands in for a Starlette request whose client leaves after a few polls."""

    def __init__(self, polls_before_disconnect: int) -> None:
        self.remaining = polls_before_disconnect

    async def is_disconnected(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def test_client_disconnect_aborts_stalled_fetch(upstream):
    aborted: list[bool] = []

    async def hang(request):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            aborted.append(True)
            raise
        return httpx.Response(200, content=b"late")

    upstream.add("GET", MP3.url, hang)

    async def _go():
        cancel = CancellationToken()
        watcher = asyncio.create_task(
            watch_disconnect(DisconnectingRequest(2), cancel, poll_interval=0.01)
        )
        async with upstream.client() as client:
            with pytest.raises(RequestCancelled):
                await UpstreamFetcher(client).fetch([MP3, WAV], CREDS, cancel=cancel)
        await watcher
        return cancel.reason

    assert asyncio.run(_go()) == "client disconnected"
    assert aborted == [True]
    assert upstream.calls(WAV.url) == []
