"""Token in, recording audio out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx
from starlette.responses import Response

from config.settings import Settings
from integrations.record_store import (
    RecordStoreClient,
    RecordStoreSessionCache,
    get_record_store_config,
)
from integrations.twilio_client import TwilioRecordings, get_twilio_config
from recordings.cancellation import CancellationToken, cancel_after
from recordings.errors import ConfigurationError
from recordings.fetcher import UpstreamFetcher
from recordings.resolver import RecordingResolver
from recordings.responder import build_stream_response
from recordings.tokens import CapabilityTokenCodec

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]


class _Closer:
    """Closes the upstream response, HTTP client and watcher exactly once."""

    def __init__(self, client: httpx.AsyncClient, watcher: asyncio.Task | None) -> None:
        self._client = client
        self._watcher = watcher
        self.response: httpx.Response | None = None
        self._closed = False

    async def __call__(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._watcher is not None:
            self._watcher.cancel()
        if self.response is not None:
            await self.response.aclose()
        await self._client.aclose()


class RecordingStreamProxy:
    """Verifies a stream token and relays the matching recording."""

    def __init__(
        self,
        settings: Settings,
        session_cache: RecordStoreSessionCache,
        client_factory: ClientFactory,
    ) -> None:
        self._settings = settings
        self._session_cache = session_cache
        self._client_factory = client_factory

    def _record_store(self, client: httpx.AsyncClient) -> RecordStoreClient | None:
        try:
            config = get_record_store_config(self._settings)
        except ConfigurationError:
            return None
        return RecordStoreClient(config, self._session_cache, client)

    async def stream(
        self,
        token: str | None,
        *,
        cancel: CancellationToken,
        range_header: str | None = None,
        is_head: bool = False,
        watcher: asyncio.Task | None = None,
    ) -> Response:
        codec = CapabilityTokenCodec(self._settings.token_secret)
        claims = codec.decode(token).claims
        twilio = get_twilio_config(self._settings)

        client = self._client_factory()
        closer = _Closer(client, watcher)
        deadline = None
        if self._settings.upstream_resolution_timeout_seconds:
            deadline = cancel_after(cancel, self._settings.upstream_resolution_timeout_seconds)

        try:
            provider = TwilioRecordings(twilio, client)
            resolver = RecordingResolver(provider, self._record_store(client))
            candidates = await resolver.resolve(claims, cancel)
            LOGGER.info(
                "Resolved %d recording candidate(s) for call=%s recording=%s",
                len(candidates),
                claims.call_id,
                claims.recording_id,
            )

            result = await UpstreamFetcher(client).fetch(
                candidates,
                twilio.credentials,
                cancel=cancel,
                range_header=range_header,
                method="HEAD" if is_head else "GET",
            )
        except BaseException:
            await closer()
            raise
        finally:
            if deadline is not None:
                deadline.cancel()

        closer.response = result.response
        return await build_stream_response(result, is_head=is_head, cancel=cancel, cleanup=closer)
