"""Turn verified token claims into an ordered list of recording URLs to try."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from integrations.record_store import RecordStoreError
from integrations.twilio_client import AUDIO_FORMATS
from recordings.cancellation import CancellationToken
from recordings.errors import ConfigurationError, ResourceNotAvailable, ResourceNotFound
from recordings.tokens import CapabilityClaims

LOGGER = logging.getLogger(__name__)

_AUDIO_SUFFIX = re.compile(r"\.(mp3|wav)$", re.IGNORECASE)
_METADATA_SUFFIX = re.compile(r"\.json$", re.IGNORECASE)


@dataclass(frozen=True)
class RecordingCandidate:
    url: str
    media_type: str


class CallRecordSource(Protocol):
    async def get_call(self, call_id: str, cancel: CancellationToken) -> dict[str, Any] | None: ...


class RecordingProvider(Protocol):
    def recording_urls(self, recording_sid: str) -> list[tuple[str, str]]: ...

    async def first_recording_sid(self, call_sid: str, cancel: CancellationToken) -> str | None: ...


Strategy = Callable[[CapabilityClaims, CancellationToken], Awaitable[list[RecordingCandidate]]]


def media_type_for(url: str) -> str:
    return "audio/wav" if url.lower().endswith(".wav") else "audio/mpeg"


def candidates_from_media_url(url: str) -> list[RecordingCandidate]:
    """Expand a stored recording URL into playable audio URLs.

    ``.mp3``/``.wav`` URLs are used as they are, a ``.json`` metadata URL is
    swapped for each audio extension, anything else gets the extensions
    appended.
    """

    if _AUDIO_SUFFIX.search(url):
        return [RecordingCandidate(url, media_type_for(url))]
    stem = _METADATA_SUFFIX.sub("", url)
    return [RecordingCandidate(stem + ext, media_type) for ext, media_type in AUDIO_FORMATS]


class RecordingResolver:
    """Runs the lookup strategies in priority order, stopping at the first hit.

    1. recording id in the token
    2. Base44 call record (recording sid, stored URL, or its Twilio call sid)
    3. first recording Twilio lists for the token's call sid
    """

    def __init__(
        self,
        provider: RecordingProvider,
        record_store: CallRecordSource | None = None,
    ) -> None:
        self._provider = provider
        self._record_store = record_store
        self._strategies: list[Strategy] = [
            self._from_recording_id,
            self._from_call_record,
            self._from_provider_call_sid,
        ]

    async def resolve(
        self, claims: CapabilityClaims, cancel: CancellationToken
    ) -> list[RecordingCandidate]:
        for strategy in self._strategies:
            cancel.raise_if_cancelled()
            candidates = await strategy(claims, cancel)
            if candidates:
                return candidates
        raise ResourceNotAvailable()

    def _recording(self, recording_sid: str) -> list[RecordingCandidate]:
        return [
            RecordingCandidate(url, media_type)
            for url, media_type in self._provider.recording_urls(recording_sid)
        ]

    async def _from_recording_id(
        self, claims: CapabilityClaims, cancel: CancellationToken
    ) -> list[RecordingCandidate]:
        if not claims.recording_id:
            return []
        return self._recording(claims.recording_id)

    async def _from_call_record(
        self, claims: CapabilityClaims, cancel: CancellationToken
    ) -> list[RecordingCandidate]:
        if not claims.call_id or claims.recording_id:
            return []
        if self._record_store is None:
            raise ConfigurationError("Base44 service role credentials not configured")

        try:
            record = await self._record_store.get_call(claims.call_id, cancel)
        except (RecordStoreError, httpx.HTTPError) as exc:
            LOGGER.warning("Base44 lookup failed for call %s: %s", claims.call_id, exc)
            record = None

        if record is None:
            raise ResourceNotFound()

        if record.get("twilio_recording_sid"):
            return self._recording(str(record["twilio_recording_sid"]))
        if record.get("recording_url"):
            return candidates_from_media_url(str(record["recording_url"]))
        if record.get("twilio_call_sid"):
            return await self._listed(str(record["twilio_call_sid"]), cancel)
        return []

    async def _from_provider_call_sid(
        self, claims: CapabilityClaims, cancel: CancellationToken
    ) -> list[RecordingCandidate]:
        if not claims.provider_call_sid:
            return []
        return await self._listed(claims.provider_call_sid, cancel)

    async def _listed(self, call_sid: str, cancel: CancellationToken) -> list[RecordingCandidate]:
        recording_sid = await self._provider.first_recording_sid(call_sid, cancel)
        if not recording_sid:
            LOGGER.info("No recordings listed for Twilio call %s", call_sid)
            return []
        return self._recording(recording_sid)
