"""Range-aware upstream fetch with ordered candidate and credential fallback."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from integrations.twilio_client import UpstreamCredentials
from recordings.cancellation import CancellationToken
from recordings.errors import RequestCancelled, UpstreamUnavailable
from recordings.resolver import RecordingCandidate

LOGGER = logging.getLogger(__name__)

AUTH_REJECTED = frozenset({401, 403})
_NO_BODY = frozenset({204, 205})


@dataclass
class UpstreamResult:
    """Open upstream response (body unread) and the candidate that produced it."""

    response: httpx.Response
    candidate: RecordingCandidate


class UpstreamFetcher:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(
        self,
        candidates: Sequence[RecordingCandidate],
        credentials: UpstreamCredentials,
        *,
        cancel: CancellationToken,
        range_header: str | None = None,
        method: str = "GET",
    ) -> UpstreamResult:
        """Return the first candidate that answers 2xx with a body.

        Candidates are tried one at a time. A 401/403 on the primary credential
        is retried once with the secondary credential, when there is one,
        before moving on.
        """

        for candidate in candidates:
            response = await self._attempt(
                candidate, credentials.primary, cancel=cancel, range_header=range_header, method=method
            )
            if (
                response is not None
                and response.status_code in AUTH_REJECTED
                and credentials.secondary
            ):
                LOGGER.info(
                    "Upstream rejected primary credential (%s) for %s; retrying with API key",
                    response.status_code,
                    candidate.url,
                )
                await response.aclose()
                response = await self._attempt(
                    candidate,
                    credentials.secondary,
                    cancel=cancel,
                    range_header=range_header,
                    method=method,
                )

            if response is None:
                continue
            if self._usable(response, method):
                return UpstreamResult(response=response, candidate=candidate)

            LOGGER.info("Upstream %s answered %s; trying next candidate", candidate.url, response.status_code)
            await response.aclose()

        raise UpstreamUnavailable()

    async def _attempt(
        self,
        candidate: RecordingCandidate,
        authorization: str,
        *,
        cancel: CancellationToken,
        range_header: str | None,
        method: str,
    ) -> httpx.Response | None:
        headers = {"Authorization": authorization, "Accept": "audio/mpeg, audio/*"}
        if range_header:
            headers["Range"] = range_header

        request = self._client.build_request(method, candidate.url, headers=headers)
        try:
            return await cancel.guard(self._client.send(request, stream=True, follow_redirects=True))
        except RequestCancelled:
            raise
        except httpx.HTTPError as exc:
            LOGGER.warning("Upstream fetch of %s failed: %s", candidate.url, exc)
            return None

    @staticmethod
    def _usable(response: httpx.Response, method: str) -> bool:
        if not response.is_success:
            return False
        if method == "HEAD":
            return True
        return response.status_code not in _NO_BODY
