"""Base44 record store client used to look up call records."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from config.settings import Settings, get_settings
from recordings.cancellation import CancellationToken
from recordings.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)


class RecordStoreError(RuntimeError):
    """Login or entity fetch against the record store failed."""


class RecordStoreSessionCache:
    """Process-wide Base44 bearer token with a fixed lifetime.

    Reads take no lock. Two requests that find the session stale at the same
    time will both log in and the later write wins; logins are idempotent so
    the duplicate is harmless.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._token: str | None = None
        self._obtained_at = 0.0

    def get(self) -> str | None:
        if self._token is None:
            return None
        if self._clock() - self._obtained_at >= self._ttl:
            return None
        return self._token

    def store(self, token: str) -> None:
        self._token = token
        self._obtained_at = self._clock()

    def invalidate(self) -> None:
        self._token = None


@dataclass(frozen=True)
class RecordStoreConfig:
    app_id: str
    email: str
    password: str
    base_url: str = "https://base44.app"


def get_record_store_config(settings: Settings | None = None) -> RecordStoreConfig:
    settings = settings or get_settings()
    if not (settings.base44_app_id and settings.base44_admin_email and settings.base44_admin_password):
        raise ConfigurationError("Base44 service role credentials not configured")
    return RecordStoreConfig(
        app_id=settings.base44_app_id,
        email=settings.base44_admin_email,
        password=settings.base44_admin_password,
        base_url=settings.base44_base_url.rstrip("/"),
    )


def _error_text(response: httpx.Response) -> str:
    try:
        return response.text[:200]
    except (httpx.HTTPError, UnicodeDecodeError):
        return ""


class RecordStoreClient:
    def __init__(
        self,
        config: RecordStoreConfig,
        session: RecordStoreSessionCache,
        client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._session = session
        self._client = client

    def _app_url(self) -> str:
        return f"{self._config.base_url}/api/apps/{self._config.app_id}"

    async def _login(self, cancel: CancellationToken) -> str:
        response = await cancel.guard(
            self._client.post(
                f"{self._app_url()}/auth/login",
                json={"email": self._config.email, "password": self._config.password},
            )
        )
        if not response.is_success:
            raise RecordStoreError(
                f"Base44 login failed ({response.status_code}): {_error_text(response)}"
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        token = None
        if isinstance(data, dict):
            token = data.get("token") or data.get("access_token") or data.get("accessToken")
        if not token:
            raise RecordStoreError("Base44 login did not return an access token")

        LOGGER.info("Logged in to Base44 app %s", self._config.app_id)
        self._session.store(str(token))
        return str(token)

    async def _bearer(self, cancel: CancellationToken) -> str:
        cached = self._session.get()
        if cached:
            return cached
        return await self._login(cancel)

    async def get_call(self, call_id: str, cancel: CancellationToken) -> dict[str, Any] | None:
        """Fetch a Call entity; ``None`` when the store has no such record."""

        url = f"{self._app_url()}/entities/Call/{quote(call_id, safe='')}"
        token = await self._bearer(cancel)
        response = await self._fetch_entity(url, token, cancel)

        if response.status_code == 401:
            # Session revoked before its TTL ran out; log in once more.
            self._session.invalidate()
            token = await self._login(cancel)
            response = await self._fetch_entity(url, token, cancel)

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RecordStoreError(
                f"Base44 Call fetch failed ({response.status_code}): {_error_text(response)}"
            )
        try:
            record = response.json()
        except ValueError:
            return None
        return record if isinstance(record, dict) else None

    async def _fetch_entity(self, url: str, token: str, cancel: CancellationToken) -> httpx.Response:
        return await cancel.guard(
            self._client.get(
                url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        )
