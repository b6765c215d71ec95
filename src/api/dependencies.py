"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

import httpx

from config.settings import get_settings
from integrations.record_store import RecordStoreSessionCache
from recordings.proxy import ClientFactory, RecordingStreamProxy


@lru_cache(maxsize=1)
def get_session_cache() -> RecordStoreSessionCache:
    return RecordStoreSessionCache(get_settings().record_store_session_ttl_seconds)


def get_http_client_factory() -> ClientFactory:
    settings = get_settings()
    timeout = httpx.Timeout(
        settings.upstream_read_timeout_seconds,
        connect=settings.upstream_connect_timeout_seconds,
    )

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    return factory


def get_recording_proxy() -> RecordingStreamProxy:
    return RecordingStreamProxy(
        get_settings(),
        get_session_cache(),
        get_http_client_factory(),
    )
