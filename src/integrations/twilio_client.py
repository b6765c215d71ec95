"""Twilio REST access: account credentials, recording media URLs and Voice SDK tokens."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

import httpx

from config.settings import Settings, get_settings
from recordings.cancellation import CancellationToken
from recordings.errors import ConfigurationError, RequestCancelled

LOGGER = logging.getLogger(__name__)

AUDIO_FORMATS: tuple[tuple[str, str], ...] = (
    (".mp3", "audio/mpeg"),
    (".wav", "audio/wav"),
)


def basic_auth_header(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


@dataclass(frozen=True)
class UpstreamCredentials:
    """Authorization header values for Twilio media requests.

    ``secondary`` is only set when both the account auth token and an API key
    are configured; it is tried after the primary gets a 401/403.
    """

    primary: str
    secondary: str | None = None


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    credentials: UpstreamCredentials
    api_base_url: str = "https://api.twilio.com"


def get_twilio_config(settings: Settings | None = None) -> TwilioConfig:
    settings = settings or get_settings()
    if not settings.twilio_account_sid:
        raise ConfigurationError("Twilio credentials not configured")

    account_auth = (
        basic_auth_header(settings.twilio_account_sid, settings.twilio_auth_token)
        if settings.twilio_auth_token
        else None
    )
    key_auth = (
        basic_auth_header(settings.twilio_api_key_sid, settings.twilio_api_key_secret)
        if settings.twilio_api_key_sid and settings.twilio_api_key_secret
        else None
    )

    primary = account_auth or key_auth
    if not primary:
        raise ConfigurationError("Twilio credentials not configured")
    secondary = key_auth if account_auth and key_auth else None

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        credentials=UpstreamCredentials(primary=primary, secondary=secondary),
        api_base_url=settings.twilio_api_base_url.rstrip("/"),
    )


class TwilioRecordings:
    """URL construction and recording lookups against the Twilio REST API."""

    def __init__(self, config: TwilioConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    @property
    def credentials(self) -> UpstreamCredentials:
        return self._config.credentials

    def _account_url(self) -> str:
        return f"{self._config.api_base_url}/2010-04-01/Accounts/{self._config.account_sid}"

    def recording_urls(self, recording_sid: str) -> list[tuple[str, str]]:
        """(url, media type) per container format, mp3 first."""

        base = f"{self._account_url()}/Recordings/{recording_sid}"
        return [(base + ext, media_type) for ext, media_type in AUDIO_FORMATS]

    async def first_recording_sid(self, call_sid: str, cancel: CancellationToken) -> str | None:
        """Return the first recording listed for ``call_sid``.

        Failures are logged and reported as ``None``; only cancellation
        propagates.
        """

        url = f"{self._account_url()}/Calls/{call_sid}/Recordings.json"
        try:
            response = await cancel.guard(
                self._client.get(url, headers={"Authorization": self.credentials.primary})
            )
        except RequestCancelled:
            raise
        except httpx.HTTPError as exc:
            LOGGER.warning("Twilio recording list failed for call %s: %s", call_sid, exc)
            return None

        if not response.is_success:
            LOGGER.warning(
                "Twilio recording list for call %s returned %s", call_sid, response.status_code
            )
            return None

        try:
            data = response.json()
        except ValueError:
            LOGGER.warning("Twilio recording list for call %s was not JSON", call_sid)
            return None

        recordings = data.get("recordings") if isinstance(data, dict) else None
        if not isinstance(recordings, list) or not recordings:
            return None
        first = recordings[0]
        sid = first.get("sid") if isinstance(first, dict) else None
        return str(sid) if sid else None


@dataclass(frozen=True)
class VoiceTokenConfig:
    account_sid: str
    api_key_sid: str
    api_key_secret: str
    twiml_app_sid: str
    ttl_seconds: int = 3600


def get_voice_token_config(settings: Settings | None = None) -> VoiceTokenConfig:
    settings = settings or get_settings()
    if not (
        settings.twilio_account_sid
        and settings.twilio_api_key_sid
        and settings.twilio_api_key_secret
        and settings.twilio_twiml_app_sid
    ):
        raise ConfigurationError("Missing Twilio env vars")

    return VoiceTokenConfig(
        account_sid=settings.twilio_account_sid,
        api_key_sid=settings.twilio_api_key_sid,
        api_key_secret=settings.twilio_api_key_secret,
        twiml_app_sid=settings.twilio_twiml_app_sid,
        ttl_seconds=settings.voice_token_ttl_seconds,
    )


def build_voice_access_token(cfg: VoiceTokenConfig, identity: str) -> str:
    """Short-lived Voice SDK token allowing outgoing calls through the TwiML app."""

    from twilio.jwt.access_token import AccessToken
    from twilio.jwt.access_token.grants import VoiceGrant

    token = AccessToken(
        cfg.account_sid,
        cfg.api_key_sid,
        cfg.api_key_secret,
        identity=identity,
        ttl=cfg.ttl_seconds,
    )
    token.add_grant(
        VoiceGrant(
            outgoing_application_sid=cfg.twiml_app_sid,
            incoming_allow=False,
        )
    )
    return token.to_jwt()
