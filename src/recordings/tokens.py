"""Signed stream tokens: ``<b64url(json payload)>.<b64url(hmac-sha256(payload segment))>``."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from recordings.errors import (
    ConfigurationError,
    InvalidSignature,
    MalformedToken,
    MissingToken,
    TokenExpired,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise MalformedToken("Invalid token payload") from exc


def sign_payload(secret: str, payload_segment: str) -> str:
    """MAC over the encoded payload string, not the decoded JSON."""

    digest = hmac.new(
        secret.encode("utf-8"),
        payload_segment.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return b64url_encode(digest)


class CapabilityClaims(BaseModel):
    """What a stream token grants access to."""

    model_config = ConfigDict(extra="ignore")

    call_id: str | None = Field(default=None, serialization_alias="callId")
    recording_id: str | None = Field(default=None, serialization_alias="recordingId")
    provider_call_sid: str | None = Field(default=None, serialization_alias="providerCallSid")
    exp: int | None = Field(default=None, description="Expiry, epoch milliseconds.")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class DecodedToken:
    claims: CapabilityClaims
    raw_payload: str
    raw_signature: str


def _coerce_exp(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def _text_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class CapabilityTokenCodec:
    """Encode and verify stream tokens with a server-held secret.

    ``decode`` checks in a fixed order: shape, payload, identifiers, expiry,
    secret, signature. An expired token is rejected even if its signature is
    wrong, and a missing secret only surfaces for otherwise valid tokens.
    """

    def __init__(self, secret: str | None, *, clock: Callable[[], int] = _now_ms) -> None:
        self._secret = secret
        self._clock = clock

    def decode(self, token: str | None) -> DecodedToken:
        if not token:
            raise MissingToken()

        parts = token.split(".")
        if len(parts) != 2:
            raise MalformedToken("Invalid token")
        payload_segment, signature_segment = parts

        try:
            payload = json.loads(b64url_decode(payload_segment).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedToken("Invalid token payload") from exc
        if not isinstance(payload, dict):
            raise MalformedToken("Invalid token payload")

        claims = CapabilityClaims(
            call_id=_text_or_none(payload.get("callId")),
            recording_id=_text_or_none(payload.get("recordingId") or payload.get("recordingSid")),
            provider_call_sid=_text_or_none(
                payload.get("providerCallSid") or payload.get("twilioCallSid")
            ),
            exp=_coerce_exp(payload.get("exp")),
        )
        if not claims.call_id and not claims.recording_id:
            raise MalformedToken("Invalid token data")

        if claims.exp is None or self._clock() > claims.exp:
            raise TokenExpired()

        if not self._secret:
            raise ConfigurationError("Server not configured")

        expected = sign_payload(self._secret, payload_segment)
        if not hmac.compare_digest(expected.encode("ascii"), signature_segment.encode("utf-8")):
            raise InvalidSignature()

        return DecodedToken(claims=claims, raw_payload=payload_segment, raw_signature=signature_segment)

    def encode(self, claims: CapabilityClaims | Mapping[str, Any]) -> str:
        if not self._secret:
            raise ConfigurationError("Server not configured")
        if isinstance(claims, CapabilityClaims):
            payload = claims.to_payload()
        else:
            payload = dict(claims)
        payload_segment = b64url_encode(
            json.dumps(payload, separators=(",", ":")).encode("utf-8")
        )
        return f"{payload_segment}.{sign_payload(self._secret, payload_segment)}"

    def issue(
        self,
        *,
        call_id: str | None = None,
        recording_id: str | None = None,
        provider_call_sid: str | None = None,
        ttl_seconds: int = 3600,
    ) -> str:
        if not call_id and not recording_id:
            raise ValueError("A stream token needs a call id or a recording id.")
        claims = CapabilityClaims(
            call_id=call_id,
            recording_id=recording_id,
            provider_call_sid=provider_call_sid,
            exp=self._clock() + ttl_seconds * 1000,
        )
        return self.encode(claims)
