"""
Tracking identifier codec.

Packs {email_id, subscriber_id, campaign_id, link_id?} into one opaque,
URL-safe token for pixel and click URLs, and unpacks it on inbound requests.

Token layout (before base64url, no padding):
    HMAC-SHA256(key, payload)[:6] || payload
where payload is the compact JSON array [email_id, subscriber_id, campaign_id, link_id].

The checksum is not an access-control boundary; it only lets decode() reject
tokens that encode() did not produce. Destination URLs for clicks travel
separately, base64-encoded in the ``url`` query parameter.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlparse

from piper_tracking.core.exceptions import MalformedRedirectURL, MalformedTrackingToken

TAG_BYTES = 6
MAX_TOKEN_LENGTH = 2048

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_REDIRECT_RE = re.compile(r"^[A-Za-z0-9+/_-]+={0,2}$")


@dataclass(frozen=True)
class TrackingIdentifier:
    """Decoded contents of a tracking token."""
    email_id: str
    subscriber_id: str
    campaign_id: str
    link_id: Optional[str] = None


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    """Strictly decode base64 in either alphabet, with or without padding."""
    normalized = value.rstrip("=").replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True)


def _is_valid_id(value: object) -> bool:
    return isinstance(value, str) and value != ""


def encode_redirect_url(url: str) -> str:
    """Base64url-encode a click destination for the ``url`` query parameter."""
    return _b64encode(url.encode("utf-8"))


def decode_redirect_url(value: str) -> str:
    """Decode the ``url`` query parameter of a click request.

    Accepts the standard and URL-safe alphabets, missing padding, and ``+``
    that query-string parsing turned into a space.

    Raises
    ------
    MalformedRedirectURL
        If the value is not base64, not UTF-8, or not an absolute http(s) URL.
    """
    candidate = (value or "").strip().replace(" ", "+")
    if not candidate or not _REDIRECT_RE.match(candidate):
        raise MalformedRedirectURL()

    try:
        url = _b64decode(candidate).decode("utf-8")
        parsed = urlparse(url)
    except (binascii.Error, ValueError):
        raise MalformedRedirectURL()

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise MalformedRedirectURL("Redirect target must be an absolute http(s) URL")
    return url


class TrackingCodec:
    """Encode and decode tracking tokens, and build the URLs that carry them."""

    def __init__(self, secret: str, url_prefix: str = ""):
        if not secret:
            raise ValueError("Tracking codec requires a non-empty secret")
        self._key = secret.encode("utf-8")
        self._url_prefix = url_prefix.rstrip("/")

    def _tag(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()[:TAG_BYTES]

    def encode(
        self,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        link_id: Optional[str] = None,
    ) -> str:
        """Produce the deterministic token for an identifier.

        All ids must be non-empty strings; ``link_id`` may also be None.
        """
        if not all(_is_valid_id(v) for v in (email_id, subscriber_id, campaign_id)):
            raise ValueError("email_id, subscriber_id and campaign_id must be non-empty strings")
        if link_id is not None and not _is_valid_id(link_id):
            raise ValueError("link_id must be None or a non-empty string")

        payload = json.dumps(
            [email_id, subscriber_id, campaign_id, link_id],
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")
        return _b64encode(self._tag(payload) + payload)

    def decode(self, token: str) -> TrackingIdentifier:
        """Recover the identifier from a token.

        Raises
        ------
        MalformedTrackingToken
            If the token was not produced by ``encode`` with this key.
        """
        if not token or len(token) > MAX_TOKEN_LENGTH or not _TOKEN_RE.match(token):
            raise MalformedTrackingToken()

        try:
            raw = _b64decode(token)
        except (binascii.Error, ValueError):
            raise MalformedTrackingToken()

        if len(raw) <= TAG_BYTES:
            raise MalformedTrackingToken()

        tag, payload = raw[:TAG_BYTES], raw[TAG_BYTES:]
        if not hmac.compare_digest(tag, self._tag(payload)):
            raise MalformedTrackingToken()

        try:
            fields = json.loads(payload.decode("utf-8"))
        except ValueError:
            raise MalformedTrackingToken()

        if not isinstance(fields, list) or len(fields) != 4:
            raise MalformedTrackingToken()

        email_id, subscriber_id, campaign_id, link_id = fields
        if not all(_is_valid_id(v) for v in (email_id, subscriber_id, campaign_id)):
            raise MalformedTrackingToken()
        if link_id is not None and not _is_valid_id(link_id):
            raise MalformedTrackingToken()

        return TrackingIdentifier(
            email_id=email_id,
            subscriber_id=subscriber_id,
            campaign_id=campaign_id,
            link_id=link_id,
        )

    def pixel_url(self, email_id: str, subscriber_id: str, campaign_id: str) -> str:
        """Open-tracking pixel URL for one outbound message."""
        token = self.encode(email_id, subscriber_id, campaign_id)
        return f"{self._url_prefix}/open/{token}"

    def tracking_link(
        self,
        original_url: str,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        link_id: str,
    ) -> str:
        """Click-redirect URL wrapping ``original_url`` for one link of a message."""
        token = self.encode(email_id, subscriber_id, campaign_id, link_id)
        encoded_url = quote(encode_redirect_url(original_url), safe="")
        return f"{self._url_prefix}/click/{token}?url={encoded_url}"
