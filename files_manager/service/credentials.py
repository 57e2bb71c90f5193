from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Optional

BASIC_SCHEME = "Basic"


class MalformedHeader(ValueError):
    """The Authorization header could not be decoded into a credential."""


@dataclass(frozen=True)
class Credential:
    identifier: str
    secret: str

    def __repr__(self) -> str:
        return f"Credential(identifier={self.identifier!r}, secret='***')"


def decode_basic_envelope(header_value: Optional[str]) -> Credential:
    """Decode ``Basic <base64(identifier:secret)>`` into a :class:`Credential`.

    The scheme must match exactly and the decoded text is split on its first
    colon, so secrets may contain colons. Values are returned untouched: no
    trimming and no case folding.

    Raises:
        MalformedHeader: on a missing or foreign scheme, bad base64, non UTF-8
            payload, missing colon, or an empty identifier or secret.
    """
    if not header_value:
        raise MalformedHeader("missing header")
    scheme, sep, payload = header_value.partition(" ")
    if not sep or scheme != BASIC_SCHEME:
        raise MalformedHeader("unsupported scheme")
    try:
        decoded = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MalformedHeader("payload is not base64 encoded text") from exc
    identifier, sep, secret = decoded.partition(":")
    if not sep:
        raise MalformedHeader("missing separator")
    if not identifier or not secret:
        raise MalformedHeader("empty identifier or secret")
    return Credential(identifier=identifier, secret=secret)


def digest(secret: str) -> str:
    """Return the 40 character SHA-1 hex digest stored for ``secret``."""
    return hashlib.sha1(secret.encode("utf-8")).hexdigest()
