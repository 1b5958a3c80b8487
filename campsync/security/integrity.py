# campsync/security/integrity.py
from __future__ import annotations

import hashlib
import hmac
import string

from ..errors import IntegrityError


PAYLOAD_SEPARATOR = ":"
DEFAULT_PREFIX_LEN = 8

_HEX = set(string.hexdigits)


def keyed_digest_hex(plain_text: str, secret: str) -> str:
    """
    sha256(secret || ":" || plain_text), hex.
    A keyed checksum, not an HMAC: enough to reject corrupted or foreign tags,
    not to authenticate against someone who can read the plaintext.
    """
    material = f"{secret}{PAYLOAD_SEPARATOR}{plain_text}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()


def wrap(plain_text: str, secret: str, prefix_len: int = DEFAULT_PREFIX_LEN) -> str:
    if prefix_len <= 0 or prefix_len > 64:
        raise ValueError("invalid_prefix_len")
    prefix = keyed_digest_hex(plain_text, secret)[:prefix_len]
    return f"{prefix}{PAYLOAD_SEPARATOR}{plain_text}"


def unwrap(wrapped: str, secret: str, prefix_len: int = DEFAULT_PREFIX_LEN) -> str:
    """
    Returns the plaintext after the first ":" if its digest prefix verifies.
    """
    prefix, sep, rest = (wrapped or "").partition(PAYLOAD_SEPARATOR)
    if not sep:
        raise IntegrityError("missing_separator")
    if len(prefix) != prefix_len or not set(prefix) <= _HEX:
        raise IntegrityError("bad_digest_prefix")

    expected = keyed_digest_hex(rest, secret)[:prefix_len]
    if not hmac.compare_digest(expected, prefix.lower()):
        raise IntegrityError("digest_mismatch")
    return rest
