# agentid/core/encoding.py
import base64
import binascii

import base58

from agentid.core.errors import InvalidKeyCodec, InvalidMultibasePrefix

# multicodec tag for an Ed25519 public key (varint 0xed)
ED25519_MULTICODEC = bytes([0xED, 0x01])
# multibase prefix for base58btc
BASE58BTC_PREFIX = "z"


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url (no padding, URL-safe)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    """Decode base64url string back to bytes. Missing padding is tolerated."""
    s = s.strip()
    # Restore padding
    padding = len(s) % 4
    if padding:
        s += "=" * (4 - padding)
    try:
        return base64.urlsafe_b64decode(s)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64url data: {e}") from e


def public_key_to_multibase(public_key: bytes) -> str:
    """``z`` + base58btc(0xed 0x01 + key)."""
    encoded = base58.b58encode(ED25519_MULTICODEC + bytes(public_key)).decode("ascii")
    return f"{BASE58BTC_PREFIX}{encoded}"


def multibase_to_public_key(multibase: str) -> bytes:
    """Inverse of :func:`public_key_to_multibase`; returns the trailing 32 bytes."""
    if not multibase.startswith(BASE58BTC_PREFIX):
        raise InvalidMultibasePrefix("Invalid multibase format: must start with z")

    try:
        decoded = base58.b58decode(multibase[1:])
    except ValueError as e:
        raise InvalidKeyCodec(f"Invalid base58 encoding: {e}") from e

    if len(decoded) < 34 or decoded[:2] != ED25519_MULTICODEC:
        raise InvalidKeyCodec("Invalid Ed25519 multicodec prefix")

    return decoded[-32:]
