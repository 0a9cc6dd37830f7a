# agentid/core/canon.py
import hashlib
from typing import Any, Optional

import jcs

from agentid.core.encoding import b64url_encode


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Used when DID documents are written out for publishing.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string."""
    return canonical_json(obj).decode("utf-8")


def body_hash(body: Optional[str]) -> str:
    """base64url SHA-256 of the UTF-8 body, or "" when there is no body."""
    if body is None:
        return ""
    return b64url_encode(hashlib.sha256(body.encode("utf-8")).digest())


def canonical_request(method: str, url: str, timestamp: int, body: Optional[str] = None) -> bytes:
    """
    ``METHOD\\nURL\\nTIMESTAMP\\nBODYHASH`` as UTF-8 bytes.

    The field order is fixed and nothing is derived from HTTP header names, so
    signer and verifier agree byte-for-byte.
    """
    return f"{method.upper()}\n{url}\n{timestamp}\n{body_hash(body)}".encode("utf-8")
