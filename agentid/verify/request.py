# agentid/verify/request.py
"""
Request signing and verification over the canonical string

    METHOD\\nURL\\nTIMESTAMP\\nBODYHASH

Headers carry the signature, the signer's DID and the timestamp. Method and
URL travel in the ``X-Agent-Method`` / ``X-Agent-URL`` sidecar headers and
default to ``POST`` and ``/`` when absent.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from agentid.core.canon import canonical_request
from agentid.core.clock import now_ms
from agentid.core.encoding import b64url_decode, b64url_encode
from agentid.core.errors import ErrorKind
from agentid.core.types import (
    METHOD_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    URL_HEADER,
    Agent,
    SignableRequest,
    SignedHeaders,
)
from agentid.crypto.keys import ED25519, SIGNATURE_LENGTH, Signer, Verifier

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_MS = 5 * 60 * 1000
DEFAULT_METHOD = "POST"
DEFAULT_URL = "/"


@dataclass
class VerificationResult:
    valid: bool
    error: str = ""
    kind: Optional[ErrorKind] = None
    agent: Optional[Agent] = None

    @classmethod
    def ok(cls, agent: Optional[Agent] = None) -> "VerificationResult":
        return cls(True, agent=agent)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, agent: Optional[Agent] = None) -> "VerificationResult":
        return cls(False, error=error, kind=kind, agent=agent)

    @property
    def expired_timestamp(self) -> bool:
        return self.kind == ErrorKind.EXPIRED_TIMESTAMP

    def __bool__(self):
        return self.valid

    def __str__(self):
        if self.valid:
            return "Signature is valid ✓"
        return f"Verification FAILED: {self.error} ({self.kind.value if self.kind else 'error'})"


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    lower = name.lower()
    for key, value in headers.items():
        if key.lower() == lower:
            return value
    return None


def sign_request(
    request: SignableRequest,
    private_key: bytes,
    did: str,
    signer: Signer = ED25519,
) -> SignedHeaders:
    """
    Sign ``request``. A missing timestamp is replaced with the current time,
    and that same value is returned in the headers.
    """
    timestamp = request.timestamp if request.timestamp is not None else now_ms()
    message = canonical_request(request.method, request.url, timestamp, request.body)
    signature = signer.sign(message, private_key)
    return SignedHeaders(signature=b64url_encode(signature), did=did, timestamp=str(timestamp))


def verify_request(
    headers: Mapping[str, str],
    public_key: bytes,
    body: Optional[str] = None,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    verifier: Verifier = ED25519,
    now: Optional[int] = None,
) -> VerificationResult:
    """
    Check a signed request against ``public_key``.

    All failures are returned, never raised. The timestamp window is
    symmetric: stamps too far in the past or the future are both rejected.
    ``now`` (epoch millis) defaults to the current time.
    """
    signature = get_header(headers, SIGNATURE_HEADER)
    timestamp = get_header(headers, TIMESTAMP_HEADER)

    if not signature:
        return VerificationResult.fail(ErrorKind.MISSING_SIGNATURE, f"Missing {SIGNATURE_HEADER} header")
    if not timestamp:
        return VerificationResult.fail(ErrorKind.MISSING_TIMESTAMP, f"Missing {TIMESTAMP_HEADER} header")

    try:
        timestamp_ms = int(timestamp.strip())
    except ValueError:
        return VerificationResult.fail(ErrorKind.INVALID_TIMESTAMP_FORMAT, "Invalid timestamp format")

    current = now if now is not None else now_ms()
    if abs(current - timestamp_ms) > tolerance_ms:
        return VerificationResult.fail(ErrorKind.EXPIRED_TIMESTAMP, "Timestamp outside tolerance window")

    method = get_header(headers, METHOD_HEADER) or DEFAULT_METHOD
    url = get_header(headers, URL_HEADER) or DEFAULT_URL
    message = canonical_request(method, url, timestamp_ms, body)

    try:
        signature_bytes = b64url_decode(signature)
    except ValueError:
        return VerificationResult.fail(ErrorKind.INVALID_SIGNATURE, "Invalid signature")

    # Only the canonical encoding is accepted, so one signature maps to one replay-cache key
    if len(signature_bytes) != SIGNATURE_LENGTH or b64url_encode(signature_bytes) != signature:
        return VerificationResult.fail(ErrorKind.INVALID_SIGNATURE, "Invalid signature")

    if not verifier.verify(message, signature_bytes, public_key):
        return VerificationResult.fail(ErrorKind.INVALID_SIGNATURE, "Invalid signature")

    return VerificationResult.ok()
