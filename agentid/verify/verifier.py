# agentid/verify/verifier.py
import logging
from typing import Mapping, Optional

from agentid.core.encoding import b64url_decode
from agentid.core.errors import ErrorKind
from agentid.core.types import DID_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER, AgentStatus
from agentid.storage import StorageBackend
from agentid.verify.replay import ReplayCache
from agentid.verify.request import (
    DEFAULT_TOLERANCE_MS,
    VerificationResult,
    get_header,
    verify_request,
)

logger = logging.getLogger(__name__)

# Remote callers see the same message for a bad and a replayed signature
PUBLIC_REJECTION = "Invalid signature"


class AgentVerifier:
    """
    Verifies signed requests from registered agents.

    Order: registry lookup -> status check -> signature/timestamp check ->
    replay-cache insert. Only a request that passes the cryptographic check
    is written to the cache, and a duplicate insert fails the request.
    """

    def __init__(
        self,
        storage: StorageBackend,
        replay_cache: Optional[ReplayCache] = None,
        tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    ):
        self.storage = storage
        self.replay_cache = replay_cache or ReplayCache(storage)
        self.tolerance_ms = tolerance_ms

    def verify(
        self,
        headers: Mapping[str, str],
        body: Optional[str] = None,
        did: Optional[str] = None,
        now: Optional[int] = None,
    ) -> VerificationResult:
        did = did or get_header(headers, DID_HEADER)
        if not did:
            return VerificationResult.fail(ErrorKind.INVALID_DID, f"Missing {DID_HEADER} header")

        agent = self.storage.get_agent(did)
        if agent is None:
            logger.info("Rejected request from unknown agent %s", did)
            return VerificationResult.fail(ErrorKind.AGENT_NOT_FOUND, f"Agent not found: {did}")

        if agent.status != AgentStatus.ACTIVE:
            logger.info("Rejected request from %s agent %s", agent.status.value, did)
            return VerificationResult.fail(ErrorKind.AGENT_INACTIVE, f"Agent is {agent.status.value}", agent)

        try:
            public_key = b64url_decode(agent.public_key)
        except ValueError:
            return VerificationResult.fail(ErrorKind.INVALID_KEY_CODEC, "Invalid public key format", agent)

        result = verify_request(headers, public_key, body, self.tolerance_ms, now=now)
        if not result.valid:
            logger.info("Rejected request from %s: %s", did, result.kind.value)
            result.agent = agent
            return result

        signature = get_header(headers, SIGNATURE_HEADER)
        timestamp = int(get_header(headers, TIMESTAMP_HEADER).strip())
        if not self.replay_cache.record(signature, did, timestamp):
            return VerificationResult.fail(ErrorKind.REPLAY_DETECTED, PUBLIC_REJECTION, agent)

        return VerificationResult.ok(agent)
