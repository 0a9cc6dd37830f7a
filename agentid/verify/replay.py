# agentid/verify/replay.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from agentid.core.clock import utc_iso
from agentid.core.types import ReplayCacheEntry
from agentid.crypto.hashing import signature_hash
from agentid.storage import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = timedelta(hours=1)


class ReplayCache:
    """
    Previously accepted signatures, keyed by the hex SHA-256 of the signature
    string.

    Uniqueness of that key at insert time is what detects a replay. The
    horizon only governs :meth:`sweep`, which reclaims storage.
    """

    def __init__(self, storage: StorageBackend, horizon: timedelta = DEFAULT_HORIZON):
        self.storage = storage
        self.horizon = horizon

    def record(self, signature: str, agent_did: str, timestamp: int) -> bool:
        """
        Insert the signature. Returns False when it was already present,
        i.e. the request is a replay.
        """
        entry = ReplayCacheEntry(
            signature_hash=signature_hash(signature),
            agent_did=agent_did,
            timestamp=timestamp,
            inserted_at=utc_iso(),
        )
        inserted = self.storage.insert_signature(entry)
        if not inserted:
            logger.warning("Replay detected for %s (signature hash %s)", agent_did, entry.signature_hash)
        return inserted

    def seen(self, signature: str) -> bool:
        return self.storage.has_signature(signature_hash(signature))

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Delete entries older than the horizon. Returns the number removed."""
        cutoff = (now or datetime.now(timezone.utc)) - self.horizon
        removed = self.storage.sweep_signatures(utc_iso(cutoff))
        if removed:
            logger.info("Swept %d expired signature cache entries", removed)
        return removed
