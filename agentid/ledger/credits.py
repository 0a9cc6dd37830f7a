# agentid/ledger/credits.py
from typing import List, Optional

from agentid.core.types import CreditEventType, CreditLedgerEntry
from agentid.storage import StorageBackend


class CreditLedger:
    """
    Per-identity credit balance with its append-only event log.

    The mutation is a single backend call; nothing here reads, computes and
    writes in separate steps.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def record(
        self,
        did: str,
        event_type: CreditEventType | str,
        amount: int,
        reason: str,
        related_url: Optional[str] = None,
    ) -> CreditLedgerEntry:
        try:
            event_type = CreditEventType(event_type)
        except ValueError:
            valid = ", ".join(t.value for t in CreditEventType)
            raise ValueError(f"Unknown credit event type {event_type!r} (expected one of: {valid})") from None
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TypeError("amount must be an integer")
        return self.storage.record_credit_event(did, event_type, amount, reason, related_url)

    def balance(self, did: str) -> int:
        return self.storage.get_credits(did)

    def history(self, did: str, limit: int = 50) -> List[CreditLedgerEntry]:
        return self.storage.get_credit_history(did, limit)
