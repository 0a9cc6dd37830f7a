# agentid/storage/memory.py
import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional
from uuid import uuid4

from agentid.core.clock import utc_iso
from agentid.core.errors import AgentNotFound
from agentid.core.types import (
    Agent,
    AgentStatus,
    CreditEventType,
    CreditLedgerEntry,
    ReplayCacheEntry,
)
from . import DEFAULT_CREDITS, StorageBackend

logger = logging.getLogger(__name__)


class MemoryStorage(StorageBackend):
    """
    Ephemeral in-process backend (tests, demos).

    Every identity has its own lock, so credit events for different DIDs
    never wait on each other. The replay cache's insert-if-absent runs under
    a single cache lock.
    """

    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}
        self._ledger: Dict[str, List[CreditLedgerEntry]] = {}
        self._signatures: Dict[str, ReplayCacheEntry] = {}
        self._agent_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._cache_lock = threading.Lock()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Storage connection is closed")

    def _lock_for(self, did: str) -> threading.Lock:
        with self._registry_lock:
            if did not in self._agents:
                raise AgentNotFound(did)
            return self._agent_locks[did]

    # --- agents ---

    def register_agent(
        self,
        did: str,
        public_key: str,
        name: str,
        description: Optional[str] = None,
        credits: int = DEFAULT_CREDITS,
    ) -> Agent:
        self._check_open()
        if credits < 0:
            raise ValueError("initial credits cannot be negative")
        now = utc_iso()
        agent = Agent(
            id=str(uuid4()),
            did=did,
            public_key=public_key,
            name=name,
            description=description,
            credits=credits,
            created_at=now,
            updated_at=now,
        )
        with self._registry_lock:
            if did in self._agents:
                raise ValueError(f"Agent already registered: {did}")
            self._agents[did] = agent
            self._ledger[did] = []
            self._agent_locks[did] = threading.Lock()
        logger.info("Registered agent %s", did)
        return agent

    def get_agent(self, did: str) -> Optional[Agent]:
        self._check_open()
        return self._agents.get(did)

    def list_agents(self, status: Optional[AgentStatus] = None) -> List[Agent]:
        self._check_open()
        agents = sorted(self._agents.values(), key=lambda a: a.created_at)
        if status is not None:
            agents = [a for a in agents if a.status == AgentStatus(status)]
        return agents

    def set_agent_status(self, did: str, status: AgentStatus, reason: Optional[str] = None) -> Agent:
        self._check_open()
        status = AgentStatus(status)
        with self._lock_for(did):
            agent = self._agents[did]
            now = utc_iso()
            updated = replace(
                agent,
                status=status,
                revocation_reason=reason,
                revoked_at=now if status == AgentStatus.REVOKED else agent.revoked_at,
                updated_at=now,
            )
            self._agents[did] = updated
        logger.info("Agent %s is now %s", did, status.value)
        return updated

    # --- credit ledger ---

    def record_credit_event(
        self,
        did: str,
        event_type: CreditEventType,
        amount: int,
        reason: str,
        related_url: Optional[str] = None,
    ) -> CreditLedgerEntry:
        self._check_open()
        event_type = CreditEventType(event_type)
        with self._lock_for(did):
            agent = self._agents[did]
            entry = CreditLedgerEntry(
                id=str(uuid4()),
                agent_id=agent.id,
                type=event_type,
                amount=amount,
                balance_after=max(0, agent.credits + amount),
                reason=reason,
                related_url=related_url,
                created_at=utc_iso(),
            )
            self._agents[did] = replace(agent, credits=entry.balance_after, updated_at=entry.created_at)
            self._ledger[did].append(entry)
        logger.info(
            "Credit event %s for %s: %+d -> balance %d",
            event_type.value, did, amount, entry.balance_after,
        )
        return entry

    def get_credits(self, did: str) -> int:
        self._check_open()
        agent = self._agents.get(did)
        if agent is None:
            raise AgentNotFound(did)
        return agent.credits

    def get_credit_history(self, did: str, limit: int = 50) -> List[CreditLedgerEntry]:
        self._check_open()
        with self._lock_for(did):
            entries = list(self._ledger[did])
        entries.reverse()
        return entries[: max(0, limit)]

    # --- replay cache ---

    def insert_signature(self, entry: ReplayCacheEntry) -> bool:
        self._check_open()
        with self._cache_lock:
            if entry.signature_hash in self._signatures:
                return False
            if not entry.inserted_at:
                entry = replace(entry, inserted_at=utc_iso())
            self._signatures[entry.signature_hash] = entry
        return True

    def has_signature(self, signature_hash: str) -> bool:
        self._check_open()
        return signature_hash in self._signatures

    def sweep_signatures(self, inserted_before: str) -> int:
        self._check_open()
        with self._cache_lock:
            stale = [h for h, e in self._signatures.items() if e.inserted_at < inserted_before]
            for h in stale:
                del self._signatures[h]
        return len(stale)

    def close(self) -> None:
        self._closed = True
