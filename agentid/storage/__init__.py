# agentid/storage/__init__.py
"""
Storage backends for the agent registry, credit ledger and replay cache.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from agentid.core.types import (
    Agent,
    AgentStatus,
    CreditEventType,
    CreditLedgerEntry,
    ReplayCacheEntry,
)

DEFAULT_CREDITS = 100


class StorageBackend(ABC):
    """Abstract base for all storage implementations."""

    # --- agents ---

    @abstractmethod
    def register_agent(
        self,
        did: str,
        public_key: str,
        name: str,
        description: Optional[str] = None,
        credits: int = DEFAULT_CREDITS,
    ) -> Agent:
        pass

    @abstractmethod
    def get_agent(self, did: str) -> Optional[Agent]:
        pass

    @abstractmethod
    def list_agents(self, status: Optional[AgentStatus] = None) -> List[Agent]:
        pass

    @abstractmethod
    def set_agent_status(self, did: str, status: AgentStatus, reason: Optional[str] = None) -> Agent:
        pass

    def check_agent_status(self, did: str) -> Optional[Tuple[AgentStatus, int]]:
        agent = self.get_agent(did)
        if agent is None:
            return None
        return agent.status, agent.credits

    # --- credit ledger ---

    @abstractmethod
    def record_credit_event(
        self,
        did: str,
        event_type: CreditEventType,
        amount: int,
        reason: str,
        related_url: Optional[str] = None,
    ) -> CreditLedgerEntry:
        """
        Apply ``amount`` to the identity's balance (clamped at 0) and append
        the ledger row, as one indivisible unit per identity.
        """

    @abstractmethod
    def get_credits(self, did: str) -> int:
        pass

    @abstractmethod
    def get_credit_history(self, did: str, limit: int = 50) -> List[CreditLedgerEntry]:
        """Most recent first."""

    # --- replay cache ---

    @abstractmethod
    def insert_signature(self, entry: ReplayCacheEntry) -> bool:
        """Atomic insert-if-absent. False means the hash was already present."""

    @abstractmethod
    def has_signature(self, signature_hash: str) -> bool:
        pass

    @abstractmethod
    def sweep_signatures(self, inserted_before: str) -> int:
        """Delete entries inserted before the given ISO timestamp; returns count."""

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def default_home() -> Path:
    """``AGENTID_HOME`` or ``~/.agentid``."""
    env_home = os.environ.get("AGENTID_HOME")
    return Path(env_home).expanduser() if env_home else Path.home() / ".agentid"


def default_db_path() -> Path:
    env_path = os.environ.get("AGENTID_DB_PATH")
    return Path(env_path) if env_path else default_home() / "agentid.db"


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        # sqlite:///abs/path.db or sqlite://relative.db
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError("sqlite:// URI needs a database path")
        return SQLiteStorage(Path(raw_path).resolve())

    elif uri.startswith("memory://"):
        from .memory import MemoryStorage
        return MemoryStorage()
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "default_db_path", "default_home", "SQLiteStorage", "MemoryStorage", "DEFAULT_CREDITS"]
