# tests/test_storage.py
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from agentid.core.clock import utc_iso
from agentid.core.errors import AgentNotFound, DatabaseError
from agentid.core.types import AgentStatus, CreditEventType, ReplayCacheEntry
from agentid.storage import (
    DEFAULT_CREDITS,
    MemoryStorage,
    SQLiteStorage,
    StorageBackend,
    create_storage,
    default_db_path,
)

DID = "did:web:example.com:agents:claude"
OTHER = "did:web:example.com:agents:gpt"
PUBKEY = "11qYAYKxCrfVS_7TyWQHOg7hcvPapiMlrwIaaPcHURo"


@pytest.fixture(params=["sqlite", "memory"])
def storage(request, tmp_path: Path) -> StorageBackend:
    if request.param == "sqlite":
        backend = SQLiteStorage(db_path=tmp_path / "test.db")
    else:
        backend = MemoryStorage()
    yield backend
    backend.close()


@pytest.fixture
def sqlite_storage(tmp_path: Path) -> SQLiteStorage:
    backend = SQLiteStorage(db_path=tmp_path / "test.db")
    yield backend
    backend.close()


def test_create_storage_routing(tmp_path: Path):
    db = tmp_path / "routed.db"
    backend = create_storage(f"sqlite://{db}")
    assert isinstance(backend, SQLiteStorage)
    assert backend.db_path == db.resolve()
    backend.close()

    assert isinstance(create_storage("memory://"), MemoryStorage)

    with pytest.raises(ValueError, match="Unsupported storage URI"):
        create_storage("postgres://localhost/agentid")
    with pytest.raises(ValueError):
        create_storage("sqlite://")


def test_default_db_path_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("AGENTID_DB_PATH", str(tmp_path / "env.db"))
    assert default_db_path() == tmp_path / "env.db"

    monkeypatch.delenv("AGENTID_DB_PATH")
    monkeypatch.setenv("AGENTID_HOME", str(tmp_path / "home"))
    assert default_db_path() == tmp_path / "home" / "agentid.db"

    monkeypatch.delenv("AGENTID_HOME")
    assert default_db_path() == Path.home() / ".agentid" / "agentid.db"


# --- agents ---

def test_register_and_get(storage: StorageBackend):
    agent = storage.register_agent(DID, PUBKEY, "Claude", description="reviewer")
    assert agent.did == DID
    assert agent.status == AgentStatus.ACTIVE
    assert agent.credits == DEFAULT_CREDITS

    loaded = storage.get_agent(DID)
    assert loaded.id == agent.id
    assert loaded.name == "Claude"
    assert loaded.description == "reviewer"
    assert storage.get_agent(OTHER) is None


def test_register_duplicate(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude")
    with pytest.raises(ValueError, match="already registered"):
        storage.register_agent(DID, PUBKEY, "Claude again")


def test_list_agents_by_status(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude")
    storage.register_agent(OTHER, PUBKEY, "GPT")
    storage.set_agent_status(OTHER, AgentStatus.SUSPENDED, "spam")

    assert {a.did for a in storage.list_agents()} == {DID, OTHER}
    assert [a.did for a in storage.list_agents(AgentStatus.ACTIVE)] == [DID]
    assert [a.did for a in storage.list_agents(AgentStatus.SUSPENDED)] == [OTHER]


def test_set_agent_status(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude")

    suspended = storage.set_agent_status(DID, AgentStatus.SUSPENDED, "under review")
    assert suspended.status == AgentStatus.SUSPENDED
    assert suspended.revoked_at is None
    assert storage.check_agent_status(DID) == (AgentStatus.SUSPENDED, DEFAULT_CREDITS)

    revoked = storage.set_agent_status(DID, AgentStatus.REVOKED, "key leaked")
    assert revoked.revoked_at is not None
    assert revoked.revocation_reason == "key leaked"

    with pytest.raises(AgentNotFound):
        storage.set_agent_status(OTHER, AgentStatus.REVOKED)
    assert storage.check_agent_status(OTHER) is None


# --- credit ledger ---

def test_credit_event_updates_balance(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude")
    entry = storage.record_credit_event(
        DID, CreditEventType.PR_MERGED, 10, "PR #12", "https://github.com/o/r/pull/12"
    )
    assert entry.amount == 10
    assert entry.balance_after == DEFAULT_CREDITS + 10
    assert entry.related_url.endswith("/12")
    assert storage.get_credits(DID) == DEFAULT_CREDITS + 10


def test_balance_is_clamped_at_zero(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude", credits=10)
    entry = storage.record_credit_event(DID, CreditEventType.SECURITY_ISSUE, -50, "leaked token")

    # the requested amount is recorded, the balance floors at 0
    assert entry.amount == -50
    assert entry.balance_after == 0
    assert storage.get_credits(DID) == 0

    entry = storage.record_credit_event(DID, CreditEventType.PR_MERGED, 5, "recovery")
    assert entry.balance_after == 5


def test_history_newest_first_with_limit(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude")
    for i in range(5):
        storage.record_credit_event(DID, CreditEventType.PR_MERGED, i + 1, f"PR #{i}")

    history = storage.get_credit_history(DID)
    assert [e.reason for e in history] == ["PR #4", "PR #3", "PR #2", "PR #1", "PR #0"]
    assert history[0].balance_after == storage.get_credits(DID)
    assert all(e.type == CreditEventType.PR_MERGED for e in history)

    assert [e.reason for e in storage.get_credit_history(DID, limit=2)] == ["PR #4", "PR #3"]


def test_credit_ops_on_unknown_agent(storage: StorageBackend):
    with pytest.raises(AgentNotFound):
        storage.record_credit_event(OTHER, CreditEventType.PR_MERGED, 1, "x")
    with pytest.raises(AgentNotFound):
        storage.get_credits(OTHER)
    with pytest.raises(AgentNotFound):
        storage.get_credit_history(OTHER)


def test_concurrent_credit_events_are_not_lost(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude", credits=0)
    n = 40

    def bump(i):
        return storage.record_credit_event(DID, CreditEventType.PR_MERGED, 1, f"bump {i}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        entries = list(pool.map(bump, range(n)))

    assert storage.get_credits(DID) == n
    assert len(storage.get_credit_history(DID, limit=n + 10)) == n
    # every intermediate balance was produced exactly once
    assert sorted(e.balance_after for e in entries) == list(range(1, n + 1))


def test_concurrent_events_on_two_agents(storage: StorageBackend):
    storage.register_agent(DID, PUBKEY, "Claude", credits=0)
    storage.register_agent(OTHER, PUBKEY, "GPT", credits=0)

    def bump(i):
        did = DID if i % 2 else OTHER
        storage.record_credit_event(did, CreditEventType.MANUAL_ADJUSTMENT, 2, "tick")

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(bump, range(30)))

    assert storage.get_credits(DID) == 30
    assert storage.get_credits(OTHER) == 30


def test_memory_locks_are_per_identity():
    storage = MemoryStorage()
    storage.register_agent(DID, PUBKEY, "Claude")
    storage.register_agent(OTHER, PUBKEY, "GPT")

    done = threading.Event()

    def bump_did():
        storage.record_credit_event(DID, CreditEventType.PR_MERGED, 1, "blocked")
        done.set()

    with storage._agent_locks[DID]:
        # another identity proceeds while DID is held
        storage.record_credit_event(OTHER, CreditEventType.PR_MERGED, 1, "free")
        worker = threading.Thread(target=bump_did)
        worker.start()
        assert not done.wait(0.2)

    worker.join(timeout=5)
    assert done.is_set()
    assert storage.get_credits(DID) == DEFAULT_CREDITS + 1
    assert storage.get_credits(OTHER) == DEFAULT_CREDITS + 1


def test_sqlite_ledger_is_append_only(sqlite_storage: SQLiteStorage):
    sqlite_storage.register_agent(DID, PUBKEY, "Claude")
    sqlite_storage.record_credit_event(DID, CreditEventType.PR_MERGED, 5, "PR")

    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        sqlite_storage.conn.execute("UPDATE credit_ledger SET amount = 500")
    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        sqlite_storage.conn.execute("DELETE FROM credit_ledger")


def test_sqlite_failed_append_rolls_back_balance(sqlite_storage: SQLiteStorage, monkeypatch):
    sqlite_storage.register_agent(DID, PUBKEY, "Claude")
    monkeypatch.setattr("agentid.storage.sqlite.uuid4", lambda: "fixed-entry-id")

    sqlite_storage.record_credit_event(DID, CreditEventType.PR_MERGED, 10, "first")
    with pytest.raises(DatabaseError):
        sqlite_storage.record_credit_event(DID, CreditEventType.PR_MERGED, 7, "second")

    # balance and ledger move together or not at all
    assert sqlite_storage.get_credits(DID) == DEFAULT_CREDITS + 10
    assert [e.reason for e in sqlite_storage.get_credit_history(DID)] == ["first"]


def test_sqlite_persists_across_instances(tmp_path: Path):
    path = tmp_path / "persist.db"
    with SQLiteStorage(path) as first:
        first.register_agent(DID, PUBKEY, "Claude")
        first.record_credit_event(DID, CreditEventType.PR_REJECTED, -3, "nope")

    with SQLiteStorage(path) as second:
        assert second.get_credits(DID) == DEFAULT_CREDITS - 3
        assert second.get_credit_history(DID)[0].type == CreditEventType.PR_REJECTED


# --- replay cache ---

def test_insert_signature_once(storage: StorageBackend):
    entry = ReplayCacheEntry(signature_hash="ab" * 32, agent_did=DID, timestamp=1_700_000_000_000)
    assert storage.insert_signature(entry) is True
    assert storage.has_signature(entry.signature_hash)
    assert storage.insert_signature(entry) is False
    assert not storage.has_signature("cd" * 32)


def test_concurrent_signature_insert_single_winner(storage: StorageBackend):
    entry = ReplayCacheEntry(signature_hash="ef" * 32, agent_did=DID, timestamp=1)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: storage.insert_signature(entry), range(16)))
    assert results.count(True) == 1


def test_sweep_signatures(storage: StorageBackend):
    now = datetime.now(timezone.utc)
    old = ReplayCacheEntry("01" * 32, DID, 1, inserted_at=utc_iso(now - timedelta(hours=2)))
    fresh = ReplayCacheEntry("02" * 32, DID, 2, inserted_at=utc_iso(now))
    storage.insert_signature(old)
    storage.insert_signature(fresh)

    removed = storage.sweep_signatures(utc_iso(now - timedelta(hours=1)))
    assert removed == 1
    assert not storage.has_signature(old.signature_hash)
    assert storage.has_signature(fresh.signature_hash)


def test_closed_storage_raises(storage: StorageBackend):
    storage.close()
    with pytest.raises(RuntimeError, match="closed"):
        storage.get_agent(DID)
