# agentid/storage/sqlite.py
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from agentid.core.clock import utc_iso
from agentid.core.errors import AgentNotFound, DatabaseError
from agentid.core.types import (
    Agent,
    AgentStatus,
    CreditEventType,
    CreditLedgerEntry,
    ReplayCacheEntry,
)
from . import DEFAULT_CREDITS, StorageBackend, default_db_path

logger = logging.getLogger(__name__)

_AGENT_COLUMNS = """
    id, did, public_key, name, description, status, credits,
    created_at, updated_at, revoked_at, revocation_reason
"""


class SQLiteStorage(StorageBackend):
    """
    SQLite persistent storage.

    Each thread gets its own connection. Balance updates are a compare-and-swap
    on ``agents.version``: the balance is read, then written back only if the
    version is unchanged, in the same transaction as the ledger append. A lost
    race rolls back and retries, so no update is ever silently dropped.

    Limitation: ``BEGIN IMMEDIATE`` takes SQLite's database-wide write lock, so
    credit events for different identities are still serialized for the
    length of one short transaction. ``MemoryStorage`` locks per identity.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = default_db_path()

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._closed = False
        self._create_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,
            timeout=30.0,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("Storage connection is closed")
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _db_errors(self, operation: str):
        try:
            yield
        except sqlite3.Error as e:
            logger.error("SQLite %s failed: %s", operation, e)
            raise DatabaseError(f"Failed to {operation}: {e}") from e

    def _create_schema(self):
        with self._db_errors("create schema"):
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS agents (
                    id                  TEXT    PRIMARY KEY,
                    did                 TEXT    NOT NULL UNIQUE,
                    public_key          TEXT    NOT NULL,
                    name                TEXT    NOT NULL,
                    description         TEXT,
                    status              TEXT    NOT NULL DEFAULT 'active'
                                        CHECK (status IN ('active', 'suspended', 'revoked')),
                    credits             INTEGER NOT NULL DEFAULT 100 CHECK (credits >= 0),
                    version             INTEGER NOT NULL DEFAULT 0,
                    created_at          TEXT    NOT NULL,
                    updated_at          TEXT    NOT NULL,
                    revoked_at          TEXT,
                    revocation_reason   TEXT
                )
            """)
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS credit_ledger (
                    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
                    id              TEXT    NOT NULL UNIQUE,
                    agent_id        TEXT    NOT NULL REFERENCES agents(id),
                    event_type      TEXT    NOT NULL,
                    amount          INTEGER NOT NULL,
                    balance_after   INTEGER NOT NULL CHECK (balance_after >= 0),
                    reason          TEXT    NOT NULL,
                    related_url     TEXT,
                    created_at      TEXT    NOT NULL
                )
            """)
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS signature_cache (
                    signature_hash  TEXT    PRIMARY KEY,
                    agent_did       TEXT    NOT NULL,
                    timestamp       INTEGER NOT NULL,
                    inserted_at     TEXT    NOT NULL
                )
            """)
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_agents_status  ON agents(status)")
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_ledger_agent   ON credit_ledger(agent_id, seq)")
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_sigcache_time  ON signature_cache(inserted_at)")
            for op in ("UPDATE", "DELETE"):
                self.conn.execute(f"""
                    CREATE TRIGGER IF NOT EXISTS credit_ledger_no_{op.lower()}
                    BEFORE {op} ON credit_ledger
                    BEGIN SELECT RAISE(ABORT, 'credit_ledger is append-only'); END
                """)

    # --- agents ---

    @staticmethod
    def _row_to_agent(row) -> Agent:
        aid, did, pk, name, desc, status, credits, created, updated, revoked, reason = row
        return Agent(
            id=aid,
            did=did,
            public_key=pk,
            name=name,
            description=desc,
            status=AgentStatus(status),
            credits=credits,
            created_at=created,
            updated_at=updated,
            revoked_at=revoked,
            revocation_reason=reason,
        )

    def register_agent(
        self,
        did: str,
        public_key: str,
        name: str,
        description: Optional[str] = None,
        credits: int = DEFAULT_CREDITS,
    ) -> Agent:
        if credits < 0:
            raise ValueError("initial credits cannot be negative")
        now = utc_iso()
        agent_id = str(uuid4())
        try:
            self.conn.execute(
                """
                INSERT INTO agents (id, did, public_key, name, description, credits, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (agent_id, did, public_key, name, description, credits, now, now),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Agent already registered: {did}") from e
        except sqlite3.Error as e:
            logger.error("SQLite register agent failed: %s", e)
            raise DatabaseError(f"Failed to register agent: {e}") from e
        logger.info("Registered agent %s", did)
        return Agent(
            id=agent_id,
            did=did,
            public_key=public_key,
            name=name,
            description=description,
            credits=credits,
            created_at=now,
            updated_at=now,
        )

    def get_agent(self, did: str) -> Optional[Agent]:
        with self._db_errors("get agent"):
            row = self.conn.execute(
                f"SELECT {_AGENT_COLUMNS} FROM agents WHERE did = ?", (did,)
            ).fetchone()
        return self._row_to_agent(row) if row else None

    def list_agents(self, status: Optional[AgentStatus] = None) -> List[Agent]:
        with self._db_errors("list agents"):
            if status is None:
                cursor = self.conn.execute(f"SELECT {_AGENT_COLUMNS} FROM agents ORDER BY created_at")
            else:
                cursor = self.conn.execute(
                    f"SELECT {_AGENT_COLUMNS} FROM agents WHERE status = ? ORDER BY created_at",
                    (AgentStatus(status).value,),
                )
            return [self._row_to_agent(row) for row in cursor.fetchall()]

    def set_agent_status(self, did: str, status: AgentStatus, reason: Optional[str] = None) -> Agent:
        status = AgentStatus(status)
        now = utc_iso()
        revoked_at = now if status == AgentStatus.REVOKED else None
        with self._db_errors("update agent status"):
            cur = self.conn.execute(
                """
                UPDATE agents
                SET status = ?, revocation_reason = ?, revoked_at = COALESCE(?, revoked_at), updated_at = ?
                WHERE did = ?
                """,
                (status.value, reason, revoked_at, now, did),
            )
        if cur.rowcount == 0:
            raise AgentNotFound(did)
        logger.info("Agent %s is now %s", did, status.value)
        return self.get_agent(did)

    # --- credit ledger ---

    def record_credit_event(
        self,
        did: str,
        event_type: CreditEventType,
        amount: int,
        reason: str,
        related_url: Optional[str] = None,
    ) -> CreditLedgerEntry:
        event_type = CreditEventType(event_type)
        conn = self.conn
        attempt = 0

        while True:
            attempt += 1
            with self._db_errors("record credit event"):
                row = conn.execute(
                    "SELECT id, credits, version FROM agents WHERE did = ?", (did,)
                ).fetchone()
                if row is None:
                    raise AgentNotFound(did)
                agent_id, balance, version = row

                entry = CreditLedgerEntry(
                    id=str(uuid4()),
                    agent_id=agent_id,
                    type=event_type,
                    amount=amount,
                    balance_after=max(0, balance + amount),
                    reason=reason,
                    related_url=related_url,
                    created_at=utc_iso(),
                )

                conn.execute("BEGIN IMMEDIATE")
                try:
                    cur = conn.execute(
                        """
                        UPDATE agents SET credits = ?, version = version + 1, updated_at = ?
                        WHERE id = ? AND version = ?
                        """,
                        (entry.balance_after, entry.created_at, agent_id, version),
                    )
                    if cur.rowcount != 1:
                        conn.execute("ROLLBACK")
                        logger.debug("Credit update for %s lost a race (attempt %d), retrying", did, attempt)
                        continue
                    conn.execute(
                        """
                        INSERT INTO credit_ledger
                        (id, agent_id, event_type, amount, balance_after, reason, related_url, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            entry.id, agent_id, event_type.value, amount,
                            entry.balance_after, reason, related_url, entry.created_at,
                        ),
                    )
                    conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise

            logger.info(
                "Credit event %s for %s: %+d -> balance %d",
                event_type.value, did, amount, entry.balance_after,
            )
            return entry

    def get_credits(self, did: str) -> int:
        with self._db_errors("get credits"):
            row = self.conn.execute("SELECT credits FROM agents WHERE did = ?", (did,)).fetchone()
        if row is None:
            raise AgentNotFound(did)
        return row[0]

    def get_credit_history(self, did: str, limit: int = 50) -> List[CreditLedgerEntry]:
        with self._db_errors("get credit history"):
            agent = self.conn.execute("SELECT id FROM agents WHERE did = ?", (did,)).fetchone()
            if agent is None:
                raise AgentNotFound(did)
            cursor = self.conn.execute(
                """
                SELECT id, agent_id, event_type, amount, balance_after, reason, related_url, created_at
                FROM credit_ledger
                WHERE agent_id = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (agent[0], limit),
            )
            rows = cursor.fetchall()

        return [
            CreditLedgerEntry(
                id=eid,
                agent_id=aid,
                type=CreditEventType(etype),
                amount=amount,
                balance_after=balance,
                reason=reason,
                related_url=url,
                created_at=created,
            )
            for eid, aid, etype, amount, balance, reason, url, created in rows
        ]

    # --- replay cache ---

    def insert_signature(self, entry: ReplayCacheEntry) -> bool:
        try:
            self.conn.execute(
                """
                INSERT INTO signature_cache (signature_hash, agent_did, timestamp, inserted_at)
                VALUES (?, ?, ?, ?)
                """,
                (entry.signature_hash, entry.agent_did, entry.timestamp, entry.inserted_at or utc_iso()),
            )
        except sqlite3.IntegrityError:
            return False
        except sqlite3.Error as e:
            logger.error("SQLite insert signature failed: %s", e)
            raise DatabaseError(f"Failed to insert signature: {e}") from e
        return True

    def has_signature(self, signature_hash: str) -> bool:
        with self._db_errors("look up signature"):
            row = self.conn.execute(
                "SELECT 1 FROM signature_cache WHERE signature_hash = ?", (signature_hash,)
            ).fetchone()
        return row is not None

    def sweep_signatures(self, inserted_before: str) -> int:
        with self._db_errors("sweep signature cache"):
            cur = self.conn.execute(
                "DELETE FROM signature_cache WHERE inserted_at < ?", (inserted_before,)
            )
        return cur.rowcount

    def close(self) -> None:
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections = []
            self._closed = True
        self._local = threading.local()
