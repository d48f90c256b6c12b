"""
SQLite-backed local storage.

Two tables:
- kv: JSON values by key (authToken, user, settings)
- lead_records: scored prospects returned by the analyze call

Writes notify subscribed listeners with the changed keys, so a session
pushed from the portal reaches every live SessionManager.
"""

import json
import sqlite3
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import get_db_path
from .models import LeadRecord

logger = logging.getLogger(__name__)

# listener(changes) where changes maps key -> {"oldValue": ..., "newValue": ...}
ChangeListener = Callable[[Dict[str, Dict[str, Any]]], None]


class LocalStore:
    """Key/value plus lead record persistence over one SQLite file."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        self._listeners: List[ChangeListener] = []
        self._lock = threading.Lock()
        self.init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get connection with row factory for dict-like rows."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value_json TEXT,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS lead_records (
                    id TEXT PRIMARY KEY,
                    domain TEXT,
                    score INTEGER NOT NULL,
                    tier TEXT NOT NULL,
                    record_json TEXT NOT NULL,
                    linked_audit_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_lead_records_domain ON lead_records(domain);
            """)
            conn.commit()
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # key/value
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value_json FROM kv WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None or row["value_json"] is None:
            return default
        return json.loads(row["value_json"])

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: self.get(k) for k in keys}

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]) -> None:
        """Write several keys in one transaction, then notify listeners once."""
        now = datetime.now(timezone.utc).isoformat()
        changes = {}
        with self._lock:
            conn = self._get_conn()
            try:
                for key, value in values.items():
                    row = conn.execute("SELECT value_json FROM kv WHERE key = ?", (key,)).fetchone()
                    old = json.loads(row["value_json"]) if row and row["value_json"] is not None else None
                    conn.execute(
                        """INSERT INTO kv (key, value_json, updated_at) VALUES (?, ?, ?)
                           ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json,
                                                          updated_at = excluded.updated_at""",
                        (key, json.dumps(value, default=str), now),
                    )
                    changes[key] = {"oldValue": old, "newValue": value}
                conn.commit()
            finally:
                conn.close()
        self._notify(changes)

    def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        changes = {}
        with self._lock:
            conn = self._get_conn()
            try:
                for key in keys:
                    row = conn.execute("SELECT value_json FROM kv WHERE key = ?", (key,)).fetchone()
                    if row is None:
                        continue
                    old = json.loads(row["value_json"]) if row["value_json"] is not None else None
                    conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                    changes[key] = {"oldValue": old, "newValue": None}
                conn.commit()
            finally:
                conn.close()
        self._notify(changes)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, changes: Dict[str, Dict[str, Any]]) -> None:
        if not changes:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(changes)
            except Exception as e:
                logger.warning(f"Storage listener failed: {e}")

    # -------------------------------------------------------------------------
    # lead records
    # -------------------------------------------------------------------------

    def save_lead_record(self, record: LeadRecord) -> None:
        """Insert or replace a lead record by id."""
        now = datetime.now(timezone.utc).isoformat()
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO lead_records
                       (id, domain, score, tier, record_json, linked_audit_id, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       domain = excluded.domain,
                       score = excluded.score,
                       tier = excluded.tier,
                       record_json = excluded.record_json,
                       linked_audit_id = excluded.linked_audit_id,
                       updated_at = excluded.updated_at""",
                (
                    record.id,
                    record.domain,
                    record.score,
                    record.tier,
                    json.dumps(record.to_dict(), default=str),
                    record.linked_audit_id,
                    now,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug(f"Saved lead record {record.id} ({record.tier})")

    def get_lead_record(self, record_id: str) -> Optional[LeadRecord]:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT record_json FROM lead_records WHERE id = ?", (record_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return LeadRecord.from_dict(json.loads(row["record_json"]))

    def list_lead_records(self, domain: Optional[str] = None) -> List[LeadRecord]:
        conn = self._get_conn()
        try:
            if domain:
                rows = conn.execute(
                    "SELECT record_json FROM lead_records WHERE domain = ? ORDER BY updated_at DESC",
                    (domain,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT record_json FROM lead_records ORDER BY updated_at DESC"
                ).fetchall()
        finally:
            conn.close()
        return [LeadRecord.from_dict(json.loads(r["record_json"])) for r in rows]
