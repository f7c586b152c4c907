"""
SQLite storage schema and operations.

Tables:
- subscribers: One row per follower (risk multiplier, referral scope)
- signals: One row per (signal_id, subscriber_id), risk-adjusted payload

Fail-loud: DB errors raise StoreError, never silent.
"""

import json
import logging
import math
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from copier.errors import NotSubscribedError, StoreError, ValidationError

logger = logging.getLogger(__name__)

# Schema version for migration tracking
SCHEMA_VERSION = 1

# Hard cap on rows returned by SignalStore.list_recent
MAX_LIST_LIMIT = 10


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Subscriber:
    """Follower subscription record"""

    subscriber_id: str
    risk: float
    referral_scope: str
    created_at: datetime


class CopierDB:
    """SQLite database for copier persistence."""

    def __init__(self, db_path: str, timeout: float = 5.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._init_schema()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.

        One connection per operation: commit on success, rollback on error.
        sqlite3 errors are re-raised as StoreError.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self):
        """Initialize database schema. Idempotent."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Metadata table
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

            # Check schema version
            cursor.execute("SELECT value FROM metadata WHERE key = 'schema_version'")
            row = cursor.fetchone()
            if row:
                existing_version = int(row[0])
                if existing_version != SCHEMA_VERSION:
                    raise RuntimeError(
                        f"Schema version mismatch: expected {SCHEMA_VERSION}, got {existing_version}"
                    )
            else:
                cursor.execute(
                    "INSERT INTO metadata (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )

            # Subscribers - one row per follower
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS subscribers (
                    subscriber_id TEXT PRIMARY KEY,
                    risk REAL NOT NULL,
                    referral_scope TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_subscribers_scope ON subscribers (referral_scope)"
            )

            # Signals - one row per (signal, subscriber)
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS signals (
                    signal_id TEXT NOT NULL,
                    subscriber_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (signal_id, subscriber_id),
                    FOREIGN KEY (subscriber_id) REFERENCES subscribers(subscriber_id)
                        ON DELETE CASCADE
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_signals_subscriber_created "
                "ON signals (subscriber_id, created_at)"
            )


class SubscriptionStore:
    """
    Subscriber lifecycle: subscribe, change risk, unsubscribe.

    Source of fan-out membership for the broadcaster.
    """

    def __init__(self, db: CopierDB, min_risk: float = 0.1, max_risk: float = 2.0):
        self.db = db
        self.min_risk = min_risk
        self.max_risk = max_risk

    def _validate_risk(self, risk: float) -> float:
        try:
            risk = float(risk)
        except (TypeError, ValueError):
            raise ValidationError(f"Risk must be a number, got {risk!r}")
        if math.isnan(risk) or not (self.min_risk <= risk <= self.max_risk):
            raise ValidationError(
                f"Risk must be between {self.min_risk} and {self.max_risk}, got {risk}"
            )
        return risk

    def upsert(self, subscriber_id: str, risk: float, referral_scope: str) -> None:
        """
        Create a subscription or overwrite risk and scope of an existing one.

        created_at is kept on re-subscribe.
        """
        risk = self._validate_risk(risk)
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO subscribers (subscriber_id, risk, referral_scope, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (subscriber_id)
                DO UPDATE SET risk = excluded.risk, referral_scope = excluded.referral_scope
                """,
                (subscriber_id, risk, referral_scope, _utcnow()),
            )
        logger.info(f"Subscriber {subscriber_id} subscribed to {referral_scope} at {risk}x")

    def delete(self, subscriber_id: str) -> bool:
        """
        Remove a subscriber and all of their signals in one transaction.

        Returns:
            True if a subscription existed
        """
        with self.db.get_connection() as conn:
            signals_removed = conn.execute(
                "DELETE FROM signals WHERE subscriber_id = ?", (subscriber_id,)
            ).rowcount
            removed = conn.execute(
                "DELETE FROM subscribers WHERE subscriber_id = ?", (subscriber_id,)
            ).rowcount > 0

        if removed:
            logger.info(
                f"Subscriber {subscriber_id} unsubscribed ({signals_removed} signals deleted)"
            )
        return removed

    def set_risk(self, subscriber_id: str, risk: float) -> float:
        """
        Update a subscriber's risk multiplier.

        Raises:
            ValidationError: risk outside bounds (stored value unchanged)
            NotSubscribedError: no such subscriber
        """
        risk = self._validate_risk(risk)
        with self.db.get_connection() as conn:
            updated = conn.execute(
                "UPDATE subscribers SET risk = ? WHERE subscriber_id = ?",
                (risk, subscriber_id),
            ).rowcount
        if not updated:
            raise NotSubscribedError(subscriber_id)
        logger.info(f"Subscriber {subscriber_id} risk set to {risk}x")
        return risk

    def get(self, subscriber_id: str) -> Optional[Subscriber]:
        with self.db.get_connection() as conn:
            row = conn.execute(
                """
                SELECT subscriber_id, risk, referral_scope, created_at
                FROM subscribers WHERE subscriber_id = ?
                """,
                (subscriber_id,),
            ).fetchone()
        if row is None:
            return None
        return Subscriber(
            subscriber_id=row["subscriber_id"],
            risk=row["risk"],
            referral_scope=row["referral_scope"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def list_by_scope(self, referral_scope: str) -> List[Tuple[str, float]]:
        """(subscriber_id, risk) for every subscriber in a referral scope."""
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT subscriber_id, risk FROM subscribers WHERE referral_scope = ?",
                (referral_scope,),
            ).fetchall()
        return [(row["subscriber_id"], row["risk"]) for row in rows]


class SignalStore:
    """
    Idempotent per-(signal, subscriber) storage.

    Ownership checks belong to the caller; every predicate here is keyed on
    subscriber_id so a caller cannot reach another subscriber's rows.
    """

    def __init__(self, db: CopierDB, max_list_limit: int = MAX_LIST_LIMIT):
        self.db = db
        self.max_list_limit = max_list_limit

    def insert_if_absent(self, signal_id: str, subscriber_id: str, payload: dict) -> bool:
        """
        Store a signal row unless one already exists for (signal_id, subscriber_id).

        Rows are only written for live subscribers, so a subscriber who
        unsubscribes mid-broadcast does not get an orphaned row.

        Returns:
            True if a new row was created
        """
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO signals (signal_id, subscriber_id, payload, created_at)
                SELECT ?, ?, ?, ?
                WHERE EXISTS (SELECT 1 FROM subscribers WHERE subscriber_id = ?)
                """,
                (signal_id, subscriber_id, json.dumps(payload), _utcnow(), subscriber_id),
            )
            return cursor.rowcount > 0

    def list_recent(self, subscriber_id: str, limit: int = MAX_LIST_LIMIT) -> List[dict]:
        """
        Newest-first payloads for a subscriber.

        limit is clamped to [1, max_list_limit].
        """
        limit = max(1, min(int(limit), self.max_list_limit))
        with self.db.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT payload FROM signals
                WHERE subscriber_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (subscriber_id, limit),
            ).fetchall()
        return [json.loads(row["payload"]) for row in rows]

    def delete_one(self, signal_id: str, subscriber_id: str) -> bool:
        with self.db.get_connection() as conn:
            return conn.execute(
                "DELETE FROM signals WHERE signal_id = ? AND subscriber_id = ?",
                (signal_id, subscriber_id),
            ).rowcount > 0

    def delete_all_for_subscriber(self, subscriber_id: str) -> int:
        with self.db.get_connection() as conn:
            return conn.execute(
                "DELETE FROM signals WHERE subscriber_id = ?", (subscriber_id,)
            ).rowcount

    def count_for_subscriber(self, subscriber_id: str) -> int:
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM signals WHERE subscriber_id = ?",
                (subscriber_id,),
            ).fetchone()
        return row["count"]

    def exists(self, signal_id: str) -> bool:
        """True if any subscriber holds a row for signal_id."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM signals WHERE signal_id = ? LIMIT 1", (signal_id,)
            ).fetchone()
        return row is not None
