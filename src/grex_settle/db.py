"""SQLite database operations for grex-settle."""

import json
import sqlite3
import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from .models import BalanceSnapshotRecord, SettlementSuggestion

LATEST_RATE_KEY = "latest"


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        # Summaries may be recorded from recompute worker threads
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        # Serializes access to the shared connection
        self._lock = threading.Lock()
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Exchange rate cache
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS exchange_rates (
                from_currency TEXT NOT NULL,
                to_currency TEXT NOT NULL,
                rate_date TEXT NOT NULL,
                rate TEXT NOT NULL,
                fetched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (from_currency, to_currency, rate_date)
            )
        """
        )

        # Balance history (audit trail of computed summaries)
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS balance_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id TEXT NOT NULL,
                currency TEXT NOT NULL,
                balances TEXT NOT NULL,
                plan TEXT NOT NULL,
                has_mixed_currency_warning INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_balance_snapshots_group
            ON balance_snapshots (group_id, created_at)
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        with self._lock:
            self.conn.close()

    def _execute(
        self, sql: str, params: tuple = (), commit: bool = False
    ) -> tuple[list[sqlite3.Row], int | None]:
        """Run one statement under the connection lock.

        Returns:
            Tuple of (fetched rows, last inserted row id)
        """
        with self._lock:
            cursor = self.conn.execute(sql, params)
            rows = cursor.fetchall()
            if commit:
                self.conn.commit()
            return rows, cursor.lastrowid

    # ========================================================================
    # Exchange rate operations
    # ========================================================================

    def get_exchange_rate(
        self, from_currency: str, to_currency: str, rate_date: date | None
    ) -> Decimal | None:
        """Get a cached exchange rate."""
        rows, _ = self._execute(
            """
            SELECT rate FROM exchange_rates
            WHERE from_currency = ? AND to_currency = ? AND rate_date = ?
            """,
            (
                from_currency,
                to_currency,
                rate_date.isoformat() if rate_date else LATEST_RATE_KEY,
            ),
        )
        return Decimal(rows[0]["rate"]) if rows else None

    def save_exchange_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date | None,
        rate: Decimal,
    ):
        """Save an exchange rate to the cache."""
        self._execute(
            """
            INSERT INTO exchange_rates (
                from_currency, to_currency, rate_date, rate, fetched_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(from_currency, to_currency, rate_date) DO UPDATE SET
                rate = excluded.rate,
                fetched_at = excluded.fetched_at
            """,
            (
                from_currency,
                to_currency,
                rate_date.isoformat() if rate_date else LATEST_RATE_KEY,
                str(rate),
                datetime.now().isoformat(),
            ),
            commit=True,
        )

    # ========================================================================
    # Balance history operations
    # ========================================================================

    def save_balance_snapshot(self, record: BalanceSnapshotRecord) -> int:
        """Save a computed balance summary."""
        _, row_id = self._execute(
            """
            INSERT INTO balance_snapshots (
                group_id, currency, balances, plan,
                has_mixed_currency_warning, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.group_id,
                record.currency,
                json.dumps(record.balances, sort_keys=True),
                json.dumps([s.model_dump() for s in record.plan]),
                int(record.has_mixed_currency_warning),
                record.created_at.isoformat(),
            ),
            commit=True,
        )
        if row_id is None:
            raise RuntimeError("Failed to insert balance snapshot")
        return row_id

    def get_balance_history(
        self, group_id: str, limit: int = 20
    ) -> list[BalanceSnapshotRecord]:
        """Get stored summaries for a group, newest first."""
        rows, _ = self._execute(
            """
            SELECT id, group_id, currency, balances, plan,
                   has_mixed_currency_warning, created_at
            FROM balance_snapshots
            WHERE group_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (group_id, limit),
        )
        return [self._row_to_snapshot(row) for row in rows]

    def get_latest_balance_snapshot(
        self, group_id: str
    ) -> BalanceSnapshotRecord | None:
        """Get the most recent stored summary for a group."""
        history = self.get_balance_history(group_id, limit=1)
        return history[0] if history else None

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> BalanceSnapshotRecord:
        return BalanceSnapshotRecord(
            id=row["id"],
            group_id=row["group_id"],
            currency=row["currency"],
            balances=json.loads(row["balances"]),
            plan=[SettlementSuggestion(**item) for item in json.loads(row["plan"])],
            has_mixed_currency_warning=bool(row["has_mixed_currency_warning"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
