"""Named-migration ledger: one row per migration with a completed flag."""

import sqlite3
import logging
from datetime import datetime
from typing import Optional

from ..core.models import LedgerEntry, MigrationName
from .database import LEDGER_TABLE


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat(sep=' ')


class MigrationLedger:
    """Reads and writes ledger rows on a connection the caller owns.

    Every method takes the connection explicitly so it joins whatever
    transaction the caller has open.
    """

    def ensure_table(self, conn: sqlite3.Connection) -> None:
        """Create the ledger table if it does not exist."""
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                completed BOOLEAN NOT NULL DEFAULT 0,
                created_at DATETIME,
                updated_at DATETIME,
                deleted_at DATETIME
            )
        """)

    def table_exists(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (LEDGER_TABLE,),
        ).fetchone()
        return row is not None

    def get(self, conn: sqlite3.Connection, name: MigrationName) -> Optional[LedgerEntry]:
        """Fetch the ledger entry for a migration, if any."""
        if not self.table_exists(conn):
            return None

        row = conn.execute(f"""
            SELECT id, name, completed, created_at, updated_at
            FROM {LEDGER_TABLE} WHERE name = ?
        """, (name,)).fetchone()
        if row is None:
            return None

        return LedgerEntry(
            id=row['id'],
            name=row['name'],
            completed=bool(row['completed']),
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    def is_completed(self, conn: sqlite3.Connection, name: MigrationName) -> bool:
        entry = self.get(conn, name)
        return entry is not None and entry.completed

    def mark_completed(self, conn: sqlite3.Connection, name: MigrationName) -> None:
        """Upsert the entry for ``name`` with completed set.

        A concurrent invocation may insert the same name between our update
        and insert; the unique constraint on ``name`` turns that into an
        IntegrityError, after which the existing row is updated instead.
        """
        now = _now()
        cursor = conn.execute(f"""
            UPDATE {LEDGER_TABLE} SET completed = 1, updated_at = ?
            WHERE name = ?
        """, (now, name))
        if cursor.rowcount > 0:
            logger.debug(f"Ledger entry updated: {name}")
            return

        try:
            conn.execute(f"""
                INSERT INTO {LEDGER_TABLE} (name, completed, created_at, updated_at)
                VALUES (?, 1, ?, ?)
            """, (name, now, now))
            logger.debug(f"Ledger entry created: {name}")
        except sqlite3.IntegrityError:
            logger.info(f"Ledger entry {name} was created concurrently, re-reading")
            conn.execute(f"""
                UPDATE {LEDGER_TABLE} SET completed = 1, updated_at = ?
                WHERE name = ?
            """, (now, name))

    def remove(self, conn: sqlite3.Connection, name: MigrationName) -> bool:
        """Delete the entry for ``name``. Returns True if a row was removed."""
        if not self.table_exists(conn):
            return False
        cursor = conn.execute(f"DELETE FROM {LEDGER_TABLE} WHERE name = ?", (name,))
        return cursor.rowcount > 0
