"""SQLite storage session shared by the migration components."""

import sqlite3
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence
from contextlib import contextmanager

from ..core.interfaces import IStorageSession
from ..core.models import MediaType


logger = logging.getLogger(__name__)

LEGACY_TABLES: Dict[MediaType, str] = {
    MediaType.IMAGE: "images",
    MediaType.DOCUMENT: "docs",
}
UNIFIED_TABLE = "media"
LEDGER_TABLE = "migration_records"


class DatabaseError(Exception):
    """Base exception for database operations."""
    pass


class TransactionError(DatabaseError):
    """A run or rollback transaction failed and was rolled back in full."""
    pass


class DatabaseManager(IStorageSession):
    """Explicit storage session over one SQLite database file.

    The session is opened once at startup and closed at shutdown, and the same
    instance is handed to every component that needs the database:

        with DatabaseManager(db_path) as db:
            SchemaMigrator(db, ...).run()
            VerificationAuditor(db).check()
    """

    def __init__(self, db_path: Path):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def open(self) -> "DatabaseManager":
        """Open the connection, creating the database file if needed."""
        if self._conn is not None:
            return self

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # isolation_level=None: transactions are only opened explicitly
            conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {self.db_path}: {e}")
            raise DatabaseError(f"Failed to open database {self.db_path}: {e}")

        self._conn = conn
        logger.debug(f"Opened database: {self.db_path}")
        return self

    def close(self) -> None:
        """Close the connection if it is open."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.debug(f"Closed database: {self.db_path}")

    def __enter__(self) -> "DatabaseManager":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("Database session is not open")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block in a single write transaction.

        Commits on success. Any exception rolls the whole transaction back;
        sqlite errors are re-raised as TransactionError.
        """
        conn = self.connection
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to begin transaction: {e}") from e

        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Transaction rolled back: {e}")
            raise TransactionError(f"Database operation failed: {e}") from e
        except BaseException:
            conn.rollback()
            logger.error("Transaction rolled back")
            raise

        try:
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise TransactionError(f"Failed to commit transaction: {e}") from e

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read query and return all rows."""
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Query failed: {e}")
            raise DatabaseError(f"Query failed: {e}") from e

    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return bool(rows)

    def count(self, table: str) -> int:
        """Count rows in a table."""
        return self.query(f"SELECT COUNT(*) FROM {table}")[0][0]

    def create_legacy_tables(self) -> None:
        """Create the legacy ``images`` and ``docs`` tables if absent.

        These belong to the surrounding application; this only bootstraps a
        fresh database with the same layout the application creates.
        """
        with self.transaction() as conn:
            for table in LEGACY_TABLES.values():
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        created_at DATETIME,
                        updated_at DATETIME,
                        deleted_at DATETIME,
                        file_name TEXT NOT NULL UNIQUE,
                        checksum BLOB
                    )
                """)
                conn.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_deleted_at
                    ON {table}(deleted_at)
                """)

    def get_storage_stats(self) -> Dict[str, Any]:
        """Row counts for the tables this package deals with.

        Missing tables are reported as None.
        """
        stats: Dict[str, Any] = {}
        for table in (*LEGACY_TABLES.values(), UNIFIED_TABLE, LEDGER_TABLE):
            stats[table] = self.count(table) if self.table_exists(table) else None
        stats['database_size'] = self.db_path.stat().st_size if self.db_path.exists() else 0
        return stats
