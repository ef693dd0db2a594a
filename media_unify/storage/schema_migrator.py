"""Transactional move of legacy image and document rows into the media table."""

import sqlite3
import logging
from typing import Iterator, Optional

from ..core.interfaces import IFileMigrator
from ..core.models import (
    FILES_MIGRATION_NAME, MEDIA_MIGRATION_NAME, LegacyRecord, MediaType,
    MigrationName, MigrationResult, MigrationStatus, UnifiedRecord
)
from .database import DatabaseError, DatabaseManager, LEGACY_TABLES, UNIFIED_TABLE
from .file_migrator import FileIOError
from .ledger import MigrationLedger


logger = logging.getLogger(__name__)

UNIQUE_INDEX_NAME = "idx_media_file_name_type"


class SchemaMigrator:
    """Runs and reverts the one-off media unification migration.

    The database phase of run() and rollback() each happens in a single
    transaction on the injected session. The file phase runs afterwards on
    the optional file migrator and can fail without undoing the database.
    """

    def __init__(self, db_manager: DatabaseManager,
                 file_migrator: Optional[IFileMigrator] = None,
                 migration_name: MigrationName = MEDIA_MIGRATION_NAME,
                 files_flag_name: MigrationName = FILES_MIGRATION_NAME,
                 progress_interval: int = 100):
        """Initialize schema migrator.

        Args:
            db_manager: Open storage session
            file_migrator: File phase to trigger after commit, if any
            migration_name: Ledger name of the record migration
            files_flag_name: Ledger name of the file migration flag
            progress_interval: Log progress every this many records
        """
        self.db_manager = db_manager
        self.file_migrator = file_migrator
        self.migration_name = migration_name
        self.files_flag_name = files_flag_name
        self.progress_interval = progress_interval
        self.ledger = MigrationLedger()

    def run(self) -> MigrationResult:
        """Migrate every legacy record into the unified table.

        Returns:
            Result describing what was migrated; ``skipped`` is set when the
            ledger already marks the migration as completed

        Raises:
            TransactionError: If any database step fails; nothing is committed
        """
        logger.info("Starting media unification migration...")
        result = MigrationResult(action="run")

        with self.db_manager.transaction() as conn:
            self.ledger.ensure_table(conn)

            if self.ledger.is_completed(conn, self.migration_name):
                logger.info("Media unification migration has already been completed. Skipping.")
                result.skipped = True
            else:
                logger.info("Step 1: Creating media table...")
                self._create_unified_table(conn)

                logger.info("Step 2: Migrating images data...")
                result.images_migrated = self._migrate_type(conn, MediaType.IMAGE)

                logger.info("Step 3: Migrating docs data...")
                result.documents_migrated = self._migrate_type(conn, MediaType.DOCUMENT)

                logger.info("Step 4: Marking migration as completed...")
                self.ledger.mark_completed(conn, self.migration_name)

        if result.skipped and self._files_migrated():
            return result

        if self.file_migrator is not None:
            logger.info("Step 5: Migrating files to unified directory...")
            self._run_file_phase(result)

        if not result.skipped:
            logger.info(
                f"Media unification migration completed successfully! "
                f"({result.images_migrated} images, {result.documents_migrated} documents)"
            )
        return result

    def rollback(self) -> MigrationResult:
        """Drop the unified table and clear the ledger entries.

        Raises:
            TransactionError: If any database step fails; nothing is committed
        """
        logger.info("Starting media unification migration rollback...")
        result = MigrationResult(action="rollback")

        with self.db_manager.transaction() as conn:
            if not self.ledger.is_completed(conn, self.migration_name):
                logger.info("Media unification migration has not been run. Nothing to roll back.")
                result.skipped = True
            else:
                logger.info("Step 1: Dropping media table...")
                conn.execute(f"DROP TABLE IF EXISTS {UNIFIED_TABLE}")

                logger.info("Step 2: Removing migration completion markers...")
                self.ledger.remove(conn, self.migration_name)
                self.ledger.remove(conn, self.files_flag_name)

        if result.skipped:
            return result

        if self.file_migrator is not None:
            logger.info("Step 3: Rolling back files to legacy directories...")
            try:
                result.file_result = self.file_migrator.rollback()
            except FileIOError as e:
                result.file_error = str(e)
                logger.warning(f"File rollback failed: {e}")
                logger.warning("Database rollback was successful, but you may need to run file rollback manually")

        logger.info("Media unification migration rollback completed successfully!")
        return result

    def status(self) -> MigrationStatus:
        """Read both ledger flags."""
        conn = self.db_manager.connection
        return MigrationStatus(
            records_migrated=self.ledger.is_completed(conn, self.migration_name),
            files_migrated=self.ledger.is_completed(conn, self.files_flag_name),
        )

    def mark_files_migrated(self) -> None:
        """Record that the file phase finished without failures."""
        with self.db_manager.transaction() as conn:
            self.ledger.ensure_table(conn)
            self.ledger.mark_completed(conn, self.files_flag_name)
        logger.info(f"Ledger flag set: {self.files_flag_name}")

    def _files_migrated(self) -> bool:
        return self.ledger.is_completed(self.db_manager.connection, self.files_flag_name)

    def _run_file_phase(self, result: MigrationResult) -> None:
        """Run the file migrator after commit; failures are warnings only."""
        try:
            result.file_result = self.file_migrator.run()
        except FileIOError as e:
            result.file_error = str(e)
            logger.warning(f"File migration failed: {e}")
            logger.warning("Database migration was successful, but you may need to run file migration manually")
            return

        if result.file_result.success:
            try:
                self.mark_files_migrated()
            except DatabaseError as e:
                result.file_error = f"files copied but ledger flag not recorded: {e}"
                logger.warning(f"Failed to record file migration flag: {e}")
                logger.warning("Re-run the migration to record it; copied files are skipped")
        else:
            failed = len(result.file_result.failed)
            result.file_error = f"{failed} files failed to copy"
            logger.warning(f"File migration finished with {failed} failed files; re-run the file migration to finish")

    def _create_unified_table(self, conn: sqlite3.Connection) -> None:
        """Create the media table and its (file_name, type) unique index.

        Rows that would violate the index are removed first, keeping the
        lowest id of each (file_name, type) group.
        """
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {UNIFIED_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at DATETIME,
                updated_at DATETIME,
                deleted_at DATETIME,
                file_name TEXT NOT NULL,
                checksum BLOB,
                type VARCHAR(20) NOT NULL DEFAULT 'document',
                width INTEGER DEFAULT NULL,
                height INTEGER DEFAULT NULL
            )
        """)

        removed = self._deduplicate_unified(conn)
        if removed:
            logger.warning(f"Removed {removed} duplicate media rows before creating unique index")

        conn.execute(f"""
            CREATE UNIQUE INDEX IF NOT EXISTS {UNIQUE_INDEX_NAME}
            ON {UNIFIED_TABLE}(file_name, type)
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_media_deleted_at
            ON {UNIFIED_TABLE}(deleted_at)
        """)
        logger.info("Media table created successfully")

    def _deduplicate_unified(self, conn: sqlite3.Connection) -> int:
        cursor = conn.execute(f"""
            DELETE FROM {UNIFIED_TABLE}
            WHERE id NOT IN (
                SELECT MIN(id) FROM {UNIFIED_TABLE} GROUP BY file_name, type
            )
        """)
        return cursor.rowcount

    def _migrate_type(self, conn: sqlite3.Connection, media_type: MediaType) -> int:
        """Copy every row of one legacy table into the media table."""
        table = LEGACY_TABLES[media_type]
        label = "images" if media_type is MediaType.IMAGE else "documents"

        total = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        logger.info(f"Found {total} {label} to migrate")

        migrated = 0
        for record in self._iter_legacy(conn, media_type):
            self._insert_unified(conn, UnifiedRecord.from_legacy(record))
            migrated += 1

            if migrated % self.progress_interval == 0 or migrated == total:
                logger.info(f"Migrated {migrated}/{total} {label}")

        logger.info(f"All {label} migrated successfully")
        return migrated

    def _iter_legacy(self, conn: sqlite3.Connection, media_type: MediaType) -> Iterator[LegacyRecord]:
        """Stream legacy rows in id order."""
        cursor = conn.execute(f"""
            SELECT id, file_name, checksum, created_at, updated_at, deleted_at
            FROM {LEGACY_TABLES[media_type]}
            ORDER BY id
        """)
        for row in cursor:
            yield LegacyRecord(
                id=row['id'],
                file_name=row['file_name'],
                checksum=row['checksum'],
                media_type=media_type,
                created_at=row['created_at'],
                updated_at=row['updated_at'],
                deleted_at=row['deleted_at'],
            )

    def _insert_unified(self, conn: sqlite3.Connection, record: UnifiedRecord) -> None:
        conn.execute(f"""
            INSERT INTO {UNIFIED_TABLE} (
                created_at, updated_at, deleted_at, file_name, checksum,
                type, width, height
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.created_at,
            record.updated_at,
            record.deleted_at,
            record.file_name,
            record.checksum,
            record.media_type.value,
            record.width,
            record.height,
        ))
