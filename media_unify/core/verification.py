"""Post-migration checks that legacy and unified tables agree."""

import logging
from typing import Dict

from .interfaces import IVerificationAuditor
from .models import MEDIA_MIGRATION_NAME, MIGRATABLE_TYPES, MediaType, MigrationName, VerificationReport
from ..storage.database import DatabaseManager, LEGACY_TABLES, UNIFIED_TABLE
from ..storage.ledger import MigrationLedger


logger = logging.getLogger(__name__)

MISSING_TABLE = "missing_table"
COUNT_MISMATCH = "count_mismatch"
MISSING_MIGRATED_RECORD = "missing_migrated_record"
CHECKSUM_MISMATCH = "checksum_mismatch"
ORPHANED_RECORD = "orphaned_record"
UNKNOWN_TYPE = "unknown_type"
LEDGER_INCOMPLETE = "ledger_incomplete"


class VerificationMismatch(Exception):
    """Raised by check() when the audit found mismatches."""

    def __init__(self, report: VerificationReport):
        super().__init__(report.summary())
        self.report = report


class VerificationAuditor(IVerificationAuditor):
    """Compares the unified table against the legacy tables.

    The auditor only reads. Every check runs even after earlier ones fail, so
    the report lists all problems at once.
    """

    def __init__(self, db_manager: DatabaseManager,
                 migration_name: MigrationName = MEDIA_MIGRATION_NAME):
        self.db_manager = db_manager
        self.migration_name = migration_name
        self.ledger = MigrationLedger()

    def audit(self) -> VerificationReport:
        """Run all checks and return the report."""
        logger.info("Starting migration verification...")
        report = VerificationReport()

        present = self._check_tables(report)
        unified_present = present[UNIFIED_TABLE]
        legacy_present = {t: present[LEGACY_TABLES[t]] for t in MIGRATABLE_TYPES}

        if present[LEGACY_TABLES[MediaType.IMAGE]]:
            report.image_count = self.db_manager.count(LEGACY_TABLES[MediaType.IMAGE])
        if present[LEGACY_TABLES[MediaType.DOCUMENT]]:
            report.document_count = self.db_manager.count(LEGACY_TABLES[MediaType.DOCUMENT])
        if unified_present:
            report.unified_count = self.db_manager.count(UNIFIED_TABLE)

        if unified_present and all(legacy_present.values()):
            self._check_counts(report)

        if unified_present:
            for media_type in MIGRATABLE_TYPES:
                if legacy_present[media_type]:
                    self._check_legacy_records(report, media_type)
                    self._check_orphans(report, media_type)
            self._check_unknown_types(report)
            self._warn_dimensions()

        self._check_ledger(report)

        if report.passed:
            logger.info("Verification passed: all checks succeeded")
        else:
            logger.warning(f"Verification failed: {report.summary()}")
        return report

    def check(self) -> VerificationReport:
        """Run audit() and raise if anything mismatched.

        Raises:
            VerificationMismatch: Carrying the full report
        """
        report = self.audit()
        if not report.passed:
            raise VerificationMismatch(report)
        return report

    def _check_tables(self, report: VerificationReport) -> Dict[str, bool]:
        report.checks_run.append("tables")
        present = {}
        for table in (UNIFIED_TABLE, *LEGACY_TABLES.values()):
            present[table] = self.db_manager.table_exists(table)
            if not present[table]:
                report.add(MISSING_TABLE, f"table '{table}' does not exist")
        return present

    def _check_counts(self, report: VerificationReport) -> None:
        report.checks_run.append("counts")
        expected = report.image_count + report.document_count
        logger.info(
            f"Counts: {report.image_count} images + {report.document_count} docs "
            f"= {expected}, media has {report.unified_count}"
        )
        if report.unified_count != expected:
            report.add(
                COUNT_MISMATCH,
                f"media has {report.unified_count} rows, expected {expected} "
                f"({report.image_count} images + {report.document_count} docs)"
            )

    def _check_legacy_records(self, report: VerificationReport, media_type: MediaType) -> None:
        """Every legacy row has a unified row with the same name, type and checksum."""
        table = LEGACY_TABLES[media_type]
        report.checks_run.append(f"{table}_migrated")

        rows = self.db_manager.query(f"""
            SELECT l.id AS legacy_id, l.file_name, l.checksum AS legacy_checksum,
                   m.id AS media_id, m.checksum AS media_checksum
            FROM {table} l
            LEFT JOIN {UNIFIED_TABLE} m
                ON m.file_name = l.file_name AND m.type = ?
            ORDER BY l.id
        """, (media_type.value,))

        for row in rows:
            if row['media_id'] is None:
                report.add(
                    MISSING_MIGRATED_RECORD,
                    f"{media_type.value} '{row['file_name']}' (id {row['legacy_id']}) has no media record"
                )
            elif row['legacy_checksum'] != row['media_checksum']:
                report.add(
                    CHECKSUM_MISMATCH,
                    f"{media_type.value} '{row['file_name']}' checksum differs from media record {row['media_id']}"
                )

    def _check_orphans(self, report: VerificationReport, media_type: MediaType) -> None:
        table = LEGACY_TABLES[media_type]
        report.checks_run.append(f"{table}_orphans")

        rows = self.db_manager.query(f"""
            SELECT m.id, m.file_name FROM {UNIFIED_TABLE} m
            WHERE m.type = ?
              AND NOT EXISTS (SELECT 1 FROM {table} l WHERE l.file_name = m.file_name)
            ORDER BY m.id
        """, (media_type.value,))

        for row in rows:
            report.add(
                ORPHANED_RECORD,
                f"media record {row['id']} ('{row['file_name']}', {media_type.value}) has no {table} record"
            )

    def _check_unknown_types(self, report: VerificationReport) -> None:
        report.checks_run.append("types")
        known = tuple(t.value for t in MIGRATABLE_TYPES)
        placeholders = ", ".join("?" for _ in known)
        rows = self.db_manager.query(f"""
            SELECT id, file_name, type FROM {UNIFIED_TABLE}
            WHERE type NOT IN ({placeholders})
            ORDER BY id
        """, known)

        for row in rows:
            report.add(
                UNKNOWN_TYPE,
                f"media record {row['id']} ('{row['file_name']}') has unexpected type '{row['type']}'"
            )

    def _warn_dimensions(self) -> None:
        rows = self.db_manager.query(f"""
            SELECT COUNT(*) FROM {UNIFIED_TABLE}
            WHERE width IS NOT NULL OR height IS NOT NULL
        """)
        with_dimensions = rows[0][0]
        if with_dimensions:
            logger.warning(f"{with_dimensions} media records carry width/height values")

    def _check_ledger(self, report: VerificationReport) -> None:
        report.checks_run.append("ledger")
        entry = self.ledger.get(self.db_manager.connection, self.migration_name)
        if entry is None:
            report.add(LEDGER_INCOMPLETE, f"no ledger entry for '{self.migration_name}'")
        elif not entry.completed:
            report.add(LEDGER_INCOMPLETE, f"ledger entry '{self.migration_name}' is not completed")
