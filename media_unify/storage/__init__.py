"""Storage layer components for the media unification migration."""

from .database import DatabaseManager, DatabaseError, TransactionError
from .ledger import MigrationLedger
from .file_migrator import FileMigrator, FileIOError, build_file_migrator
from .backup import BackupManager, BackupIntegrityError, build_backup_manager
from .schema_migrator import SchemaMigrator

__all__ = [
    'DatabaseManager',
    'DatabaseError',
    'TransactionError',
    'MigrationLedger',
    'FileMigrator',
    'FileIOError',
    'build_file_migrator',
    'BackupManager',
    'BackupIntegrityError',
    'build_backup_manager',
    'SchemaMigrator'
]
