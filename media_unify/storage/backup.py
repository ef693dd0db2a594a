"""Timestamped, verified copies of the SQLite database file."""

import os
import shutil
import sqlite3
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.config import ConfigurationError
from ..core.interfaces import IBackupManager
from ..core.models import (
    BACKUP_PREFIX, BACKUP_SUFFIX, BACKUP_TIMESTAMP_FORMAT, BackupArtifact
)


logger = logging.getLogger(__name__)


class BackupIntegrityError(Exception):
    """A backup copy could not be opened as a database."""
    pass


class BackupManager(IBackupManager):
    """Creates, verifies, restores and prunes database backups."""

    def __init__(self, primary_db_path: Path, backup_dir: Path,
                 fallback_db_path: Optional[Path] = None,
                 safety_backup_on_restore: bool = True):
        """Initialize backup manager.

        Args:
            primary_db_path: Expected database location under the data root
            backup_dir: Directory that holds backup files
            fallback_db_path: Location tried when the primary one is absent
            safety_backup_on_restore: Back up the live database before a restore
        """
        self.primary_db_path = primary_db_path
        self.fallback_db_path = fallback_db_path
        self.backup_dir = backup_dir
        self.safety_backup_on_restore = safety_backup_on_restore

    def locate_database(self) -> Path:
        """Find the live database file.

        Raises:
            ConfigurationError: If neither candidate path exists
        """
        candidates = [self.primary_db_path]
        if self.fallback_db_path is not None and self.fallback_db_path != self.primary_db_path:
            candidates.append(self.fallback_db_path)

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        tried = ", ".join(str(c) for c in candidates)
        raise ConfigurationError(f"Database file not found (tried: {tried})")

    def create_backup(self) -> Path:
        """Copy the live database into the backup directory and verify it.

        Returns:
            Path of the verified backup file

        Raises:
            ConfigurationError: If the database cannot be located
            BackupIntegrityError: If the copy fails or does not verify; the
                partial copy is removed
        """
        db_path = self.locate_database()
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create backup directory {self.backup_dir}: {e}") from e

        backup_path = self._next_backup_path()
        logger.info(f"Creating database backup: {db_path} -> {backup_path}")

        try:
            shutil.copyfile(db_path, backup_path)
        except OSError as e:
            self._discard(backup_path)
            raise BackupIntegrityError(f"Failed to copy database to {backup_path}: {e}") from e

        try:
            self.verify_backup(backup_path)
        except BackupIntegrityError:
            self._discard(backup_path)
            raise

        logger.info(f"Database backup created: {backup_path}")
        return backup_path

    def verify_backup(self, backup_path: Path) -> None:
        """Open a backup read-only and run a query that touches the file.

        Raises:
            BackupIntegrityError: If the file is not a usable database
        """
        uri = f"{backup_path.resolve().as_uri()}?mode=ro"
        conn = None
        try:
            conn = sqlite3.connect(uri, uri=True)
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            raise BackupIntegrityError(f"Backup verification failed for {backup_path}: {e}") from e
        finally:
            if conn is not None:
                conn.close()
        logger.debug(f"Backup verified: {backup_path}")

    def restore_backup(self, backup_path: Path) -> None:
        """Replace the live database with a backup.

        Open sessions on the live database should be closed first.

        Raises:
            ConfigurationError: If the backup file does not exist
            BackupIntegrityError: If the backup does not verify or cannot be
                written into place
        """
        if not backup_path.is_file():
            raise ConfigurationError(f"Backup file not found: {backup_path}")

        self.verify_backup(backup_path)

        target = self._restore_target()
        if self.safety_backup_on_restore and target.is_file():
            try:
                safety = self.create_backup()
                logger.info(f"Safety backup of current database: {safety}")
            except (ConfigurationError, BackupIntegrityError) as e:
                logger.warning(f"Could not create safety backup before restore: {e}")

        temp_path = target.with_name(f".{target.name}.restoring")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(backup_path, temp_path)
            os.replace(temp_path, target)
        except OSError as e:
            self._discard(temp_path)
            raise BackupIntegrityError(f"Failed to restore {backup_path} to {target}: {e}") from e

        logger.info(f"Database restored from backup: {backup_path}")

    def list_backups(self) -> List[BackupArtifact]:
        """Backups in the backup directory, oldest first."""
        if not self.backup_dir.is_dir():
            return []

        artifacts = []
        for path in self.backup_dir.iterdir():
            if not path.is_file():
                continue
            artifact = BackupArtifact.from_path(path)
            if artifact is not None:
                artifacts.append(artifact)

        artifacts.sort(key=lambda a: (a.created_at, a.path.name))
        return artifacts

    def delete_backup(self, backup_path: Path) -> None:
        """Delete a backup file.

        Raises:
            ConfigurationError: If the path is not an existing file inside the
                backup directory
        """
        resolved = backup_path.resolve()
        if not resolved.is_file():
            raise ConfigurationError(f"Backup file not found: {backup_path}")
        if resolved.parent != self.backup_dir.resolve():
            raise ConfigurationError(f"{backup_path} is not inside backup directory {self.backup_dir}")

        try:
            resolved.unlink()
        except OSError as e:
            raise ConfigurationError(f"Failed to delete backup {backup_path}: {e}") from e
        logger.info(f"Deleted backup: {backup_path}")

    def _restore_target(self) -> Path:
        try:
            return self.locate_database()
        except ConfigurationError:
            return self.primary_db_path

    def _next_backup_path(self) -> Path:
        """Timestamped name, with a numeric suffix if taken."""
        stamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"
        seq = 1
        while candidate.exists():
            candidate = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{seq}{BACKUP_SUFFIX}"
            seq += 1
        return candidate

    def _discard(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")


def build_backup_manager(settings) -> BackupManager:
    """Create a BackupManager from resolved settings."""
    return BackupManager(
        primary_db_path=settings.db_path,
        backup_dir=settings.backup_dir,
        fallback_db_path=settings.fallback_db_path,
        safety_backup_on_restore=settings.safety_backup_on_restore,
    )
