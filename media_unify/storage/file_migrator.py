"""Copies upload files between the legacy and unified directory layouts."""

import os
import shutil
import logging
from pathlib import Path
from typing import Dict, List

from ..core.file_types import classify_file
from ..core.interfaces import IFileMigrator
from ..core.models import FileMigrationResult, MediaType


logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".migrating"


class FileIOError(Exception):
    """Exception raised when a directory or file cannot be read or written."""
    pass


class FileMigrator(IFileMigrator):
    """Moves files from ``images``/``docs`` into ``media`` and back.

    Copies never overwrite: a destination file that already exists is left
    alone, so an interrupted pass can simply be run again.
    """

    def __init__(self, images_dir: Path, docs_dir: Path, media_dir: Path,
                 progress_interval: int = 100):
        """Initialize file migrator.

        Args:
            images_dir: Legacy image upload directory
            docs_dir: Legacy document upload directory
            media_dir: Unified upload directory
            progress_interval: Log progress every this many files
        """
        self.images_dir = images_dir
        self.docs_dir = docs_dir
        self.media_dir = media_dir
        self.progress_interval = progress_interval

    @property
    def legacy_dirs(self) -> Dict[MediaType, Path]:
        return {
            MediaType.IMAGE: self.images_dir,
            MediaType.DOCUMENT: self.docs_dir,
        }

    def run(self) -> FileMigrationResult:
        """Copy every legacy file into the unified directory.

        Raises:
            FileIOError: If the media directory cannot be created or a
                legacy directory cannot be listed
        """
        logger.info("Starting file migration to unified media directory...")
        self._ensure_dir(self.media_dir)

        result = FileMigrationResult()
        for media_type, source_dir in self.legacy_dirs.items():
            result.merge(self._migrate_directory(source_dir, media_type))

        logger.info(
            f"File migration finished: {len(result.copied)} copied, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result

    def rollback(self) -> FileMigrationResult:
        """Copy files from the unified directory back to the legacy ones.

        Raises:
            FileIOError: If a legacy directory cannot be created or the media
                directory cannot be listed
        """
        logger.info("Starting file migration rollback...")
        for directory in self.legacy_dirs.values():
            self._ensure_dir(directory)

        result = FileMigrationResult()
        if not self.media_dir.exists():
            logger.info(f"Media directory {self.media_dir} does not exist, nothing to roll back")
            return result

        files = self._list_files(self.media_dir)
        if not files:
            logger.info("No files found in media directory, nothing to roll back")
            return result

        logger.info(f"Found {len(files)} files to roll back")
        for i, source in enumerate(files):
            media_type = classify_file(source)
            dest_dir = self.legacy_dirs.get(media_type) if media_type else None

            if dest_dir is None:
                kind = media_type.value if media_type else "unknown"
                logger.warning(f"Unsupported media type ({kind}) for file {source.name}, skipping")
                result.unsupported.append(source.name)
            else:
                self._copy_one(source, dest_dir / source.name, result)

            self._log_progress(i, len(files), "Rolled back", "files")

        logger.info(
            f"File rollback finished: {len(result.copied)} copied, "
            f"{len(result.skipped)} skipped, {len(result.unsupported)} unsupported, "
            f"{len(result.failed)} failed"
        )
        return result

    def cleanup_legacy_files(self) -> FileMigrationResult:
        """Delete every file from both legacy directories.

        This cannot be undone. It is never called by run() or rollback();
        callers should only invoke it after verification has passed.
        """
        logger.info("Starting cleanup of legacy files...")
        result = FileMigrationResult()

        for directory in self.legacy_dirs.values():
            if not directory.exists():
                logger.info(f"Directory {directory} does not exist, skipping cleanup")
                continue

            files = self._list_files(directory)
            if not files:
                logger.info(f"No files found in {directory}, nothing to clean up")
                continue

            logger.info(f"Cleaning up {len(files)} files from {directory}")
            for i, path in enumerate(files):
                try:
                    path.unlink()
                    result.removed.append(path.name)
                except OSError as e:
                    logger.warning(f"Failed to remove file {path.name}: {e}")
                    result.failed[path.name] = str(e)
                self._log_progress(i, len(files), "Cleaned up", f"files from {directory}")

        logger.info(f"Legacy cleanup finished: {len(result.removed)} removed, {len(result.failed)} failed")
        return result

    def _migrate_directory(self, source_dir: Path, media_type: MediaType) -> FileMigrationResult:
        result = FileMigrationResult()
        label = media_type.value

        if not source_dir.exists():
            logger.info(f"Source directory {source_dir} does not exist, skipping {label} file migration")
            return result

        files = self._list_files(source_dir)
        if not files:
            logger.info(f"No files found in {source_dir}, skipping {label} file migration")
            return result

        logger.info(f"Found {len(files)} {label} files to migrate")
        for i, source in enumerate(files):
            self._copy_one(source, self.media_dir / source.name, result)
            self._log_progress(i, len(files), "Migrated", f"{label} files")

        return result

    def _copy_one(self, source: Path, dest: Path, result: FileMigrationResult) -> None:
        """Copy one file, recording the outcome instead of raising."""
        if dest.exists():
            logger.warning(f"File {dest.name} already exists in {dest.parent}, skipping")
            result.skipped.append(source.name)
            return

        try:
            self.copy_file(source, dest)
            result.copied.append(source.name)
        except FileIOError as e:
            logger.warning(f"Failed to copy file {source.name}: {e}")
            result.failed[source.name] = str(e)

    def copy_file(self, source: Path, dest: Path) -> None:
        """Copy ``source`` to ``dest`` with its permission bits.

        Data goes to a temporary sibling first and is renamed into place, so
        ``dest`` either does not exist or holds the complete file.

        Raises:
            FileIOError: If the copy fails; no partial file is left behind
        """
        temp_path = dest.with_name(f".{dest.name}{TEMP_SUFFIX}")
        try:
            with open(source, 'rb') as src, open(temp_path, 'wb') as dst:
                shutil.copyfileobj(src, dst)
            shutil.copymode(source, temp_path)
            if dest.exists():
                raise FileIOError(f"{dest} appeared during copy")
            os.replace(temp_path, dest)
        except (OSError, FileIOError) as e:
            if temp_path.exists():
                temp_path.unlink()
            if isinstance(e, FileIOError):
                raise
            raise FileIOError(f"Failed to copy {source} to {dest}: {e}") from e

    def _list_files(self, directory: Path) -> List[Path]:
        """Regular files in a directory, sorted by name, without temp files."""
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            raise FileIOError(f"Failed to read directory {directory}: {e}") from e
        return [p for p in entries if p.is_file() and not p.name.endswith(TEMP_SUFFIX)]

    def _ensure_dir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileIOError(f"Failed to create directory {directory}: {e}") from e

    def _log_progress(self, index: int, total: int, verb: str, noun: str) -> None:
        if (index + 1) % self.progress_interval == 0 or index == total - 1:
            logger.info(f"{verb} {index + 1}/{total} {noun}")


def build_file_migrator(settings) -> FileMigrator:
    """Create a FileMigrator from resolved settings."""
    return FileMigrator(
        images_dir=settings.images_dir,
        docs_dir=settings.docs_dir,
        media_dir=settings.media_dir,
        progress_interval=settings.progress_interval,
    )
