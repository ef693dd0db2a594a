"""Core data models and type definitions for Media Unify."""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


# Type aliases for better readability
Checksum = bytes
MigrationName = str

MEDIA_MIGRATION_NAME: MigrationName = "media_unification_2024"
FILES_MIGRATION_NAME: MigrationName = "media_unification_2024_files"

BACKUP_PREFIX = "db_backup_"
BACKUP_SUFFIX = ".db"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

_BACKUP_NAME_RE = re.compile(
    r"^db_backup_(?P<stamp>\d{8}-\d{6})(?:-(?P<seq>\d+))?\.db$"
)


class MediaType(Enum):
    """Kinds of media the surrounding application knows about."""
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


# Only these two have legacy tables and legacy upload directories.
MIGRATABLE_TYPES = (MediaType.IMAGE, MediaType.DOCUMENT)


@dataclass
class LegacyRecord:
    """A row of the legacy ``images`` or ``docs`` table."""
    id: int
    file_name: str
    checksum: Optional[Checksum]
    media_type: MediaType
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None


@dataclass
class UnifiedRecord:
    """A row of the unified ``media`` table."""
    file_name: str
    checksum: Optional[Checksum]
    media_type: MediaType
    id: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None

    @classmethod
    def from_legacy(cls, record: LegacyRecord) -> "UnifiedRecord":
        """Build the unified counterpart of a legacy record.

        Dimensions are left unset; they are only filled in by explicit
        measurement elsewhere in the application.
        """
        return cls(
            file_name=record.file_name,
            checksum=record.checksum,
            media_type=record.media_type,
            created_at=record.created_at,
            updated_at=record.updated_at,
            deleted_at=record.deleted_at,
        )


@dataclass
class LedgerEntry:
    """Completion marker for a named migration."""
    id: int
    name: MigrationName
    completed: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class BackupArtifact:
    """A verified, timestamped copy of the database file."""
    path: Path
    created_at: datetime
    size_bytes: int

    @classmethod
    def from_path(cls, path: Path) -> Optional["BackupArtifact"]:
        """Parse a backup file name, returning None for foreign files."""
        match = _BACKUP_NAME_RE.match(path.name)
        if not match:
            return None
        created_at = datetime.strptime(match.group("stamp"), BACKUP_TIMESTAMP_FORMAT)
        size = path.stat().st_size if path.exists() else 0
        return cls(path=path, created_at=created_at, size_bytes=size)


@dataclass
class FileMigrationResult:
    """Outcome of a file copy, rollback or cleanup pass."""
    copied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    unsupported: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    def merge(self, other: "FileMigrationResult") -> None:
        self.copied.extend(other.copied)
        self.skipped.extend(other.skipped)
        self.failed.update(other.failed)
        self.unsupported.extend(other.unsupported)
        self.removed.extend(other.removed)


@dataclass
class MigrationResult:
    """Outcome of SchemaMigrator.run() or SchemaMigrator.rollback()."""
    action: str  # "run" or "rollback"
    skipped: bool = False
    images_migrated: int = 0
    documents_migrated: int = 0
    file_result: Optional[FileMigrationResult] = None
    file_error: Optional[str] = None

    @property
    def records_migrated(self) -> int:
        return self.images_migrated + self.documents_migrated


@dataclass
class Mismatch:
    """A single verification failure."""
    category: str
    detail: str


@dataclass
class VerificationReport:
    """Aggregated result of a verification pass."""
    image_count: int = 0
    document_count: int = 0
    unified_count: int = 0
    mismatches: List[Mismatch] = field(default_factory=list)
    checks_run: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches

    def add(self, category: str, detail: str) -> None:
        self.mismatches.append(Mismatch(category=category, detail=detail))

    def by_category(self) -> Dict[str, List[Mismatch]]:
        """Group mismatches by category, in the order first seen."""
        grouped: Dict[str, List[Mismatch]] = OrderedDict()
        for mismatch in self.mismatches:
            grouped.setdefault(mismatch.category, []).append(mismatch)
        return grouped

    def count(self, category: str) -> int:
        return sum(1 for m in self.mismatches if m.category == category)

    def summary(self) -> str:
        if self.passed:
            return "all verification checks passed"
        parts = [f"{category}: {len(items)}" for category, items in self.by_category().items()]
        return f"{len(self.mismatches)} verification errors found ({', '.join(parts)})"


@dataclass
class MigrationStatus:
    """Ledger flags that gate switching readers to the unified layout."""
    records_migrated: bool
    files_migrated: bool

    def cutover_ready(self, report: Optional[VerificationReport]) -> bool:
        """Both flags set and a passing verification report in hand."""
        return (self.records_migrated and self.files_migrated
                and report is not None and report.passed)
