"""Core interfaces and abstract base classes for Media Unify."""

import sqlite3
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import BackupArtifact, FileMigrationResult, VerificationReport


class IStorageSession(ABC):
    """Transactional relational storage handle supplied to each component."""

    @abstractmethod
    def open(self) -> "IStorageSession":
        """Open the underlying connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the underlying connection."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Context manager yielding a connection inside one transaction."""
        pass

    @abstractmethod
    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read query outside of any explicit transaction."""
        pass

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""
        pass


class IFileMigrator(ABC):
    """Interface for moving upload files between directory layouts."""

    @abstractmethod
    def run(self) -> FileMigrationResult:
        """Copy legacy files into the unified directory."""
        pass

    @abstractmethod
    def rollback(self) -> FileMigrationResult:
        """Copy unified files back into the legacy directories."""
        pass

    @abstractmethod
    def cleanup_legacy_files(self) -> FileMigrationResult:
        """Delete every file from the legacy directories."""
        pass


class IBackupManager(ABC):
    """Interface for database file backups."""

    @abstractmethod
    def create_backup(self) -> Path:
        """Create and verify a backup, returning its path."""
        pass

    @abstractmethod
    def restore_backup(self, backup_path: Path) -> None:
        """Replace the live database with a verified backup."""
        pass

    @abstractmethod
    def list_backups(self) -> List[BackupArtifact]:
        """List available backups."""
        pass

    @abstractmethod
    def delete_backup(self, backup_path: Path) -> None:
        """Delete one backup."""
        pass


class IVerificationAuditor(ABC):
    """Interface for post-migration invariant checks."""

    @abstractmethod
    def audit(self) -> VerificationReport:
        """Run every check and return the aggregated report."""
        pass


class IConfigManager(ABC):
    """Interface for configuration management."""

    @abstractmethod
    def load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load configuration from file."""
        pass

    @abstractmethod
    def save_config(self, config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
        """Save configuration to file."""
        pass

    @abstractmethod
    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        pass

    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """Validate configuration and return any errors."""
        pass
