"""Configuration management for Media Unify."""

import logging
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict

from .interfaces import IConfigManager
from .models import MEDIA_MIGRATION_NAME, FILES_MIGRATION_NAME


logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigurationError(Exception):
    """Raised when the database or a configured path cannot be resolved."""
    pass


@dataclass
class PathsConfig:
    """Directory layout of the application being migrated."""
    data_root: Optional[str] = None  # None means the project root
    db_folder: str = "db_data"
    db_name: str = "main.db"
    uploads_folder: str = "uploads"
    images_folder: str = "images"
    docs_folder: str = "docs"
    media_folder: str = "media"
    backup_folder: str = "backups"


@dataclass
class MigrationConfig:
    """Migration ledger and progress settings."""
    name: str = MEDIA_MIGRATION_NAME
    files_flag_name: str = FILES_MIGRATION_NAME
    progress_interval: int = 100
    migrate_files: bool = True


@dataclass
class BackupConfig:
    """Backup behaviour."""
    backup_before_migration: bool = True
    safety_backup_on_restore: bool = True


@dataclass
class LoggingConfig:
    """Logging output."""
    level: str = "INFO"


@dataclass
class UnifyConfig:
    """Complete configuration for Media Unify."""
    paths: PathsConfig
    migration: MigrationConfig
    backup: BackupConfig
    logging: LoggingConfig

    def __init__(self):
        self.paths = PathsConfig()
        self.migration = MigrationConfig()
        self.backup = BackupConfig()
        self.logging = LoggingConfig()


@dataclass
class UnifySettings:
    """Configuration resolved against a project root into absolute paths."""
    db_path: Path
    fallback_db_path: Path
    backup_dir: Path
    images_dir: Path
    docs_dir: Path
    media_dir: Path
    migration_name: str
    files_flag_name: str
    progress_interval: int
    migrate_files: bool
    backup_before_migration: bool
    safety_backup_on_restore: bool
    log_level: str


class ConfigManager(IConfigManager):
    """Manages configuration loading, saving, and validation."""

    DEFAULT_CONFIG_NAME = "media-unify.yml"

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = project_root or Path.cwd()
        self.config_path = self.project_root / self.DEFAULT_CONFIG_NAME

    def load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        path = config_path or self.config_path

        if not path.exists():
            return self.get_default_config()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return self.get_default_config()

        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config at {path}: top level is not a mapping")
            return self.get_default_config()

        # Merge with defaults to ensure all keys are present
        return self._merge_configs(self.get_default_config(), config_data)

    def save_config(self, config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
        """Save configuration to YAML file."""
        path = config_path or self.config_path

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                yaml.dump(config, f, default_flow_style=False, indent=2)
            return True
        except OSError as e:
            logger.error(f"Failed to save config to {path}: {e}")
            return False

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        default_config = UnifyConfig()
        return {
            'paths': asdict(default_config.paths),
            'migration': asdict(default_config.migration),
            'backup': asdict(default_config.backup),
            'logging': asdict(default_config.logging),
        }

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """Validate configuration and return any errors."""
        errors = []

        for section in ('paths', 'migration', 'backup', 'logging'):
            value = config.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"{section} must be a mapping")
        if errors:
            return errors

        paths = config.get('paths') or {}
        for key in ('db_folder', 'db_name', 'uploads_folder', 'images_folder',
                    'docs_folder', 'media_folder', 'backup_folder'):
            if not paths.get(key):
                errors.append(f"paths.{key} must not be empty")

        folders = [paths.get('images_folder'), paths.get('docs_folder'), paths.get('media_folder')]
        if all(folders) and len(set(folders)) != len(folders):
            errors.append("paths.images_folder, paths.docs_folder and paths.media_folder must differ")

        migration = config.get('migration') or {}
        if not migration.get('name'):
            errors.append("migration.name must not be empty")
        if migration.get('files_flag_name') == migration.get('name'):
            errors.append("migration.files_flag_name must differ from migration.name")

        interval = migration.get('progress_interval', 100)
        if not isinstance(interval, int) or interval <= 0:
            errors.append("migration.progress_interval must be greater than 0")

        level = str((config.get('logging') or {}).get('level', 'INFO')).upper()
        if level not in VALID_LOG_LEVELS:
            errors.append(f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}")

        return errors

    def resolve_settings(self, config: Dict[str, Any], cwd: Optional[Path] = None) -> UnifySettings:
        """Turn a (validated) config dict into absolute paths and flags.

        Raises:
            ConfigurationError: If the config does not validate
        """
        errors = self.validate_config(config)
        if errors:
            raise ConfigurationError("; ".join(errors))

        paths = config['paths']
        migration = config['migration']
        backup = config.get('backup') or {}

        data_root = Path(paths['data_root']) if paths.get('data_root') else self.project_root
        if not data_root.is_absolute():
            data_root = self.project_root / data_root
        cwd = cwd or Path.cwd()

        uploads = data_root / paths['uploads_folder']
        return UnifySettings(
            db_path=data_root / paths['db_folder'] / paths['db_name'],
            fallback_db_path=cwd / paths['db_folder'] / paths['db_name'],
            backup_dir=data_root / paths['backup_folder'],
            images_dir=uploads / paths['images_folder'],
            docs_dir=uploads / paths['docs_folder'],
            media_dir=uploads / paths['media_folder'],
            migration_name=migration['name'],
            files_flag_name=migration['files_flag_name'],
            progress_interval=migration['progress_interval'],
            migrate_files=bool(migration.get('migrate_files', True)),
            backup_before_migration=bool(backup.get('backup_before_migration', True)),
            safety_backup_on_restore=bool(backup.get('safety_backup_on_restore', True)),
            log_level=str((config.get('logging') or {}).get('level', 'INFO')).upper(),
        )

    def _merge_configs(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with default config."""
        result = default.copy()

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def create_default_config_file(self) -> bool:
        """Create a default configuration file."""
        return self.save_config(self.get_default_config())

    def get_config_path(self) -> Path:
        """Get the path to the configuration file."""
        return self.config_path
