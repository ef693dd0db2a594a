"""Tests for configuration management."""

import pytest
import tempfile
import yaml
from pathlib import Path

from media_unify.core.config import ConfigManager, ConfigurationError, UnifyConfig
from media_unify.core.models import FILES_MIGRATION_NAME, MEDIA_MIGRATION_NAME


class TestConfigManager:
    """Test cases for ConfigManager."""

    def test_default_config_creation(self):
        """Test that default configuration is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))

            default_config = config_manager.get_default_config()

            assert set(default_config) == {'paths', 'migration', 'backup', 'logging'}
            assert default_config['paths']['db_folder'] == 'db_data'
            assert default_config['paths']['db_name'] == 'main.db'
            assert default_config['migration']['name'] == MEDIA_MIGRATION_NAME
            assert default_config['migration']['files_flag_name'] == FILES_MIGRATION_NAME
            assert default_config['migration']['progress_interval'] == 100
            assert default_config['backup']['backup_before_migration'] is True
            assert default_config['logging']['level'] == 'INFO'

    def test_config_validation(self):
        """Test configuration validation."""
        config_manager = ConfigManager()

        valid_config = config_manager.get_default_config()
        assert config_manager.validate_config(valid_config) == []

        invalid_config = config_manager.get_default_config()
        invalid_config['paths']['media_folder'] = 'images'
        invalid_config['migration']['progress_interval'] = 0
        invalid_config['migration']['files_flag_name'] = invalid_config['migration']['name']
        invalid_config['logging']['level'] = 'LOUD'

        errors = config_manager.validate_config(invalid_config)
        assert any('must differ' in error and 'media_folder' in error for error in errors)
        assert any('progress_interval must be greater than 0' in error for error in errors)
        assert any('files_flag_name must differ' in error for error in errors)
        assert any('logging.level' in error for error in errors)

    def test_empty_path_is_rejected(self):
        config_manager = ConfigManager()
        config = config_manager.get_default_config()
        config['paths']['db_name'] = ''

        errors = config_manager.validate_config(config)
        assert "paths.db_name must not be empty" in errors

    def test_empty_section_is_reported_not_raised(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))
            config_manager.get_config_path().write_text("paths:\nmigration:\n")

            errors = config_manager.validate_config(config_manager.load_config())

            assert "paths.db_name must not be empty" in errors
            assert "migration.name must not be empty" in errors

    def test_non_mapping_section_is_rejected(self):
        config_manager = ConfigManager()
        config = config_manager.get_default_config()
        config['backup'] = ['yes']

        assert config_manager.validate_config(config) == ["backup must be a mapping"]
        with pytest.raises(ConfigurationError, match="backup must be a mapping"):
            config_manager.resolve_settings(config)

    def test_config_save_and_load(self):
        """Test saving and loading configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))

            config = config_manager.get_default_config()
            config['migration']['progress_interval'] = 25

            assert config_manager.save_config(config)
            assert config_manager.get_config_path().exists()

            loaded = config_manager.load_config()
            assert loaded['migration']['progress_interval'] == 25
            assert loaded == config

    def test_partial_config_is_merged_with_defaults(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))
            config_manager.get_config_path().write_text(
                yaml.dump({'paths': {'db_name': 'app.db'}})
            )

            loaded = config_manager.load_config()

            assert loaded['paths']['db_name'] == 'app.db'
            assert loaded['paths']['db_folder'] == 'db_data'
            assert loaded['backup']['safety_backup_on_restore'] is True

    def test_broken_yaml_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))
            config_manager.get_config_path().write_text("paths: [unclosed")

            assert config_manager.load_config() == config_manager.get_default_config()

    def test_missing_file_returns_defaults(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_manager = ConfigManager(Path(temp_dir))
            assert config_manager.load_config() == config_manager.get_default_config()


class TestResolveSettings:
    """Test turning a config dict into absolute paths."""

    def test_default_layout(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            cwd = root / "elsewhere"
            config_manager = ConfigManager(root)

            settings = config_manager.resolve_settings(config_manager.get_default_config(), cwd=cwd)

            assert settings.db_path == root / "db_data" / "main.db"
            assert settings.fallback_db_path == cwd / "db_data" / "main.db"
            assert settings.backup_dir == root / "backups"
            assert settings.images_dir == root / "uploads" / "images"
            assert settings.docs_dir == root / "uploads" / "docs"
            assert settings.media_dir == root / "uploads" / "media"
            assert settings.migration_name == MEDIA_MIGRATION_NAME
            assert settings.log_level == 'INFO'

    def test_relative_data_root_is_under_project_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config_manager = ConfigManager(root)
            config = config_manager.get_default_config()
            config['paths']['data_root'] = 'data'

            settings = config_manager.resolve_settings(config, cwd=root)

            assert settings.db_path == root / "data" / "db_data" / "main.db"
            assert settings.media_dir == root / "data" / "uploads" / "media"

    def test_invalid_config_raises(self):
        config_manager = ConfigManager()
        config = config_manager.get_default_config()
        config['migration']['progress_interval'] = -5

        with pytest.raises(ConfigurationError, match="progress_interval"):
            config_manager.resolve_settings(config)


class TestUnifyConfig:
    """Test UnifyConfig dataclass."""

    def test_unify_config_creation(self):
        config = UnifyConfig()

        assert config.paths.uploads_folder == 'uploads'
        assert config.paths.data_root is None
        assert config.migration.migrate_files is True
        assert config.backup.safety_backup_on_restore is True
        assert config.logging.level == 'INFO'
