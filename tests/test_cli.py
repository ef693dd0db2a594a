"""Integration tests for CLI functionality."""

import pytest
import yaml
from click.testing import CliRunner

from media_unify.cli.main import cli
from media_unify.core.config import ConfigManager
from media_unify.storage.database import DatabaseManager


PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(temp_project, seed_legacy, legacy_files, db):
    """Data root holding a seeded, closed database and legacy files."""
    seed_legacy(images=["a.png", "b.png"], docs=["c.pdf"])
    legacy_files(images={"a.png": PNG, "b.png": PNG}, docs={"c.pdf": b"%PDF-1.4"})
    db.close()
    return temp_project


def invoke(runner, project, *args, input=None):
    return runner.invoke(cli, ['--root', str(project), *args], input=input)


class TestCLIBasics:
    """Test CLI initialization and basic functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'Media Unify' in result.output
        for command in ('migrate', 'files', 'verify', 'backup', 'status', 'init-config'):
            assert command in result.output

    def test_invalid_config_path(self, runner):
        result = runner.invoke(cli, ['--config', '/nonexistent/config.yml', 'status'])
        assert result.exit_code != 0

    def test_invalid_config_values(self, runner, temp_project):
        config_path = temp_project / "bad.yml"
        config_path.write_text(yaml.dump({'migration': {'progress_interval': 0}}))

        result = runner.invoke(cli, ['--root', str(temp_project), '--config', str(config_path), 'status'])

        assert result.exit_code == 1
        assert 'progress_interval' in result.output

    def test_malformed_config_sections_are_reported(self, runner, temp_project):
        config_path = temp_project / "empty.yml"
        config_path.write_text("paths:\nlogging: [DEBUG]\n")

        result = runner.invoke(cli, ['--root', str(temp_project), '--config', str(config_path), 'status'])

        assert result.exit_code == 1
        assert 'Configuration validation errors' in result.output
        assert 'logging must be a mapping' in result.output

    def test_init_config(self, runner, temp_project):
        result = invoke(runner, temp_project, 'init-config')

        assert result.exit_code == 0
        assert '✓ Created configuration file' in result.output
        config_manager = ConfigManager(temp_project)
        assert config_manager.load_config() == config_manager.get_default_config()

        again = invoke(runner, temp_project, 'init-config')
        assert 'already exists' in again.output

    def test_missing_database_is_fatal(self, runner, temp_project):
        result = invoke(runner, temp_project, 'migrate', '--skip-backup')

        assert result.exit_code == 1
        assert '✗' in result.output


class TestMigrateCommand:
    """Test the migrate command."""

    def test_migrate_backs_up_and_migrates(self, runner, project):
        result = invoke(runner, project, 'migrate')

        assert result.exit_code == 0, result.output
        assert '✓ Backup created' in result.output
        assert 'Images migrated: 2' in result.output
        assert 'Documents migrated: 1' in result.output
        assert '✓ Media unification migration completed successfully!' in result.output
        assert len(list((project / "backups").iterdir())) == 1
        assert (project / "uploads" / "media" / "a.png").exists()

    def test_skip_backup(self, runner, project):
        result = invoke(runner, project, 'migrate', '--skip-backup')

        assert result.exit_code == 0
        assert not (project / "backups").exists()

    def test_migrate_twice(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')
        result = invoke(runner, project, 'migrate', '--skip-backup')

        assert result.exit_code == 0
        assert '✓ Migration already completed' in result.output

    def test_rollback(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'migrate', '--rollback')

        assert result.exit_code == 0
        assert 'rolled back successfully' in result.output
        with DatabaseManager(project / "db_data" / "main.db") as db:
            assert not db.table_exists("media")


class TestVerifyAndStatus:
    """Test the verify and status commands."""

    def test_verify_passes_after_migration(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'verify')

        assert result.exit_code == 0
        assert '✓ Verification passed' in result.output

    def test_verify_reports_breakdown(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')
        with DatabaseManager(project / "db_data" / "main.db") as db:
            with db.transaction() as conn:
                conn.execute("DELETE FROM media WHERE file_name = 'a.png'")

        result = invoke(runner, project, 'verify')

        assert result.exit_code == 1
        assert 'missing_migrated_record' in result.output
        assert 'count_mismatch' in result.output

    def test_status_before_and_after(self, runner, project):
        before = invoke(runner, project, 'status')
        assert before.exit_code == 0
        assert 'Records migrated: No' in before.output
        assert '✗ Not ready for cutover' in before.output

        invoke(runner, project, 'migrate', '--skip-backup')
        after = invoke(runner, project, 'status')

        assert 'Records migrated: Yes' in after.output
        assert 'Files migrated: Yes' in after.output
        assert 'media: 3' in after.output
        assert '✓ Ready for cutover' in after.output


class TestFilesCommand:
    """Test the files command."""

    def test_files_run_sets_flag(self, runner, project):
        result = invoke(runner, project, 'files')

        assert result.exit_code == 0
        assert 'Copied: 3' in result.output
        assert (project / "uploads" / "media" / "c.pdf").exists()

    def test_cleanup_refused_when_verification_fails(self, runner, project):
        invoke(runner, project, 'files')

        result = invoke(runner, project, 'files', '--cleanup', '--yes')

        assert result.exit_code == 1
        assert 'Refusing to clean up' in result.output
        assert (project / "uploads" / "images" / "a.png").exists()

    def test_cleanup_after_verified_migration(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'files', '--cleanup', '--yes')

        assert result.exit_code == 0, result.output
        assert 'Removed: 3' in result.output
        assert list((project / "uploads" / "images").iterdir()) == []
        assert (project / "uploads" / "media" / "a.png").exists()

    def test_cleanup_refused_until_files_are_migrated(self, runner, project):
        config_manager = ConfigManager(project)
        config = config_manager.get_default_config()
        config['migration']['migrate_files'] = False
        config_manager.save_config(config)
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'files', '--cleanup', '--yes')

        assert result.exit_code == 1
        assert '✓ Verification passed' in result.output
        assert 'file migration has not completed' in result.output
        assert (project / "uploads" / "images" / "a.png").exists()
        assert not (project / "uploads" / "media" / "a.png").exists()

    def test_cleanup_can_be_declined(self, runner, project):
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'files', '--cleanup', input='n\n')

        assert 'Cleanup cancelled.' in result.output
        assert (project / "uploads" / "images" / "a.png").exists()

    def test_rollback_and_cleanup_conflict(self, runner, project):
        result = invoke(runner, project, 'files', '--rollback', '--cleanup')
        assert result.exit_code == 1


class TestBackupCommands:
    """Test the backup command group."""

    def test_create_list_delete(self, runner, project):
        created = invoke(runner, project, 'backup', 'create')
        assert created.exit_code == 0
        assert '✓ Backup created' in created.output

        backup_path = next((project / "backups").iterdir())
        listed = invoke(runner, project, 'backup', 'list')
        assert backup_path.name in listed.output

        deleted = invoke(runner, project, 'backup', 'delete', str(backup_path), '--force')
        assert deleted.exit_code == 0
        assert not backup_path.exists()

    def test_list_empty(self, runner, project):
        result = invoke(runner, project, 'backup', 'list')
        assert 'No backups found' in result.output

    def test_restore(self, runner, project):
        invoke(runner, project, 'backup', 'create')
        backup_path = next((project / "backups").iterdir())
        invoke(runner, project, 'migrate', '--skip-backup')

        result = invoke(runner, project, 'backup', 'restore', str(backup_path), '--force')

        assert result.exit_code == 0
        assert '✓ Database restored' in result.output
        with DatabaseManager(project / "db_data" / "main.db") as db:
            assert not db.table_exists("media")

    def test_restore_missing_file(self, runner, project):
        result = invoke(runner, project, 'backup', 'restore', str(project / "nope.db"), '--force')

        assert result.exit_code == 1
        assert '✗ Restore failed' in result.output
