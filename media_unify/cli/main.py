"""Main CLI entry point for Media Unify."""

import click
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..core.config import ConfigManager, ConfigurationError, UnifySettings
from ..core.models import FileMigrationResult, MigrationResult, VerificationReport
from ..core.verification import VerificationAuditor
from ..storage.backup import BackupIntegrityError, build_backup_manager
from ..storage.database import DatabaseError, DatabaseManager
from ..storage.file_migrator import FileIOError, build_file_migrator
from ..storage.schema_migrator import SchemaMigrator


def setup_logging(level: str, verbose: bool) -> None:
    """Send log records through rich on stderr."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Path to configuration file')
@click.option('--root', '-r', type=click.Path(file_okay=False),
              help='Data root directory (default: current directory)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], root: Optional[str], verbose: bool):
    """Media Unify - merge legacy image and document storage into one media store."""
    ctx.ensure_object(dict)

    project_path = Path(root).resolve() if root else Path.cwd()
    config_manager = ConfigManager(project_path)

    if config:
        config_data = config_manager.load_config(Path(config))
    else:
        config_data = config_manager.load_config()

    validation_errors = config_manager.validate_config(config_data)
    if validation_errors:
        click.echo("Configuration validation errors:", err=True)
        for error in validation_errors:
            click.echo(f"  - {error}", err=True)
        if not ctx.resilient_parsing:
            sys.exit(1)

    logging_section = config_data.get('logging') or {}
    level = str(logging_section.get('level', 'INFO')).upper()
    setup_logging(level, verbose)

    ctx.obj['config'] = config_data
    ctx.obj['config_manager'] = config_manager
    ctx.obj['project_root'] = project_path
    ctx.obj['verbose'] = verbose


def _settings(ctx: click.Context) -> UnifySettings:
    try:
        return ctx.obj['config_manager'].resolve_settings(ctx.obj['config'])
    except ConfigurationError as e:
        click.echo(f"✗ Invalid configuration: {e}", err=True)
        sys.exit(1)


def _open_database(settings: UnifySettings) -> DatabaseManager:
    """Open the live database, exiting if it cannot be found."""
    try:
        db_path = build_backup_manager(settings).locate_database()
        return DatabaseManager(db_path).open()
    except (ConfigurationError, DatabaseError) as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


def _echo_file_result(result: FileMigrationResult, verbose: bool) -> None:
    click.echo(f"  Copied: {len(result.copied)}")
    click.echo(f"  Skipped (already present): {len(result.skipped)}")
    if result.unsupported:
        click.echo(f"  Unsupported: {len(result.unsupported)}")
    if result.failed:
        click.echo(f"  Failed: {len(result.failed)}")
        if verbose:
            for name, reason in result.failed.items():
                click.echo(f"    - {name}: {reason}")


def _echo_migration_result(result: MigrationResult, verbose: bool) -> None:
    if result.action == "run" and not result.skipped:
        click.echo(f"  Images migrated: {result.images_migrated}")
        click.echo(f"  Documents migrated: {result.documents_migrated}")
    if result.file_result is not None:
        click.echo("  Files:")
        _echo_file_result(result.file_result, verbose)
    if result.file_error:
        click.echo(f"  ⚠ File phase: {result.file_error}")


def print_verification_report(report: VerificationReport) -> None:
    """Print counts and, on failure, a per-category breakdown."""
    click.echo(f"Images: {report.image_count}")
    click.echo(f"Documents: {report.document_count}")
    click.echo(f"Media: {report.unified_count}")

    if report.passed:
        return

    console = Console()
    table = Table(title="Verification errors")
    table.add_column("Category", style="red", no_wrap=True)
    table.add_column("Count", justify="right")
    table.add_column("Example")
    for category, items in report.by_category().items():
        table.add_row(category, str(len(items)), items[0].detail)
    console.print(table)


@cli.command()
@click.option('--rollback', is_flag=True, help='Roll back the media unification migration')
@click.option('--skip-backup', is_flag=True, help='Do not back up the database first')
@click.pass_context
def migrate(ctx: click.Context, rollback: bool, skip_backup: bool):
    """Run or roll back the database migration."""
    settings = _settings(ctx)
    verbose = ctx.obj['verbose']

    if not rollback and not skip_backup and settings.backup_before_migration:
        click.echo("Creating database backup...")
        try:
            backup_path = build_backup_manager(settings).create_backup()
        except (ConfigurationError, BackupIntegrityError) as e:
            click.echo(f"✗ Backup failed, migration not started: {e}", err=True)
            sys.exit(1)
        click.echo(f"✓ Backup created: {backup_path}")

    db = _open_database(settings)
    file_migrator = build_file_migrator(settings) if settings.migrate_files else None
    migrator = SchemaMigrator(
        db,
        file_migrator=file_migrator,
        migration_name=settings.migration_name,
        files_flag_name=settings.files_flag_name,
        progress_interval=settings.progress_interval,
    )

    try:
        if rollback:
            click.echo("Rolling back media unification migration...")
            result = migrator.rollback()
        else:
            click.echo("Running media unification migration...")
            result = migrator.run()
    except DatabaseError as e:
        verb = "rollback" if rollback else "run"
        click.echo(f"✗ Failed to {verb} migration: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    _echo_migration_result(result, verbose)

    if result.skipped and rollback:
        click.echo("✓ Nothing to roll back")
    elif result.skipped:
        click.echo("✓ Migration already completed")
    elif rollback:
        click.echo("✓ Media unification migration rolled back successfully!")
    else:
        click.echo("✓ Media unification migration completed successfully!")
        click.echo("Run 'media-unify verify' to check the migrated data")


@cli.command()
@click.option('--rollback', is_flag=True, help='Copy files back to the legacy directories')
@click.option('--cleanup', is_flag=True, help='Delete files from the legacy directories')
@click.option('--yes', '-y', is_flag=True, help='Skip the cleanup confirmation prompt')
@click.option('--skip-verify', is_flag=True, help='Clean up without verifying the migration first')
@click.pass_context
def files(ctx: click.Context, rollback: bool, cleanup: bool, yes: bool, skip_verify: bool):
    """Migrate, roll back, or clean up upload files."""
    if rollback and cleanup:
        click.echo("✗ --rollback and --cleanup cannot be combined", err=True)
        sys.exit(1)

    settings = _settings(ctx)
    verbose = ctx.obj['verbose']
    file_migrator = build_file_migrator(settings)

    if cleanup:
        _cleanup_files(settings, file_migrator, yes, skip_verify, verbose)
        return

    try:
        if rollback:
            click.echo("Rolling back file migration...")
            result = file_migrator.rollback()
        else:
            click.echo("Running file migration to unified media directory...")
            result = file_migrator.run()
    except FileIOError as e:
        click.echo(f"✗ File migration failed: {e}", err=True)
        sys.exit(1)

    _echo_file_result(result, verbose)

    if not result.success:
        click.echo(f"✗ {len(result.failed)} files failed; re-run to retry them", err=True)
        sys.exit(1)

    if rollback:
        click.echo("✓ File migration rolled back successfully!")
        return

    _mark_files_migrated(settings)
    click.echo("✓ File migration completed successfully!")
    click.echo("You can now run with --cleanup to remove files from legacy directories")


def _mark_files_migrated(settings: UnifySettings) -> None:
    """Set the files flag when the database is reachable."""
    try:
        db_path = build_backup_manager(settings).locate_database()
    except ConfigurationError as e:
        click.echo(f"⚠ Files flag not recorded: {e}")
        return

    with DatabaseManager(db_path) as db:
        migrator = SchemaMigrator(
            db,
            migration_name=settings.migration_name,
            files_flag_name=settings.files_flag_name,
        )
        try:
            migrator.mark_files_migrated()
        except DatabaseError as e:
            click.echo(f"✗ Failed to record files flag: {e}", err=True)
            sys.exit(1)


def _cleanup_files(settings: UnifySettings, file_migrator, yes: bool,
                   skip_verify: bool, verbose: bool) -> None:
    if skip_verify:
        click.echo("⚠ Skipping verification before cleanup")
    else:
        click.echo("Verifying migration before cleanup...")
        db = _open_database(settings)
        try:
            report = VerificationAuditor(db, settings.migration_name).audit()
            migration_status = SchemaMigrator(
                db,
                migration_name=settings.migration_name,
                files_flag_name=settings.files_flag_name,
            ).status()
        except DatabaseError as e:
            click.echo(f"✗ Verification failed: {e}", err=True)
            sys.exit(1)
        finally:
            db.close()

        if not report.passed:
            print_verification_report(report)
            click.echo(f"✗ Refusing to clean up: {report.summary()}", err=True)
            sys.exit(1)
        click.echo("✓ Verification passed")

        if not migration_status.files_migrated:
            click.echo("✗ Refusing to clean up: file migration has not completed; "
                       "run 'media-unify files' first", err=True)
            sys.exit(1)
        click.echo("✓ File migration completed")

    if not yes:
        if not click.confirm("Delete all files from the legacy image and document directories?"):
            click.echo("Cleanup cancelled.")
            return

    click.echo("Cleaning up legacy files...")
    try:
        result = file_migrator.cleanup_legacy_files()
    except FileIOError as e:
        click.echo(f"✗ Cleanup failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"  Removed: {len(result.removed)}")
    if result.failed:
        click.echo(f"  Failed: {len(result.failed)}")
        if verbose:
            for name, reason in result.failed.items():
                click.echo(f"    - {name}: {reason}")
        click.echo("✗ Some legacy files could not be removed", err=True)
        sys.exit(1)

    click.echo("✓ Legacy files cleanup completed successfully!")


@cli.command()
@click.pass_context
def verify(ctx: click.Context):
    """Check that the unified table matches the legacy tables."""
    settings = _settings(ctx)
    db = _open_database(settings)

    try:
        report = VerificationAuditor(db, settings.migration_name).audit()
    except DatabaseError as e:
        click.echo(f"✗ Verification failed: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    print_verification_report(report)
    if report.passed:
        click.echo("✓ Verification passed")
    else:
        click.echo(f"✗ {report.summary()}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Show migration flags, table counts and cutover readiness."""
    settings = _settings(ctx)
    db = _open_database(settings)

    try:
        migrator = SchemaMigrator(
            db,
            migration_name=settings.migration_name,
            files_flag_name=settings.files_flag_name,
        )
        migration_status = migrator.status()
        stats = db.get_storage_stats()
        report = None
        if migration_status.records_migrated:
            report = VerificationAuditor(db, settings.migration_name).audit()
    except DatabaseError as e:
        click.echo(f"✗ Failed to read status: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Media Unify Status for {db.db_path}")
    click.echo("=" * 50)
    click.echo(f"Records migrated: {'Yes' if migration_status.records_migrated else 'No'}")
    click.echo(f"Files migrated: {'Yes' if migration_status.files_migrated else 'No'}")

    click.echo("\nTables:")
    for table, count in stats.items():
        if table == 'database_size':
            continue
        click.echo(f"  {table}: {'missing' if count is None else count}")
    click.echo(f"Database size: {stats['database_size']} bytes")

    if report is not None:
        click.echo(f"\nVerification: {'passed' if report.passed else report.summary()}")

    if migration_status.cutover_ready(report):
        click.echo("✓ Ready for cutover")
    else:
        click.echo("✗ Not ready for cutover")


@cli.command(name='init-config')
@click.option('--force', is_flag=True, help='Overwrite an existing configuration file')
@click.pass_context
def init_config(ctx: click.Context, force: bool):
    """Write the default configuration file."""
    config_manager = ctx.obj['config_manager']
    config_path = config_manager.get_config_path()

    if config_path.exists() and not force:
        click.echo(f"Configuration file already exists: {config_path}")
        click.echo("Use --force to overwrite.")
        return

    if config_manager.create_default_config_file():
        click.echo(f"✓ Created configuration file: {config_path}")
    else:
        click.echo("✗ Failed to create configuration file", err=True)
        sys.exit(1)


@cli.group()
def backup():
    """Create, restore, list and delete database backups."""
    pass


@backup.command(name='create')
@click.pass_context
def backup_create(ctx: click.Context):
    """Back up the live database."""
    settings = _settings(ctx)
    try:
        backup_path = build_backup_manager(settings).create_backup()
    except (ConfigurationError, BackupIntegrityError) as e:
        click.echo(f"✗ Backup failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Backup created: {backup_path}")


@backup.command(name='restore')
@click.argument('path', type=click.Path())
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def backup_restore(ctx: click.Context, path: str, force: bool):
    """Replace the live database with the backup at PATH."""
    settings = _settings(ctx)
    manager = build_backup_manager(settings)

    if not force:
        if not click.confirm(f"Replace the live database with {path}?"):
            click.echo("Restore cancelled.")
            return

    try:
        manager.restore_backup(Path(path))
    except (ConfigurationError, BackupIntegrityError) as e:
        click.echo(f"✗ Restore failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Database restored from {path}")


@backup.command(name='list')
@click.pass_context
def backup_list(ctx: click.Context):
    """List available backups."""
    settings = _settings(ctx)
    artifacts = build_backup_manager(settings).list_backups()

    if not artifacts:
        click.echo(f"No backups found in {settings.backup_dir}")
        return

    table = Table(title=f"Backups in {settings.backup_dir}")
    table.add_column("File", no_wrap=True)
    table.add_column("Created")
    table.add_column("Size", justify="right")
    for artifact in artifacts:
        table.add_row(
            artifact.path.name,
            artifact.created_at.strftime('%Y-%m-%d %H:%M:%S'),
            f"{artifact.size_bytes:,} B",
        )
    Console().print(table)


@backup.command(name='delete')
@click.argument('path', type=click.Path())
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def backup_delete(ctx: click.Context, path: str, force: bool):
    """Delete the backup at PATH."""
    settings = _settings(ctx)

    if not force:
        if not click.confirm(f"Delete backup {path}?"):
            click.echo("Delete cancelled.")
            return

    try:
        build_backup_manager(settings).delete_backup(Path(path))
    except ConfigurationError as e:
        click.echo(f"✗ Delete failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Deleted backup {path}")


if __name__ == '__main__':
    cli()
