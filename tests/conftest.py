"""Test configuration and fixtures."""

import hashlib
import pytest
import tempfile
import shutil
from pathlib import Path

from media_unify.core.config import ConfigManager
from media_unify.storage.database import DatabaseManager


@pytest.fixture
def temp_project():
    """Create a temporary data root with the application layout."""
    temp_dir = Path(tempfile.mkdtemp())

    try:
        (temp_dir / "db_data").mkdir()
        (temp_dir / "uploads" / "images").mkdir(parents=True)
        (temp_dir / "uploads" / "docs").mkdir(parents=True)

        yield temp_dir
    finally:
        shutil.rmtree(temp_dir)


@pytest.fixture
def settings(temp_project):
    """Default settings resolved against the temporary data root."""
    config_manager = ConfigManager(temp_project)
    return config_manager.resolve_settings(config_manager.get_default_config(), cwd=temp_project)


@pytest.fixture
def db(settings):
    """Open database session with empty legacy tables."""
    db_manager = DatabaseManager(settings.db_path).open()
    db_manager.create_legacy_tables()
    try:
        yield db_manager
    finally:
        db_manager.close()


def checksum_for(file_name: str) -> bytes:
    return hashlib.sha256(file_name.encode('utf-8')).digest()


@pytest.fixture
def seed_legacy(db):
    """Insert rows into the legacy tables.

    Returns a function taking lists of image and document file names.
    """
    def _seed(images=(), docs=()):
        with db.transaction() as conn:
            for table, names in (("images", images), ("docs", docs)):
                for name in names:
                    conn.execute(
                        f"INSERT INTO {table} (created_at, updated_at, file_name, checksum) "
                        "VALUES ('2024-01-01 10:00:00', '2024-01-02 10:00:00', ?, ?)",
                        (name, checksum_for(name)),
                    )
    return _seed


@pytest.fixture
def legacy_files(settings):
    """Write files into the legacy upload directories.

    Returns a function taking dicts of {file name: bytes} for images and docs.
    """
    def _write(images=None, docs=None):
        for directory, files in ((settings.images_dir, images or {}), (settings.docs_dir, docs or {})):
            for name, content in files.items():
                (directory / name).write_bytes(content)
    return _write
