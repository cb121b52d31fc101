"""
Shared pytest fixtures for Savepoint tests.

This module provides fixtures for:
- Backup settings rooted in a temporary directory
- Source files to back up
- Flask app and test client
- Mock fixtures for external services (SSH)
"""

import os
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from savepoint import create_app
from savepoint.backup.paths import SourceFile, locate
from savepoint.config import BackupSettings


@pytest.fixture
def backup_root(tmp_path):
    """Empty backup root directory."""
    root = tmp_path / 'backups'
    root.mkdir()
    return root


@pytest.fixture
def settings(backup_root):
    """
    Settings with no compression, no size limit and no automatic cleanup.
    """
    return BackupSettings(
        backup_root=str(backup_root),
        compression='none',
        size_limit=None,
        keep_count=20,
        auto_cleanup=False,
    )


@pytest.fixture
def make_settings(backup_root):
    """Factory for settings variants sharing the same backup root."""
    def _make(**kwargs):
        values = {
            'backup_root': str(backup_root),
            'compression': 'none',
            'size_limit': None,
        }
        values.update(kwargs)
        return BackupSettings(**values)
    return _make


@pytest.fixture
def source_dir(tmp_path):
    """Directory holding files being edited (outside the backup root)."""
    directory = tmp_path / 'project'
    directory.mkdir()
    return directory


@pytest.fixture
def source_file(source_dir):
    """
    A saved local file.

    Creates project/file.txt with short text content.
    """
    path = source_dir / 'file.txt'
    path.write_text('version one\n')
    return SourceFile.local(str(path))


@pytest.fixture
def write_version(settings):
    """
    Write a raw backup file for a source at a given time.

    Bypasses the archiver so tests can create versions in any order.
    """
    def _write(source, when, content=b'content', extension=''):
        directory, filename = locate(source, settings.backup_root, unique=True, now=when)
        path = os.path.join(directory, filename + extension)
        with open(path, 'wb') as f:
            f.write(content)
        return path
    return _write


@pytest.fixture
def times():
    """Three save times in distinct seconds, oldest first."""
    return [
        datetime(2024, 1, 15, 12, 0, 0),
        datetime(2024, 1, 15, 12, 0, 1),
        datetime(2024, 1, 15, 13, 30, 0),
    ]


@pytest.fixture(scope='function')
def app(backup_root):
    """
    Create Flask app with test configuration.

    The backup root points at a temporary directory and the scheduler is off.
    """
    app = create_app(
        'testing',
        BACKUP_ROOT=str(backup_root),
        SIZE_LIMIT=None,
        SHOW_HEADER=True,
    )
    yield app


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def mock_ssh_client():
    """
    Mock paramiko SSHClient for SSH/SFTP testing.

    Returns a MagicMock that simulates SSH connections.
    """
    with patch('savepoint.backup.sources.SSHClient') as mock_ssh:
        # Mock SFTP client
        mock_sftp = MagicMock()
        mock_ssh.return_value.open_sftp.return_value = mock_sftp

        # Mock connection success
        mock_ssh.return_value.connect.return_value = None

        yield mock_ssh
