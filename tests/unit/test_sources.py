"""
Unit tests for source readers (savepoint/backup/sources.py).

Tests LocalSource and SSHSource content reading.
"""

import stat
from unittest.mock import MagicMock

import paramiko
import pytest

from savepoint.backup.paths import SourceFile
from savepoint.backup.sources import LocalSource, SSHSource, SourceError, create_source


class TestLocalSource:
    """Test local filesystem reader."""

    def test_read_file(self, source_file):
        assert LocalSource().read(source_file) == b'version one\n'

    def test_size(self, source_file):
        assert LocalSource().size(source_file) == len(b'version one\n')

    def test_missing_file(self, source_dir):
        """Test error when the file does not exist."""
        source = SourceFile.local(str(source_dir / 'missing.txt'))

        assert LocalSource().size(source) is None
        with pytest.raises(SourceError, match="does not exist"):
            LocalSource().read(source)

    def test_directory_rejected(self, source_dir):
        """Test error when the path is a directory."""
        with pytest.raises(SourceError, match="Unsupported path type"):
            LocalSource().read(SourceFile.local(str(source_dir)))


def _remote_file(mock_ssh_client, content=b'remote data', mode=stat.S_IFREG | 0o644):
    sftp = mock_ssh_client.return_value.open_sftp.return_value
    sftp.stat.return_value = MagicMock(st_size=len(content), st_mode=mode)
    sftp.open.return_value.__enter__.return_value.read.return_value = content
    return sftp


class TestSSHSource:
    """Test SSH/SFTP reader."""

    def test_read_remote_file(self, mock_ssh_client):
        """Test reading a remote file over SFTP."""
        sftp = _remote_file(mock_ssh_client)
        source = SourceFile(local_path='/etc/x.conf', method='ssh', host='h', user='u')
        reader = SSHSource(host='h', username='u')

        assert reader.read(source) == b'remote data'
        sftp.open.assert_called_once_with('/etc/x.conf', 'rb')

        mock_ssh_client.return_value.connect.assert_called_once()
        kwargs = mock_ssh_client.return_value.connect.call_args.kwargs
        assert kwargs['hostname'] == 'h'
        assert kwargs['username'] == 'u'
        assert kwargs['port'] == 22

    def test_connection_reused(self, mock_ssh_client):
        _remote_file(mock_ssh_client)
        source = SourceFile(local_path='/etc/x.conf', method='ssh', host='h')
        reader = SSHSource(host='h')

        reader.size(source)
        reader.read(source)

        assert mock_ssh_client.return_value.connect.call_count == 1

    def test_password_auth(self, mock_ssh_client):
        _remote_file(mock_ssh_client)
        reader = SSHSource(host='h', username='u', password='secret')

        reader.read(SourceFile(local_path='/x', method='ssh', host='h'))

        kwargs = mock_ssh_client.return_value.connect.call_args.kwargs
        assert kwargs['password'] == 'secret'

    def test_missing_private_key(self, mock_ssh_client, tmp_path):
        """Test error when the configured key file does not exist."""
        reader = SSHSource(host='h', private_key=str(tmp_path / 'id_missing'))

        with pytest.raises(SourceError, match="Private key not found"):
            reader.read(SourceFile(local_path='/x', method='ssh', host='h'))

    def test_authentication_failure(self, mock_ssh_client):
        mock_ssh_client.return_value.connect.side_effect = paramiko.AuthenticationException("denied")

        with pytest.raises(SourceError, match="authentication failed"):
            SSHSource(host='h').read(SourceFile(local_path='/x', method='ssh', host='h'))

    def test_remote_missing_file(self, mock_ssh_client):
        sftp = _remote_file(mock_ssh_client)
        sftp.stat.side_effect = FileNotFoundError()

        with pytest.raises(SourceError, match="Remote file not found"):
            SSHSource(host='h').read(SourceFile(local_path='/x', method='ssh', host='h'))

    def test_remote_directory_rejected(self, mock_ssh_client):
        _remote_file(mock_ssh_client, mode=stat.S_IFDIR | 0o755)

        with pytest.raises(SourceError, match="Unsupported path type"):
            SSHSource(host='h').read(SourceFile(local_path='/etc', method='ssh', host='h'))

    def test_cleanup_closes_connections(self, mock_ssh_client):
        sftp = _remote_file(mock_ssh_client)
        reader = SSHSource(host='h')
        reader.read(SourceFile(local_path='/x', method='ssh', host='h'))

        reader.cleanup()

        sftp.close.assert_called_once()
        mock_ssh_client.return_value.close.assert_called_once()
        assert reader.sftp_client is None


class TestCreateSource:
    """Test reader factory."""

    def test_local(self, settings, source_file):
        assert isinstance(create_source(source_file, settings), LocalSource)

    @pytest.mark.parametrize("method", ['ssh', 'scp', 'sftp'])
    def test_ssh_methods(self, make_settings, method):
        settings = make_settings(ssh_port=2222, ssh_key='~/.ssh/id_ed25519')
        source = SourceFile(local_path='/x', method=method, host='h', user='u')

        reader = create_source(source, settings)

        assert isinstance(reader, SSHSource)
        assert reader.port == 2222
        assert reader.username == 'u'
        assert reader.private_key_path == '~/.ssh/id_ed25519'

    def test_unsupported_method(self, settings):
        with pytest.raises(ValueError, match="Unsupported remote method"):
            create_source(SourceFile(local_path='/x', method='ftp', host='h'), settings)
