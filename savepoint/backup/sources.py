"""
Source readers for backup content.

Supports:
- LocalSource: Read files from the local filesystem
- SSHSource: Read files from remote systems via SSH/SFTP
"""

import stat
from pathlib import Path
from typing import Optional

import paramiko
from paramiko import SSHClient, AutoAddPolicy

from .paths import SourceFile


class SourceError(Exception):
    """Raised when source content cannot be read."""
    pass


class LocalSource:
    """Reader for files on the local filesystem."""

    def size(self, source: SourceFile) -> Optional[int]:
        """
        Size of the file in bytes, or None if it cannot be determined.
        """
        try:
            return Path(source.local_path).stat().st_size
        except OSError:
            return None

    def read(self, source: SourceFile) -> bytes:
        """
        Read the full content of a local file.

        Raises:
            SourceError: If the file is missing, a directory or unreadable
        """
        path = Path(source.local_path)

        if not path.exists():
            raise SourceError(f"Path does not exist: {source.local_path}")
        if not path.is_file():
            raise SourceError(f"Unsupported path type: {source.local_path}")

        try:
            return path.read_bytes()
        except PermissionError as e:
            raise SourceError(f"Permission denied accessing {source.local_path}: {e}") from e
        except OSError as e:
            raise SourceError(f"Failed to read {source.local_path}: {e}") from e

    def cleanup(self):
        """Cleanup any resources. Local source has no persistent connections."""
        pass


class SSHSource:
    """
    Reader for remote files via SSH/SFTP.

    The connection is opened lazily on first use and reused until
    cleanup() is called.
    """

    def __init__(self, host: str, username: Optional[str] = None, port: int = 22,
                 password: Optional[str] = None, private_key: Optional[str] = None):
        """
        Initialize SSH source handler.

        Args:
            host: SSH hostname or IP
            username: SSH username (None lets paramiko use the local user)
            port: SSH port (default 22)
            password: SSH password (optional if using key)
            private_key: Path to private key file (optional)
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.private_key_path = private_key

        self.ssh_client = None
        self.sftp_client = None

    def _connect(self):
        """
        Establish SSH connection.

        Raises:
            SourceError: If connection fails
        """
        if self.sftp_client is not None:
            return

        try:
            self.ssh_client = SSHClient()
            self.ssh_client.load_system_host_keys()
            self.ssh_client.set_missing_host_key_policy(AutoAddPolicy())

            connect_kwargs = {
                'hostname': self.host,
                'port': self.port,
                'username': self.username,
                'timeout': 30
            }

            # Without a password or key, fall back to the agent and ~/.ssh keys
            if self.password:
                connect_kwargs['password'] = self.password
            elif self.private_key_path:
                key_path = Path(self.private_key_path).expanduser()
                if not key_path.exists():
                    raise SourceError(f"Private key not found: {self.private_key_path}")
                connect_kwargs['key_filename'] = str(key_path)

            self.ssh_client.connect(**connect_kwargs)
            self.sftp_client = self.ssh_client.open_sftp()

        except SourceError:
            self.cleanup()
            raise
        except paramiko.AuthenticationException as e:
            self.cleanup()
            raise SourceError(f"SSH authentication failed: {e}") from e
        except paramiko.SSHException as e:
            self.cleanup()
            raise SourceError(f"SSH connection failed: {e}") from e
        except OSError as e:
            self.cleanup()
            raise SourceError(f"Failed to connect to {self.host}: {e}") from e

    def size(self, source: SourceFile) -> Optional[int]:
        """
        Remote file size in bytes, or None if it cannot be determined.

        Raises:
            SourceError: If the connection fails
        """
        self._connect()
        try:
            return self.sftp_client.stat(source.local_path).st_size
        except OSError:
            return None

    def read(self, source: SourceFile) -> bytes:
        """
        Download the full content of a remote file.

        Raises:
            SourceError: If connection or download fails
        """
        self._connect()
        remote_path = source.local_path

        try:
            attrs = self.sftp_client.stat(remote_path)
            if attrs.st_mode is not None and stat.S_ISDIR(attrs.st_mode):
                raise SourceError(f"Unsupported path type: {remote_path}")

            with self.sftp_client.open(remote_path, 'rb') as f:
                return f.read()

        except SourceError:
            raise
        except FileNotFoundError as e:
            raise SourceError(f"Remote file not found: {remote_path}") from e
        except PermissionError as e:
            raise SourceError(f"Permission denied accessing remote file: {remote_path}") from e
        except (OSError, paramiko.SSHException) as e:
            raise SourceError(f"Failed to download {remote_path}: {e}") from e

    def cleanup(self):
        """Close SSH/SFTP connections."""
        if self.sftp_client:
            try:
                self.sftp_client.close()
            except Exception:
                pass
            self.sftp_client = None

        if self.ssh_client:
            try:
                self.ssh_client.close()
            except Exception:
                pass
            self.ssh_client = None


def create_source(source: SourceFile, settings):
    """
    Factory function to create the reader for a source file.

    Args:
        source: File to read
        settings: BackupSettings with SSH options

    Returns:
        LocalSource or SSHSource instance

    Raises:
        ValueError: If the remote method is not supported
    """
    if not source.is_remote:
        return LocalSource()
    if source.method in ('ssh', 'scp', 'sftp', 'sshx', 'rsync'):
        return SSHSource(
            host=source.host,
            username=source.user,
            port=settings.ssh_port,
            password=settings.ssh_password,
            private_key=settings.ssh_key,
        )
    raise ValueError(f"Unsupported remote method: {source.method}")
