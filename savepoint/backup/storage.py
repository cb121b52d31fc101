"""
Local filesystem storage for backup files.

Every write goes to a temporary file in the destination directory and is
moved into place with os.replace, so a backup file either exists with its
complete content or not at all.
"""

import os
import tempfile
from typing import Iterator, List, Tuple


class StorageError(Exception):
    """Raised when a backup storage operation fails."""
    pass


class LocalStorage:
    """
    Handler for backup files under a base directory.

    Paths passed to the methods are absolute paths inside ``base_path``.
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Backup root directory (not created until first write)
        """
        self.base_path = base_path

    def write(self, dest_path: str, data: bytes) -> str:
        """
        Atomically write data to dest_path, replacing any existing file.

        Args:
            dest_path: Absolute destination path
            data: Bytes to write

        Returns:
            dest_path

        Raises:
            StorageError: If the file cannot be written completely
        """
        directory = os.path.dirname(dest_path)
        tmp_path = None

        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.savepoint-', suffix='.tmp')
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, dest_path)
            tmp_path = None
            return dest_path

        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {dest_path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to write backup {dest_path}: {e}") from e
        finally:
            # Remove the partial temp file on failure
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def read(self, path: str) -> bytes:
        """
        Read a stored backup file.

        Raises:
            StorageError: If the file cannot be read
        """
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageError(f"Backup file not found: {path}") from e
        except OSError as e:
            raise StorageError(f"Failed to read backup {path}: {e}") from e

    def delete(self, path: str):
        """
        Delete a stored backup file.

        Raises:
            StorageError: If the file is missing or cannot be removed
        """
        try:
            os.remove(path)
        except FileNotFoundError as e:
            raise StorageError(f"Backup file already removed: {path}") from e
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to delete backup {path}: {e}") from e

    def list_names(self, directory: str) -> List[str]:
        """
        List file names in a backup directory.

        Returns:
            File names (unordered); empty list if the directory is missing

        Raises:
            StorageError: If the directory exists but cannot be listed
        """
        try:
            with os.scandir(directory) as it:
                return [entry.name for entry in it if entry.is_file()]
        except FileNotFoundError:
            return []
        except NotADirectoryError:
            return []
        except OSError as e:
            raise StorageError(f"Failed to list backup directory {directory}: {e}") from e

    def walk(self) -> Iterator[Tuple[str, List[str]]]:
        """
        Yield (directory, file names) for every directory under the base path.

        Raises:
            StorageError: If a directory cannot be read
        """
        def on_error(error):
            raise StorageError(f"Failed to walk backup tree: {error}") from error

        if not os.path.isdir(self.base_path):
            return

        for directory, _, filenames in os.walk(self.base_path, onerror=on_error):
            yield directory, filenames

    def size(self, path: str) -> int:
        try:
            return os.path.getsize(path)
        except OSError as e:
            raise StorageError(f"Failed to get size of {path}: {e}") from e
