"""
Catalog of stored backup versions.

Versions are ordered by sorting on the timestamp string. The timestamp
format has fixed-width zero-padded fields, so lexical order is
chronological order; directory enumeration order is never used.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .paths import SourceFile, TIMESTAMP_FORMAT, backup_name_regex, locate
from .storage import LocalStorage


class NotFoundError(Exception):
    """Raised when no backup exists for a source file or version."""
    pass


@dataclass(frozen=True)
class BackupEntry:
    """One stored version of a source file."""

    source_basename: str
    timestamp: str
    storage_path: str
    compression_ext: Optional[str] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.storage_path)

    @property
    def label(self) -> str:
        """Timestamp rendered as 'YYYY-MM-DD HH:MM:SS'."""
        year, month, day, hour, minute, second = self.timestamp.split('-')
        return f"{year}-{month}-{day} {hour}:{minute}:{second}"

    @property
    def saved_at(self) -> datetime:
        return datetime.strptime(self.timestamp, TIMESTAMP_FORMAT)

    def to_dict(self) -> dict:
        return {
            'source_basename': self.source_basename,
            'timestamp': self.timestamp,
            'label': self.label,
            'filename': self.filename,
            'compression_ext': self.compression_ext,
            'storage_path': self.storage_path,
        }


def _sorted(entries: List[BackupEntry]) -> List[BackupEntry]:
    return sorted(entries, key=lambda entry: entry.timestamp)


class Catalog:
    """Lists and orders the backup versions of source files."""

    def __init__(self, settings):
        self.settings = settings
        self.storage = LocalStorage(settings.backup_root)

    def list_entries(self, source: SourceFile) -> List[BackupEntry]:
        """
        All stored versions of a source file, oldest first.

        Returns:
            Sorted list; empty if the file has never been backed up

        Raises:
            StorageError: If the backup directory cannot be listed
        """
        directory, basename = locate(source, self.settings.backup_root, unique=False, create=False)
        return self.entries_in(directory, basename)

    def entries_in(self, directory: str, basename: str) -> List[BackupEntry]:
        """Versions of ``basename`` stored in ``directory``, oldest first."""
        pattern = backup_name_regex(basename)

        entries = []
        for name in self.storage.list_names(directory):
            match = pattern.match(name)
            if match:
                entries.append(BackupEntry(
                    source_basename=basename,
                    timestamp=match.group('timestamp'),
                    storage_path=os.path.join(directory, name),
                    compression_ext=match.group('ext'),
                ))

        return _sorted(entries)

    def find(self, source: SourceFile, timestamp: str) -> BackupEntry:
        """
        The version saved at ``timestamp`` (YYYY-MM-DD-HH-MM-SS).

        Raises:
            NotFoundError: If no such version exists
        """
        for entry in self.list_entries(source):
            if entry.timestamp == timestamp:
                return entry
        raise NotFoundError(f"No backup of {source.display_name} at {timestamp}")

    def latest(self, source: SourceFile) -> BackupEntry:
        entries = self.list_entries(source)
        if not entries:
            raise NotFoundError(f"No backups found for {source.display_name}")
        return entries[-1]

    def scan_tree(self) -> Dict[Tuple[str, str], List[BackupEntry]]:
        """
        Group every backup file under the root by (directory, basename).

        Returns:
            Dict of sorted entry lists

        Raises:
            StorageError: If part of the tree cannot be read
        """
        pattern = backup_name_regex()
        groups = {}

        for directory, filenames in self.storage.walk():
            for name in filenames:
                match = pattern.match(name)
                if not match:
                    continue
                basename = match.group('base')
                groups.setdefault((directory, basename), []).append(BackupEntry(
                    source_basename=basename,
                    timestamp=match.group('timestamp'),
                    storage_path=os.path.join(directory, name),
                    compression_ext=match.group('ext'),
                ))

        return {key: _sorted(entries) for key, entries in groups.items()}
