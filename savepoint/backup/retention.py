"""
Retention policy enforcement for backups.

Keeps the most recent N versions of each source file and deletes the rest.
Deletes are independent: a failure on one version is recorded and the
remaining deletes still run.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .catalog import BackupEntry, Catalog
from .paths import SourceFile
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)


class RetentionResult:
    """Outcome of one retention pass over a set of versions."""

    def __init__(self, keep: int):
        self.keep = keep
        self.kept: List[BackupEntry] = []
        self.deleted: List[BackupEntry] = []
        self.failed: List[Tuple[BackupEntry, str]] = []

    @property
    def removed_count(self) -> int:
        return len(self.deleted)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'keep': self.keep,
            'kept': [entry.timestamp for entry in self.kept],
            'deleted': [entry.timestamp for entry in self.deleted],
            'removed_count': self.removed_count,
            'failed': [
                {'timestamp': entry.timestamp, 'path': entry.storage_path, 'reason': reason}
                for entry, reason in self.failed
            ],
        }

    def __repr__(self):
        return f'<RetentionResult keep={self.keep} deleted={len(self.deleted)} failed={len(self.failed)}>'


class RetentionManager:
    """
    Manages retention policy enforcement for backed up files.

    Uses the catalog order (oldest first) to decide which versions are
    the most recent ``keep`` ones.
    """

    def __init__(self, settings):
        """
        Initialize retention manager.

        Args:
            settings: BackupSettings
        """
        self.settings = settings
        self.catalog = Catalog(settings)
        self.storage = LocalStorage(settings.backup_root)
        self.logs = []

    def retain(self, source: SourceFile, keep: Optional[int] = None) -> RetentionResult:
        """
        Delete all but the ``keep`` most recent versions of a source file.

        Args:
            source: Source file whose versions are pruned
            keep: Versions to keep; defaults to settings.keep_count

        Returns:
            RetentionResult with deleted and failed entries

        Raises:
            ValueError: If keep is negative
            StorageError: If the versions cannot be listed
        """
        keep = self._resolve_keep(keep)
        entries = self.catalog.list_entries(source)
        self._log(f"Enforcing retention for {source.display_name}: {len(entries)} version(s), keep {keep}")
        return self.prune(entries, keep)

    def retain_group(self, directory: str, basename: str, keep: Optional[int] = None) -> RetentionResult:
        """Same as retain(), addressed by backup directory and source basename."""
        keep = self._resolve_keep(keep)
        return self.prune(self.catalog.entries_in(directory, basename), keep)

    def prune(self, entries: List[BackupEntry], keep: int) -> RetentionResult:
        """
        Delete all but the last ``keep`` entries of an oldest-first list.

        Args:
            entries: Versions of one source file, oldest first
            keep: Number of most recent versions to keep
        """
        result = RetentionResult(keep)

        if len(entries) <= keep:
            result.kept = list(entries)
            return result

        cutoff = len(entries) - keep
        to_delete = entries[:cutoff]
        result.kept = list(entries[cutoff:])

        for entry in to_delete:
            try:
                self.storage.delete(entry.storage_path)
                result.deleted.append(entry)
                self._log(f"Deleted backup: {entry.storage_path}")
            except StorageError as e:
                result.failed.append((entry, str(e)))
                self._log(f"Failed to delete backup {entry.storage_path}: {e}", level=logging.WARNING)

        return result

    def enforce_all(self, keep: Optional[int] = None) -> Dict[str, Any]:
        """
        Enforce retention for every file in the backup tree.

        Returns:
            Dict with summary of cleanup operations:
            {
                'groups_processed': int,
                'deleted': int,
                'errors': List[str],
                'logs': List[str]
            }
        """
        keep = self._resolve_keep(keep)
        self._log(f"Starting retention enforcement for all files (keep {keep})")

        summary = {
            'groups_processed': 0,
            'deleted': 0,
            'errors': []
        }

        try:
            groups = self.catalog.scan_tree()
        except StorageError as e:
            self._log(f"Failed to scan backup tree: {e}", level=logging.ERROR)
            summary['errors'].append(str(e))
            summary['logs'] = self.logs
            return summary

        for (directory, basename), entries in sorted(groups.items()):
            result = self.prune(entries, keep)
            summary['groups_processed'] += 1
            summary['deleted'] += result.removed_count
            for entry, reason in result.failed:
                summary['errors'].append(f"{os.path.join(directory, entry.filename)}: {reason}")

        self._log(
            f"Retention enforcement complete. "
            f"Files: {summary['groups_processed']}, "
            f"Deleted: {summary['deleted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        summary['logs'] = self.logs
        return summary

    def _resolve_keep(self, keep: Optional[int]) -> int:
        if keep is None:
            keep = self.settings.keep_count
        if keep < 0:
            raise ValueError(f"Keep count must not be negative: {keep}")
        return keep

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Level for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
