"""
Archiver - writes one new backup version per save event.

Workflow:
1. Check guards (remote policy, backup root, filter, size limit); any failure is a skip
2. Read current content (unless the caller passed it)
3. Locate the versioned destination in the mirrored tree
4. Compress and write atomically
5. Run retention (if auto cleanup is enabled)
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from .catalog import BackupEntry
from .paths import SourceFile, is_inside, locate
from .retention import RetentionManager, RetentionResult
from .sources import create_source
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)

ARCHIVED = 'archived'
SKIPPED = 'skipped'


class ArchiveResult:
    """
    Outcome of one archive call.

    A skip is not an error: ``status`` is 'skipped' and ``reason`` says
    which guard stopped it. Failures are raised, never returned.
    """

    def __init__(self, status: str, source: SourceFile, entry: Optional[BackupEntry] = None,
                 reason: Optional[str] = None, retention: Optional[RetentionResult] = None):
        self.status = status
        self.source = source
        self.entry = entry
        self.reason = reason
        self.retention = retention

    @classmethod
    def skipped(cls, source: SourceFile, reason: str) -> 'ArchiveResult':
        return cls(SKIPPED, source, reason=reason)

    @property
    def archived(self) -> bool:
        return self.status == ARCHIVED

    def to_dict(self) -> dict:
        return {
            'status': self.status,
            'path': self.source.display_name,
            'reason': self.reason,
            'entry': self.entry.to_dict() if self.entry else None,
            'retention': self.retention.to_dict() if self.retention else None,
        }

    def __repr__(self):
        return f'<ArchiveResult {self.status} {self.source.display_name}>'


class Archiver:
    """
    Orchestrates the backup of a single source file.
    """

    def __init__(self, settings):
        """
        Initialize archiver.

        Args:
            settings: BackupSettings snapshot
        """
        self.settings = settings
        self.storage = LocalStorage(settings.backup_root)
        self.logs = []

    def archive(self, source: SourceFile, content: Optional[bytes] = None,
                now: Optional[datetime] = None) -> ArchiveResult:
        """
        Store a new version of a source file.

        Args:
            source: File that was saved
            content: Saved bytes; read from the source when None
            now: Clock override for the version timestamp

        Returns:
            ArchiveResult with status 'archived' or 'skipped'

        Raises:
            SourceError: If content has to be read and cannot be
            StorageError: If the backup cannot be written
        """
        reason = self._check_policy(source)
        if reason:
            self._log(f"Skipping {source.display_name}: {reason}")
            return ArchiveResult.skipped(source, reason)

        if content is None:
            content, reason = self._read_content(source)
            if reason:
                self._log(f"Skipping {source.display_name}: {reason}")
                return ArchiveResult.skipped(source, reason)

        reason = self._check_size(len(content))
        if reason:
            self._log(f"Skipping {source.display_name}: {reason}")
            return ArchiveResult.skipped(source, reason)

        entry = self._write(source, content, now)
        result = ArchiveResult(ARCHIVED, source, entry=entry)

        if self.settings.auto_cleanup:
            result.retention = self._cleanup(source)

        return result

    def _check_policy(self, source: SourceFile) -> Optional[str]:
        """Guards that do not need the content. Returns the skip reason, if any."""
        if source.is_remote and not self.settings.backup_remote_files:
            return "remote files are not backed up"
        if not source.is_remote and is_inside(source.local_path, self.settings.backup_root):
            return "inside the backup root"
        if not self.settings.filter(source.local_path):
            return "excluded by filter"
        return None

    def _check_size(self, size: int) -> Optional[str]:
        limit = self.settings.size_limit
        if limit is not None and size > limit:
            return f"size {size} exceeds limit {limit}"
        return None

    def _read_content(self, source: SourceFile):
        """
        Read the source, checking the size limit first when the size is known.

        Returns:
            (content, None) or (None, skip reason)
        """
        reader = create_source(source, self.settings)
        try:
            size = reader.size(source)
            if size is not None:
                reason = self._check_size(size)
                if reason:
                    return None, reason
            return reader.read(source), None
        finally:
            reader.cleanup()

    def _write(self, source: SourceFile, content: bytes, now: Optional[datetime]) -> BackupEntry:
        directory, filename = locate(source, self.settings.backup_root, unique=True, now=now)
        compressor = self.settings.compressor

        data = compressor.encode(content)
        dest_path = os.path.join(directory, filename + compressor.suffix)

        self.storage.write(dest_path, data)
        self._log(f"Backed up {source.display_name} to {dest_path} ({len(data)} bytes)")

        _, _, timestamp = filename.rpartition('#')
        return BackupEntry(
            source_basename=source.basename,
            timestamp=timestamp,
            storage_path=dest_path,
            compression_ext=compressor.extension or None,
        )

    def _cleanup(self, source: SourceFile) -> Optional[RetentionResult]:
        """Automatic retention; problems are logged, never raised."""
        manager = RetentionManager(self.settings)
        try:
            result = manager.retain(source, self.settings.keep_count)
        except StorageError as e:
            self._log(f"Automatic cleanup failed for {source.display_name}: {e}", level=logging.WARNING)
            return None
        finally:
            self.logs.extend(manager.logs)

        if result.failed:
            self._log(
                f"Automatic cleanup left {len(result.failed)} version(s) of {source.display_name}",
                level=logging.WARNING
            )
        return result

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
