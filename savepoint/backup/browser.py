"""
Read-only access to stored backup versions.

Choosing among versions is left to a selector supplied by the caller
(a CLI prompt, an editor's completion, an HTTP query parameter). The
browser only provides the ordered, labeled candidates.
"""

import logging
from typing import Callable, List, Optional, Tuple

from .catalog import BackupEntry, Catalog, NotFoundError
from .compression import Compressor
from .paths import SourceFile
from .storage import LocalStorage


logger = logging.getLogger(__name__)

Candidate = Tuple[str, BackupEntry]
Selector = Callable[[List[Candidate]], Optional[BackupEntry]]


def label(entry: BackupEntry) -> str:
    """Human readable version label, 'YYYY-MM-DD HH:MM:SS'."""
    return entry.label


def header(source: SourceFile, entry: BackupEntry) -> str:
    """Annotation shown above opened content."""
    return f"Backup of {source.display_name} from {entry.label}"


class BackupView:
    """Decoded content of one backup version plus presentation metadata."""

    def __init__(self, source: SourceFile, entry: BackupEntry, content: bytes, show_header: bool = True):
        self.source = source
        self.entry = entry
        self.content = content
        self.original_basename = entry.source_basename
        self.label = entry.label
        self.header = header(source, entry) if show_header else None

    def text(self, encoding: str = 'utf-8', errors: str = 'replace') -> str:
        return self.content.decode(encoding, errors)

    def __repr__(self):
        return f'<BackupView {self.original_basename} {self.label}>'


class Browser:
    """Lists labeled versions and opens them read-only."""

    def __init__(self, settings):
        self.settings = settings
        self.catalog = Catalog(settings)
        self.storage = LocalStorage(settings.backup_root)

    def candidates(self, source: SourceFile) -> List[Candidate]:
        """
        Labeled versions of a source file, oldest first.

        Raises:
            NotFoundError: If the file has no backups
        """
        entries = self.catalog.list_entries(source)
        if not entries:
            raise NotFoundError(f"No backups found for {source.display_name}")
        return [(label(entry), entry) for entry in entries]

    def open(self, source: SourceFile, entry: BackupEntry) -> BackupView:
        """
        Read and decode one version. The backup file is never modified.

        Raises:
            StorageError: If the file cannot be read
            CompressionError: If the content cannot be decoded
        """
        data = self.storage.read(entry.storage_path)
        content = Compressor.for_extension(entry.compression_ext).decode(data)
        logger.debug("Opened %s (%d bytes)", entry.storage_path, len(content))
        return BackupView(source, entry, content, show_header=self.settings.show_header)

    def open_version(self, source: SourceFile, timestamp: Optional[str] = None,
                     selector: Optional[Selector] = None) -> BackupView:
        """
        Open a version chosen by timestamp or by a selector.

        Args:
            source: Source file
            timestamp: Exact version (YYYY-MM-DD-HH-MM-SS)
            selector: Called with the candidates when no timestamp is given

        Raises:
            ValueError: If neither timestamp nor selector is given
            NotFoundError: If the version does not exist or nothing was selected
        """
        if timestamp:
            return self.open(source, self.catalog.find(source, timestamp))

        if selector is None:
            raise ValueError("A version timestamp or a selector is required")

        entry = selector(self.candidates(source))
        if entry is None:
            raise NotFoundError(f"No version selected for {source.display_name}")
        return self.open(source, entry)
