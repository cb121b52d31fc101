"""
Backup module for Savepoint.

This module handles the core versioning functionality including:
- Path mapping into the mirrored backup tree
- Compression
- Source reading (local and SSH)
- Archiving one version per save
- Catalog and retention of stored versions
- Read-only browsing
"""

from .paths import SourceFile, locate, mirror_key
from .compression import Compressor, CompressionError
from .sources import LocalSource, SSHSource, SourceError
from .storage import LocalStorage, StorageError
from .catalog import BackupEntry, Catalog, NotFoundError
from .retention import RetentionManager, RetentionResult
from .archiver import Archiver, ArchiveResult
from .browser import Browser, BackupView

__all__ = [
    'SourceFile',
    'locate',
    'mirror_key',
    'Compressor',
    'CompressionError',
    'LocalSource',
    'SSHSource',
    'SourceError',
    'LocalStorage',
    'StorageError',
    'BackupEntry',
    'Catalog',
    'NotFoundError',
    'RetentionManager',
    'RetentionResult',
    'Archiver',
    'ArchiveResult',
    'Browser',
    'BackupView'
]
