"""
Compression schemes for backup files.

Supports:
- none: Stored as-is
- gzip: .gz
- bzip2: .bz2
- lzma: .lzma (legacy LZMA-alone container)
- xz: .xz
- zstd: .zst (requires the zstandard package)

A scheme is picked once when settings are built; each backup entry keeps
its extension so it can be decoded later even if the configured scheme
has changed since.
"""

import bz2
import gzip
import lzma
from typing import Callable, Dict, Optional, Tuple


class CompressionError(Exception):
    """Raised when encoding or decoding backup content fails."""
    pass


def _zstd_encode(data: bytes) -> bytes:
    import zstandard
    return zstandard.ZstdCompressor().compress(data)


def _zstd_decode(data: bytes) -> bytes:
    import zstandard
    # decompressobj handles frames without an embedded content size
    return zstandard.ZstdDecompressor().decompressobj().decompress(data)


def _identity(data: bytes) -> bytes:
    return data


# scheme -> (extension, encoder, decoder)
SCHEMES: Dict[str, Tuple[str, Callable[[bytes], bytes], Callable[[bytes], bytes]]] = {
    'none': ('', _identity, _identity),
    'gzip': ('gz', gzip.compress, gzip.decompress),
    'bzip2': ('bz2', bz2.compress, bz2.decompress),
    'lzma': (
        'lzma',
        lambda data: lzma.compress(data, format=lzma.FORMAT_ALONE),
        lambda data: lzma.decompress(data, format=lzma.FORMAT_ALONE),
    ),
    'xz': (
        'xz',
        lambda data: lzma.compress(data, format=lzma.FORMAT_XZ),
        lambda data: lzma.decompress(data, format=lzma.FORMAT_XZ),
    ),
    'zstd': ('zst', _zstd_encode, _zstd_decode),
}

EXTENSIONS = {extension: scheme for scheme, (extension, _, _) in SCHEMES.items() if extension}


def detect_default_scheme() -> str:
    """
    Pick the default scheme for this interpreter.

    Returns:
        'zstd' if the zstandard module can be imported, otherwise 'gzip'
    """
    try:
        import zstandard  # noqa: F401
    except ImportError:
        return 'gzip'
    return 'zstd'


class Compressor:
    """Encode/decode pair for one compression scheme."""

    def __init__(self, scheme: str = 'none'):
        """
        Args:
            scheme: One of 'none', 'gzip', 'bzip2', 'lzma', 'xz', 'zstd'

        Raises:
            ValueError: If scheme is unknown
        """
        if scheme not in SCHEMES:
            raise ValueError(
                f"Invalid compression scheme: {scheme}. "
                f"Valid options: {list(SCHEMES.keys())}"
            )
        self.scheme = scheme
        self.extension, self._encode, self._decode = SCHEMES[scheme]

    @classmethod
    def for_extension(cls, extension: Optional[str]) -> 'Compressor':
        """
        Get the compressor that produced a file with the given extension.

        Args:
            extension: Extension without the dot, or None/'' for uncompressed

        Raises:
            ValueError: If extension is not a known compression extension
        """
        if not extension:
            return cls('none')
        if extension not in EXTENSIONS:
            raise ValueError(f"Unknown compression extension: {extension}")
        return cls(EXTENSIONS[extension])

    @property
    def suffix(self) -> str:
        """Extension with leading dot, or '' for no compression."""
        return f".{self.extension}" if self.extension else ''

    def encode(self, data: bytes) -> bytes:
        try:
            return self._encode(data)
        except Exception as e:
            raise CompressionError(f"Failed to encode with {self.scheme}: {e}") from e

    def decode(self, data: bytes) -> bytes:
        try:
            return self._decode(data)
        except Exception as e:
            raise CompressionError(f"Failed to decode {self.scheme} data: {e}") from e

    def __repr__(self):
        return f'<Compressor {self.scheme}>'
