"""
Mapping from a source file to its place in the backup tree.

Layout:
    {root}/{method}/{host}/{user}/{mirrored directory}/{basename}#{YYYY-MM-DD-HH-MM-SS}[.{ext}]

Local files use method 'local', host 'localhost' and the current user.
"""

import getpass
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from .compression import EXTENSIONS
from .storage import StorageError


TIMESTAMP_FORMAT = '%Y-%m-%d-%H-%M-%S'
TIMESTAMP_PATTERN = r'\d{4}-\d{2}-\d{2}-\d{2}-\d{2}-\d{2}'
VERSION_SEPARATOR = '#'

LOCAL_METHOD = 'local'
LOCAL_HOST = 'localhost'

_DRIVE_RE = re.compile(r'^([A-Za-z]):[\\/]')
# /method:user@host:/path or /method:host:/path
_TRAMP_RE = re.compile(r'^/(?P<method>[A-Za-z][\w-]*):(?:(?P<user>[^@:/]+)@)?(?P<host>[^:/]+):(?P<path>.*)$')
# user@host:/path or host:/path
_SCP_RE = re.compile(r'^(?:(?P<user>[^@:/]+)@)?(?P<host>[^:/]{2,}):(?P<path>/.*)$')


@dataclass(frozen=True)
class SourceFile:
    """Identity of a file to back up, local or remote."""

    local_path: str
    method: Optional[str] = None
    host: Optional[str] = None
    user: Optional[str] = None

    @classmethod
    def local(cls, path: str) -> 'SourceFile':
        """Source for a file on this machine; the path is made absolute."""
        if _DRIVE_RE.match(path):
            return cls(local_path=path)
        return cls(local_path=os.path.abspath(os.path.expanduser(path)))

    @classmethod
    def parse(cls, text: str) -> 'SourceFile':
        """
        Parse a local path or a remote file name.

        Accepted forms:
            /home/u/file.txt, ~/file.txt, C:/x/file.txt
            /ssh:user@host:/etc/x.conf, /sftp:host:/etc/x.conf
            user@host:/etc/x.conf, host:/etc/x.conf (method ssh)

        Remote paths must be absolute; '.' and '..' segments are resolved
        and may not climb above '/'.

        Raises:
            ValueError: If text is empty, the remote path is empty, relative
                or escapes '/', or the path has no file name
        """
        if not text or not text.strip():
            raise ValueError("Empty file name")

        if _DRIVE_RE.match(text):
            source = cls.local(text)
        else:
            match = _TRAMP_RE.match(text) or _SCP_RE.match(text)
            if match:
                path = match.group('path')
                if not path:
                    raise ValueError(f"Remote file name has no path: {text}")
                for part in (match.group('host'), match.group('user')):
                    if part in ('.', '..'):
                        raise ValueError(f"Invalid host or user in remote file name: {text}")
                source = cls(
                    local_path=_normalize_remote_path(path),
                    method=match.groupdict().get('method') or 'ssh',
                    host=match.group('host'),
                    user=match.group('user'),
                )
            else:
                source = cls.local(text)

        if not source.basename:
            raise ValueError(f"Source path has no file name: {text}")
        return source

    @property
    def is_remote(self) -> bool:
        return bool(self.method) and self.method != LOCAL_METHOD

    def identity(self) -> Tuple[str, str, str, str]:
        """(method, host, user, local_path) with local defaults filled in."""
        return (
            self.method or LOCAL_METHOD,
            self.host or LOCAL_HOST,
            self.user or getpass.getuser(),
            self.local_path,
        )

    @property
    def basename(self) -> str:
        return _split_path(self.local_path)[1]

    @property
    def display_name(self) -> str:
        if not self.is_remote:
            return self.local_path
        user = f"{self.user}@" if self.user else ''
        return f"/{self.method}:{user}{self.host}:{self.local_path}"


def current_timestamp(now: Optional[datetime] = None) -> str:
    """Format ``now`` (default: wall clock, local time) as YYYY-MM-DD-HH-MM-SS."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def _split_path(path: str) -> Tuple[str, str]:
    """
    Split a source path into (mirrored directory, basename).

    The directory is relative (no leading slash) so it can be joined under
    the backup root. Drive letters are upper-cased and lose their colon.
    '.' segments are dropped and '..' segments are resolved.

    Raises:
        ValueError: If a '..' segment climbs above the root of the path
    """
    normalized = path
    drive = ''
    match = _DRIVE_RE.match(path)
    if match:
        drive = match.group(1).upper()
        normalized = path[2:].replace('\\', '/')

    head, _, name = normalized.rpartition('/')
    if name in ('.', '..'):
        name = ''

    parts = []
    for part in head.split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            if not parts:
                raise ValueError(f"Path climbs above its root: {path}")
            parts.pop()
        else:
            parts.append(part)

    if drive:
        parts.insert(0, drive)
    return '/'.join(parts), name


def _normalize_remote_path(path: str) -> str:
    """
    Absolute, normalized form of a remote path.

    Raises:
        ValueError: If the path is relative or climbs above '/'
    """
    if not path.startswith('/'):
        raise ValueError(f"Remote path must be absolute: {path}")
    mirrored, name = _split_path(path)
    directory = '/' + mirrored if mirrored else ''
    return f"{directory}/{name}"


def is_inside(path: str, root: str) -> bool:
    """True if ``path`` is ``root`` or lies below it."""
    root = os.path.abspath(root)
    path = os.path.abspath(path)
    try:
        return os.path.commonpath([root, path]) == root
    except ValueError:
        # Different drives on Windows
        return False


def backup_directory(source: SourceFile, root: str) -> str:
    """
    Directory holding every version of ``source``.

    Raises:
        ValueError: If a source component is not a plain directory name
            or the result would leave ``root``
    """
    method, host, user, local_path = source.identity()
    for component in (method, host, user):
        if component in ('.', '..') or '/' in component or '\\' in component:
            raise ValueError(f"Invalid source component {component!r} in {source.display_name}")

    mirrored, _ = _split_path(local_path)
    directory = os.path.join(root, method, host, user)
    if mirrored:
        directory = os.path.join(directory, *mirrored.split('/'))

    if not is_inside(directory, root):
        raise ValueError(f"Backup directory for {source.display_name} is outside the backup root")
    return directory


def locate(
    source: SourceFile,
    root: str,
    unique: bool = True,
    now: Optional[datetime] = None,
    create: bool = True,
) -> Tuple[str, str]:
    """
    Compute the backup directory and file name for a source file.

    Two calls within the same second return the same unique name, so a
    second save in that second replaces the first backup.

    Args:
        source: File being backed up
        root: Absolute backup root
        unique: Append '#' + timestamp to the file name
        now: Clock override, defaults to datetime.now()
        create: Create the directory if missing

    Returns:
        (directory, filename) without any compression extension

    Raises:
        ValueError: If the source path has no file name or does not map
            to a directory inside root
        StorageError: If the directory cannot be created
    """
    filename = source.basename
    if not filename:
        raise ValueError(f"Source path has no file name: {source.local_path}")

    directory = backup_directory(source, root)

    if create:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {directory}: {e}") from e

    if unique:
        filename = f"{filename}{VERSION_SEPARATOR}{current_timestamp(now)}"

    return directory, filename


def mirror_key(source: SourceFile, root: str) -> str:
    """Backup path prefix shared by all versions of one source file."""
    directory, filename = locate(source, root, unique=False, create=False)
    return os.path.join(directory, filename)


def backup_name_regex(basename: Optional[str] = None, extensions=None):
    """
    Regular expression for backup file names.

    Groups: 'base', 'timestamp' and 'ext' (None when uncompressed).
    """
    base = re.escape(basename) if basename is not None else r'.+'
    exts = '|'.join(re.escape(e) for e in sorted(extensions or EXTENSIONS))
    return re.compile(
        rf'^(?P<base>{base}){VERSION_SEPARATOR}(?P<timestamp>{TIMESTAMP_PATTERN})'
        rf'(?:\.(?P<ext>{exts}))?$'
    )


def parse_backup_name(name: str) -> Optional[Tuple[str, str, Optional[str]]]:
    """
    Split a backup file name into (basename, timestamp, extension).

    Returns:
        Tuple, or None if name is not a backup file name
    """
    match = backup_name_regex().match(name)
    if not match:
        return None
    return match.group('base'), match.group('timestamp'), match.group('ext')
