import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, List, Optional

from savepoint.backup.compression import Compressor, detect_default_scheme


class ConfigError(Exception):
    """Raised when configuration is invalid."""
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""

    # Backup tree
    BACKUP_ROOT = os.environ.get('SAVEPOINT_BACKUP_ROOT') or os.path.join('~', '.savepoint', 'backups')
    BACKUP_REMOTE_FILES = _env_bool('SAVEPOINT_BACKUP_REMOTE_FILES', True)
    EXCLUDE_PATTERNS = os.environ.get('SAVEPOINT_EXCLUDE', '')
    SIZE_LIMIT = os.environ.get('SAVEPOINT_SIZE_LIMIT', '50000')

    # Retention
    KEEP_COUNT = os.environ.get('SAVEPOINT_KEEP_COUNT', '20')
    AUTO_CLEANUP = _env_bool('SAVEPOINT_AUTO_CLEANUP', False)

    # Storage format and presentation
    COMPRESSION = os.environ.get('SAVEPOINT_COMPRESSION', 'auto')
    SHOW_HEADER = _env_bool('SAVEPOINT_SHOW_HEADER', True)

    # Remote sources
    SSH_PORT = os.environ.get('SAVEPOINT_SSH_PORT', '22')
    SSH_KEY = os.environ.get('SAVEPOINT_SSH_KEY')
    SSH_PASSWORD = os.environ.get('SAVEPOINT_SSH_PASSWORD')

    # Worker pool
    WORKERS = os.environ.get('SAVEPOINT_WORKERS', '3')
    SCHEDULER_ENABLED = _env_bool('SAVEPOINT_SCHEDULER', False)
    SCHEDULER_TIMEZONE = 'UTC'

    # Logging
    LOG_DIR = os.environ.get('SAVEPOINT_LOG_DIR') or os.path.join('~', '.savepoint', 'logs')
    DEBUG = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    BACKUP_ROOT = os.environ.get('SAVEPOINT_BACKUP_ROOT') or os.path.join(DATA_DIR, 'backups')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SCHEDULER_ENABLED = _env_bool('SAVEPOINT_SCHEDULER', True)


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SCHEDULER_ENABLED = False
    AUTO_CLEANUP = False
    COMPRESSION = 'none'
    LOG_DIR = None


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}


class PatternFilter:
    """
    Backup filter built from glob patterns.

    A path is rejected when it matches any exclude pattern by full path or
    by name. Paths are compared as given, so the same patterns apply to
    local and remote files.
    """

    def __init__(self, exclude_patterns: List[str] = None):
        self.exclude_patterns = exclude_patterns or []

    def __call__(self, path: str) -> bool:
        if not path:
            return False

        name = os.path.basename(path)
        for pattern in self.exclude_patterns:
            if fnmatch(path, pattern) or fnmatch(name, pattern):
                return False
            if pattern.startswith('**/') and fnmatch(name, pattern[3:]):
                return False

        return True


class BackupSettings:
    """
    Validated configuration snapshot passed to every backup component.

    Built once at startup from a Config class (or any mapping with the same
    upper-case keys). Components never read environment variables or module
    globals themselves.
    """

    def __init__(
        self,
        backup_root: str,
        backup_remote_files: bool = True,
        filter: Optional[Callable[[str], bool]] = None,
        size_limit: Optional[int] = 50000,
        keep_count: int = 20,
        auto_cleanup: bool = False,
        compression: str = 'auto',
        show_header: bool = True,
        workers: int = 3,
        ssh_port: int = 22,
        ssh_key: Optional[str] = None,
        ssh_password: Optional[str] = None,
        log_dir: Optional[str] = None,
    ):
        if not backup_root or not str(backup_root).strip():
            raise ConfigError("Backup root must not be empty")

        root = Path(os.path.expanduser(str(backup_root)))
        if not root.is_absolute():
            raise ConfigError(f"Backup root must be an absolute path: {backup_root}")
        if root.exists() and not root.is_dir():
            raise ConfigError(f"Backup root is not a directory: {backup_root}")

        if compression == 'auto':
            compression = detect_default_scheme()
        try:
            self.compressor = Compressor(compression)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        if size_limit is not None and size_limit < 0:
            raise ConfigError(f"Size limit must not be negative: {size_limit}")
        if keep_count < 0:
            raise ConfigError(f"Keep count must not be negative: {keep_count}")
        if workers < 1:
            raise ConfigError(f"Worker count must be positive: {workers}")

        self.backup_root = str(root)
        self.backup_remote_files = backup_remote_files
        self.filter = filter or PatternFilter()
        self.size_limit = size_limit
        self.keep_count = keep_count
        self.auto_cleanup = auto_cleanup
        self.compression = compression
        self.show_header = show_header
        self.workers = workers
        self.ssh_port = ssh_port
        self.ssh_key = ssh_key
        self.ssh_password = ssh_password
        self.log_dir = log_dir

    @classmethod
    def from_config(cls, source, **overrides) -> 'BackupSettings':
        """
        Build settings from a Config class or a mapping such as ``app.config``.

        Args:
            source: Config class/instance or dict with upper-case keys
            **overrides: Keyword arguments that win over ``source``

        Raises:
            ConfigError: If any value is missing or invalid
        """
        def lookup(key, default=None):
            if isinstance(source, dict):
                return source.get(key, default)
            return getattr(source, key, default)

        backup_root = overrides.pop('backup_root', None) or lookup('BACKUP_ROOT')
        backup_root = os.path.expanduser(backup_root) if backup_root else backup_root

        exclude = _parse_list(lookup('EXCLUDE_PATTERNS', ''))
        log_dir = lookup('LOG_DIR')

        values = {
            'backup_root': backup_root,
            'backup_remote_files': _parse_bool('BACKUP_REMOTE_FILES', lookup('BACKUP_REMOTE_FILES', True)),
            'size_limit': _parse_limit(lookup('SIZE_LIMIT', 50000)),
            'keep_count': _parse_int('KEEP_COUNT', lookup('KEEP_COUNT', 20)),
            'auto_cleanup': _parse_bool('AUTO_CLEANUP', lookup('AUTO_CLEANUP', False)),
            'compression': str(lookup('COMPRESSION', 'auto')).strip().lower(),
            'show_header': _parse_bool('SHOW_HEADER', lookup('SHOW_HEADER', True)),
            'workers': _parse_int('WORKERS', lookup('WORKERS', 3)),
            'ssh_port': _parse_int('SSH_PORT', lookup('SSH_PORT', 22)),
            'ssh_key': lookup('SSH_KEY'),
            'ssh_password': lookup('SSH_PASSWORD'),
            'log_dir': os.path.expanduser(log_dir) if log_dir else None,
        }
        values.update(overrides)

        if exclude and 'filter' not in overrides:
            values['filter'] = PatternFilter(exclude)

        return cls(**values)

    def __repr__(self):
        return (
            f'<BackupSettings root={self.backup_root} compression={self.compression} '
            f'keep={self.keep_count} auto_cleanup={self.auto_cleanup}>'
        )


def _parse_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(',') if part.strip()]


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off', ''):
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def _parse_int(name: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid integer for {name}: {value!r}")


def _parse_limit(value) -> Optional[int]:
    """Size limit: None, '', 'none', 'off' or 0 disable it."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in ('', 'none', 'off', 'disabled'):
        return None
    limit = _parse_int('SIZE_LIMIT', value)
    return limit or None
