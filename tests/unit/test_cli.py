"""
Unit tests for the command line interface (savepoint/cli.py).
"""

import logging

import pytest
from click.testing import CliRunner

from savepoint.backup.catalog import Catalog
from savepoint.backup.paths import SourceFile
from savepoint.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, backup_root):
    """Run the CLI with the testing profile against the temporary backup root."""
    def _invoke(*args, **kwargs):
        return runner.invoke(main, ['--config-name', 'testing', '--root', str(backup_root), *args], **kwargs)
    yield _invoke
    # Handlers bound to the runner's streams must not outlive the test
    package_logger = logging.getLogger('savepoint')
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)


class TestBackupCommand:

    def test_backup(self, invoke, settings, source_file):
        result = invoke('backup', source_file.local_path)

        assert result.exit_code == 0
        assert 'Saved' in result.output
        assert len(Catalog(settings).list_entries(source_file)) == 1

    def test_backup_missing_file(self, invoke, source_dir):
        result = invoke('backup', str(source_dir / 'gone.txt'))

        assert result.exit_code == 1
        assert 'Backup failed' in result.output

    def test_backup_inside_root_skipped(self, invoke, backup_root):
        inner = backup_root / 'x.txt'
        inner.write_text('x')

        result = invoke('backup', str(inner))

        assert result.exit_code == 0
        assert 'inside the backup root' in result.output

    def test_invalid_root(self, runner, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')

        result = runner.invoke(main, ['--config-name', 'testing', '--root', str(blocker), 'list', '/x'])

        assert result.exit_code == 2
        assert 'Configuration error' in result.output


class TestListCommand:

    def test_list(self, invoke, source_file, write_version, times):
        for when in times:
            write_version(source_file, when)

        result = invoke('list', source_file.local_path)

        assert result.exit_code == 0
        assert '2024-01-15 12:00:00' in result.output
        assert '2024-01-15 13:30:00' in result.output

    def test_list_not_found(self, invoke, source_file):
        result = invoke('list', source_file.local_path)

        assert result.exit_code == 3

    @pytest.mark.parametrize("path", ['/', '/ssh:h:/etc/', '/ssh:u@h:/../../escaped/x.conf'])
    def test_list_invalid_path(self, invoke, path):
        """Paths that name no file, or leave the remote root, are usage errors."""
        result = invoke('list', path)

        assert result.exit_code == 2
        assert 'Invalid path' in result.output


class TestCleanupCommand:

    def test_cleanup(self, invoke, settings, source_file, write_version, times):
        for when in times:
            write_version(source_file, when)

        result = invoke('cleanup', source_file.local_path, '--keep', '1')

        assert result.exit_code == 0
        assert 'Removed 2 version(s)' in result.output
        assert len(Catalog(settings).list_entries(source_file)) == 1

    def test_cleanup_all(self, invoke, source_dir, write_version, times):
        for name in ('a.txt', 'b.txt'):
            for when in times:
                write_version(SourceFile.local(str(source_dir / name)), when)

        result = invoke('cleanup', '--all', '--keep', '2')

        assert result.exit_code == 0
        assert 'Removed 2 version(s) across 2 file(s)' in result.output

    def test_cleanup_requires_target(self, invoke):
        result = invoke('cleanup')

        assert result.exit_code == 2

    def test_cleanup_rejects_negative_keep(self, invoke, source_file):
        result = invoke('cleanup', source_file.local_path, '--keep', '-1')

        assert result.exit_code == 2

    def test_cleanup_path_without_file_name(self, invoke):
        result = invoke('cleanup', '/')

        assert result.exit_code == 2
        assert 'no file name' in result.output


class TestOpenCommand:

    def test_open_version(self, invoke, source_file, write_version, times):
        write_version(source_file, times[0], content=b'old text')
        write_version(source_file, times[1], content=b'new text')

        result = invoke('open', source_file.local_path, '--version', '2024-01-15-12-00-00')

        assert result.exit_code == 0
        assert 'old text' in result.output
        assert 'Backup of' in result.output

    def test_open_prompts_with_newest_default(self, invoke, source_file, write_version, times):
        write_version(source_file, times[0], content=b'old text')
        write_version(source_file, times[1], content=b'new text')

        result = invoke('open', source_file.local_path, input='\n')

        assert result.exit_code == 0
        assert 'new text' in result.output

    def test_open_prompt_choice(self, invoke, source_file, write_version, times):
        write_version(source_file, times[0], content=b'old text')
        write_version(source_file, times[1], content=b'new text')

        result = invoke('open', source_file.local_path, input='1\n')

        assert 'old text' in result.output

    def test_open_not_found(self, invoke, source_file):
        result = invoke('open', source_file.local_path, '--version', '2024-01-15-12-00-00')

        assert result.exit_code == 3

    def test_open_path_without_file_name(self, invoke):
        result = invoke('open', '/', '--version', '2024-01-15-12-00-00')

        assert result.exit_code == 2
        assert 'no file name' in result.output
