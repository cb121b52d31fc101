"""
Backup routes - Save notifications from the host and manual cleanup.
"""

from flask import Blueprint, current_app, jsonify, request

from savepoint.backup.archiver import Archiver
from savepoint.backup.paths import SourceFile
from savepoint.backup.retention import RetentionManager
from savepoint.backup.sources import SourceError
from savepoint.backup.storage import StorageError


bp = Blueprint('backups', __name__, url_prefix='/api/backups')


def _source_from_body(data):
    path = (data.get('path') or '').strip() if isinstance(data.get('path'), str) else ''
    if not path:
        return None, (jsonify({'error': 'Field "path" is required'}), 400)
    try:
        return SourceFile.parse(path), None
    except ValueError as e:
        return None, (jsonify({'error': str(e)}), 400)


@bp.route('/', methods=['POST'])
def create_backup():
    """
    Record a save of a file.

    Expected JSON:
        {
            "path": "/home/user/notes.txt"
        }

    Returns:
        202 when queued on the scheduler, otherwise 201 (archived),
        200 (skipped by policy) or 500 (read/write failure)
    """
    data = request.get_json(silent=True) or {}
    source, error = _source_from_body(data)
    if error:
        return error

    state = current_app.extensions['savepoint']
    scheduler = state['scheduler']

    if scheduler is not None and scheduler.running:
        try:
            key = scheduler.submit_archive(source)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify({
            'status': 'queued',
            'path': source.display_name,
            'key': key
        }), 202

    try:
        result = Archiver(state['settings']).archive(source)
    except (SourceError, StorageError) as e:
        current_app.logger.error(f"Backup of {source.display_name} failed: {e}")
        return jsonify({'status': 'failed', 'path': source.display_name, 'error': str(e)}), 500
    except ValueError as e:
        return jsonify({'status': 'failed', 'path': source.display_name, 'error': str(e)}), 400

    return jsonify(result.to_dict()), 201 if result.archived else 200


@bp.route('/cleanup', methods=['POST'])
def cleanup_backups():
    """
    Delete all but the most recent versions of a file.

    Expected JSON:
        {
            "path": "/home/user/notes.txt",
            "keep": 5  (optional, defaults to the configured keep count)
        }
    """
    data = request.get_json(silent=True) or {}
    source, error = _source_from_body(data)
    if error:
        return error

    keep = data.get('keep')
    if keep is not None and (not isinstance(keep, int) or isinstance(keep, bool) or keep < 0):
        return jsonify({'error': 'Field "keep" must be a non-negative integer'}), 400

    manager = RetentionManager(current_app.extensions['savepoint']['settings'])
    try:
        result = manager.retain(source, keep)
    except StorageError as e:
        current_app.logger.error(f"Cleanup of {source.display_name} failed: {e}")
        return jsonify({'error': str(e)}), 500
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(result.to_dict()), 200 if result.ok else 207
