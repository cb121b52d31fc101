"""
Backup history routes - Browse stored versions of a file (read-only).
"""

from flask import Blueprint, Response, current_app, jsonify, request

from savepoint.backup.browser import Browser, header
from savepoint.backup.catalog import Catalog, NotFoundError
from savepoint.backup.compression import CompressionError
from savepoint.backup.paths import SourceFile
from savepoint.backup.storage import StorageError


bp = Blueprint('history', __name__, url_prefix='/api/history')


def _settings():
    return current_app.extensions['savepoint']['settings']


def _source_from_request():
    """
    Parse the ``path`` query parameter.

    Returns:
        (SourceFile, None) or (None, error response)
    """
    path = request.args.get('path', '').strip()
    if not path:
        return None, (jsonify({'error': 'Query parameter "path" is required'}), 400)
    try:
        return SourceFile.parse(path), None
    except ValueError as e:
        return None, (jsonify({'error': str(e)}), 400)


@bp.route('/', methods=['GET'])
def list_history():
    """
    List stored versions of a file, oldest first.

    Query params:
        - path: Local path or remote file name

    Returns:
        JSON with version records
    """
    source, error = _source_from_request()
    if error:
        return error

    catalog = Catalog(_settings())
    try:
        entries = catalog.list_entries(source)
    except StorageError as e:
        current_app.logger.error(f"Failed to list backups for {source.display_name}: {e}")
        return jsonify({'error': str(e)}), 500

    if not entries:
        return jsonify({'error': f'No backups found for {source.display_name}'}), 404

    records = []
    for entry in entries:
        record = entry.to_dict()
        try:
            record['size_bytes'] = catalog.storage.size(entry.storage_path)
        except StorageError:
            # Removed between listing and stat
            record['size_bytes'] = None
        records.append(record)

    return jsonify({
        'path': source.display_name,
        'records': records,
        'total': len(records)
    })


@bp.route('/<timestamp>', methods=['GET'])
def get_version(timestamp):
    """
    Get metadata for one stored version.

    Args:
        timestamp: Version timestamp (YYYY-MM-DD-HH-MM-SS)
    """
    source, error = _source_from_request()
    if error:
        return error

    settings = _settings()
    try:
        entry = Catalog(settings).find(source, timestamp)
    except NotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except StorageError as e:
        return jsonify({'error': str(e)}), 500

    record = entry.to_dict()
    record['path'] = source.display_name
    record['header'] = header(source, entry) if settings.show_header else None
    return jsonify(record)


@bp.route('/<timestamp>/content', methods=['GET'])
def get_version_content(timestamp):
    """
    Get the decoded content of one stored version.

    Args:
        timestamp: Version timestamp (YYYY-MM-DD-HH-MM-SS)
    """
    source, error = _source_from_request()
    if error:
        return error

    browser = Browser(_settings())
    try:
        view = browser.open_version(source, timestamp=timestamp)
    except NotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except (StorageError, CompressionError) as e:
        current_app.logger.error(f"Failed to open backup {timestamp} of {source.display_name}: {e}")
        return jsonify({'error': str(e)}), 500

    response = Response(view.content, mimetype='application/octet-stream')
    response.headers['X-Savepoint-Label'] = view.label
    response.headers['X-Savepoint-Basename'] = view.original_basename
    if view.header:
        response.headers['X-Savepoint-Header'] = view.header
    return response
