"""
Offline Routes
Sync status and replay, offline cache control, notifications and backups
"""

from flask import Blueprint, current_app, jsonify, request

from sandwich_pos.errors import CacheInstallError

bp = Blueprint('offline', __name__)


def _service(name):
    return current_app.extensions[name]


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ============================================================
# SYNC
# ============================================================

@bp.route('/sync')
def sync_status():
    return jsonify({'success': True, **_service('sync_service').get_sync_status()})


@bp.route('/sync', methods=['POST'])
def run_sync():
    """Replay the offline queue now"""
    summary = _service('sync_service').sync_all()
    return jsonify({'success': True, **summary})


@bp.route('/queue')
def pending_operations():
    queue = _service('data_access').queue
    entries = [entry.to_dict() for entry in queue.pending()] if queue else []
    return jsonify({'success': True, 'pending': entries})


@bp.route('/queue/<int:entry_id>', methods=['DELETE'])
def discard_operation(entry_id):
    """Drop a queued operation the backend keeps rejecting"""
    queue = _service('data_access').queue
    if queue is None or not queue.discard(entry_id):
        return jsonify({'success': False, 'error': f"No queued operation {entry_id}"}), 404
    return jsonify({'success': True, 'discarded': entry_id})


# ============================================================
# CACHE
# ============================================================

@bp.route('/message', methods=['POST'])
def post_message():
    """
    Control messages from the pages

    SKIP_WAITING and GET_VERSION go to the cache service;
    SYNC_OFFLINE_DATA replays the offline queue.
    """
    message = _payload()
    if message.get('type') == 'SYNC_OFFLINE_DATA':
        return jsonify({'success': True, **_service('sync_service').sync_all()})

    reply = _service('cache_service').handle_message(message)
    if reply is None:
        return jsonify({'success': False, 'error': f"Unknown message type: {message.get('type')}"}), 400
    return jsonify({'success': True, **reply})


@bp.route('/cache')
def cache_status():
    return jsonify({'success': True, **_service('cache_service').status()})


@bp.route('/cache/install', methods=['POST'])
def install_cache():
    cache_service = _service('cache_service')
    try:
        installed = cache_service.install()
    except CacheInstallError as e:
        return jsonify({'success': False, 'status': 'failed', 'error': str(e)}), 503
    return jsonify({'success': True, 'installed': installed, 'state': cache_service.state})


@bp.route('/cache/activate', methods=['POST'])
def activate_cache():
    removed = _service('cache_service').activate()
    return jsonify({'success': True, 'removed': removed})


@bp.route('/cache/maintenance', methods=['POST'])
def cache_maintenance():
    return jsonify({'success': True, 'removed': _service('cache_service').perform_maintenance()})


@bp.route('/fetch', methods=['POST'])
def offline_fetch():
    """Resolve a request through the offline router"""
    data = _payload()
    if not data.get('url'):
        return jsonify({'success': False, 'error': 'url is required'}), 400

    response = _service('cache_service').fetch(
        data['url'],
        method=data.get('method', 'GET'),
        destination=data.get('destination'),
    )
    return jsonify({
        'success': True,
        'url': response.url,
        'status_code': response.status_code,
        'headers': response.headers,
        'body': response.text,
    })


# ============================================================
# NOTIFICATIONS
# ============================================================

@bp.route('/notifications/push', methods=['POST'])
def push_notification():
    body = _payload().get('body')
    return jsonify({'success': True, 'notification': _service('notification_service').build_push_notification(body)})


@bp.route('/notifications/click', methods=['POST'])
def notification_click():
    data = _payload()
    result = _service('notification_service').handle_notification_click(
        data.get('action'), data.get('open_views') or []
    )
    return jsonify({'success': True, 'result': result})


# ============================================================
# BACKUPS
# ============================================================

@bp.route('/backups')
def list_backups():
    backups = _service('backup_service').list_backups()
    for backup in backups:
        backup['created'] = backup['created'].isoformat()
    return jsonify({'success': True, 'backups': backups})


@bp.route('/backups', methods=['POST'])
def create_backup():
    path = _service('backup_service').backup_data()
    if path is None:
        return jsonify({'success': False, 'status': 'failed', 'error': 'Backup failed'}), 503
    return jsonify({'success': True, 'path': path}), 201


@bp.route('/backups/<filename>/restore', methods=['POST'])
def restore_backup(filename):
    try:
        counts = _service('backup_service').restore_backup(filename)
    except FileNotFoundError as e:
        return jsonify({'success': False, 'status': 'failed', 'error': str(e)}), 404
    return jsonify({'success': True, 'imported': counts})
