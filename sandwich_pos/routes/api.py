"""
Data API Routes
JSON endpoints over the data access facade: generic table CRUD and the
sales, inventory, expense, dashboard and backup helpers
"""

from flask import Blueprint, current_app, jsonify, request

from sandwich_pos.errors import NotFoundError
from sandwich_pos.services.data_access import get_data_access
from sandwich_pos.utils.cost_calculations import calculate_menu_item_cost, get_menu_profitability
from sandwich_pos.utils.records import SyncStatus

bp = Blueprint('api', __name__)

# Query parameters of the records listing that are not field filters
RESERVED_ARGS = ('order_by', 'direction', 'limit')


def _list_status(records):
    if any(record.sync_status == SyncStatus.CACHED for record in records):
        return SyncStatus.CACHED.value
    return SyncStatus.SYNCED.value


def _record_response(record, code=200):
    return jsonify({'success': True, 'status': record.sync_status.value, 'record': record}), code


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def _bad_request(message):
    return jsonify({'success': False, 'status': 'failed', 'error': message}), 400


def _filters_from_args(args):
    """Build facade filters from query parameters (field=value equality)"""
    filters = {}
    booleans = {'true': True, 'false': False}
    where = {
        key: booleans.get(value, value)
        for key, value in args.items() if key not in RESERVED_ARGS
    }
    if where:
        filters['where'] = where
    if args.get('order_by'):
        filters['order_by'] = {'field': args['order_by'], 'direction': args.get('direction', 'asc')}
    if args.get('limit', type=int):
        filters['limit'] = args.get('limit', type=int)
    return filters


# ============================================================
# GENERIC RECORDS
# ============================================================

@bp.route('/records/<table>')
def list_records(table):
    """List records of a table, filtered by query parameters"""
    records = get_data_access().read(table, _filters_from_args(request.args))
    return jsonify({'success': True, 'status': _list_status(records), 'records': records})


@bp.route('/records/<table>', methods=['POST'])
def create_record(table):
    data = _json_body()
    if data is None:
        return _bad_request('JSON object required')
    return _record_response(get_data_access().create(table, data), 201)


@bp.route('/records/<table>/<record_id>')
def get_record(table, record_id):
    record = get_data_access().find_by_id(table, record_id)
    if record is None:
        raise NotFoundError(table, record_id)
    return _record_response(record)


@bp.route('/records/<table>/<record_id>', methods=['PUT', 'PATCH'])
def update_record(table, record_id):
    data = _json_body()
    if data is None:
        return _bad_request('JSON object required')
    return _record_response(get_data_access().update(table, record_id, data))


@bp.route('/records/<table>/<record_id>', methods=['DELETE'])
def delete_record(table, record_id):
    return _record_response(get_data_access().delete(table, record_id))


# ============================================================
# SALES & EXPENSES
# ============================================================

@bp.route('/sales')
def list_sales():
    """Sales between start_date and end_date (YYYY-MM-DD, inclusive)"""
    sales = get_data_access().get_sales_data(request.args.get('start_date'), request.args.get('end_date'))
    return jsonify({'success': True, 'status': _list_status(sales), 'records': sales})


@bp.route('/sales', methods=['POST'])
def record_sale():
    """Record a sale with its items and deduct recipe ingredients"""
    data = _json_body()
    if data is None:
        return _bad_request('JSON object required')

    items = data.get('items') or []
    for item in items:
        if not isinstance(item, dict) or not item.get('menu_item_id'):
            return _bad_request('Every item needs a menu_item_id')
        if not isinstance(item.get('quantity', 1), int) or item.get('quantity', 1) < 1:
            return _bad_request('Item quantity must be a positive integer')

    return _record_response(get_data_access().record_sale_with_inventory_deduction(data), 201)


@bp.route('/sales/daily-total')
def daily_sales_total():
    day = request.args.get('date')
    data_access = get_data_access()
    return jsonify({
        'success': True,
        'status': SyncStatus.SYNCED.value if data_access.is_online else SyncStatus.CACHED.value,
        'date': day,
        'total': data_access.get_daily_sales_total(day),
    })


@bp.route('/expenses', methods=['POST'])
def record_expense():
    data = _json_body()
    if data is None:
        return _bad_request('JSON object required')
    if data.get('amount') is None:
        return _bad_request('Expense amount is required')
    return _record_response(get_data_access().record_expense(data), 201)


# ============================================================
# INVENTORY & MENU
# ============================================================

@bp.route('/inventory/low-stock')
def low_stock():
    items = get_data_access().get_low_stock_items()
    return jsonify({'success': True, 'status': _list_status(items), 'records': items, 'count': len(items)})


@bp.route('/menu/top-selling')
def top_selling():
    limit = request.args.get('limit', 5, type=int)
    return jsonify({'success': True, 'items': get_data_access().get_top_selling_items(limit)})


@bp.route('/menu/profitability')
def menu_profitability():
    margin_warning = current_app.config.get('PROFIT_MARGIN_WARNING', 30)
    return jsonify({'success': True, 'items': get_menu_profitability(get_data_access(), margin_warning)})


@bp.route('/menu/<menu_item_id>/cost')
def menu_item_cost(menu_item_id):
    cost = calculate_menu_item_cost(get_data_access(), menu_item_id)
    return jsonify({'success': True, 'menu_item_id': menu_item_id, 'cost': float(cost)})


# ============================================================
# DASHBOARD & BACKUP
# ============================================================

@bp.route('/dashboard')
def dashboard():
    return jsonify({'success': True, **get_data_access().get_dashboard_data()})


@bp.route('/export')
def export_data():
    return jsonify(get_data_access().export_data())


@bp.route('/import', methods=['POST'])
def import_data():
    data = _json_body()
    if data is None:
        return _bad_request('Export document required')
    counts = get_data_access().import_data(data)
    return jsonify({'success': True, 'status': SyncStatus.SYNCED.value, 'imported': counts})
