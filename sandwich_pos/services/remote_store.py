"""
Remote Store
Table-oriented client for the remote relational service (Supabase PostgREST)
"""

import logging
from typing import Dict, List, Optional, Tuple

import requests

from sandwich_pos.errors import BackendRejectedError, NetworkUnavailableError, NotFoundError
from sandwich_pos.utils.records import check_table, normalize_conditions

logger = logging.getLogger(__name__)

# Status codes that mean "try again later" rather than "this request is wrong"
TRANSIENT_STATUS_CODES = {408, 429}


def _format_value(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def build_query_params(filters: Optional[Dict] = None) -> List[Tuple[str, str]]:
    """
    Translate facade filters into PostgREST query parameters

    Args:
        filters: Dict with optional 'where', 'order_by' and 'limit' keys

    Returns:
        list: (name, value) pairs; a field may repeat for range filters
    """
    filters = filters or {}
    params = [('select', '*')]

    for field, expected in (filters.get('where') or {}).items():
        for operator, value in normalize_conditions(expected):
            if operator == 'eq' and value is None:
                params.append((field, 'is.null'))
            elif operator == 'like':
                params.append((field, f"ilike.*{value}*"))
            else:
                params.append((field, f"{operator}.{_format_value(value)}"))

    order_by = filters.get('order_by')
    if order_by:
        params.append(('order', f"{order_by['field']}.{order_by.get('direction', 'asc')}"))

    if filters.get('limit'):
        params.append(('limit', str(int(filters['limit']))))

    return params


class RemoteStore:
    """Remote backend speaking the PostgREST protocol over HTTP"""

    kind = 'remote'

    def __init__(self, base_url, api_key, timeout=10, session=None):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key or '',
            'Authorization': f"Bearer {api_key or ''}",
            'Content-Type': 'application/json',
        })

    @classmethod
    def from_config(cls, app_config, session=None):
        """Build a client from the Flask app configuration"""
        return cls(
            app_config.get('SUPABASE_URL'),
            app_config.get('SUPABASE_KEY'),
            timeout=app_config.get('REMOTE_TIMEOUT_SECONDS', 10),
            session=session,
        )

    @property
    def rest_url(self):
        return f"{self.base_url}/rest/v1"

    def _request(self, method, table, params=None, payload=None, prefer='return=representation'):
        check_table(table)
        url = f"{self.rest_url}/{table}"
        try:
            response = self.session.request(
                method, url,
                params=params,
                json=payload,
                headers={'Prefer': prefer},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Remote {method} {table} failed: {e}")
            raise NetworkUnavailableError(f"Remote backend unreachable: {e}") from e

        status = response.status_code
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise NetworkUnavailableError(f"Remote backend unavailable (HTTP {status})")
        if status >= 400:
            raise BackendRejectedError(self._error_message(response), status_code=status)

        if not response.content:
            return []
        return response.json()

    @staticmethod
    def _error_message(response):
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        if isinstance(body, dict):
            return body.get('message') or body.get('hint') or str(body)
        return str(body)

    def ping(self) -> bool:
        """Check whether the remote service answers at all"""
        try:
            response = self.session.get(f"{self.rest_url}/", timeout=self.timeout)
            return response.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"Remote backend not reachable: {e}")
            return False

    def read(self, table: str, filters: Optional[Dict] = None) -> List[Dict]:
        """Select rows matching the filters"""
        return self._request('GET', table, params=build_query_params(filters))

    def get(self, table: str, record_id) -> Optional[Dict]:
        rows = self.read(table, {'where': {'id': record_id}, 'limit': 1})
        return rows[0] if rows else None

    def create(self, table: str, record: Dict, upsert: bool = False) -> Dict:
        """
        Insert a row

        Args:
            table: Target table
            record: Full record including its client-generated id
            upsert: Merge into an existing row with the same id instead of
                failing, which makes replays of the same create idempotent
        """
        prefer = 'return=representation'
        if upsert:
            prefer += ',resolution=merge-duplicates'
        rows = self._request('POST', table, payload=record, prefer=prefer)
        return rows[0] if rows else dict(record)

    def update(self, table: str, record_id, patch: Dict) -> Dict:
        rows = self._request('PATCH', table, params=[('id', f"eq.{record_id}")], payload=patch)
        if not rows:
            raise NotFoundError(table, record_id)
        return rows[0]

    def delete(self, table: str, record_id) -> Dict:
        rows = self._request('DELETE', table, params=[('id', f"eq.{record_id}")])
        if not rows:
            raise NotFoundError(table, record_id)
        return rows[0]

    def close(self):
        self.session.close()
