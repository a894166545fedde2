"""
Entity store clients for generic CRUD over named record collections
(RevenueTransaction, PayoutRequest, FeatureConfig, ...).

Three backends share one interface: an in-memory store (tests, demo mode),
an HTTP client for the remote entity API, and a PostgreSQL JSONB store.
"""

import copy
import json
import logging
import os
import threading
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import requests

log = logging.getLogger('financials')


class EntityStoreError(Exception):
    """Backend failure while talking to the entity store."""


class RecordNotFound(EntityStoreError):
    """No record with the given id in the collection."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_record(record: dict) -> dict:
    """Copy a record and stamp id / created_date when absent."""
    rec = dict(record)
    rec.setdefault('id', uuid.uuid4().hex)
    rec.setdefault('created_date', datetime.utcnow().isoformat())
    return rec


def _matches(record: dict, query: Optional[dict]) -> bool:
    if not query:
        return True
    return all(record.get(k) == v for k, v in query.items())


def _sort_records(records: List[dict], sort: Optional[str]) -> List[dict]:
    """Sort by a field name; a leading '-' sorts descending (e.g. '-created_date')."""
    if not sort:
        return records
    reverse = sort.startswith('-')
    key = sort.lstrip('-')
    present = [r for r in records if r.get(key) is not None]
    missing = [r for r in records if r.get(key) is None]
    present.sort(key=lambda r: r[key], reverse=reverse)
    return present + missing


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class EntityStore:
    """CRUD over named collections. Records are plain dicts with an 'id'."""

    def filter(self, collection: str, query: Optional[dict] = None,
               sort: Optional[str] = None) -> List[dict]:
        raise NotImplementedError

    def list(self, collection: str, sort: Optional[str] = None) -> List[dict]:
        return self.filter(collection, None, sort=sort)

    def get(self, collection: str, record_id: str) -> dict:
        raise NotImplementedError

    def create(self, collection: str, record: dict) -> dict:
        raise NotImplementedError

    def bulk_create(self, collection: str, records: Iterable[dict]) -> List[dict]:
        return [self.create(collection, r) for r in records]

    def update(self, collection: str, record_id: str, changes: dict) -> dict:
        raise NotImplementedError

    def delete(self, collection: str, record_id: str) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class InMemoryEntityStore(EntityStore):
    """Dict-backed store. Returned records are copies."""

    def __init__(self, data: Optional[Dict[str, List[dict]]] = None):
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, dict]] = {}
        for collection, records in (data or {}).items():
            self.bulk_create(collection, records)

    @classmethod
    def load_json(cls, path: str) -> 'InMemoryEntityStore':
        """Seed a store from a {collection: [records]} JSON file."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        store = cls(data)
        log.info("Loaded %d collections from %s", len(data), path)
        return store

    def filter(self, collection, query=None, sort=None):
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._data.get(collection, {}).values()
                    if _matches(r, query)]
        return _sort_records(rows, sort)

    def get(self, collection, record_id):
        with self._lock:
            rec = self._data.get(collection, {}).get(record_id)
            if rec is None:
                raise RecordNotFound(f"{collection} '{record_id}' not found")
            return copy.deepcopy(rec)

    def create(self, collection, record):
        rec = _new_record(record)
        with self._lock:
            self._data.setdefault(collection, {})[rec['id']] = copy.deepcopy(rec)
        return rec

    def update(self, collection, record_id, changes):
        with self._lock:
            rec = self._data.get(collection, {}).get(record_id)
            if rec is None:
                raise RecordNotFound(f"{collection} '{record_id}' not found")
            rec.update(copy.deepcopy(changes))
            rec['id'] = record_id
            rec['updated_date'] = datetime.utcnow().isoformat()
            return copy.deepcopy(rec)

    def delete(self, collection, record_id):
        with self._lock:
            if self._data.get(collection, {}).pop(record_id, None) is None:
                raise RecordNotFound(f"{collection} '{record_id}' not found")


# ---------------------------------------------------------------------------
# Remote HTTP backend
# ---------------------------------------------------------------------------

class RemoteEntityStore(EntityStore):
    """Client for the platform entity API.

    GET    {base}/entities/{Collection}?q=<json>&sort=<field>
    GET    {base}/entities/{Collection}/{id}
    POST   {base}/entities/{Collection}
    PUT    {base}/entities/{Collection}/{id}
    DELETE {base}/entities/{Collection}/{id}
    """

    def __init__(self, base_url: str, api_key: str = '', timeout: float = 15,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers['api_key'] = api_key
        self.session.headers.setdefault('Content-Type', 'application/json')

    def _url(self, collection: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/entities/{collection}"
        return f"{url}/{record_id}" if record_id else url

    def _request(self, method: str, url: str, **kwargs):
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise EntityStoreError(f"{method} {url} failed: {e}") from e
        if resp.status_code == 404:
            raise RecordNotFound(f"{method} {url}: not found")
        if resp.status_code >= 400:
            raise EntityStoreError(f"{method} {url}: HTTP {resp.status_code} {resp.text[:200]}")
        if not resp.content:
            return None
        return resp.json()

    def filter(self, collection, query=None, sort=None):
        params = {}
        if query:
            params['q'] = json.dumps(query)
        if sort:
            params['sort'] = sort
        return self._request('GET', self._url(collection), params=params) or []

    def get(self, collection, record_id):
        return self._request('GET', self._url(collection, record_id))

    def create(self, collection, record):
        return self._request('POST', self._url(collection), json=record)

    def bulk_create(self, collection, records):
        return self._request('POST', self._url(collection) + '/bulk', json=list(records)) or []

    def update(self, collection, record_id, changes):
        return self._request('PUT', self._url(collection, record_id), json=changes)

    def delete(self, collection, record_id):
        self._request('DELETE', self._url(collection, record_id))


# ---------------------------------------------------------------------------
# PostgreSQL backend
# ---------------------------------------------------------------------------

class PostgresEntityStore(EntityStore):
    """Records kept as JSONB rows in entity_records (see db.py)."""

    def __init__(self, db_module=None):
        if db_module is None:
            import db as db_module
        self._db = db_module

    def filter(self, collection, query=None, sort=None):
        try:
            rows = self._db.select_records(collection, query)
        except Exception as e:
            raise EntityStoreError(f"select {collection} failed: {e}") from e
        return _sort_records(rows, sort)

    def get(self, collection, record_id):
        try:
            rec = self._db.fetch_record(collection, record_id)
        except Exception as e:
            raise EntityStoreError(f"fetch {collection} '{record_id}' failed: {e}") from e
        if rec is None:
            raise RecordNotFound(f"{collection} '{record_id}' not found")
        return rec

    def create(self, collection, record):
        try:
            return self._db.insert_record(collection, _new_record(record))
        except Exception as e:
            raise EntityStoreError(f"insert {collection} failed: {e}") from e

    def update(self, collection, record_id, changes):
        try:
            rec = self._db.update_record(collection, record_id, changes)
        except Exception as e:
            raise EntityStoreError(f"update {collection} '{record_id}' failed: {e}") from e
        if rec is None:
            raise RecordNotFound(f"{collection} '{record_id}' not found")
        return rec

    def delete(self, collection, record_id):
        try:
            deleted = self._db.delete_record(collection, record_id)
        except Exception as e:
            raise EntityStoreError(f"delete {collection} '{record_id}' failed: {e}") from e
        if not deleted:
            raise RecordNotFound(f"{collection} '{record_id}' not found")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_store_from_env() -> EntityStore:
    """Remote API if ENTITY_API_URL is set, else PostgreSQL if reachable, else in-memory."""
    api_url = os.getenv('ENTITY_API_URL', '')
    if api_url:
        log.info("Entity store: remote API at %s", api_url)
        return RemoteEntityStore(
            api_url,
            api_key=os.getenv('ENTITY_API_KEY', ''),
            timeout=float(os.getenv('ENTITY_API_TIMEOUT', '15')),
        )

    import db
    if db.init_pool():
        migrations_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')
        if os.path.isdir(migrations_dir):
            db.run_migrations(migrations_dir)
        log.info("Entity store: PostgreSQL")
        return PostgresEntityStore(db)

    seed_path = os.getenv('DEMO_RECORDS_PATH', os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'demo_data', 'records.json'))
    if os.path.isfile(seed_path):
        log.info("Entity store: in-memory (seeded from %s)", seed_path)
        return InMemoryEntityStore.load_json(seed_path)
    log.info("Entity store: in-memory (empty)")
    return InMemoryEntityStore()
