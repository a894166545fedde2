"""
PostgreSQL connection pool and record operations for the entity store.
Records of every collection live in one JSONB table (entity_records).
Graceful degradation: init_pool() returns False and callers fall back
to another store when PostgreSQL is not configured or unreachable.
"""

import json
import logging
import os
from contextlib import contextmanager
from typing import List, Optional

log = logging.getLogger('financials')

_pool = None


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------

def init_pool() -> bool:
    """Initialise a threaded connection pool. Returns True on success."""
    global _pool
    host = os.getenv('DB_HOST', '')
    if not host:
        log.info("DB_HOST not set — PostgreSQL disabled")
        return False

    try:
        from psycopg2 import pool as pg_pool

        _pool = pg_pool.ThreadedConnectionPool(
            minconn=1,
            maxconn=int(os.getenv('DB_MAX_CONN', '10')),
            host=host,
            port=int(os.getenv('DB_PORT', '5432')),
            dbname=os.getenv('DB_NAME', 'creator_financials'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            connect_timeout=5,
        )
        conn = _pool.getconn()
        conn.cursor().execute('SELECT 1')
        conn.commit()
        _pool.putconn(conn)
        log.info("PostgreSQL pool initialised (%s:%s/%s)",
                 host, os.getenv('DB_PORT', '5432'), os.getenv('DB_NAME', 'creator_financials'))
        return True
    except Exception as e:
        log.warning("PostgreSQL unavailable: %s", e)
        _pool = None
        return False


def is_available() -> bool:
    return _pool is not None


@contextmanager
def get_conn():
    """Yield a pooled connection; commit on success, rollback on error."""
    if _pool is None:
        raise RuntimeError("PostgreSQL pool not initialised")
    conn = _pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

def run_migrations(migrations_dir: str):
    """Apply numbered .sql files (001_xxx.sql, ...) not yet recorded in schema_version."""
    if not is_available():
        return

    sql_files = sorted(f for f in os.listdir(migrations_dir) if f.endswith('.sql'))
    if not sql_files:
        return

    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version     INTEGER PRIMARY KEY,
                applied_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                description TEXT
            )
        """)
        conn.commit()

        cur.execute("SELECT version FROM schema_version")
        applied = {row[0] for row in cur.fetchall()}

        for fname in sql_files:
            try:
                version = int(fname.split('_')[0])
            except (ValueError, IndexError):
                continue
            if version in applied:
                continue

            log.info("Applying migration %s ...", fname)
            with open(os.path.join(migrations_dir, fname), 'r', encoding='utf-8') as f:
                cur.execute(f.read())
            cur.execute("INSERT INTO schema_version (version, description) VALUES (%s, %s)",
                        (version, fname))
            conn.commit()
            log.info("Migration %s applied", fname)


# ---------------------------------------------------------------------------
# Record CRUD
# ---------------------------------------------------------------------------

def insert_record(collection: str, record: dict) -> dict:
    """Insert a record (must already carry an 'id'). Returns the stored record."""
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO entity_records (id, collection, data)
            VALUES (%s, %s, %s::jsonb)
            RETURNING data
        """, (record['id'], collection, json.dumps(record, default=str)))
        return cur.fetchone()[0]


def select_records(collection: str, query: Optional[dict] = None) -> List[dict]:
    """All records in a collection whose data contains every key/value in query."""
    with get_conn() as conn:
        cur = conn.cursor()
        if query:
            cur.execute("""
                SELECT data FROM entity_records
                WHERE collection = %s AND data @> %s::jsonb
                ORDER BY created_at
            """, (collection, json.dumps(query, default=str)))
        else:
            cur.execute("""
                SELECT data FROM entity_records
                WHERE collection = %s
                ORDER BY created_at
            """, (collection,))
        return [row[0] for row in cur.fetchall()]


def fetch_record(collection: str, record_id: str) -> Optional[dict]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("SELECT data FROM entity_records WHERE collection = %s AND id = %s",
                    (collection, record_id))
        row = cur.fetchone()
        return row[0] if row else None


def update_record(collection: str, record_id: str, changes: dict) -> Optional[dict]:
    """Shallow-merge changes into the stored record. Returns None if missing."""
    changes = {k: v for k, v in changes.items() if k != 'id'}
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("""
            UPDATE entity_records
            SET data = data || %s::jsonb || jsonb_build_object('updated_date', now()::text),
                updated_at = now()
            WHERE collection = %s AND id = %s
            RETURNING data
        """, (json.dumps(changes, default=str), collection, record_id))
        row = cur.fetchone()
        return row[0] if row else None


def delete_record(collection: str, record_id: str) -> bool:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("DELETE FROM entity_records WHERE collection = %s AND id = %s RETURNING id",
                    (collection, record_id))
        return cur.fetchone() is not None
