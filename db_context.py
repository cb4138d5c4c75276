import logging
import threading
from contextlib import contextmanager, suppress
from typing import Any, Dict, List, Mapping, Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from config import Settings, get_settings

logger = logging.getLogger(__name__)

COLUMNS = ("id", "title", "description", "status", "priority", "parent_id", "created_at")
WRITABLE_COLUMNS = ("title", "description", "status", "priority", "parent_id")

_RETURNING = sql.SQL(", ").join(sql.Identifier(c) for c in COLUMNS)


class StoreError(Exception):
    """Any failure reported by the underlying database."""


class Database:
    """PostgreSQL client for the ``tasks`` table.

    Public methods:
      - initialize()
      - select_tasks(status, priority, parent_id, top_level)  # created_at DESC
      - select_task(id)
      - select_children(id)  # created_at ASC
      - insert_tasks(rows)   # one statement, all rows or none
      - update_task(id, fields)
      - delete_task(id)      # children go with it (ON DELETE CASCADE)

    Every call borrows a pooled connection and runs in its own transaction.
    Rows come back as plain dicts.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._pool = None
        self._pool_lock = threading.Lock()

    def _get_pool(self) -> ThreadedConnectionPool:
        # request handlers run in a threadpool; each call borrows its own connection
        with self._pool_lock:
            if self._pool is None or self._pool.closed:
                s = self._settings
                self._pool = ThreadedConnectionPool(
                    s.DB_POOL_MIN,
                    s.DB_POOL_MAX,
                    database=s.DB_NAME,
                    user=s.DB_USER,
                    password=s.DB_PASS,
                    host=s.DB_HOST,
                    port=s.DB_PORT,
                )
            return self._pool

    @contextmanager
    def _cursor(self):
        try:
            pool = self._get_pool()
            conn = pool.getconn()
        except psycopg2.Error as e:
            logger.error("database connection failed: %s", e)
            raise StoreError(str(e).strip()) from e

        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            with suppress(psycopg2.Error):
                conn.rollback()
            logger.error("database error: %s", e)
            raise StoreError(str(e).strip()) from e
        except Exception:
            with suppress(psycopg2.Error):
                conn.rollback()
            raise
        finally:
            pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None and not self._pool.closed:
                self._pool.closeall()
            self._pool = None

    def initialize(self) -> None:
        """Create tasks table and indexes (no-op if they exist)."""
        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id BIGSERIAL PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'completed')),
                    priority TEXT NOT NULL DEFAULT 'medium'
                        CHECK (priority IN ('low', 'medium', 'high')),
                    parent_id BIGINT REFERENCES tasks(id) ON DELETE CASCADE,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );
                CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
                CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority);
                CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id);
                CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);
                """
            )
        logger.info("tasks table ready db=%s host=%s", self._settings.DB_NAME, self._settings.DB_HOST)

    def select_tasks(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        parent_id: Optional[int] = None,
        top_level: bool = False,
    ) -> List[Dict[str, Any]]:
        conditions = []
        params: List[Any] = []
        if status is not None:
            conditions.append(sql.SQL("status = %s"))
            params.append(status)
        if priority is not None:
            conditions.append(sql.SQL("priority = %s"))
            params.append(priority)
        if top_level:
            conditions.append(sql.SQL("parent_id IS NULL"))
        elif parent_id is not None:
            conditions.append(sql.SQL("parent_id = %s"))
            params.append(parent_id)

        query = sql.SQL("SELECT {} FROM tasks").format(_RETURNING)
        if conditions:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        query += sql.SQL(" ORDER BY created_at DESC, id DESC")

        with self._cursor() as cur:
            cur.execute(query, params)
            return [dict(r) for r in cur.fetchall()]

    def select_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(
                sql.SQL("SELECT {} FROM tasks WHERE id = %s").format(_RETURNING),
                (task_id,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    def select_children(self, task_id: int) -> List[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(
                sql.SQL("SELECT {} FROM tasks WHERE parent_id = %s ORDER BY created_at ASC, id ASC").format(_RETURNING),
                (task_id,),
            )
            return [dict(r) for r in cur.fetchall()]

    def insert_tasks(self, rows: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Insert all ``rows`` in a single statement and return them as stored."""
        if not rows:
            return []

        values = sql.SQL(", ").join(
            sql.SQL("({})").format(sql.SQL(", ").join(sql.Placeholder() * len(WRITABLE_COLUMNS)))
            for _ in rows
        )
        query = sql.SQL("INSERT INTO tasks ({}) VALUES {} RETURNING {}").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in WRITABLE_COLUMNS),
            values,
            _RETURNING,
        )
        params = [row.get(c) for row in rows for c in WRITABLE_COLUMNS]

        with self._cursor() as cur:
            cur.execute(query, params)
            created = [dict(r) for r in cur.fetchall()]
        created.sort(key=lambda r: r["id"])
        return created

    def update_task(self, task_id: int, fields: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply ``fields`` to one row. Returns the updated row, or None if no row matched."""
        columns = [c for c in WRITABLE_COLUMNS if c in fields]
        if not columns:
            return self.select_task(task_id)

        query = sql.SQL("UPDATE tasks SET {} WHERE id = %s RETURNING {}").format(
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns),
            _RETURNING,
        )
        params = [fields[c] for c in columns] + [task_id]

        with self._cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
            return dict(row) if row else None

    def delete_task(self, task_id: int) -> int:
        """Delete one row; returns the number of rows the statement removed directly."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM tasks WHERE id = %s", (task_id,))
            return cur.rowcount
