from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)


class Database:
    """PostgreSQL access through a psycopg3 connection pool."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 4) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: ConnectionPool | None = None

    def connect(self) -> None:
        """Open the pool and wait until the first connection is usable."""
        if self._pool is not None:
            return
        self._pool = ConnectionPool(
            self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            kwargs={"row_factory": dict_row},
            open=True,
        )
        self._pool.wait()
        logger.info("Connection pool established (max_size=%d)", self._max_size)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def connection(self) -> Iterator[psycopg.Connection]:
        """Borrow a connection; commits on success, rolls back on error."""
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        with self._pool.connection() as conn:
            yield conn

    def execute(self, query: str, params: tuple | None = None) -> list[dict]:
        """Execute one statement and return any rows as dicts."""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                if cur.description is None:
                    return []
                return [dict(row) for row in cur.fetchall()]

    def run_migrations(self, migrations_dir: str) -> list[str]:
        """Apply pending *.sql files in name order. Returns the names applied."""
        applied_now: list[str] = []
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS _migrations (
                        filename TEXT PRIMARY KEY,
                        applied_at TIMESTAMPTZ DEFAULT NOW()
                    )
                """)
                cur.execute("SELECT filename FROM _migrations")
                applied = {row["filename"] for row in cur.fetchall()}
            conn.commit()

            for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
                if sql_file.name in applied:
                    logger.debug("Skipping already applied migration: %s", sql_file.name)
                    continue
                logger.info("Applying migration: %s", sql_file.name)
                with conn.cursor() as cur:
                    cur.execute(sql_file.read_text())
                    cur.execute(
                        "INSERT INTO _migrations (filename) VALUES (%s)", (sql_file.name,),
                    )
                conn.commit()
                applied_now.append(sql_file.name)
        return applied_now

    def health_check(self) -> bool:
        try:
            result = self.execute("SELECT 1 AS ok")
            return len(result) > 0 and result[0].get("ok") == 1
        except Exception:
            logger.exception("Health check failed")
            return False

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
