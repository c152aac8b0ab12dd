"""
SQLite loader for crawl index records.

One wide `urls` table whose low-cardinality columns are integer ids into
small lookup tables (mimes, detected_mimes, languages, truncated,
warc_file_name). Ids come from the shared StringCache instances; the
lookup tables are written from those caches once all loaders are done.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Optional, Sequence, Tuple

from common.config import config
from common.logging.logger import get_logger
from storage.string_cache import StringCache

logger = get_logger("index_db")

# (table name, max string length) for each interned column
LOOKUP_TABLES: Tuple[Tuple[str, int], ...] = (
    ("mimes", 2000),
    ("detected_mimes", 2000),
    ("languages", 2000),
    ("truncated", 12),
    ("warc_file_name", 200),
)

URL_COLUMNS: Tuple[str, ...] = (
    "url", "digest", "mime", "mime_detected", "charset", "languages",
    "status", "truncated", "warc_file_name", "warc_offset", "warc_length",
)


class IndexDatabase:
    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            raw_path = config.get("index_db.sqlite_path")
            self.db_path = os.path.abspath(raw_path)
        elif db_path == ":memory:":
            raise ValueError("IndexDatabase needs a file path shared by all workers")
        else:
            self.db_path = os.path.abspath(db_path)
        parent = os.path.dirname(self.db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    def get_connection(self) -> sqlite3.Connection:
        # Several worker connections write concurrently; wait for the lock.
        return sqlite3.connect(self.db_path, timeout=60, check_same_thread=False)

    @contextmanager
    def connection(self):
        """Context manager that provides a connection with automatic commit/rollback."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def create_tables(self, max_url_length: int = 10_000):
        """Drops and recreates the urls table and every lookup table."""
        with self.connection() as conn:
            conn.execute("DROP TABLE IF EXISTS urls")
            conn.execute(
                f"""
                CREATE TABLE urls (
                    url VARCHAR({max_url_length}),
                    digest VARCHAR(64),
                    mime INTEGER,
                    mime_detected INTEGER,
                    charset VARCHAR(64),
                    languages INTEGER,
                    status INTEGER,
                    truncated INTEGER,
                    warc_file_name INTEGER,
                    warc_offset BIGINT,
                    warc_length BIGINT
                )
                """
            )
            for table, max_length in LOOKUP_TABLES:
                conn.execute(f"DROP TABLE IF EXISTS {table}")
                conn.execute(
                    f"CREATE TABLE {table} (id INTEGER PRIMARY KEY, name VARCHAR({max_length}))"
                )
        logger.info(f"Created index tables in {self.db_path}")

    def insert_batch(self, conn: sqlite3.Connection, rows: Sequence[tuple]) -> int:
        """Inserts url rows on an open connection and commits."""
        if not rows:
            return 0
        placeholders = ",".join("?" for _ in URL_COLUMNS)
        conn.executemany(
            f"INSERT INTO urls ({','.join(URL_COLUMNS)}) VALUES ({placeholders})",
            rows,
        )
        conn.commit()
        return len(rows)

    def write_lookups(self, caches: Iterable[StringCache]):
        """Writes (id, name) pairs of each cache into its lookup table."""
        with self.connection() as conn:
            for cache in caches:
                conn.executemany(
                    f"INSERT OR REPLACE INTO {cache.name} (id, name) VALUES (?, ?)",
                    cache.items(),
                )
                logger.info(f"Wrote {len(cache)} entries to lookup table {cache.name}")

    def count_urls(self) -> int:
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM urls").fetchone()[0]

    def lookup(self, table: str, name: str) -> Optional[int]:
        names = {t for t, _ in LOOKUP_TABLES}
        if table not in names:
            raise ValueError(f"unknown lookup table: {table}")
        with self.connection() as conn:
            row = conn.execute(f"SELECT id FROM {table} WHERE name = ?", (name,)).fetchone()
        return row[0] if row else None
