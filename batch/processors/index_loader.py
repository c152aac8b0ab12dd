"""
Bulk-loads index records into SQLite.

Workers share one database file and one StringCache per lookup column
(through the SharedContext). Rows are inserted in batches; the lookup
tables are written by whichever worker closes last.
"""

import os
import time
from typing import List

from batch.processors.base import RecordProcessor
from batch.processors.registry import registry
from common.config import config
from common.logging.logger import get_logger
from common.models import IndexRecord, normalize_mime
from storage.index_db import LOOKUP_TABLES, IndexDatabase

logger = get_logger("index_loader")

MAX_CHARSET_LENGTH = 64


def _truncate(value: str, max_length: int) -> str:
    return value[:max_length] if value else ""


def _status_code(status: str):
    status = (status or "").strip()
    return int(status) if status.isdigit() else None


@registry.register
class IndexLoader(RecordProcessor):
    name = "index_db"
    usage = "[sqlite_path]"
    min_args = 0
    max_args = 1

    def setup(self, args: List[str]) -> None:
        path = args[0] if args else config.get("index_db.sqlite_path")
        self.batch_size = config.get("index_db.batch_size")
        self.max_url_length = config.get("index_db.max_url_length")
        self.db = IndexDatabase(path)
        self.context.load_once(
            f"index_db_schema:{os.path.abspath(path)}",
            lambda: self.db.create_tables(self.max_url_length),
        )
        self.caches = {
            table: self.context.get_string_cache(table, max_length)
            for table, max_length in LOOKUP_TABLES
        }
        self.conn = self.db.get_connection()
        self.pending: List[tuple] = []
        self.added = 0
        self._started = time.time()

    def _row(self, record: IndexRecord) -> tuple:
        return (
            _truncate(record.url, self.max_url_length),
            record.digest,
            self.caches["mimes"].get_id(normalize_mime(record.mime)),
            self.caches["detected_mimes"].get_id(normalize_mime(record.mime_detected)),
            _truncate(record.charset, MAX_CHARSET_LENGTH),
            self.caches["languages"].get_id(record.primary_language()),
            _status_code(record.status),
            self.caches["truncated"].get_id(record.truncated),
            self.caches["warc_file_name"].get_id(record.filename),
            record.offset,
            record.length,
        )

    def process(self, line: str) -> None:
        for record in self.records(line):
            self.pending.append(self._row(record))
            if len(self.pending) >= self.batch_size:
                self._flush()

    def _flush(self) -> None:
        self.added += self.db.insert_batch(self.conn, self.pending)
        self.pending = []
        elapsed = max(time.time() - self._started, 1e-6)
        logger.info(
            f"Worker {self.worker_id} committed {self.added} rows "
            f"({self.added / elapsed:.0f} rows/s)"
        )

    def close(self) -> None:
        try:
            if self.pending:
                self._flush()
        finally:
            self.conn.close()
            # Counted even when the final flush fails, or nobody writes the lookups
            if self.context.mark_closed():
                self.db.write_lookups(self.caches.values())
