"""
Outcome taxonomy and audit writers for the fetch pipelines.

Every record handed to a fetcher produces exactly one outcome row. Rows
go to a per-worker TSV whose header is written once, before the first
row; each row is flushed as soon as it is written.
"""

import enum
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, TextIO

from common.logging.logger import get_logger
from common.text_utils import tsv_row

logger = get_logger("outcomes")


class FetchStatus(enum.Enum):
    BAD_URL = "BAD_URL"
    FETCHED_IO_EXCEPTION = "FETCHED_IO_EXCEPTION"
    FETCHED_NOT_200 = "FETCHED_NOT_200"
    FETCHED_IO_EXCEPTION_READING_ENTITY = "FETCHED_IO_EXCEPTION_READING_ENTITY"
    FETCHED_IO_EXCEPTION_DIGEST = "FETCHED_IO_EXCEPTION_DIGEST"
    ALREADY_IN_REPOSITORY = "ALREADY_IN_REPOSITORY"
    FETCHED_EXCEPTION_COPYING_TO_REPOSITORY = "FETCHED_EXCEPTION_COPYING_TO_REPOSITORY"
    ADDED_TO_REPOSITORY = "ADDED_TO_REPOSITORY"
    # external-process fetcher only
    TOO_LONG = "TOO_LONG"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"

    @property
    def stored(self) -> bool:
        """True when the payload is in the store after this outcome."""
        return self in (FetchStatus.ADDED_TO_REPOSITORY, FetchStatus.ALREADY_IN_REPOSITORY)


OUTCOME_COLUMNS = (
    "URL",
    "CC_MIME",
    "CC_MIME_DETECTED",
    "CC_LANGUAGES",
    "CC_CHARSET",
    "CC_DIGEST",
    "COMPUTED_DIGEST",
    "HEADER_ENCODING",
    "HEADER_TYPE",
    "HEADER_LANGUAGE",
    "HEADER_LENGTH",
    "ACTUAL_LENGTH",
    "WARC_IS_TRUNCATED",
    "FETCH_STATUS",
)

REFETCH_COLUMNS = (
    "URL",
    "CC_DIGEST",
    "COMPUTED_DIGEST",
    "ACTUAL_LENGTH",
    "FETCH_STATUS",
)


@dataclass
class FetchOutcome:
    """Result of one byte-range fetch."""
    url: str
    status: FetchStatus
    mime: str = ""
    mime_detected: str = ""
    languages: str = ""
    charset: str = ""
    declared_digest: str = ""
    computed_digest: str = ""
    header_encoding: Optional[str] = None
    header_type: Optional[str] = None
    header_language: Optional[str] = None
    header_length: Optional[str] = None
    actual_length: int = -1
    truncated: bool = False
    detail: Optional[str] = None

    def to_row(self) -> tuple:
        return (
            self.url,
            self.mime,
            self.mime_detected,
            self.languages,
            self.charset,
            self.declared_digest,
            self.computed_digest,
            self.header_encoding,
            self.header_type,
            self.header_language,
            self.header_length,
            self.actual_length,
            "TRUE" if self.truncated else "",
            self.status.value,
        )


@dataclass
class RefetchOutcome:
    """Result of one external-process fetch."""
    url: str
    status: FetchStatus
    declared_digest: str = ""
    computed_digest: str = ""
    actual_length: int = -1
    detail: Optional[str] = None

    def to_row(self) -> tuple:
        return (
            self.url,
            self.declared_digest,
            self.computed_digest,
            self.actual_length,
            self.status.value,
        )


class OutcomeWriter:
    """
    Append-only TSV audit log.

    Thread-safe, though each worker normally owns its own writer.
    """

    columns = OUTCOME_COLUMNS

    def __init__(self, path, append: bool = False):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not (append and self.path.exists() and self.path.stat().st_size > 0)
        self._fh: Optional[TextIO] = open(self.path, "a" if append else "w", encoding="utf-8")
        self._lock = threading.Lock()
        self.rows_written = 0
        if write_header:
            self._fh.write("\t".join(self.columns) + "\n")
            self._fh.flush()

    def write(self, outcome) -> None:
        row = tsv_row(outcome.to_row())
        with self._lock:
            if self._fh is None:
                raise ValueError(f"writer for {self.path} is closed")
            self._fh.write(row)
            self._fh.flush()
            self.rows_written += 1

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class RefetchOutcomeWriter(OutcomeWriter):
    columns = REFETCH_COLUMNS
