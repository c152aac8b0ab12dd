"""
Reads the single archive record returned by a byte-range request.

The byte range of an index record is one gzip member holding one WARC
record: WARC headers, HTTP status line and headers, then the payload.
warcio does the framing; this module turns its failures into
ContainerReadError and refuses to report a short payload as complete.
"""

import zlib
from typing import BinaryIO, List, Optional, Tuple

from warcio.archiveiterator import ArchiveIterator
from warcio.recordloader import ArchiveLoadFailed
from warcio.statusandheaders import StatusAndHeadersParserException

from common.errors import ContainerReadError
from common.logging.logger import get_logger

logger = get_logger("warc_reader")

_COPY_CHUNK = 1024 * 1024
_SHA1_PREFIX = "sha1:"

# Low-level failures warcio lets through while parsing or decompressing
_READ_ERRORS = (
    ArchiveLoadFailed,
    StatusAndHeadersParserException,
    OSError,
    EOFError,
    zlib.error,
    ValueError,
)


class ContainerRecord:
    """The first record of an archive container."""

    def __init__(self, record):
        self._record = record
        self.warc_type = record.rec_type
        self.target_uri = record.rec_headers.get_header("WARC-Target-URI")

        digest = record.rec_headers.get_header("WARC-Payload-Digest")
        if digest and digest.lower().startswith(_SHA1_PREFIX):
            digest = digest[len(_SHA1_PREFIX):]
        self.declared_digest: Optional[str] = digest or None

        self.truncated = record.rec_headers.get_header("WARC-Truncated") is not None

        http_headers = record.http_headers
        self.status_code: Optional[str] = http_headers.get_statuscode() if http_headers else None
        self.headers: List[Tuple[str, str]] = list(http_headers.headers) if http_headers else []

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive lookup of an HTTP response header."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def copy_payload(self, out: BinaryIO) -> int:
        """
        Copies the raw payload bytes to `out`.

        Raises ContainerReadError if the stream ends before the length the
        record declares.
        """
        stream = self._record.raw_stream
        written = 0
        try:
            while True:
                chunk = stream.read(_COPY_CHUNK)
                if not chunk:
                    break
                out.write(chunk)
                written += len(chunk)
        except _READ_ERRORS as e:
            raise ContainerReadError(f"payload read failed after {written} bytes: {e}") from e

        remaining = getattr(stream, "limit", 0)
        if remaining and remaining > 0:
            raise ContainerReadError(
                f"payload truncated: read {written} bytes, {remaining} bytes missing"
            )
        return written


def read_container(stream: BinaryIO) -> ContainerRecord:
    """Parses the first record of a (possibly gzip-compressed) WARC stream."""
    if stream is None:
        raise ValueError("stream is required")
    try:
        record = next(iter(ArchiveIterator(stream)), None)
    except _READ_ERRORS as e:
        raise ContainerReadError(f"unreadable container: {e}") from e
    if record is None:
        raise ContainerReadError("empty container")
    # warcio falls back to ARC parsing for anything that is not WARC
    if not str(record.format).startswith("warc"):
        raise ContainerReadError(f"not a WARC record (parsed as {record.format})")
    if record.rec_type == "response" and record.http_headers is None:
        raise ContainerReadError("response record without HTTP headers")
    return ContainerRecord(record)


def copy_container_payload(stream: BinaryIO, out: BinaryIO) -> Tuple[ContainerRecord, int]:
    """Reads the container from `stream` and writes its payload to `out`."""
    record = read_container(stream)
    length = record.copy_payload(out)
    logger.debug(f"Read {length} payload bytes for {record.target_uri}")
    return record, length

