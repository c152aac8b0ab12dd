"""
Shared pytest fixtures for the crawl mirror tests.

The conftest points the log directory at a temp dir and swaps the global
config for an empty one before any project module reads it, so tests
never depend on a local config.json.
"""

import gzip
import json
import sys
import tempfile
from pathlib import Path

# Ensure project root is on sys.path so imports work from tests/
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.logging import logger as _logger_module

_logger_module._log_dir = Path(tempfile.mkdtemp(prefix="cc_mirror_logs_"))

from common.config import Config, config

config._config = {}
Config._instance = config

import pytest


def make_index_line(url="http://example.com/page.html", mime="text/html",
                    mime_detected="text/html", status="200", digest="AAAA",
                    length=100, offset=0, filename="crawl-data/seg/warc/file.warc.gz",
                    languages="eng", charset="UTF-8", truncated=None,
                    prefix="com,example)/page.html 20200101000000 "):
    """One crawl index line: SURT key, timestamp, then the JSON object."""
    data = {
        "url": url,
        "mime": mime,
        "mime-detected": mime_detected,
        "status": status,
        "digest": digest,
        "length": str(length),
        "offset": str(offset),
        "filename": filename,
        "languages": languages,
        "charset": charset,
    }
    if truncated is not None:
        data["truncated"] = truncated
    return prefix + json.dumps(data)


def make_warc(payload=b"<html>hello</html>", uri="http://example.com/page.html",
              http_status="200 OK", http_headers=None, digest=None,
              truncated=None, compress=True, cut=0):
    """
    Builds a single-record WARC response.

    `cut` drops that many bytes from the end of the record before
    compressing, to simulate a short read.
    """
    if http_headers is None:
        http_headers = [
            ("Content-Type", "text/html; charset=UTF-8"),
            ("Content-Length", str(len(payload))),
        ]
    http_block = f"HTTP/1.1 {http_status}\r\n".encode("ascii")
    for name, value in http_headers:
        http_block += f"{name}: {value}\r\n".encode("latin-1")
    http_block += b"\r\n" + payload

    warc_headers = [
        ("WARC-Type", "response"),
        ("WARC-Target-URI", uri),
        ("WARC-Date", "2020-01-01T00:00:00Z"),
        ("WARC-Record-ID", "<urn:uuid:00000000-0000-0000-0000-000000000001>"),
        ("Content-Type", "application/http; msgtype=response"),
    ]
    if digest is not None:
        warc_headers.append(("WARC-Payload-Digest", digest))
    if truncated is not None:
        warc_headers.append(("WARC-Truncated", truncated))
    warc_headers.append(("Content-Length", str(len(http_block))))

    record = b"WARC/1.0\r\n"
    for name, value in warc_headers:
        record += f"{name}: {value}\r\n".encode("latin-1")
    record += b"\r\n" + http_block + b"\r\n\r\n"
    if cut:
        record = record[:-cut]
    return gzip.compress(record) if compress else record


def write_shard(path, lines):
    """Writes index lines to a gzip shard."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt", encoding="utf-8") as fh:
        for line in lines:
            fh.write(line + "\n")
    return path


@pytest.fixture
def index_line():
    return make_index_line


@pytest.fixture
def warc_bytes():
    return make_warc


@pytest.fixture
def shard_writer():
    return write_shard


@pytest.fixture
def store_root(tmp_path):
    return tmp_path / "store"
