"""
Shard discovery and decompression.

Index shards are gzip files in the public layout; zstd and plain text
shards are accepted too. Lines are decoded as UTF-8 with replacement so
one bad byte cannot abort a shard.
"""

import gzip
import io
import zlib
from pathlib import Path
from typing import Iterator, List, TextIO

import zstandard as zstd

from common.errors import PipelineError
from common.logging.logger import get_logger

logger = get_logger("shards")

# Errors that mean a shard is corrupt or unreadable
SHARD_READ_ERRORS = (OSError, EOFError, ValueError, zlib.error, zstd.ZstdError)


def list_shards(shard_dir) -> List[Path]:
    """Sorted regular files directly under `shard_dir`."""
    shard_dir = Path(shard_dir)
    try:
        shards = sorted(p for p in shard_dir.iterdir() if p.is_file() and not p.name.startswith("."))
    except OSError as e:
        raise PipelineError("list_shards", f"cannot list {shard_dir}: {e}") from e
    logger.info(f"Found {len(shards)} shard files in {shard_dir}")
    return shards


def open_shard(path) -> TextIO:
    """Opens a shard for line reading, decompressing by file suffix."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", errors="replace")
    if suffix in (".zst", ".zstd"):
        fh = open(path, "rb")
        reader = zstd.ZstdDecompressor().stream_reader(fh, read_across_frames=True)
        return io.TextIOWrapper(reader, encoding="utf-8", errors="replace")
    return open(path, "r", encoding="utf-8", errors="replace")


def iter_lines(path) -> Iterator[str]:
    """Yields the lines of a shard without their line terminators."""
    with open_shard(path) as fh:
        for line in fh:
            yield line.rstrip("\r\n")
