"""
Content-addressed store for fetched payloads.

Layout:
    <root>/<digest[:2]>/<digest>     committed payloads (write-once)
    <root>/.tmp/<random>             in-flight downloads

Digests are base32-encoded SHA-1 (A-Z, 2-7), so the '.tmp' directory can
never collide with a two-character shard directory. Commits use
os.replace() so a payload appears atomically; two workers committing the
same digest both succeed and the last writer wins with identical bytes.
"""

import base64
import hashlib
import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from common.config import config
from common.errors import StoreError
from common.logging.logger import get_logger

logger = get_logger("content_store")

TMP_DIR_NAME = ".tmp"
_READ_CHUNK = 1024 * 1024


def compute_digest(path: Path) -> Tuple[str, int]:
    """
    Streams a file through SHA-1.

    Returns:
        (base32 digest, number of bytes read)
    """
    hasher = hashlib.sha1()
    length = 0
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_READ_CHUNK), b""):
            hasher.update(chunk)
            length += len(chunk)
    return base64.b32encode(hasher.digest()).decode("ascii"), length


class ContentStore:
    """Filesystem repository keyed by payload digest."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or config.get("paths.store_root"))
        self.tmp_dir = self.root / TMP_DIR_NAME
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, digest: str) -> Path:
        if digest is None or len(digest) < 2:
            raise ValueError(f"digest too short for the store layout: {digest!r}")
        return self.root / digest[:2] / digest

    def contains(self, digest: Optional[str]) -> bool:
        if not digest or len(digest) < 2:
            return False
        return self.path_for(digest).is_file()

    @contextmanager
    def temp_file(self) -> Iterator[Path]:
        """
        Yields a fresh temp path inside the store.

        The path is removed on exit unless it was committed.
        """
        tmp = self.tmp_dir / f"{uuid.uuid4().hex}.part"
        try:
            yield tmp
        finally:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove temp file {tmp}: {e}")

    def commit(self, tmp: Path, digest: str) -> Path:
        """Atomically moves a temp file to its digest path."""
        target = self.path_for(digest)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(tmp, target)
        except OSError as e:
            raise StoreError(digest, str(e)) from e
        logger.debug(f"Committed {digest} -> {target}")
        return target
