"""
Refetcher that shells out to an external download command (wget by default).

Used to re-download documents straight from their live URLs, typically
the ones whose archived copy was truncated. Each fetch runs the command
once with a hard time limit; the payload is digested and committed to
the content store like a byte-range fetch.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from common.config import config
from common.errors import RuleFileError, StoreError
from common.logging.logger import get_logger
from fetcher.outcomes import FetchStatus, RefetchOutcome
from storage.content_store import ContentStore, compute_digest

logger = get_logger("process_fetcher")

URL_PLACEHOLDER = "{url}"
OUTPUT_PLACEHOLDER = "{output}"


@dataclass(frozen=True)
class UrlDigestPair:
    url: str
    digest: str = ""


def iter_url_digest_pairs(path) -> Iterator[UrlDigestPair]:
    """
    Reads a UTF-8 TSV with a header row and one or two columns: url[, digest].

    Blank rows are skipped.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            header = fh.readline()
            if not header:
                return
            for line_no, raw in enumerate(fh, 2):
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                cols = line.split("\t")
                url = cols[0].strip()
                if not url:
                    logger.warning(f"{path}:{line_no}: empty url, skipping")
                    continue
                digest = cols[1].strip() if len(cols) > 1 else ""
                yield UrlDigestPair(url=url, digest=digest)
    except OSError as e:
        raise RuleFileError(str(path), str(e)) from e


class ProcessFetcher:
    def __init__(
        self,
        store: ContentStore,
        command: Optional[Sequence[str]] = None,
        timeout_seconds: Optional[float] = None,
        max_file_length: Optional[int] = None,
    ):
        if store is None:
            raise ValueError("store is required")
        self.store = store
        self.command = list(command or config.get("refetch.command"))
        if not any(URL_PLACEHOLDER in part for part in self.command):
            raise ValueError(f"command must contain {URL_PLACEHOLDER}: {self.command}")
        if not any(OUTPUT_PLACEHOLDER in part for part in self.command):
            raise ValueError(f"command must contain {OUTPUT_PLACEHOLDER}: {self.command}")
        self.timeout_seconds = timeout_seconds or config.get("refetch.timeout_seconds")
        self.max_file_length = max_file_length or config.get("refetch.max_file_length")

    def build_command(self, url: str, output: Path) -> List[str]:
        return [
            part.replace(OUTPUT_PLACEHOLDER, str(output)).replace(URL_PLACEHOLDER, url)
            for part in self.command
        ]

    def fetch(self, pair: UrlDigestPair) -> RefetchOutcome:
        with self.store.temp_file() as tmp:
            args = self.build_command(pair.url, tmp)
            logger.debug(f"about to start: {pair.url}")
            try:
                process = subprocess.Popen(
                    args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
                )
            except OSError as e:
                logger.error(f"Could not start {args[0]}: {e}")
                return RefetchOutcome(pair.url, FetchStatus.FETCHED_IO_EXCEPTION,
                                      declared_digest=pair.digest, detail=str(e))

            try:
                exit_code = process.wait(timeout=self.timeout_seconds)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
                logger.warning(f"Timed out after {self.timeout_seconds}s: {pair.url}")
                return RefetchOutcome(pair.url, FetchStatus.FETCH_TIMEOUT,
                                      declared_digest=pair.digest)

            if exit_code != 0 or not tmp.is_file():
                logger.warning(f"Fetch failed (exit {exit_code}): {pair.url}")
                return RefetchOutcome(pair.url, FetchStatus.FETCHED_IO_EXCEPTION,
                                      declared_digest=pair.digest, detail=f"exit {exit_code}")

            size = tmp.stat().st_size
            if size > self.max_file_length:
                logger.warning(f"Too long ({size} bytes): {pair.url}")
                return RefetchOutcome(pair.url, FetchStatus.TOO_LONG,
                                      declared_digest=pair.digest, actual_length=size)

            try:
                digest, length = compute_digest(tmp)
            except OSError as e:
                return RefetchOutcome(pair.url, FetchStatus.FETCHED_IO_EXCEPTION_DIGEST,
                                      declared_digest=pair.digest, detail=str(e))

            if self.store.contains(digest):
                status = FetchStatus.ALREADY_IN_REPOSITORY
            else:
                try:
                    self.store.commit(tmp, digest)
                    status = FetchStatus.ADDED_TO_REPOSITORY
                except StoreError as e:
                    logger.error(f"Could not copy {digest} to repository: {e}")
                    status = FetchStatus.FETCHED_EXCEPTION_COPYING_TO_REPOSITORY

        logger.debug(f"finished: {pair.url} -> {status.value}")
        return RefetchOutcome(pair.url, status, declared_digest=pair.digest,
                              computed_digest=digest, actual_length=length)
