"""Recover the URLs captured under a known set of payload digests."""

import os
from pathlib import Path
from typing import FrozenSet, List

from batch.processors.base import RecordProcessor
from batch.processors.registry import registry
from common.errors import RuleFileError
from common.logging.logger import get_logger
from common.text_utils import clean_key

logger = get_logger("find_urls")


def load_digests(path) -> FrozenSet[str]:
    """One digest per line; blank lines are ignored."""
    try:
        with open(Path(path), "r", encoding="utf-8") as fh:
            return frozenset(line.strip() for line in fh if line.strip())
    except OSError as e:
        raise RuleFileError(str(path), str(e)) from e


@registry.register
class FindUrlsFromDigests(RecordProcessor):
    name = "find_urls"
    usage = "<digest_file> <output_directory>"
    min_args = 2
    max_args = 2

    def setup(self, args: List[str]) -> None:
        key = f"digests:{os.path.abspath(args[0])}"
        self.digests = self.context.load_once(key, lambda: load_digests(args[0]))
        self.writer = self.open_output(args[1], "urls_")
        self.found = 0

    def process(self, line: str) -> None:
        for record in self.records(line):
            if record.digest in self.digests:
                self.writer.write(f"{clean_key(record.digest)}\t{clean_key(record.url)}\n")
                self.writer.flush()
                self.found += 1

    def close(self) -> None:
        logger.info(f"Worker {self.worker_id} is closing; found {self.found} urls")
        self.writer.close()
