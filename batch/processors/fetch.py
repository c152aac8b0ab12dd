"""Fetch every record of the shards into the content store (byte-range variant)."""

from pathlib import Path
from typing import List

from batch.processors.base import RecordProcessor
from batch.processors.registry import registry
from common.errors import ProcessorArgumentError
from fetcher.http_fetcher import RangeFetcher
from fetcher.outcomes import OutcomeWriter
from storage.content_store import ContentStore

OUTPUT_PREFIX = "fetch_status_"


@registry.register
class FetchProcessor(RecordProcessor):
    name = "fetch"
    usage = "<store_root> <output_directory> [proxy_host proxy_port]"
    min_args = 2
    max_args = 4

    def setup(self, args: List[str]) -> None:
        proxy_host, proxy_port = None, None
        if len(args) == 3:
            raise ProcessorArgumentError(self.name, self.usage)
        if len(args) == 4:
            proxy_host = args[2]
            try:
                proxy_port = int(args[3])
            except ValueError as e:
                raise ProcessorArgumentError(self.name, self.usage) from e

        store = ContentStore(args[0])
        self.fetcher = RangeFetcher(store, proxy_host=proxy_host, proxy_port=proxy_port)
        self.writer = OutcomeWriter(Path(args[1]) / f"{OUTPUT_PREFIX}{self.worker_id}.txt")

    def process(self, line: str) -> None:
        for record in self.records(line):
            self.writer.write(self.fetcher.fetch(record))

    def close(self) -> None:
        try:
            self.writer.close()
        finally:
            self.fetcher.session.close()
