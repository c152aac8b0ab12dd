"""
Statistics processors.

Each worker keeps a Counter and writes it, most frequent first, to
<output_dir>/<prefix><worker_id>.txt on close. Rows are the key cells
followed by the count; the reducer merges the per-worker files.
"""

from collections import Counter
from typing import List, Optional, Tuple

from batch.processors.base import RecordProcessor
from batch.processors.registry import registry
from common.models import IndexRecord, get_extension, get_tld, normalize_mime
from common.text_utils import clean_key

NULL_KEY = "NULL"


def _or_null(value: Optional[str]) -> str:
    return value if value else NULL_KEY


class CountingProcessor(RecordProcessor):
    """Base class: subclasses define key_for() and output_prefix."""

    usage = "<output_directory>"
    min_args = 1
    max_args = 1
    output_prefix = ""
    # Only count 200-status, non-robots.txt captures
    fetchable_only = False

    def setup(self, args: List[str]) -> None:
        self.counts: Counter = Counter()
        self.writer = self.open_output(args[0], self.output_prefix)

    def key_for(self, record: IndexRecord) -> Optional[Tuple[str, ...]]:
        raise NotImplementedError

    def process(self, line: str) -> None:
        for record in self.records(line):
            if self.fetchable_only and not self.is_fetchable(record):
                continue
            key = self.key_for(record)
            if key is not None:
                self.counts[key] += 1

    def close(self) -> None:
        try:
            for key, count in sorted(self.counts.items(), key=lambda kv: (-kv[1], kv[0])):
                self.writer.write("\t".join(clean_key(k) for k in key) + f"\t{count}\n")
        finally:
            self.writer.close()


@registry.register
class CountMimes(CountingProcessor):
    name = "count_mimes"
    output_prefix = "mime_counts_"

    def key_for(self, record):
        return (_or_null(normalize_mime(record.mime)),)


@registry.register
class CountExtensions(CountingProcessor):
    name = "count_ext"
    output_prefix = "ext_counts_"

    def key_for(self, record):
        if not record.url:
            return None
        return (_or_null(get_extension(record.url)),)


@registry.register
class CountExtByMime(CountingProcessor):
    """Rows: extension, mime, count."""
    name = "count_ext_by_mime"
    output_prefix = "ext_by_mime_counts_"

    def key_for(self, record):
        if not record.url:
            return None
        return _or_null(get_extension(record.url)), _or_null(normalize_mime(record.mime))


@registry.register
class CountMimeByExt(CountingProcessor):
    """Rows: mime, extension, count."""
    name = "count_mime_by_ext"
    output_prefix = "mime_by_ext_counts_"

    def key_for(self, record):
        if not record.url:
            return None
        return _or_null(normalize_mime(record.mime)), _or_null(get_extension(record.url))


@registry.register
class CountMimesByDetected(CountingProcessor):
    """Rows: header mime, detected mime, count."""
    name = "count_mimes_by_detected"
    output_prefix = "mime_by_mime_detected_counts_"
    fetchable_only = True

    def key_for(self, record):
        return _or_null(normalize_mime(record.mime)), _or_null(normalize_mime(record.mime_detected))


@registry.register
class CountTopLevelDomains(CountingProcessor):
    name = "count_tlds"
    output_prefix = "domain_counts_"

    def key_for(self, record):
        return (_or_null(get_tld(record.url)),)


@registry.register
class CountMimesByTopLevelDomain(CountingProcessor):
    """Rows: tld, mime, count."""
    name = "count_mimes_by_tld"
    output_prefix = "mime_by_domain_counts_"
    fetchable_only = True

    def key_for(self, record):
        return _or_null(get_tld(record.url)), _or_null(normalize_mime(record.mime))
