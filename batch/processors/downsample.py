"""
Selecting processors: copy chosen index records to downsampled_rows_<worker>.txt
as JSON lines, ready to feed the fetch pipeline.
"""

import os
from typing import List

from batch.processors.base import RecordProcessor
from batch.processors.registry import registry
from common.config import config
from common.errors import ProcessorArgumentError
from common.logging.logger import get_logger
from common.models import IndexRecord, get_tld
from sampling.allowlist import (
    LangCharsetSampler,
    MimeExtensionAllowlist,
    MimeRateSampler,
    load_mime_rates,
)
from sampling.downsample import DownsampleSelector, MimeMode, RuleTable

logger = get_logger("downsample_processor")

OUTPUT_PREFIX = "downsampled_rows_"


class SelectingProcessor(RecordProcessor):
    """Base class: subclasses build self.selector and say which arg is the output dir."""

    output_arg = 1
    fetchable_only = False

    def setup(self, args: List[str]) -> None:
        self.selected = 0
        self.total = 0
        self.selector = self.build_selector(args)
        self.writer = self.open_output(args[self.output_arg], OUTPUT_PREFIX)

    def build_selector(self, args: List[str]):
        raise NotImplementedError

    def select(self, record: IndexRecord) -> bool:
        return self.selector.select(record)

    def process(self, line: str) -> None:
        for record in self.records(line):
            if self.fetchable_only and not self.is_fetchable(record):
                continue
            self.total += 1
            if self.select(record):
                self.selected += 1
                self.writer.write(record.to_json() + "\n")

    def close(self) -> None:
        logger.info(f"[{self.name} {self.worker_id}] {self.selected} out of {self.total}")
        self.writer.close()

    def _shared(self, kind: str, loader, *paths: str):
        key = kind + ":" + "|".join(os.path.abspath(p) for p in paths)
        return self.context.load_once(key, loader)


@registry.register
class DownsampleProcessor(SelectingProcessor):
    """Weighted TLD/mime rules; records without a matching rule are dropped."""

    name = "downsample"
    usage = "<rules_file> <output_directory> [header_only|detected_only|header_or_detected]"
    min_args = 2
    max_args = 3
    fetchable_only = True

    def build_selector(self, args: List[str]):
        table = self._shared("rules", lambda: RuleTable.load(args[0]), args[0])
        try:
            mode = MimeMode.parse(args[2] if len(args) > 2 else config.get("downsample.mime_mode"))
        except ValueError as e:
            raise ProcessorArgumentError(self.name, f"{self.usage} ({e})") from e
        return DownsampleSelector(table, mode=mode)

    def select(self, record: IndexRecord) -> bool:
        return self.selector.select(get_tld(record.url), record.mime, record.mime_detected)


@registry.register
class DownsampleMimeProcessor(SelectingProcessor):
    """Per-mime rates; mimes without a rate are kept."""

    name = "downsample_mime"
    usage = "<mime_rates_file> <output_directory>"
    min_args = 2
    max_args = 2

    def build_selector(self, args: List[str]):
        rates = self._shared("mime_rates", lambda: load_mime_rates(args[0]), args[0])
        return MimeRateSampler(rates)


@registry.register
class DownsampleLangCharsetProcessor(SelectingProcessor):
    """Per (language, charset) rates over text and html records."""

    name = "downsample_lang_charset"
    usage = "<lang_charset_rates_file> <output_directory>"
    min_args = 2
    max_args = 2
    fetchable_only = True

    def build_selector(self, args: List[str]):
        shared = self._shared("lang_charset", lambda: LangCharsetSampler.load(args[0]), args[0])
        return LangCharsetSampler(shared.rates)


@registry.register
class ExtractByMimeExtProcessor(SelectingProcessor):
    """Keeps large records whose mime or URL extension is listed."""

    name = "extract_by_mime_ext"
    usage = "<mimes_file> <extensions_file> <output_directory>"
    min_args = 3
    max_args = 3
    output_arg = 2

    def build_selector(self, args: List[str]):
        return self._shared(
            "mime_ext", lambda: MimeExtensionAllowlist.load(args[0], args[1]), args[0], args[1]
        )
