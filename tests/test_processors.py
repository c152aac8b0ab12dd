"""Tests for the built-in batch processors, driven one at a time without the reader."""

import json
import sqlite3

import pytest

from batch.context import SharedContext
from batch.processors import registry
from batch.processors.counters import CountMimes, CountMimesByTopLevelDomain, CountTopLevelDomains
from batch.processors.digests import FindUrlsFromDigests, load_digests
from batch.processors.downsample import (
    DownsampleLangCharsetProcessor,
    DownsampleMimeProcessor,
    DownsampleProcessor,
    ExtractByMimeExtProcessor,
)
from batch.processors.fetch import FetchProcessor
from batch.processors.index_loader import IndexLoader
from batch.processors.registry import ProcessorRegistry
from common.config import config
from common.errors import ProcessorArgumentError, RuleFileError
from storage.index_db import IndexDatabase


def run_processor(cls, args, lines, worker_id=0, context=None):
    processor = cls(worker_id, context or SharedContext(1))
    processor.init(args)
    for line in lines:
        processor.process(line)
    processor.close()
    return processor


def read_lines(path):
    return path.read_text(encoding="utf-8").splitlines()


# ── Registry ──────────────────────────────────────────────────

class TestRegistry:
    def test_builtins_registered(self):
        for name in ("count_mimes", "count_ext", "count_ext_by_mime", "count_mime_by_ext",
                     "count_mimes_by_detected", "count_tlds", "count_mimes_by_tld",
                     "downsample", "downsample_mime", "downsample_lang_charset",
                     "extract_by_mime_ext", "find_urls", "index_db", "fetch"):
            assert name in registry
        assert registry.get("downsample") is DownsampleProcessor

    def test_register_and_unregister(self):
        reg = ProcessorRegistry()
        reg.register(CountMimes)
        assert reg.names == ["count_mimes"]
        reg.unregister("count_mimes")
        reg.unregister("count_mimes")
        assert len(reg) == 0

    def test_register_needs_name(self):
        class Nameless(CountMimes):
            name = ""

        with pytest.raises(ValueError):
            ProcessorRegistry().register(Nameless)


# ── Counters ──────────────────────────────────────────────────

class TestCounters:
    def test_count_mimes(self, tmp_path, index_line):
        lines = [index_line(mime="text/html"), index_line(mime="Text/HTML"),
                 index_line(mime="application/pdf"), index_line(mime=""), "garbage"]
        run_processor(CountMimes, [str(tmp_path)], lines, worker_id=3)
        assert read_lines(tmp_path / "mime_counts_3.txt") == [
            "text/html\t2",
            "NULL\t1",
            "application/pdf\t1",
        ]

    def test_count_tlds(self, tmp_path, index_line):
        lines = [index_line(url="http://a.com/"), index_line(url="http://b.com/"),
                 index_line(url="http://10.0.0.1/")]
        run_processor(CountTopLevelDomains, [str(tmp_path)], lines)
        assert read_lines(tmp_path / "domain_counts_0.txt") == ["com\t2", "NULL\t1"]

    def test_fetchable_only(self, tmp_path, index_line):
        lines = [index_line(url="http://a.com/x"), index_line(url="http://a.com/y", status="404"),
                 index_line(url="http://a.com/robots.txt")]
        run_processor(CountMimesByTopLevelDomain, [str(tmp_path)], lines)
        assert read_lines(tmp_path / "mime_by_domain_counts_0.txt") == ["com\ttext/html\t1"]

    def test_needs_output_dir(self):
        with pytest.raises(ProcessorArgumentError):
            CountMimes(0, SharedContext(1)).init([])


# ── Downsampling ──────────────────────────────────────────────

class TestDownsampleProcessor:
    def test_writes_selected_records_as_json(self, tmp_path, index_line):
        rules = tmp_path / "rules.tsv"
        rules.write_text("tld\tmime\tprobability\ncom\ttext/html\t1\n*\tapplication/pdf\t0\n",
                         encoding="utf-8")
        out = tmp_path / "out"
        lines = [
            index_line(url="http://a.com/"),
            index_line(url="http://a.org/"),
            index_line(url="http://b.com/", status="301"),
            index_line(url="http://b.com/robots.txt"),
            index_line(url="http://c.com/", mime="application/pdf", mime_detected="application/pdf"),
        ]
        processor = run_processor(DownsampleProcessor, [str(rules), str(out)], lines)
        rows = [json.loads(line) for line in read_lines(out / "downsampled_rows_0.txt")]
        assert [r["url"] for r in rows] == ["http://a.com/"]
        assert (processor.selected, processor.total) == (1, 3)

    def test_rule_table_shared_between_workers(self, tmp_path):
        rules = tmp_path / "rules.tsv"
        rules.write_text("text/html\t1\n", encoding="utf-8")
        context = SharedContext(2)
        a = DownsampleProcessor(0, context)
        b = DownsampleProcessor(1, context)
        a.init([str(rules), str(tmp_path / "out")])
        b.init([str(rules), str(tmp_path / "out")])
        assert a.selector.table is b.selector.table
        assert a.selector.rng is not b.selector.rng
        a.close()
        b.close()

    def test_bad_mode(self, tmp_path):
        rules = tmp_path / "rules.tsv"
        rules.write_text("text/html\t1\n", encoding="utf-8")
        with pytest.raises(ProcessorArgumentError):
            DownsampleProcessor(0, SharedContext(1)).init([str(rules), str(tmp_path), "always"])

    def test_missing_rules(self, tmp_path):
        with pytest.raises(RuleFileError):
            DownsampleProcessor(0, SharedContext(1)).init([str(tmp_path / "nope"), str(tmp_path)])


class TestOtherSelectors:
    def test_downsample_mime_keeps_unlisted(self, tmp_path, index_line):
        rates = tmp_path / "rates.tsv"
        rates.write_text("text/html\t0\n", encoding="utf-8")
        lines = [index_line(url="http://a.org/", mime="text/html"),
                 index_line(url="http://b.org/", mime="image/png")]
        run_processor(DownsampleMimeProcessor, [str(rates), str(tmp_path)], lines)
        rows = [json.loads(line) for line in read_lines(tmp_path / "downsampled_rows_0.txt")]
        assert [r["url"] for r in rows] == ["http://b.org/"]

    def test_lang_charset(self, tmp_path, index_line):
        rates = tmp_path / "lc.tsv"
        rates.write_text("eng\tUTF-8\t1\n", encoding="utf-8")
        lines = [index_line(url="http://a.org/"),
                 index_line(url="http://b.org/", languages="fra")]
        run_processor(DownsampleLangCharsetProcessor, [str(rates), str(tmp_path)], lines)
        rows = [json.loads(line) for line in read_lines(tmp_path / "downsampled_rows_0.txt")]
        assert [r["url"] for r in rows] == ["http://a.org/"]

    def test_extract_by_mime_ext(self, tmp_path, index_line):
        (tmp_path / "mimes.tsv").write_text("application/pdf\n", encoding="utf-8")
        (tmp_path / "exts.tsv").write_text("docx\n", encoding="utf-8")
        out = tmp_path / "out"
        lines = [
            index_line(url="http://a.org/x.pdf", mime="application/pdf", length=20_000),
            index_line(url="http://a.org/y.docx", mime="application/zip", length=20_000),
            index_line(url="http://a.org/z.docx", mime="application/zip", length=10),
            index_line(url="http://a.org/", length=20_000),
        ]
        run_processor(ExtractByMimeExtProcessor,
                      [str(tmp_path / "mimes.tsv"), str(tmp_path / "exts.tsv"), str(out)], lines)
        rows = [json.loads(line) for line in read_lines(out / "downsampled_rows_0.txt")]
        assert [r["url"] for r in rows] == ["http://a.org/x.pdf", "http://a.org/y.docx"]


# ── find_urls ─────────────────────────────────────────────────

class TestFindUrls:
    def test_load_digests(self, tmp_path):
        path = tmp_path / "digests.txt"
        path.write_text("AAA\n\n BBB \n", encoding="utf-8")
        assert load_digests(path) == frozenset({"AAA", "BBB"})

    def test_finds_matching_urls(self, tmp_path, index_line):
        digests = tmp_path / "digests.txt"
        digests.write_text("D1\nD2\n", encoding="utf-8")
        lines = [index_line(url="http://a.org/", digest="D1"),
                 index_line(url="http://b.org/", digest="XX"),
                 index_line(url="http://c.org/", digest="D2")]
        processor = run_processor(FindUrlsFromDigests, [str(digests), str(tmp_path)], lines)
        assert processor.found == 2
        assert read_lines(tmp_path / "urls_0.txt") == ["D1\thttp://a.org/", "D2\thttp://c.org/"]


# ── index_db ──────────────────────────────────────────────────

class TestIndexLoader:
    def test_loads_rows_and_lookups(self, tmp_path, index_line):
        db_path = tmp_path / "idx.db"
        context = SharedContext(2)
        a = IndexLoader(0, context)
        b = IndexLoader(1, context)
        a.init([str(db_path)])
        b.init([str(db_path)])
        a.process(index_line(url="http://a.org/", mime="text/html", status="200"))
        b.process(index_line(url="http://b.org/", mime="application/pdf", status="-"))
        b.process("garbage")
        a.close()
        b.close()

        db = IndexDatabase(str(db_path))
        assert db.count_urls() == 2
        assert db.lookup("mimes", "text/html") is not None
        assert db.lookup("mimes", "application/pdf") is not None
        with db.connection() as conn:
            statuses = sorted(
                (r[0] for r in conn.execute("SELECT status FROM urls")),
                key=lambda s: (s is None, s),
            )
        assert statuses == [200, None]

    def test_failed_flush_still_writes_lookups(self, tmp_path, index_line, monkeypatch):
        db_path = tmp_path / "idx.db"
        context = SharedContext(2)
        a = IndexLoader(0, context)
        b = IndexLoader(1, context)
        a.init([str(db_path)])
        b.init([str(db_path)])
        a.process(index_line(url="http://a.org/", mime="text/html"))
        b.process(index_line(url="http://b.org/", mime="application/pdf"))
        a.close()

        def broken_insert(conn, rows):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(b.db, "insert_batch", broken_insert)
        with pytest.raises(sqlite3.OperationalError):
            b.close()

        db = IndexDatabase(str(db_path))
        assert db.count_urls() == 1
        assert db.lookup("mimes", "text/html") is not None

    def test_batches_flush_before_close(self, tmp_path, index_line, monkeypatch):
        monkeypatch.setitem(config._config, "index_db", {"batch_size": 2})
        db_path = tmp_path / "idx.db"
        loader = IndexLoader(0, SharedContext(1))
        loader.init([str(db_path)])
        for i in range(5):
            loader.process(index_line(url=f"http://a.org/{i}"))
        assert IndexDatabase(str(db_path)).count_urls() == 4
        loader.close()
        assert IndexDatabase(str(db_path)).count_urls() == 5


# ── fetch ─────────────────────────────────────────────────────

class TestFetchProcessorArgs:
    def test_proxy_host_without_port(self, tmp_path):
        with pytest.raises(ProcessorArgumentError):
            FetchProcessor(0, SharedContext(1)).init([str(tmp_path / "s"), str(tmp_path), "proxy"])

    def test_non_numeric_port(self, tmp_path):
        with pytest.raises(ProcessorArgumentError):
            FetchProcessor(0, SharedContext(1)).init(
                [str(tmp_path / "s"), str(tmp_path), "proxy", "port"]
            )

    def test_opens_worker_audit_file(self, tmp_path):
        processor = FetchProcessor(2, SharedContext(3))
        processor.init([str(tmp_path / "store"), str(tmp_path / "out")])
        processor.close()
        assert read_lines(tmp_path / "out" / "fetch_status_2.txt")[0].startswith("URL\tCC_MIME")
