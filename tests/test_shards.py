"""Tests for batch/shards.py."""

import gzip

import pytest
import zstandard as zstd

from batch.shards import SHARD_READ_ERRORS, iter_lines, list_shards
from common.errors import PipelineError


class TestListShards:
    def test_sorted_regular_files(self, tmp_path):
        for name in ("b.gz", "a.gz", ".hidden"):
            (tmp_path / name).write_bytes(b"")
        (tmp_path / "subdir").mkdir()
        assert [p.name for p in list_shards(tmp_path)] == ["a.gz", "b.gz"]

    def test_missing_dir(self, tmp_path):
        with pytest.raises(PipelineError):
            list_shards(tmp_path / "missing")


class TestIterLines:
    def test_gzip(self, tmp_path):
        path = tmp_path / "s.gz"
        with gzip.open(path, "wt", encoding="utf-8") as fh:
            fh.write("one\ntwo\r\n")
        assert list(iter_lines(path)) == ["one", "two"]

    def test_zstd(self, tmp_path):
        path = tmp_path / "s.zst"
        path.write_bytes(zstd.ZstdCompressor().compress("alpha\nbeta\n".encode("utf-8")))
        assert list(iter_lines(path)) == ["alpha", "beta"]

    def test_plain_with_bad_bytes(self, tmp_path):
        path = tmp_path / "s.txt"
        path.write_bytes(b"ok\n\xff\xfe\n")
        lines = list(iter_lines(path))
        assert lines[0] == "ok"
        assert len(lines) == 2

    def test_corrupt_gzip_raises_read_error(self, tmp_path):
        path = tmp_path / "bad.gz"
        path.write_bytes(b"not gzip at all")
        with pytest.raises(SHARD_READ_ERRORS):
            list(iter_lines(path))
