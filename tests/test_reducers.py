"""Tests for batch/reducers.py."""

from batch.reducers import concat_outputs, reduce_counts


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestReduceCounts:
    def test_sums_and_sorts(self, tmp_path):
        parts = tmp_path / "parts"
        parts.mkdir()
        write(parts / "mime_counts_0.txt", "text/html\t5\nimage/png\t2\n")
        write(parts / "mime_counts_1.txt", "text/html\t1\napplication/pdf\t7\n")
        out = tmp_path / "merged.tsv"

        totals = reduce_counts(parts, out)

        assert totals[("text/html",)] == 6
        assert out.read_text(encoding="utf-8").splitlines() == [
            "application/pdf\t7",
            "text/html\t6",
            "image/png\t2",
        ]

    def test_two_key_columns(self, tmp_path):
        parts = tmp_path / "parts"
        parts.mkdir()
        write(parts / "a.txt", "com\ttext/html\t3\norg\ttext/html\t1\n")
        write(parts / "b.txt", "com\ttext/html\t2\norg\timage/png\t1\n")
        out = tmp_path / "merged.tsv"
        reduce_counts(parts, out)
        assert out.read_text(encoding="utf-8").splitlines() == [
            "com\ttext/html\t5",
            "org\timage/png\t1",
            "org\ttext/html\t1",
        ]

    def test_malformed_rows_skipped(self, tmp_path):
        parts = tmp_path / "parts"
        parts.mkdir()
        write(parts / "a.txt", "text/html\t1\nno-count-here\ntext/html\tmany\n\n")
        totals = reduce_counts(parts, tmp_path / "out.tsv")
        assert dict(totals) == {("text/html",): 1}

    def test_pattern_selects_files(self, tmp_path):
        write(tmp_path / "mime_counts_0.txt", "a\t1\n")
        write(tmp_path / "ext_counts_0.txt", "pdf\t9\n")
        totals = reduce_counts(tmp_path, tmp_path / "out" / "m.tsv", pattern="mime_counts_*.txt")
        assert dict(totals) == {("a",): 1}

    def test_output_inside_input_dir_is_ignored(self, tmp_path):
        write(tmp_path / "part_0.txt", "a\t1\n")
        out = write(tmp_path / "merged.txt", "a\t100\n")
        totals = reduce_counts(tmp_path, out)
        assert dict(totals) == {("a",): 1}


class TestConcatOutputs:
    def test_appends_in_name_order(self, tmp_path):
        parts = tmp_path / "parts"
        parts.mkdir()
        write(parts / "downsampled_rows_1.txt", "{\"url\": \"b\"}\n")
        write(parts / "downsampled_rows_0.txt", "{\"url\": \"a\"}")
        out = tmp_path / "all.txt"
        assert concat_outputs(parts, out) == 2
        assert out.read_text(encoding="utf-8") == "{\"url\": \"a\"}\n{\"url\": \"b\"}\n"
