"""Tests for sampling/downsample.py: rule loading and selection policy."""

import random

import pytest

from common.errors import RuleFileError
from sampling.downsample import ANY_TLD, DownsampleSelector, MimeMode, RuleTable


def write_rules(tmp_path, text, name="rules.tsv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class FixedRandom(random.Random):
    """random() always returns the same value."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


# ── MimeMode ──────────────────────────────────────────────────

class TestMimeMode:
    def test_parse(self):
        assert MimeMode.parse("header_only") is MimeMode.HEADER_ONLY
        assert MimeMode.parse("DETECTED_ONLY") is MimeMode.DETECTED_ONLY
        assert MimeMode.parse(None) is MimeMode.HEADER_OR_DETECTED

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            MimeMode.parse("sometimes")


# ── RuleTable.load ────────────────────────────────────────────

class TestRuleTableLoad:
    def test_two_columns_go_to_wildcard(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "mime\tprobability\ntext/html\t0.5\n"))
        assert table.tlds == []
        assert table.wildcard.lookup("text/html") == 0.5

    def test_three_columns(self, tmp_path):
        text = "tld\tmime\tprobability\nCOM\ttext/html\t0.1\n*\tapplication/pdf\t1\n"
        table = RuleTable.load(write_rules(tmp_path, text))
        assert table.tlds == ["com"]
        assert table.for_tld("com").lookup("text/html") == 0.1
        assert table.wildcard.lookup("application/pdf") == 1.0

    def test_any_tld_keyword(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, f"{ANY_TLD}\ttext/html\t0.3\n"))
        assert table.wildcard.lookup("text/html") == 0.3

    def test_exact_mime_is_normalized(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, '"Text/HTML"\t0.5\n'))
        assert table.wildcard.lookup("text/html") == 0.5

    def test_regex_rule(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "/^image\\//\t0.25\n"))
        assert table.wildcard.lookup("image/png") == 0.25
        assert table.wildcard.lookup("text/html") is None

    def test_bad_probability_is_skipped(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "text/html\tlots\ntext/plain\t0.2\n"))
        assert table.wildcard.lookup("text/html") is None
        assert table.wildcard.lookup("text/plain") == 0.2

    def test_blank_and_odd_rows_skipped(self, tmp_path):
        text = "\ntext/html\t0.5\nonly-one-column\n"
        table = RuleTable.load(write_rules(tmp_path, text))
        assert table.wildcard.lookup("text/html") == 0.5

    def test_mixed_widths_rejected(self, tmp_path):
        path = write_rules(tmp_path, "text/html\t0.5\ncom\ttext/plain\t0.5\n")
        with pytest.raises(RuleFileError):
            RuleTable.load(path)

    def test_bad_regex_rejected(self, tmp_path):
        with pytest.raises(RuleFileError):
            RuleTable.load(write_rules(tmp_path, "/([a-z/\t0.5\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuleFileError):
            RuleTable.load(tmp_path / "nope.tsv")


# ── DownsampleSelector ────────────────────────────────────────

class TestDownsampleSelector:
    def test_probability_one_always_selects(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "text/html\t1.0\n"))
        selector = DownsampleSelector(table, rng=FixedRandom(0.999))
        assert selector.select("com", "text/html", "")

    def test_probability_zero_never_selects(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "text/html\t0\n"))
        selector = DownsampleSelector(table, rng=FixedRandom(0.0))
        assert not selector.select("com", "text/html", "text/html")

    def test_draw_below_probability_selects(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "text/html\t0.5\n"))
        assert DownsampleSelector(table, rng=FixedRandom(0.49)).select("org", "text/html", "")
        assert not DownsampleSelector(table, rng=FixedRandom(0.5)).select("org", "text/html", "")

    def test_no_rule_rejects(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "com\ttext/html\t1\n"))
        selector = DownsampleSelector(table)
        assert not selector.select("org", "text/html", "text/html")
        assert not selector.select("com", "image/png", "image/png")

    def test_tld_table_wins_over_wildcard(self, tmp_path):
        text = "com\ttext/html\t0\n*\ttext/html\t1\n"
        selector = DownsampleSelector(RuleTable.load(write_rules(tmp_path, text)))
        assert not selector.select("com", "text/html", "")
        assert selector.select("org", "text/html", "")

    def test_falls_back_to_wildcard_when_tld_has_no_match(self, tmp_path):
        text = "com\timage/png\t0\n*\ttext/html\t1\n"
        selector = DownsampleSelector(RuleTable.load(write_rules(tmp_path, text)))
        assert selector.select("com", "text/html", "")

    def test_tld_is_case_insensitive(self, tmp_path):
        selector = DownsampleSelector(RuleTable.load(write_rules(tmp_path, "de\ttext/html\t1\n")))
        assert selector.select("DE", "text/html", "")

    def test_union_mode_uses_detected_mime(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "application/pdf\t1\n"))
        selector = DownsampleSelector(table, mode=MimeMode.HEADER_OR_DETECTED)
        assert selector.select("com", "application/octet-stream", "application/pdf")

    def test_header_only_ignores_detected(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "application/pdf\t1\n"))
        selector = DownsampleSelector(table, mode=MimeMode.HEADER_ONLY)
        assert not selector.select("com", "application/octet-stream", "application/pdf")

    def test_detected_only_ignores_header(self, tmp_path):
        table = RuleTable.load(write_rules(tmp_path, "application/pdf\t1\n"))
        selector = DownsampleSelector(table, mode=MimeMode.DETECTED_ONLY)
        assert not selector.select("com", "application/pdf", "text/html")
        assert selector.select("com", "text/html", "application/pdf")

    def test_header_mime_is_normalized(self, tmp_path):
        selector = DownsampleSelector(RuleTable.load(write_rules(tmp_path, "text/html\t1\n")))
        assert selector.select("com", ' "TEXT/HTML" ', "")

    def test_negative_cache_does_not_leak_between_tlds(self, tmp_path):
        text = "com\timage/png\t0\n*\ttext/html\t1\nnet\ttext/html\t1\n"
        selector = DownsampleSelector(RuleTable.load(write_rules(tmp_path, text)))
        # text/html misses in the com table and is remembered there
        assert selector.select("com", "text/html", "")
        assert selector.select("com", "text/html", "")
        assert selector.select("net", "text/html", "")

    def test_requires_table(self):
        with pytest.raises(ValueError):
            DownsampleSelector(None)
