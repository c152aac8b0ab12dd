"""
Simpler record selectors.

- MimeExtensionAllowlist: keep large records whose mime or URL extension
  is listed (default reject)
- MimeRateSampler: per-mime sampling rate, mimes without a rate are kept
  (default accept)
- LangCharsetSampler: per (primary language, charset) rate over text and
  html records (default reject)

Each selector is built from a loaded file and is read-only afterwards;
only the random source is per instance.
"""

import random
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from common.errors import RuleFileError
from common.logging.logger import get_logger
from common.models import IndexRecord, get_extension, normalize_mime

logger = get_logger("allowlist")

MIME_COL_HEADER = "mime"
CHARSET_COL_HEADER = "charset"

# Records shorter than this are never extracted by the allowlist
DEFAULT_MIN_LENGTH = 10_000

# Rates above this are treated as "always"
ALWAYS_RATE = 0.99999


def _read_rows(path) -> List[Tuple[int, List[str]]]:
    """Returns (line number, stripped cells) for each non-blank line."""
    path = Path(path)
    rows = []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line_no, raw in enumerate(fh, 1):
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                rows.append((line_no, [c.strip() for c in line.split("\t")]))
    except OSError as e:
        raise RuleFileError(str(path), str(e)) from e
    return rows


def load_first_column(path, header: str = MIME_COL_HEADER) -> FrozenSet[str]:
    """Values of the first column, skipping a header row."""
    values = set()
    for _line_no, cols in _read_rows(path):
        if cols[0].lower() == header:
            continue
        values.add(cols[0])
    return frozenset(values)


def load_mime_rates(path) -> Dict[str, float]:
    """Reads mime<TAB>rate rows into a dict keyed by normalized mime."""
    rates: Dict[str, float] = {}
    for line_no, cols in _read_rows(path):
        if len(cols) < 2:
            logger.warning(f"{path}:{line_no}: row too short: {cols!r}")
            continue
        if cols[0].lower() == MIME_COL_HEADER:
            continue
        try:
            rates[normalize_mime(cols[0])] = float(cols[1])
        except ValueError:
            logger.warning(f"{path}:{line_no}: couldn't parse {cols[1]!r} for {cols[0]!r}")
    return rates


class MimeExtensionAllowlist:
    def __init__(self, mimes: FrozenSet[str], extensions: FrozenSet[str],
                 min_length: int = DEFAULT_MIN_LENGTH):
        self.mimes = frozenset(normalize_mime(m) for m in mimes)
        self.extensions = frozenset(e.lower() for e in extensions)
        self.min_length = min_length

    @classmethod
    def load(cls, mimes_path, extensions_path, min_length: int = DEFAULT_MIN_LENGTH):
        return cls(
            load_first_column(mimes_path),
            load_first_column(extensions_path),
            min_length=min_length,
        )

    def select(self, record: IndexRecord) -> bool:
        if record.length < self.min_length:
            return False
        if normalize_mime(record.mime) in self.mimes:
            return True
        ext = get_extension(record.url)
        return ext is not None and ext in self.extensions


class MimeRateSampler:
    def __init__(self, rates: Dict[str, float], rng: Optional[random.Random] = None):
        self.rates = dict(rates)
        self.rng = rng or random.Random()

    def select(self, record: IndexRecord) -> bool:
        rate = self.rates.get(normalize_mime(record.mime))
        if rate is None:
            return True
        return self.rng.random() <= rate


class LangCharsetSampler:
    def __init__(self, rates: Dict[Tuple[str, str], float], rng: Optional[random.Random] = None):
        self.rates = dict(rates)
        self.rng = rng or random.Random()

    @classmethod
    def load(cls, path, rng: Optional[random.Random] = None) -> "LangCharsetSampler":
        rates: Dict[Tuple[str, str], float] = {}
        for line_no, cols in _read_rows(path):
            if len(cols) != 3:
                logger.warning(f"{path}:{line_no}: expected 3 columns: {cols!r}")
                continue
            lang, charset, rate_text = cols
            if charset.lower() == CHARSET_COL_HEADER:
                continue
            try:
                rates[(lang, charset)] = float(rate_text)
            except ValueError:
                logger.warning(f"{path}:{line_no}: couldn't parse {rate_text!r} for {lang}/{charset}")
        return cls(rates, rng=rng)

    @staticmethod
    def key_for(record: IndexRecord) -> Tuple[str, str]:
        lang = record.primary_language() or "NULL"
        charset = record.charset or "UNK"
        return lang, charset

    def select(self, record: IndexRecord) -> bool:
        mime = normalize_mime(record.mime_detected)
        if "html" not in mime and "text" not in mime:
            return False
        rate = self.rates.get(self.key_for(record))
        if rate is None:
            return False
        return rate > ALWAYS_RATE or self.rng.random() <= rate
