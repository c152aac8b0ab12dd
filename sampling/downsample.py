"""
Weighted downsampling of index records by TLD and mime.

Rule file (UTF-8, tab separated, no escaped tabs), one of:

    mime<TAB>probability                 applies to every TLD
    tld<TAB>mime<TAB>probability         tld '*' or 'ANY_TLD' applies to every TLD

A mime cell written as /pattern/ is a regular expression searched in the
normalized mime; anything else is an exact match. A row whose mime cell is
the literal 'mime' is a header and is skipped.

Lookup: the record's TLD table first; only if no rule there matched at all
is the wildcard table consulted; no match anywhere rejects. A matched rule
with probability p selects when p >= 1.0 or a uniform draw is below p.
"""

import enum
import random
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Set, Tuple

from common.errors import RuleFileError
from common.logging.logger import get_logger
from common.models import normalize_mime

logger = get_logger("downsample")

ANY_TLD = "ANY_TLD"
WILDCARD_TLDS = frozenset({"*", ANY_TLD})
MIME_COL_HEADER = "mime"


class MimeMode(enum.Enum):
    HEADER_ONLY = "header_only"
    DETECTED_ONLY = "detected_only"
    HEADER_OR_DETECTED = "header_or_detected"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MimeMode":
        if not value:
            return cls.HEADER_OR_DETECTED
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Expected one of {[m.value for m in cls]}, got {value!r}"
            ) from None


@dataclass(frozen=True)
class MimeRules:
    """Rules for one TLD (or the wildcard)."""
    exact: Dict[str, float] = field(default_factory=dict)
    patterns: Tuple[Tuple[Pattern, float], ...] = ()

    def lookup(self, mime: str) -> Optional[float]:
        """Probability of the first rule matching `mime`, or None."""
        p = self.exact.get(mime)
        if p is not None:
            return p
        for pattern, prob in self.patterns:
            if pattern.search(mime):
                return prob
        return None


class RuleTable:
    """Immutable TLD -> mime -> probability table, shareable across workers."""

    def __init__(self, by_tld: Dict[str, MimeRules], wildcard: Optional[MimeRules]):
        self._by_tld = dict(by_tld)
        self.wildcard = wildcard

    def for_tld(self, tld: str) -> Optional[MimeRules]:
        if not tld:
            return None
        return self._by_tld.get(tld)

    @property
    def tlds(self) -> List[str]:
        return sorted(self._by_tld)

    @classmethod
    def load(cls, path) -> "RuleTable":
        path = Path(path)
        exact: Dict[str, Dict[str, float]] = {}
        patterns: Dict[str, List[Tuple[Pattern, float]]] = {}
        num_cols = -1

        try:
            with open(path, "r", encoding="utf-8") as fh:
                for line_no, raw in enumerate(fh, 1):
                    line = raw.rstrip("\r\n")
                    if not line.strip():
                        continue
                    cols = line.split("\t")
                    if len(cols) not in (2, 3):
                        logger.warning(f"{path}:{line_no}: expected 2 or 3 columns, skipping: {line!r}")
                        continue
                    if num_cols > -1 and num_cols != len(cols):
                        raise RuleFileError(
                            str(path),
                            f"line {line_no} has {len(cols)} columns but earlier rows have {num_cols}; "
                            f"every row must have the same number of columns",
                        )
                    num_cols = len(cols)

                    if num_cols == 2:
                        tld, mime, prob_text = ANY_TLD, cols[0].strip(), cols[1].strip()
                    else:
                        tld, mime, prob_text = cols[0].strip(), cols[1].strip(), cols[2].strip()
                        if tld in WILDCARD_TLDS:
                            tld = ANY_TLD
                        else:
                            tld = tld.lower()

                    if mime.lower() == MIME_COL_HEADER:
                        continue

                    try:
                        prob = float(prob_text)
                    except ValueError:
                        logger.warning(f"{path}:{line_no}: couldn't parse probability {prob_text!r} for {mime!r}")
                        continue

                    if len(mime) > 1 and mime.startswith("/") and mime.endswith("/"):
                        try:
                            compiled = re.compile(mime[1:-1])
                        except re.error as e:
                            raise RuleFileError(str(path), f"line {line_no}: bad pattern {mime!r}: {e}") from e
                        patterns.setdefault(tld, []).append((compiled, prob))
                    else:
                        exact.setdefault(tld, {})[normalize_mime(mime)] = prob
        except OSError as e:
            raise RuleFileError(str(path), str(e)) from e

        tables = {
            tld: MimeRules(exact=exact.get(tld, {}), patterns=tuple(patterns.get(tld, [])))
            for tld in set(exact) | set(patterns)
        }
        wildcard = tables.pop(ANY_TLD, None)
        logger.info(
            f"Loaded downsample rules from {path}: {len(tables)} TLD tables, "
            f"wildcard={'yes' if wildcard else 'no'}"
        )
        return cls(tables, wildcard)


class DownsampleSelector:
    """
    Per-worker selector over a shared RuleTable.

    Owns its random source and a negative cache of mimes no rule matches.
    """

    def __init__(
        self,
        table: RuleTable,
        mode: MimeMode = MimeMode.HEADER_OR_DETECTED,
        rng: Optional[random.Random] = None,
    ):
        if table is None:
            raise ValueError("table is required")
        self.table = table
        self.mode = mode
        self.rng = rng or random.Random()
        self._no_match: Dict[str, Set[str]] = {}

    def _match_single(self, tld: str, rules: MimeRules, mime: str) -> Optional[bool]:
        ignored = self._no_match.setdefault(tld, set())
        if mime in ignored:
            return None
        p = rules.lookup(mime)
        if p is None:
            ignored.add(mime)
            return None
        return p >= 1.0 or self.rng.random() < p

    def _match(self, tld: str, rules: MimeRules, header_mime: str, detected_mime: str) -> Optional[bool]:
        """None when no rule matched, else whether the matched rule selected."""
        if self.mode is MimeMode.HEADER_ONLY:
            return self._match_single(tld, rules, header_mime)
        if self.mode is MimeMode.DETECTED_ONLY:
            return self._match_single(tld, rules, detected_mime)

        header = self._match_single(tld, rules, header_mime)
        if header:
            return True
        detected = self._match_single(tld, rules, detected_mime)
        if detected:
            return True
        if header is None and detected is None:
            return None
        return False

    def select(self, tld: str, header_mime: str, detected_mime: str) -> bool:
        header_mime = normalize_mime(header_mime)
        detected_mime = normalize_mime(detected_mime)

        tld = (tld or "").lower()
        rules = self.table.for_tld(tld)
        if rules is not None:
            result = self._match(tld, rules, header_mime, detected_mime)
            if result is not None:
                return result

        if self.table.wildcard is not None:
            result = self._match(ANY_TLD, self.table.wildcard, header_mime, detected_mime)
            if result is not None:
                return result

        return False
