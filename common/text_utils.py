"""
Text helpers for tab-separated report and audit files.

Every cell written by a worker passes through clean_cell() so that a row
is always exactly one line with one tab between cells.
"""

import re
from typing import Iterable, Optional

# Whitespace plus the C0/C1 control characters
_CONTROL_RUN_RE = re.compile(r"[\s\x00-\x1f\x7f-\x9f]+")


def clean_cell(value: Optional[object]) -> str:
    """
    Sanitizes one TSV cell.

    - None becomes the empty string
    - one leading and one trailing double quote are stripped
    - if a double quote remains, the cell is wrapped in quotes and inner
      quotes are doubled
    - whitespace and control character runs collapse to a single space
    """
    if value is None:
        return ""
    s = str(value)
    if s.startswith('"'):
        s = s[1:]
    if s.endswith('"'):
        s = s[:-1]
    if '"' in s:
        s = '"' + s.replace('"', '""') + '"'
    return _CONTROL_RUN_RE.sub(" ", s)


def clean_key(value: Optional[str]) -> str:
    """Trims a report key and replaces tabs and newlines with spaces."""
    if value is None:
        return ""
    return _CONTROL_RUN_RE.sub(" ", value.strip())


def tsv_row(cells: Iterable[object]) -> str:
    """Joins cleaned cells into one newline-terminated TSV row."""
    return "\t".join(clean_cell(c) for c in cells) + "\n"
