"""
Crawl index record model.

An index line looks like

    com,example)/page 20170101000000 {"url": "...", "mime": "text/html", ...}

Only the JSON object is significant. IndexRecord.parse() locates it
between the first '{' and the last '}' so the SURT key and timestamp
prefix are skipped.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from common.logging.logger import get_logger

logger = get_logger("models")

_WHITESPACE_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"^\d+$")

# Maximum extension length kept by get_extension().
MAX_EXTENSION_LENGTH = 5


def normalize_mime(s: Optional[str]) -> str:
    """
    Lower-cases, trims, strips one pair of surrounding double quotes and
    collapses internal whitespace runs to a single space.
    """
    if s is None:
        return ""
    s = s.strip().lower()
    if s.startswith('"'):
        s = s[1:]
    if s.endswith('"'):
        s = s[:-1]
    return _WHITESPACE_RE.sub(" ", s).strip()


def get_tld(url: Optional[str]) -> str:
    """
    Returns the text after the last '.' of the URL's host.

    Empty string when the URL or host is missing or malformed, when the
    host ends with '.', or when the candidate is purely numeric (IPv4).
    """
    if url is None:
        return ""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return ""
    if not host:
        return ""
    i = host.rfind(".")
    if i < 0 or i + 1 >= len(host):
        return ""
    tld = host[i + 1:]
    if _DIGITS_RE.match(tld):
        return ""
    return tld


def get_extension(url: Optional[str]) -> Optional[str]:
    """
    Returns the lower-cased text after the last '.' of the URL when it is
    at most five characters long and not purely numeric, else None.
    """
    if url is None:
        return None
    i = url.rfind(".")
    if i < 0 or i + 1 + MAX_EXTENSION_LENGTH < len(url):
        return None
    ext = url[i + 1:].strip()
    if not ext or _DIGITS_RE.match(ext):
        return None
    ext = ext.lower()
    if ext.endswith("/"):
        ext = ext[:-1]
    return ext or None


def _as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class IndexRecord:
    """One archived capture as described by a crawl index line."""
    url: str
    mime: str
    mime_detected: str
    status: str
    digest: str
    length: int
    offset: int
    filename: str
    languages: str
    charset: str
    truncated: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexRecord":
        return cls(
            url=_as_text(data.get("url")),
            mime=_as_text(data.get("mime")),
            mime_detected=_as_text(data.get("mime-detected")),
            status=_as_text(data.get("status")),
            digest=_as_text(data.get("digest")),
            length=_as_int(data.get("length")),
            offset=_as_int(data.get("offset")),
            filename=_as_text(data.get("filename")),
            languages=_as_text(data.get("languages")),
            charset=_as_text(data.get("charset")),
            truncated=_as_text(data.get("truncated")),
        )

    @classmethod
    def parse(cls, line: str) -> Optional["IndexRecord"]:
        """Parses one index line. Malformed lines are logged and yield None."""
        if line is None:
            return None
        start = line.find("{")
        end = line.rfind("}")
        if start < 0 or end < start:
            logger.warning(f"No JSON object in index line: {line[:200]!r}")
            return None
        try:
            data = json.loads(line[start:end + 1])
        except ValueError as e:
            logger.warning(f"Malformed index line ({e}): {line[:200]!r}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Index line is not a JSON object: {line[:200]!r}")
            return None
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, str]:
        return {
            'url': self.url,
            'mime': self.mime,
            'mime-detected': self.mime_detected,
            'status': self.status,
            'digest': self.digest,
            'length': str(self.length),
            'offset': str(self.offset),
            'filename': self.filename,
            'languages': self.languages,
            'charset': self.charset,
            'truncated': self.truncated,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @property
    def end_offset(self) -> int:
        """Inclusive last byte of the record inside its archive file."""
        return self.offset + self.length - 1

    def range_header(self) -> str:
        return f"bytes={self.offset}-{self.end_offset}"

    def primary_language(self) -> str:
        """First comma-separated language tag, or "" when none is recorded."""
        return self.languages.split(",")[0].strip() if self.languages else ""

    def is_robots_txt(self) -> bool:
        return self.url.endswith("robots.txt")


def parse_records(line: str) -> List[IndexRecord]:
    """
    Returns the records on one index line.

    Only one record per line is supported, so the list holds zero or one
    element.
    """
    record = IndexRecord.parse(line)
    return [record] if record is not None else []
