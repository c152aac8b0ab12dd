"""
Thread-safe string interning for lookup-table columns.

Each distinct (truncated) string gets a dense integer id in insertion
order. Reads take the unlocked fast path; inserts take the lock and
re-check before assigning an id.
"""

import threading
from typing import Dict, List, Optional, Tuple

from common.errors import CacheOverflowError

# Upper bound on the number of ids a single cache may hand out
DEFAULT_MAX_ENTRIES = 2 ** 31 - 10


class StringCache:
    def __init__(self, name: str, max_length: int, max_entries: int = DEFAULT_MAX_ENTRIES):
        if not name:
            raise ValueError("name is required")
        self.name = name
        self.max_length = max_length
        self.max_entries = max_entries
        self._ids: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _key(self, value: Optional[str]) -> str:
        key = value if value is not None else ""
        if len(key) > self.max_length:
            key = key[:self.max_length]
        return key

    def get_id(self, value: Optional[str]) -> int:
        key = self._key(value)

        found = self._ids.get(key)
        if found is not None:
            return found

        with self._lock:
            found = self._ids.get(key)
            if found is not None:
                return found
            index = len(self._ids)
            if index >= self.max_entries:
                raise CacheOverflowError(self.name, index)
            self._ids[key] = index
            return index

    def items(self) -> List[Tuple[int, str]]:
        """Snapshot of (id, string) pairs ordered by id."""
        with self._lock:
            return sorted((i, s) for s, i in self._ids.items())

    def __len__(self) -> int:
        return len(self._ids)
