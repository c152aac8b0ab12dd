"""
State shared by the processors of one batch run.

Replaces process-wide globals: each run builds one SharedContext and
hands it to every processor it constructs.
"""

import threading
from typing import Any, Callable, Dict, List

from storage.string_cache import StringCache


class SharedContext:
    def __init__(self, num_workers: int):
        if num_workers is None or num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self.num_workers = num_workers
        self._lock = threading.Lock()
        self._caches: Dict[str, StringCache] = {}
        self._loaded: Dict[str, Any] = {}
        self._closed = 0

    def get_string_cache(self, name: str, max_length: int) -> StringCache:
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = StringCache(name, max_length)
                self._caches[name] = cache
            return cache

    @property
    def string_caches(self) -> List[StringCache]:
        with self._lock:
            return list(self._caches.values())

    def load_once(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Returns the value stored under `key`, calling `loader` the first
        time. Concurrent callers wait for the first load to finish.
        """
        with self._lock:
            if key not in self._loaded:
                self._loaded[key] = loader()
            return self._loaded[key]

    def mark_closed(self) -> bool:
        """Records one processor close; True for the last one."""
        with self._lock:
            self._closed += 1
            return self._closed == self.num_workers
