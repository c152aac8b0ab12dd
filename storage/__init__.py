"""
Storage module for the crawl mirror.

Provides:
- Content-addressed payload repository
- Thread-safe string interning for lookup columns
- SQLite loader for index records
"""

from storage.content_store import ContentStore, compute_digest
from storage.string_cache import StringCache
from storage.index_db import IndexDatabase

__all__ = ['ContentStore', 'compute_digest', 'StringCache', 'IndexDatabase']
