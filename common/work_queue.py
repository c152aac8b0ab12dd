"""
Items placed on the bounded work queues.

A queue carries Work(item) entries followed by one Done() per consumer.
A consumer stops on its Done and never re-enqueues it.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Work:
    """A unit of work for a consumer thread."""
    item: Any


@dataclass(frozen=True)
class Done:
    """End-of-stream marker; exactly one is consumed per worker."""
