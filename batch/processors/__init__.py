"""
Record processors for the batch reader.

Importing this package registers the built-in processors with `registry`.
"""

from batch.processors.base import RecordProcessor
from batch.processors.registry import ProcessorRegistry, registry

# Built-ins register themselves on import
from batch.processors import counters, digests, downsample, fetch, index_loader  # noqa: F401

__all__ = ['RecordProcessor', 'ProcessorRegistry', 'registry']
