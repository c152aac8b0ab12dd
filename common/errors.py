"""
Exception hierarchy for the crawl mirror.

Per-record failures (bad lines, network errors, short payloads) are
reported as outcome codes and never escape a worker. The classes here
cover setup failures that abort a run and contract violations that a
worker must not swallow.
"""


class MirrorError(Exception):
    """Base exception for all crawl mirror errors."""


class ConfigError(MirrorError):
    """Raised when a required configuration key is missing or invalid."""

    def __init__(self, key: str, reason: str = "missing or None"):
        self.key = key
        super().__init__(f"Configuration error for '{key}': {reason}")


class ProcessorArgumentError(MirrorError):
    """Raised when a batch processor is given unusable arguments."""

    def __init__(self, processor: str, usage: str):
        self.processor = processor
        self.usage = usage
        super().__init__(f"Bad arguments for processor '{processor}'. Usage: {usage}")


class RuleFileError(MirrorError):
    """Raised when a rule, allowlist or digest file cannot be loaded."""

    def __init__(self, path: str, detail: str):
        self.path = path
        super().__init__(f"Cannot load '{path}': {detail}")


class ContainerReadError(MirrorError):
    """Raised when an archive container is empty, malformed or truncated."""

    def __init__(self, detail: str):
        super().__init__(f"Archive container error: {detail}")


class StoreError(MirrorError):
    """Raised when the content store cannot be written."""

    def __init__(self, digest: str, detail: str):
        self.digest = digest
        super().__init__(f"Content store error [{digest}]: {detail}")


class CacheOverflowError(MirrorError):
    """Raised when a string-interning cache exceeds its capacity."""

    def __init__(self, name: str, size: int):
        self.name = name
        self.size = size
        super().__init__(f"String cache '{name}' is full ({size} entries)")


class PipelineError(MirrorError):
    """Raised when a pipeline stage encounters an unrecoverable error."""

    def __init__(self, stage: str, detail: str):
        self.stage = stage
        super().__init__(f"Pipeline stage '{stage}' failed: {detail}")


class InvariantError(MirrorError):
    """Raised on a broken internal contract. Workers re-raise it."""
