"""Abstract base class for batch record processors."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, TextIO

from batch.context import SharedContext
from common.errors import ProcessorArgumentError
from common.models import IndexRecord, parse_records


class RecordProcessor(ABC):
    """
    One instance per worker thread.

    Lifecycle: constructed and init(args)-ed by the batch reader before
    any worker starts, then process(line) for every line of every shard
    the worker takes, then close() exactly once.
    """

    # Registry name and usage string, set by subclasses
    name: str = ""
    usage: str = ""
    # Minimum and maximum number of positional arguments
    min_args: int = 0
    max_args: Optional[int] = None

    def __init__(self, worker_id: int, context: SharedContext):
        self.worker_id = worker_id
        self.context = context
        self.args: List[str] = []

    def init(self, args: List[str]) -> None:
        args = list(args or [])
        if args and args[0] in ("-h", "--help"):
            raise ProcessorArgumentError(self.name, self.usage)
        if len(args) < self.min_args or (self.max_args is not None and len(args) > self.max_args):
            raise ProcessorArgumentError(self.name, self.usage)
        self.args = args
        self.setup(args)

    def setup(self, args: List[str]) -> None:
        """Subclass hook for argument handling and resource setup."""

    @abstractmethod
    def process(self, line: str) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def records(self, line: str) -> List[IndexRecord]:
        return parse_records(line)

    def open_output(self, output_dir, prefix: str) -> TextIO:
        """Opens <output_dir>/<prefix><worker_id>.txt for writing."""
        path = Path(output_dir) / f"{prefix}{self.worker_id}.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        return open(path, "w", encoding="utf-8")

    @staticmethod
    def is_fetchable(record: IndexRecord) -> bool:
        """200-status, non-robots.txt captures."""
        return record.status == "200" and not record.is_robots_txt()
