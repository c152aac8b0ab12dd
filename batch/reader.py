"""
Batch reader: run one processor per worker over a directory of index shards.

    shard paths ──> bounded queue (paths, then one Done per worker)
                        │
              W x ShardWorker ── processor.process(line) for every line
                        │
              processor.close() once, on the worker's Done

Processors are built and initialized before any worker starts, so bad
arguments or unreadable rule files abort the run. Per-line exceptions are
logged and counted; an unreadable shard is logged and skipped.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from queue import Queue
from typing import Any, Callable, Dict, List, Optional, Union

from batch.context import SharedContext
from batch.processors import RecordProcessor, registry
from batch.shards import SHARD_READ_ERRORS, iter_lines, list_shards
from common.config import config
from common.errors import InvariantError, PipelineError, ProcessorArgumentError
from common.logging.logger import get_logger
from common.work_queue import Done, Work

logger = get_logger("batch_reader")

ProcessorFactory = Callable[[int, SharedContext], RecordProcessor]


@dataclass
class WorkerStats:
    worker_id: int
    shards: int = 0
    lines: int = 0
    line_errors: int = 0
    shard_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'worker': self.worker_id,
            'shards': self.shards,
            'lines': self.lines,
            'line_errors': self.line_errors,
            'shard_errors': self.shard_errors,
        }


@dataclass
class BatchRunStats:
    start_time: float
    end_time: Optional[float] = None
    shards_total: int = 0
    workers: List[WorkerStats] = field(default_factory=list)

    @property
    def shards_processed(self) -> int:
        return sum(w.shards for w in self.workers)

    @property
    def lines(self) -> int:
        return sum(w.lines for w in self.workers)

    @property
    def line_errors(self) -> int:
        return sum(w.line_errors for w in self.workers)

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def duration_human(self) -> str:
        secs = int(self.duration_seconds)
        hours, remainder = divmod(secs, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'duration_human': self.duration_human,
            'shards_total': self.shards_total,
            'shards_processed': self.shards_processed,
            'lines': self.lines,
            'line_errors': self.line_errors,
            'workers': [w.to_dict() for w in self.workers],
        }


class ShardWorker(threading.Thread):
    def __init__(self, worker_id: int, queue: Queue, processor: RecordProcessor,
                 progress_every: int = 100_000):
        super().__init__(name=f"ShardWorker-{worker_id}", daemon=True)
        self.queue = queue
        self.processor = processor
        self.progress_every = progress_every
        self.stats = WorkerStats(worker_id=worker_id)
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            while True:
                entry = self.queue.get()
                if isinstance(entry, Done):
                    break
                self._process_shard(entry.item)
        except InvariantError as e:
            logger.error(f"Worker {self.stats.worker_id} stopped on broken invariant: {e}", exc_info=True)
            self.error = e
            self._drain()
        except Exception as e:
            logger.error(f"Worker {self.stats.worker_id} failed: {type(e).__name__}: {e}", exc_info=True)
            self.error = e
            self._drain()
        finally:
            try:
                self.processor.close()
            except Exception as e:
                logger.error(f"Worker {self.stats.worker_id} failed to close its processor: {e}",
                             exc_info=True)
                if self.error is None:
                    self.error = e

    def _drain(self):
        while not isinstance(self.queue.get(), Done):
            pass

    def _process_shard(self, path: Path):
        logger.info(f"Worker {self.stats.worker_id} processing {path}")
        lines = 0
        try:
            for line in iter_lines(path):
                lines += 1
                self.stats.lines += 1
                try:
                    self.processor.process(line)
                except InvariantError:
                    raise
                except Exception as e:
                    self.stats.line_errors += 1
                    logger.warning(f"{path.name}:{lines}: {type(e).__name__}: {e}")
                if lines % self.progress_every == 0:
                    logger.info(f"Worker {self.stats.worker_id}: {path.name} {lines} lines")
        except SHARD_READ_ERRORS as e:
            self.stats.shard_errors += 1
            logger.error(f"Worker {self.stats.worker_id} failed reading {path} after {lines} lines: {e}")
            return
        self.stats.shards += 1
        logger.info(f"Worker {self.stats.worker_id} finished {path.name} ({lines} lines)")


class BatchReader:
    """Runs `worker_count` processors over every shard of `shard_dir`."""

    def __init__(self, progress_every: Optional[int] = None):
        self.progress_every = progress_every or config.get("batch.progress_every")

    def _resolve_factory(self, processor: Union[str, ProcessorFactory]) -> ProcessorFactory:
        if isinstance(processor, str):
            cls = registry.get(processor)
            if cls is None:
                raise ProcessorArgumentError(
                    processor, f"unknown processor; choose one of {', '.join(registry.names)}"
                )
            return cls
        if not callable(processor):
            raise ValueError("processor must be a registered name or a factory")
        return processor

    def run(
        self,
        worker_count: int,
        shard_dir,
        processor: Union[str, ProcessorFactory],
        processor_args: Optional[List[str]] = None,
    ) -> BatchRunStats:
        if worker_count is None or worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        factory = self._resolve_factory(processor)
        stats = BatchRunStats(start_time=time.time())

        shards = list_shards(shard_dir)
        stats.shards_total = len(shards)

        context = SharedContext(worker_count)
        processors: List[RecordProcessor] = []
        try:
            for i in range(worker_count):
                p = factory(i, context)
                p.init(list(processor_args or []))
                processors.append(p)
        except Exception:
            for p in processors:
                try:
                    p.close()
                except Exception as e:
                    logger.warning(f"Error closing processor after failed setup: {e}")
            raise

        # Sized to hold everything, so the driver never blocks on put().
        queue: Queue = Queue(maxsize=len(shards) + worker_count)
        for path in shards:
            queue.put(Work(path))
        for _ in range(worker_count):
            queue.put(Done())

        workers = [
            ShardWorker(i, queue, p, progress_every=self.progress_every)
            for i, p in enumerate(processors)
        ]
        logger.info(f"Starting {worker_count} workers over {len(shards)} shards")
        for w in workers:
            w.start()
        for w in workers:
            w.join()

        stats.end_time = time.time()
        stats.workers = [w.stats for w in workers]
        logger.info(f"Batch run completed in {stats.duration_human}: {stats.to_dict()}")

        failures = [f"worker {w.stats.worker_id}: {w.error}" for w in workers if w.error]
        if failures:
            raise PipelineError("batch_reader", "; ".join(failures))
        return stats

