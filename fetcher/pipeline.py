"""
Threaded fetch pipeline.

    QueueFiller ──> bounded queue ──> N x FetchWorker ──> per-worker audit TSV
                                         │
                                         └──> ContentStore

The filler blocks when the queue is full and always finishes by putting
one Done per worker, even if reading the source failed. Workers log and
count per-item failures and keep going; an InvariantError stops the
worker and fails the run once every thread has been joined.
"""

import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from queue import Queue
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from batch.shards import iter_lines
from common.config import config
from common.errors import InvariantError, PipelineError
from common.logging.logger import get_logger
from common.models import IndexRecord
from common.work_queue import Done, Work
from fetcher.http_fetcher import RangeFetcher
from fetcher.outcomes import OutcomeWriter, RefetchOutcomeWriter
from fetcher.process_fetcher import ProcessFetcher, UrlDigestPair

logger = get_logger("fetch_pipeline")


def iter_index_records(paths: Iterable) -> Iterator[IndexRecord]:
    """Parsed records from index files (plain, gzip or zstd); bad lines are skipped."""
    for path in paths:
        count = 0
        for line in iter_lines(path):
            if not line.strip():
                continue
            record = IndexRecord.parse(line)
            if record is None:
                continue
            count += 1
            yield record
        logger.info(f"{Path(path).name}: read {count} records")


# ── Tasks ────────────────────────────────────────────────────────────


class RangeFetchTask:
    """Per-worker byte-range fetch: fetcher plus its own audit writer."""

    def __init__(self, fetcher: RangeFetcher, writer: OutcomeWriter):
        self.fetcher = fetcher
        self.writer = writer

    def run(self, record: IndexRecord):
        outcome = self.fetcher.fetch(record)
        self.writer.write(outcome)
        return outcome.status

    def close(self):
        self.writer.close()


class RefetchTask:
    """Per-worker external-process fetch."""

    def __init__(self, fetcher: ProcessFetcher, writer: RefetchOutcomeWriter):
        self.fetcher = fetcher
        self.writer = writer

    def run(self, pair: UrlDigestPair):
        outcome = self.fetcher.fetch(pair)
        self.writer.write(outcome)
        return outcome.status

    def close(self):
        self.writer.close()


# ── Threads ──────────────────────────────────────────────────────────


class QueueFiller(threading.Thread):
    """Feeds the work queue from an iterable, then one Done per worker."""

    def __init__(self, source: Iterable, queue: Queue, num_consumers: int):
        super().__init__(name="QueueFiller", daemon=True)
        self.source = source
        self.queue = queue
        self.num_consumers = num_consumers
        self.added = 0
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            for item in self.source:
                self.queue.put(Work(item))
                self.added += 1
        except Exception as e:
            logger.error(f"Queue filler failed after {self.added} items: {e}", exc_info=True)
            self.error = e
        finally:
            logger.info(f"Queue filler has finished ({self.added} items); adding end markers")
            for _ in range(self.num_consumers):
                self.queue.put(Done())


class FetchWorker(threading.Thread):
    def __init__(self, worker_id: int, queue: Queue, task):
        super().__init__(name=f"FetchWorker-{worker_id}", daemon=True)
        self.worker_id = worker_id
        self.queue = queue
        self.task = task
        self.processed = 0
        self.errors = 0
        self.statuses: Counter = Counter()
        self.error: Optional[BaseException] = None
        self._lock = threading.Lock()

    def run(self):
        try:
            while True:
                entry = self.queue.get()
                if isinstance(entry, Done):
                    break
                if self.error is not None:
                    # keep draining so the filler never blocks on a dead worker
                    continue
                try:
                    self._handle(entry.item)
                except InvariantError as e:
                    logger.error(f"Worker {self.worker_id} stopped on broken invariant: {e}", exc_info=True)
                    self.error = e
        finally:
            try:
                self.task.close()
            except Exception as e:
                logger.error(f"Worker {self.worker_id} failed to close its task: {e}")
                if self.error is None:
                    self.error = e

    def _handle(self, item: Any):
        try:
            status = self.task.run(item)
        except InvariantError:
            raise
        except Exception as e:
            with self._lock:
                self.errors += 1
            logger.error(f"Worker {self.worker_id} failed on {item!r}: {e}", exc_info=True)
            return
        with self._lock:
            self.processed += 1
            self.statuses[getattr(status, "value", str(status))] += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'processed': self.processed,
                'errors': self.errors,
                'statuses': dict(self.statuses),
            }


class ProgressMonitor(threading.Thread):
    """Periodically logs queue depth and per-status totals."""

    def __init__(self, queue: Queue, workers: List[FetchWorker], interval: int = 30):
        super().__init__(name="ProgressMonitor", daemon=True)
        self.queue = queue
        self.workers = workers
        self.interval = interval
        self._stop_event = threading.Event()
        self._start_time = time.time()

    def run(self):
        while not self._stop_event.wait(self.interval):
            self._report_progress()

    def _report_progress(self):
        elapsed = time.time() - self._start_time
        totals: Counter = Counter()
        processed = 0
        for w in self.workers:
            stats = w.get_stats()
            processed += stats['processed']
            totals.update(stats['statuses'])
        status_info = ' '.join(f"{k}={v}" for k, v in sorted(totals.items()))
        logger.info(
            f"Progress: {elapsed:.0f}s | queue={self.queue.qsize()} | "
            f"processed={processed} | {status_info} | "
            f"throughput={processed / max(elapsed, 1):.1f} rec/s"
        )

    def stop(self):
        self._stop_event.set()


# ── Driver ───────────────────────────────────────────────────────────


@dataclass
class FetchStats:
    start_time: float
    end_time: Optional[float] = None
    queued: int = 0
    processed: int = 0
    errors: int = 0
    statuses: Dict[str, int] = field(default_factory=dict)
    workers: List[Dict[str, Any]] = field(default_factory=list)

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
            'duration_seconds': self.duration_seconds,
            'duration_human': self.duration_human,
            'queued': self.queued,
            'processed': self.processed,
            'errors': self.errors,
            'statuses': self.statuses,
            'workers': self.workers,
        }


class FetchPipeline:
    """
    Runs `num_workers` fetch workers over `source`.

    `task_factory(worker_id)` builds one task per worker; a task has
    run(item) returning a FetchStatus and close().
    """

    def __init__(
        self,
        source: Iterable,
        task_factory: Callable[[int], Any],
        num_workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        progress_interval: Optional[int] = None,
    ):
        if source is None:
            raise ValueError("source is required")
        if task_factory is None:
            raise ValueError("task_factory is required")
        self.source = source
        self.task_factory = task_factory
        self.num_workers = num_workers or config.get("fetch.workers")
        self.queue_size = queue_size or config.get("fetch.queue_size")
        self.progress_interval = progress_interval or config.get("fetch.progress_interval")
        if self.num_workers < 1:
            raise ValueError("num_workers must be >= 1")

    def run(self) -> FetchStats:
        stats = FetchStats(start_time=time.time())
        queue: Queue = Queue(maxsize=self.queue_size)

        # Tasks are built up front so a bad output path fails before any fetch.
        tasks = []
        try:
            for i in range(self.num_workers):
                tasks.append(self.task_factory(i))
        except Exception:
            for task in tasks:
                task.close()
            raise
        workers = [FetchWorker(i, queue, task) for i, task in enumerate(tasks)]
        filler = QueueFiller(self.source, queue, self.num_workers)
        monitor = ProgressMonitor(queue, workers, interval=self.progress_interval)

        logger.info(f"Starting fetch pipeline with {self.num_workers} workers")
        for w in workers:
            w.start()
        filler.start()
        monitor.start()

        try:
            filler.join()
            for w in workers:
                w.join()
        finally:
            monitor.stop()

        stats.end_time = time.time()
        stats.queued = filler.added
        totals: Counter = Counter()
        for w in workers:
            ws = w.get_stats()
            stats.workers.append({'worker': w.worker_id, **ws})
            stats.processed += ws['processed']
            stats.errors += ws['errors']
            totals.update(ws['statuses'])
        stats.statuses = dict(totals)

        logger.info(f"Fetch pipeline completed in {stats.duration_human}")
        logger.info(f"Final stats: {stats.to_dict()}")

        failures = [f"filler: {filler.error}"] if filler.error else []
        failures += [f"worker {w.worker_id}: {w.error}" for w in workers if w.error]
        if failures:
            raise PipelineError("fetch", "; ".join(failures))
        return stats
