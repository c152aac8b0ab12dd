#!/usr/bin/env python3
"""
Fetch Script

Fetches the payload of every index record in the given files (typically
downsampled_rows_*.txt from scripts/batch_read.py) into the content store
using HTTP byte ranges. One audit TSV is written per worker.

Input:
    - Index record files, one JSON record per line (plain, .gz or .zst)

Output:
    - Payloads in <store>/<digest[:2]>/<digest>
    - Audit rows in <out>/fetch_status_<worker>.txt

Usage:
    python scripts/fetch_records.py data/output/downsampled_rows_*.txt
    python scripts/fetch_records.py rows.txt --store /data/store --out /data/audit --workers 16
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.logging.logger import setup_logger, get_logger
from common.config import config
from common.errors import MirrorError
from fetcher.http_fetcher import RangeFetcher
from fetcher.outcomes import OutcomeWriter
from fetcher.pipeline import FetchPipeline, RangeFetchTask, iter_index_records
from storage.content_store import ContentStore

logger = get_logger("fetch_records")


def main():
    parser = argparse.ArgumentParser(
        description="Fetch archived payloads for index records into the content store"
    )
    parser.add_argument("inputs", nargs="+", help="Index record files")
    parser.add_argument(
        "--store",
        default=config.get("paths.store_root"),
        help="Content store root"
    )
    parser.add_argument(
        "--out",
        default=config.get("paths.output_dir"),
        help="Directory for the per-worker audit files"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=config.get("fetch.workers"),
        help=f"Worker threads (default: {config.get('fetch.workers')})"
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        default=config.get("fetch.queue_size"),
        help="Work queue capacity"
    )
    parser.add_argument("--proxy-host", default=config.get("fetch.proxy_host"))
    parser.add_argument("--proxy-port", type=int, default=config.get("fetch.proxy_port"))

    args = parser.parse_args()

    for path in args.inputs:
        if not Path(path).is_file():
            parser.error(f"Input file not found: {path}")
    if (args.proxy_host is None) != (args.proxy_port is None):
        parser.error("--proxy-host and --proxy-port go together")

    setup_logger("fetch_records", console_output=True)

    store = ContentStore(args.store)
    out_dir = Path(args.out)

    def task_factory(worker_id):
        fetcher = RangeFetcher(store, proxy_host=args.proxy_host, proxy_port=args.proxy_port)
        writer = OutcomeWriter(out_dir / f"fetch_status_{worker_id}.txt")
        return RangeFetchTask(fetcher, writer)

    logger.info(f"Inputs: {len(args.inputs)} files | store: {store.root} | workers: {args.workers}")

    pipeline = FetchPipeline(
        source=iter_index_records(args.inputs),
        task_factory=task_factory,
        num_workers=args.workers,
        queue_size=args.queue_size,
    )
    try:
        stats = pipeline.run()
    except MirrorError as e:
        logger.error(str(e))
        sys.exit(1)

    print("\n" + "=" * 60)
    print("FETCH COMPLETE")
    print("=" * 60)
    print(f"Duration: {stats.duration_human}")
    print(f"Records: {stats.processed:,} of {stats.queued:,} ({stats.errors:,} errors)")
    for status, count in sorted(stats.statuses.items()):
        print(f"  {status}: {count:,}")
    print("=" * 60)


if __name__ == "__main__":
    main()
