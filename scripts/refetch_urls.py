#!/usr/bin/env python3
"""
Refetch Script

Re-downloads documents from their live URLs with an external command
(refetch.command in config.json, wget by default) and commits them to
the content store. Mostly used for records whose archived copy was
truncated.

Input:
    - TSV with a header row and columns url[, digest]

Output:
    - Payloads in the content store
    - Audit rows in <out>/status_table_<worker>.txt

Usage:
    python scripts/refetch_urls.py truncated_urls.tsv
    python scripts/refetch_urls.py truncated_urls.tsv --workers 20 --timeout 60
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.logging.logger import setup_logger, get_logger
from common.config import config
from common.errors import MirrorError
from fetcher.outcomes import RefetchOutcomeWriter
from fetcher.pipeline import FetchPipeline, RefetchTask
from fetcher.process_fetcher import ProcessFetcher, iter_url_digest_pairs
from storage.content_store import ContentStore

logger = get_logger("refetch_urls")


def main():
    parser = argparse.ArgumentParser(
        description="Refetch URLs with an external download command"
    )
    parser.add_argument("url_file", help="TSV of url[, digest] with a header row")
    parser.add_argument("--store", default=config.get("paths.store_root"), help="Content store root")
    parser.add_argument("--out", default=config.get("paths.output_dir"), help="Audit file directory")
    parser.add_argument("--workers", type=int, default=config.get("fetch.workers"))
    parser.add_argument(
        "--timeout",
        type=float,
        default=config.get("refetch.timeout_seconds"),
        help="Seconds before the download command is killed"
    )
    parser.add_argument(
        "--max-file-length",
        type=int,
        default=config.get("refetch.max_file_length"),
        help="Larger downloads are recorded as TOO_LONG and discarded"
    )

    args = parser.parse_args()

    if not Path(args.url_file).is_file():
        parser.error(f"URL file not found: {args.url_file}")

    setup_logger("refetch_urls", console_output=True)

    store = ContentStore(args.store)
    out_dir = Path(args.out)

    def task_factory(worker_id):
        fetcher = ProcessFetcher(
            store, timeout_seconds=args.timeout, max_file_length=args.max_file_length
        )
        writer = RefetchOutcomeWriter(out_dir / f"status_table_{worker_id}.txt")
        return RefetchTask(fetcher, writer)

    pipeline = FetchPipeline(
        source=iter_url_digest_pairs(args.url_file),
        task_factory=task_factory,
        num_workers=args.workers,
    )
    try:
        stats = pipeline.run()
    except (MirrorError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    print("\n" + "=" * 60)
    print("REFETCH COMPLETE")
    print("=" * 60)
    print(f"Duration: {stats.duration_human}")
    print(f"URLs: {stats.processed:,} of {stats.queued:,} ({stats.errors:,} errors)")
    for status, count in sorted(stats.statuses.items()):
        print(f"  {status}: {count:,}")
    print("=" * 60)


if __name__ == "__main__":
    main()
