#!/usr/bin/env python3
"""
Batch Reader Script

Runs one processor per worker thread over every shard of an index
directory. Each worker writes its own partial output; merge them with
scripts/reduce.py.

Processors:
    count_mimes, count_ext, count_ext_by_mime, count_mime_by_ext,
    count_mimes_by_detected, count_tlds, count_mimes_by_tld,
    downsample, downsample_mime, downsample_lang_charset,
    extract_by_mime_ext, find_urls, index_db, fetch

Usage:
    python scripts/batch_read.py 8 /data/cc-index count_mimes /data/out
    python scripts/batch_read.py 8 /data/cc-index downsample rules.tsv /data/out header_or_detected
    python scripts/batch_read.py 4 /data/cc-index index_db data/ccindex.db
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.logging.logger import setup_logger, get_logger
from common.config import config
from common.errors import MirrorError
from batch.processors import registry
from batch.reader import BatchReader

logger = get_logger("batch_read")


def main():
    parser = argparse.ArgumentParser(
        description="Run a record processor over a directory of index shards"
    )
    parser.add_argument("workers", type=int, help="Number of worker threads")
    parser.add_argument("shard_dir", help="Directory of index shard files (.gz, .zst or plain)")
    parser.add_argument(
        "processor",
        help=f"Processor name: {', '.join(registry.names)}"
    )
    parser.add_argument(
        "processor_args",
        nargs=argparse.REMAINDER,
        help="Arguments passed to the processor"
    )
    parser.add_argument(
        "--progress-every",
        type=int,
        default=config.get("batch.progress_every"),
        help="Log progress every N lines per shard"
    )

    args = parser.parse_args()

    if args.workers < 1:
        parser.error("workers must be >= 1")
    if not Path(args.shard_dir).is_dir():
        parser.error(f"Shard directory not found: {args.shard_dir}")

    setup_logger("batch_read", console_output=True)

    logger.info("=" * 60)
    logger.info("BATCH READ")
    logger.info("=" * 60)
    logger.info(f"Shards: {args.shard_dir}")
    logger.info(f"Workers: {args.workers}")
    logger.info(f"Processor: {args.processor} {' '.join(args.processor_args)}")
    logger.info("=" * 60)

    reader = BatchReader(progress_every=args.progress_every)
    try:
        stats = reader.run(args.workers, args.shard_dir, args.processor, args.processor_args)
    except MirrorError as e:
        logger.error(str(e))
        sys.exit(1)

    print("\n" + "=" * 60)
    print("BATCH READ COMPLETE")
    print("=" * 60)
    print(f"Duration: {stats.duration_human}")
    print(f"Shards: {stats.shards_processed:,} / {stats.shards_total:,}")
    print(f"Lines: {stats.lines:,} ({stats.line_errors:,} errors)")
    print("=" * 60)


if __name__ == "__main__":
    main()
