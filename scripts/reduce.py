#!/usr/bin/env python3
"""
Reduce Script

Merges the per-worker outputs of a batch run.

    counts   sum count tables (key cells then a count), most frequent first
    concat   append rows as they are (downsampled rows, found urls)

Usage:
    python scripts/reduce.py counts /data/out mime_counts.tsv --pattern 'mime_counts_*.txt'
    python scripts/reduce.py concat /data/out selected.txt --pattern 'downsampled_rows_*.txt'
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.logging.logger import setup_logger, get_logger
from common.errors import MirrorError
from batch.reducers import concat_outputs, reduce_counts

logger = get_logger("reduce")


def main():
    parser = argparse.ArgumentParser(description="Merge per-worker batch outputs")
    parser.add_argument("mode", choices=["counts", "concat"])
    parser.add_argument("input_dir", help="Directory holding the partial files")
    parser.add_argument("output", help="Merged output file")
    parser.add_argument("--pattern", help="Glob selecting the partial files (default: all files)")

    args = parser.parse_args()

    if not Path(args.input_dir).is_dir():
        parser.error(f"Input directory not found: {args.input_dir}")

    setup_logger("reduce", console_output=True)

    try:
        if args.mode == "counts":
            totals = reduce_counts(args.input_dir, args.output, pattern=args.pattern)
            print(f"{len(totals):,} keys, {sum(totals.values()):,} total -> {args.output}")
        else:
            rows = concat_outputs(args.input_dir, args.output, pattern=args.pattern)
            print(f"{rows:,} rows -> {args.output}")
    except (MirrorError, OSError) as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
