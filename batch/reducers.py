"""
Reducers for per-worker batch outputs.

reduce_counts() merges count tables (key cells then a count) by summing
per key; concat_outputs() appends already-final rows such as the
downsampler's survivors.
"""

from collections import Counter
from pathlib import Path
from typing import List, Optional, Tuple

from batch.shards import list_shards
from common.errors import PipelineError
from common.logging.logger import get_logger

logger = get_logger("reducers")


def _partial_files(input_dir, pattern: Optional[str], output_path: Path) -> List[Path]:
    if pattern:
        try:
            files = sorted(p for p in Path(input_dir).glob(pattern) if p.is_file())
        except OSError as e:
            raise PipelineError("reduce", f"cannot list {input_dir}: {e}") from e
    else:
        files = list_shards(input_dir)
    out = output_path.resolve()
    return [f for f in files if f.resolve() != out]


def _parse_count_row(line: str) -> Optional[Tuple[Tuple[str, ...], int]]:
    cells = line.rstrip("\r\n").split("\t")
    if len(cells) < 2:
        return None
    try:
        count = int(cells[-1])
    except ValueError:
        return None
    return tuple(cells[:-1]), count


def reduce_counts(input_dir, output_path, pattern: Optional[str] = None) -> Counter:
    """
    Sums the counts of every partial file in `input_dir` (optionally only
    those matching the glob `pattern`) and writes one row per key, most
    frequent first, ties broken by key.

    Returns the merged Counter.
    """
    output_path = Path(output_path)
    totals: Counter = Counter()
    files = _partial_files(input_dir, pattern, output_path)
    for path in files:
        skipped = 0
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            for lineno, line in enumerate(fh, 1):
                if not line.strip():
                    continue
                row = _parse_count_row(line)
                if row is None:
                    skipped += 1
                    logger.warning(f"{path.name}:{lineno}: malformed count row {line.rstrip()!r}")
                    continue
                key, count = row
                totals[key] += count
        logger.info(f"Merged {path.name} ({skipped} rows skipped)")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as out:
        for key, count in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0])):
            out.write("\t".join(key) + f"\t{count}\n")
    logger.info(f"Wrote {len(totals)} keys from {len(files)} files to {output_path}")
    return totals


def concat_outputs(input_dir, output_path, pattern: Optional[str] = None) -> int:
    """Appends every partial file, in name order, to `output_path`. Returns rows written."""
    output_path = Path(output_path)
    files = _partial_files(input_dir, pattern, output_path)
    rows = 0
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as out:
        for path in files:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    if not line.endswith("\n"):
                        line += "\n"
                    out.write(line)
                    rows += 1
    logger.info(f"Concatenated {rows} rows from {len(files)} files to {output_path}")
    return rows
