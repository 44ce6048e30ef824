"""Heap snapshots for tracking down memory growth in long-running shards."""

import logging
import tracemalloc
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

TOP_ALLOCATIONS = 10


def dump_heap(prefix: str, directory: Path) -> Path:
    """
    Write a tracemalloc snapshot and log the biggest allocation sites.

    Tracing is switched on by the first call, so the first snapshot is
    mostly empty.

    Returns:
        Path of the written snapshot
    """
    if not tracemalloc.is_tracing():
        tracemalloc.start()

    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    path = directory / f"{prefix}-{stamp}.heapsnapshot"

    snapshot = tracemalloc.take_snapshot()
    snapshot.dump(str(path))

    current, peak = tracemalloc.get_traced_memory()
    logger.info(f"Heap snapshot written to {path} (current={current / 1024:.0f}KiB, peak={peak / 1024:.0f}KiB)")
    for stat in snapshot.statistics("lineno")[:TOP_ALLOCATIONS]:
        logger.debug(f"  {stat}")
    return path
