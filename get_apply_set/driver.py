"""
Concurrent driver.

Resets the key, runs the configured number of workers against it and waits
for all of them. The cache entry is the only state the workers share; each
worker opens its own connection.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List

from .cache import CacheOpener
from .codec import MalformedValue, advance
from .config import RunConfig
from .strategies import apply

logger = logging.getLogger(__name__)


@dataclass
class WorkerStats:
    """Outcome of one worker."""
    worker: int
    iterations: int = 0
    conflicts: int = 0
    elapsed: float = 0.0


@dataclass
class RunResult:
    """Outcome of a whole run."""
    workers: List[WorkerStats] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def total_updates(self) -> int:
        return sum(w.iterations for w in self.workers)

    @property
    def total_conflicts(self) -> int:
        return sum(w.conflicts for w in self.workers)


def reset_key(open_cache: CacheOpener, key: str) -> None:
    """Delete the key; deleting an absent key is not an error."""
    cache = open_cache()
    try:
        removed = cache.delete(key)
        logger.info(f"Reset key '{key}' (existed: {removed})")
    finally:
        cache.close()


def _worker(index: int, config: RunConfig, open_cache: CacheOpener,
            stop: threading.Event) -> WorkerStats:
    """Apply the strategy `config.iterations` times on a dedicated connection."""
    stats = WorkerStats(worker=index)
    start = time.perf_counter()
    cache = open_cache()
    try:
        for _ in range(config.iterations):
            if stop.is_set():
                logger.debug(f"Worker {index} stopping early after {stats.iterations} updates")
                break
            stats.conflicts += apply(
                config.strategy, cache, config.key, advance,
                max_retries=config.max_retries
            )
            stats.iterations += 1
    finally:
        cache.close()
        stats.elapsed = time.perf_counter() - start
    logger.debug(
        f"Worker {index} done: {stats.iterations} updates, "
        f"{stats.conflicts} conflicts in {stats.elapsed:.3f}s"
    )
    return stats


def run_workers(config: RunConfig, open_cache: CacheOpener) -> RunResult:
    """
    Reset the key, then run all workers to completion.

    If a worker fails, the others stop at their next iteration boundary and
    the failure is re-raised once every worker has exited. A MalformedValue
    from any worker wins over other errors, otherwise the lowest worker wins.

    Args:
        config: Run configuration
        open_cache: Factory opening a new cache connection per call

    Returns:
        RunResult with per-worker statistics
    """
    logger.info(f"Starting run: {config}")
    reset_key(open_cache, config.key)

    stop = threading.Event()
    start = time.perf_counter()

    with ThreadPoolExecutor(max_workers=config.concurrency,
                            thread_name_prefix="worker") as executor:
        futures = [
            executor.submit(_worker, index, config, open_cache, stop)
            for index in range(config.concurrency)
        ]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        if any(future.exception() is not None for future in done):
            stop.set()
        wait(futures)

    errors = [future.exception() for future in futures if future.exception() is not None]
    if errors:
        for error in errors:
            logger.error(f"Worker failed: {error}")
        # Corruption outranks any other failure
        raise next((e for e in errors if isinstance(e, MalformedValue)), errors[0])

    result = RunResult(
        workers=[future.result() for future in futures],
        elapsed=time.perf_counter() - start,
    )
    logger.info(
        f"Run finished: {result.total_updates} updates, "
        f"{result.total_conflicts} conflicts in {result.elapsed:.3f}s"
    )
    return result
