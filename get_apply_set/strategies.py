"""
Update strategies for the shared counter.

Both strategies read the key, compute the next value with the injected step
function and write it back. They differ only in how the write is made:

- last-write-wins overwrites unconditionally and can lose concurrent updates
- compare-and-swap writes conditionally and retries until its write lands
"""

import logging
from enum import Enum
from typing import Callable, Optional

from .cache import CacheClient

logger = logging.getLogger(__name__)

Step = Callable[[Optional[bytes]], bytes]


class Strategy(str, Enum):
    """Available update strategies, valued by their command-line identifier."""

    COMPARE_AND_SWAP = "atomic"
    LAST_WRITE_WINS = "nonatomic"

    @classmethod
    def names(cls) -> str:
        """Identifiers joined for usage output, e.g. ``atomic|nonatomic``."""
        return "|".join(sorted(member.value for member in cls))


class RetryLimitExceeded(Exception):
    """Raised when compare-and-swap conflicts exceed the configured bound."""

    def __init__(self, key: str, conflicts: int):
        self.key = key
        self.conflicts = conflicts
        super().__init__(f"Gave up updating '{key}' after {conflicts} conflicts")


def last_write_wins(cache: CacheClient, key: str, step: Step) -> int:
    """
    Read, compute and overwrite without any conflict detection.

    Two writers that read the same value both write their own successor and
    one of the updates is lost.

    Returns:
        Always 0, as conflicts are never observed
    """
    entry = cache.gets(key)
    if entry is None:
        cache.set(key, step(None))
    else:
        cache.set(key, step(entry.value))
    return 0


def compare_and_swap(
    cache: CacheClient,
    key: str,
    step: Step,
    max_retries: Optional[int] = None
) -> int:
    """
    Read, compute and write conditionally, retrying on conflict.

    A miss is written with add (insert-if-absent), a hit with cas against the
    fingerprint just read. A failed write means another writer got there
    first, so the loop starts over from the read.

    Args:
        cache: Cache client
        key: Counter key
        step: Maps the current stored bytes (None on miss) to the next bytes
        max_retries: Give up after this many conflicts; None retries forever

    Returns:
        Number of conflicts seen before the write succeeded

    Raises:
        RetryLimitExceeded: If max_retries is set and conflicts exceed it
    """
    conflicts = 0
    while True:
        entry = cache.gets(key)
        if entry is None:
            written = cache.add(key, step(None))
        else:
            written = cache.cas(key, step(entry.value), entry.fingerprint)

        if written:
            return conflicts

        conflicts += 1
        logger.debug(f"Conflict #{conflicts} updating '{key}', retrying")
        if max_retries is not None and conflicts > max_retries:
            raise RetryLimitExceeded(key, conflicts)


def apply(
    strategy: Strategy,
    cache: CacheClient,
    key: str,
    step: Step,
    max_retries: Optional[int] = None
) -> int:
    """Run one update of `key` with the given strategy; returns conflicts seen."""
    if strategy is Strategy.COMPARE_AND_SWAP:
        return compare_and_swap(cache, key, step, max_retries=max_retries)
    if strategy is Strategy.LAST_WRITE_WINS:
        return last_write_wins(cache, key, step)
    raise ValueError(f"Unsupported strategy: {strategy!r}")
