"""
Expected-versus-actual verification.

The expected value is recomputed in-process by running the transition the same
number of times sequentially. For compare-and-swap it must match the stored
value; for last-write-wins it is only an upper bound.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .cache import CacheClient, CacheError
from .codec import decode
from .transition import iterate

logger = logging.getLogger(__name__)


class FinalReadError(CacheError):
    """Raised when the counter cannot be read back after the run."""
    pass


@dataclass(frozen=True)
class Verification:
    """Expected and actual final counters."""
    expected: Optional[int]
    actual: int

    @property
    def consistent(self) -> bool:
        return self.expected == self.actual

    @property
    def lost_updates(self) -> int:
        """Gap between the expected and actual counters (informational)."""
        if self.expected is None:
            return 0
        return self.expected - self.actual


def expected_value(total_updates: int) -> Optional[int]:
    """Counter after `total_updates` sequential transitions from the absent state."""
    return iterate(total_updates)


def read_actual(cache: CacheClient, key: str) -> int:
    """
    Read and decode the final counter.

    Raises:
        FinalReadError: If the key is missing or the read fails
        MalformedValue: If the stored bytes are not a counter
    """
    try:
        entry = cache.gets(key)
    except CacheError as e:
        raise FinalReadError(f"Final read of '{key}' failed: {e}") from e
    if entry is None:
        logger.error(f"Final read of '{key}' found no value")
        raise FinalReadError(f"Key '{key}' is missing after the run")
    return decode(entry.value)


def verify(cache: CacheClient, key: str, total_updates: int) -> Verification:
    """Compare the stored counter with the one recomputed in-process."""
    verification = Verification(
        expected=expected_value(total_updates),
        actual=read_actual(cache, key),
    )
    if verification.consistent:
        logger.info(f"Counter '{key}' matches: {verification.actual}")
    else:
        logger.warning(
            f"Counter '{key}' diverged: expected {verification.expected}, "
            f"got {verification.actual}"
        )
    return verification


def format_report(verification: Verification) -> str:
    """The single summary line printed at the end of a run."""
    return f"expected: {verification.expected}, actual: {verification.actual}"
