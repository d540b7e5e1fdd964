"""
Concurrent get-apply-set on a shared cache counter.

Compares a compare-and-swap retry loop with last-write-wins when several
writers advance the same counter stored in memcached or Valkey.
"""

from .transition import next_value, iterate
from .codec import MalformedValue, encode, decode, advance
from .strategies import Strategy, RetryLimitExceeded, last_write_wins, compare_and_swap, apply
from .config import RunConfig, DEFAULT_CONCURRENCY
from .driver import WorkerStats, RunResult, reset_key, run_workers
from .verifier import FinalReadError, Verification, expected_value, read_actual, verify, format_report

__version__ = "0.1.0"

__all__ = [
    # Transition and codec
    "next_value",
    "iterate",
    "MalformedValue",
    "encode",
    "decode",
    "advance",

    # Strategies
    "Strategy",
    "RetryLimitExceeded",
    "last_write_wins",
    "compare_and_swap",
    "apply",

    # Driver
    "RunConfig",
    "DEFAULT_CONCURRENCY",
    "WorkerStats",
    "RunResult",
    "reset_key",
    "run_workers",

    # Verification
    "FinalReadError",
    "Verification",
    "expected_value",
    "read_actual",
    "verify",
    "format_report",
]
