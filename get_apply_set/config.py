"""
Run configuration.

Built once at startup from the command line and passed explicitly to the
driver.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .cache import CacheConfig, ConfigurationError
from .strategies import Strategy

logger = logging.getLogger(__name__)

# Number of concurrent workers in the reference configuration
DEFAULT_CONCURRENCY = 2


@dataclass(frozen=True)
class RunConfig:
    """Everything one demo run needs: where the cache is and how to update it."""

    key: str
    iterations: int
    strategy: Strategy
    cache: CacheConfig = field(default_factory=CacheConfig)
    concurrency: int = DEFAULT_CONCURRENCY
    max_retries: Optional[int] = None

    def __post_init__(self):
        if not self.key:
            raise ConfigurationError("Key must not be empty")
        if self.iterations < 0:
            raise ConfigurationError(f"Iterations must be non-negative, got {self.iterations}")
        if self.concurrency < 1:
            raise ConfigurationError(f"Concurrency must be at least 1, got {self.concurrency}")
        if self.max_retries is not None and self.max_retries < 0:
            raise ConfigurationError(f"Max retries must be non-negative, got {self.max_retries}")
        if not isinstance(self.strategy, Strategy):
            # Accept the command-line identifier as well as the member
            object.__setattr__(self, "strategy", Strategy(self.strategy))

    @property
    def total_updates(self) -> int:
        """Updates applied across all workers."""
        return self.concurrency * self.iterations

    def __str__(self) -> str:
        return (
            f"RunConfig(key={self.key}, strategy={self.strategy.value}, "
            f"concurrency={self.concurrency}, iterations={self.iterations}, "
            f"max_retries={self.max_retries}, cache={self.cache})"
        )
