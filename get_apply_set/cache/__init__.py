"""
Cache layer for the get-apply-set demo.

This module contains the cache connection configuration and the clients that
expose the get / add / compare-and-swap / set / delete contract.
"""

from .config import (
    CacheConfig,
    CacheError,
    CacheConnectionError,
    ConfigurationError,
    SUPPORTED_ENGINES,
)
from .client import (
    Entry,
    CacheClient,
    CacheOpener,
    MemcachedCache,
    ValkeyCache,
    MemoryStore,
    MemoryCache,
    cache_opener,
    get_cache_client,
)

__all__ = [
    # Configuration
    "CacheConfig",
    "CacheError",
    "CacheConnectionError",
    "ConfigurationError",
    "SUPPORTED_ENGINES",

    # Clients
    "Entry",
    "CacheClient",
    "CacheOpener",
    "MemcachedCache",
    "ValkeyCache",
    "MemoryStore",
    "MemoryCache",
    "cache_opener",
    "get_cache_client",
]
