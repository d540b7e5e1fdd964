"""
Cache clients exposing the get / add / compare-and-swap / set / delete contract.

Every engine is wrapped behind the same small surface so the update strategies
never touch a client library directly:

- MemcachedCache: pymemcache, fingerprint is the memcached CAS token
- ValkeyCache: valkey, fingerprint is the value last read, swapped by a Lua script
- MemoryCache: in-process store, fingerprint is a per-write version number
"""

import logging
import threading
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Dict, NamedTuple, Optional, Protocol, Tuple

import valkey
from pymemcache.client.base import Client as MemcacheClient
from pymemcache.exceptions import MemcacheError, MemcacheUnexpectedCloseError
from valkey.exceptions import ConnectionError, TimeoutError, ValkeyError

from .config import CacheConfig, CacheConnectionError, CacheError, ConfigurationError

logger = logging.getLogger(__name__)


class Entry(NamedTuple):
    """A cache hit: the stored bytes and the fingerprint observed with them."""
    value: bytes
    fingerprint: Any


class CacheClient(Protocol):
    """Operations the update strategies rely on."""

    def gets(self, key: str) -> Optional[Entry]: ...

    def add(self, key: str, value: bytes) -> bool: ...

    def cas(self, key: str, value: bytes, fingerprint: Any) -> bool: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> bool: ...

    def close(self) -> None: ...


@contextmanager
def _translate_errors(engine: str, operation: str, key: str,
                      transport_errors: Tuple[type, ...],
                      protocol_errors: Tuple[type, ...]):
    """Re-raise client library failures as CacheConnectionError / CacheError."""
    try:
        yield
    except transport_errors as e:
        logger.error(f"{engine} {operation} failed for key '{key}': {e}")
        raise CacheConnectionError(f"{engine} {operation} '{key}': {e}") from e
    except protocol_errors as e:
        logger.error(f"{engine} {operation} rejected for key '{key}': {e}")
        raise CacheError(f"{engine} {operation} '{key}': {e}") from e


class MemcachedCache:
    """Memcached client built on pymemcache."""

    _TRANSPORT_ERRORS = (MemcacheUnexpectedCloseError, OSError)
    _PROTOCOL_ERRORS = (MemcacheError,)

    def __init__(self, config: CacheConfig):
        self.config = config
        self.client = MemcacheClient(**config.to_connection_kwargs())
        logger.info(f"Initializing memcached client: {config}")

    def _errors(self, operation: str, key: str):
        return _translate_errors("memcached", operation, key,
                                 self._TRANSPORT_ERRORS, self._PROTOCOL_ERRORS)

    def gets(self, key: str) -> Optional[Entry]:
        with self._errors("gets", key):
            value, token = self.client.gets(key)
        if value is None:
            return None
        return Entry(value, token)

    def add(self, key: str, value: bytes) -> bool:
        with self._errors("add", key):
            return bool(self.client.add(key, value, expire=self.config.expire, noreply=False))

    def cas(self, key: str, value: bytes, fingerprint: Any) -> bool:
        # None means the key vanished since it was read; both are conflicts
        with self._errors("cas", key):
            return bool(self.client.cas(key, value, fingerprint,
                                        expire=self.config.expire, noreply=False))

    def set(self, key: str, value: bytes) -> None:
        with self._errors("set", key):
            self.client.set(key, value, expire=self.config.expire, noreply=False)

    def delete(self, key: str) -> bool:
        with self._errors("delete", key):
            return bool(self.client.delete(key, noreply=False))

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Replace only if the stored value is still the one read. ARGV[3] is the
# expiry in seconds, 0 meaning no expiry.
COMPARE_AND_SET_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    if tonumber(ARGV[3]) > 0 then
        redis.call("SET", KEYS[1], ARGV[2], "EX", ARGV[3])
    else
        redis.call("SET", KEYS[1], ARGV[2])
    end
    return 1
end
return 0
"""


class ValkeyCache:
    """
    Valkey client.

    Valkey has no per-key CAS token, so the fingerprint is the value itself.
    That is safe here because the counter only ever grows: a value can never
    come back to one that was read earlier.
    """

    _TRANSPORT_ERRORS = (ConnectionError, TimeoutError, OSError)
    _PROTOCOL_ERRORS = (ValkeyError,)

    def __init__(self, config: CacheConfig):
        self.config = config
        self.client = valkey.Valkey(**config.to_connection_kwargs())
        self._compare_and_set = self.client.register_script(COMPARE_AND_SET_SCRIPT)
        logger.info(f"Initializing Valkey client: {config}")

    def _errors(self, operation: str, key: str):
        return _translate_errors("valkey", operation, key,
                                 self._TRANSPORT_ERRORS, self._PROTOCOL_ERRORS)

    @property
    def _expiry(self) -> Optional[int]:
        return self.config.expire or None

    def gets(self, key: str) -> Optional[Entry]:
        with self._errors("get", key):
            value = self.client.get(key)
        if value is None:
            return None
        return Entry(value, value)

    def add(self, key: str, value: bytes) -> bool:
        with self._errors("set nx", key):
            return bool(self.client.set(key, value, nx=True, ex=self._expiry))

    def cas(self, key: str, value: bytes, fingerprint: Any) -> bool:
        with self._errors("compare-and-set", key):
            result = self._compare_and_set(
                keys=[key], args=[fingerprint, value, self.config.expire]
            )
        return bool(result)

    def set(self, key: str, value: bytes) -> None:
        with self._errors("set", key):
            self.client.set(key, value, ex=self._expiry)

    def delete(self, key: str) -> bool:
        with self._errors("delete", key):
            return bool(self.client.delete(key))

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class MemoryStore:
    """Thread-safe key/value store shared by every MemoryCache opened on it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, Tuple[bytes, int]] = {}
        self._version = 0

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def gets(self, key: str) -> Optional[Entry]:
        with self._lock:
            item = self._data.get(key)
        if item is None:
            return None
        return Entry(*item)

    def add(self, key: str, value: bytes) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = (bytes(value), self._next_version())
            return True

    def cas(self, key: str, value: bytes, fingerprint: Any) -> bool:
        with self._lock:
            item = self._data.get(key)
            if item is None or item[1] != fingerprint:
                return False
            self._data[key] = (bytes(value), self._next_version())
            return True

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = (bytes(value), self._next_version())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class MemoryCache:
    """In-process cache client; expiry is not enforced."""

    def __init__(self, store: Optional[MemoryStore] = None):
        self.store = store if store is not None else MemoryStore()

    def gets(self, key: str) -> Optional[Entry]:
        return self.store.gets(key)

    def add(self, key: str, value: bytes) -> bool:
        return self.store.add(key, value)

    def cas(self, key: str, value: bytes, fingerprint: Any) -> bool:
        return self.store.cas(key, value, fingerprint)

    def set(self, key: str, value: bytes) -> None:
        self.store.set(key, value)

    def delete(self, key: str) -> bool:
        return self.store.delete(key)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


CacheOpener = Callable[[], CacheClient]


def cache_opener(config: CacheConfig) -> CacheOpener:
    """
    Build a factory that opens a new client connection on every call.

    Each worker opens its own connection. Clients opened from the same memory
    opener share one store, so they behave like connections to one server.

    Args:
        config: Cache configuration

    Returns:
        Zero-argument callable returning a CacheClient
    """
    if config.engine == "memcached":
        return partial(MemcachedCache, config)
    if config.engine == "valkey":
        return partial(ValkeyCache, config)
    if config.engine == "memory":
        return partial(MemoryCache, MemoryStore())
    raise ConfigurationError(f"Unsupported cache engine: {config.engine}")


def get_cache_client(config: Optional[CacheConfig] = None) -> CacheClient:
    """
    Factory function to create a single cache client.

    Args:
        config: Cache configuration, defaults to environment-based config

    Returns:
        CacheClient instance
    """
    return cache_opener(config or CacheConfig.from_env())()
