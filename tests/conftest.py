import pytest

from get_apply_set.cache import MemoryCache, MemoryStore


@pytest.fixture
def store():
    """Empty shared store."""
    return MemoryStore()


@pytest.fixture
def memory_opener(store):
    """Opener whose clients share the `store` fixture."""
    def open_cache():
        return MemoryCache(store)
    return open_cache
