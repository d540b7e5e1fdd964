"""
Tests for the cache clients.

The memcached and Valkey clients are exercised against mocked libraries, so
no running server is required.
"""

from unittest.mock import MagicMock, patch

import pytest
from pymemcache.exceptions import MemcacheClientError, MemcacheUnexpectedCloseError
from valkey.exceptions import ConnectionError as ValkeyConnectionError, ResponseError

from get_apply_set.cache import (
    CacheConfig,
    CacheConnectionError,
    CacheError,
    Entry,
    MemcachedCache,
    MemoryCache,
    MemoryStore,
    ValkeyCache,
    cache_opener,
    get_cache_client,
)


class TestMemoryCache:
    """Test the in-process engine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.cache = MemoryCache()

    def test_miss(self):
        """Absent keys read as None."""
        assert self.cache.gets("ctr") is None

    def test_add_only_when_absent(self):
        """add inserts once and then reports the key exists."""
        assert self.cache.add("ctr", b"0") is True
        assert self.cache.add("ctr", b"3") is False
        assert self.cache.gets("ctr").value == b"0"

    def test_cas_requires_current_fingerprint(self):
        """A fingerprint from before another write no longer matches."""
        self.cache.set("ctr", b"0")
        stale = self.cache.gets("ctr")
        self.cache.set("ctr", b"3")

        assert self.cache.cas("ctr", b"3", stale.fingerprint) is False
        fresh = self.cache.gets("ctr")
        assert self.cache.cas("ctr", b"4", fresh.fingerprint) is True
        assert self.cache.gets("ctr").value == b"4"

    def test_fingerprint_changes_on_identical_rewrite(self):
        """Rewriting the same bytes still invalidates earlier fingerprints."""
        self.cache.set("ctr", b"7")
        first = self.cache.gets("ctr")
        self.cache.set("ctr", b"7")
        assert self.cache.gets("ctr").fingerprint != first.fingerprint

    def test_cas_on_missing_key(self):
        """A deleted key cannot be swapped."""
        self.cache.set("ctr", b"0")
        entry = self.cache.gets("ctr")
        self.cache.delete("ctr")
        assert self.cache.cas("ctr", b"3", entry.fingerprint) is False

    def test_delete(self):
        """delete reports whether the key existed."""
        self.cache.set("ctr", b"0")
        assert self.cache.delete("ctr") is True
        assert self.cache.delete("ctr") is False

    def test_context_manager(self):
        """Clients can be used in a with block."""
        with MemoryCache() as cache:
            cache.set("ctr", b"1")
            assert cache.gets("ctr") == Entry(b"1", 1)


class TestMemcachedCache:
    """Test the pymemcache-backed client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = CacheConfig(engine="memcached", host="mc", port=11211, expire=86400)
        patcher = patch("get_apply_set.cache.client.MemcacheClient")
        self.client_class = patcher.start()
        self.stop = patcher.stop
        self.client = self.client_class.return_value
        self.cache = MemcachedCache(self.config)

    def teardown_method(self):
        self.stop()

    def test_client_construction(self):
        """The library client is built from the config."""
        self.client_class.assert_called_once_with(**self.config.to_connection_kwargs())

    def test_gets_hit(self):
        """A hit carries the CAS token as fingerprint."""
        self.client.gets.return_value = (b"4", b"17")
        assert self.cache.gets("ctr") == Entry(b"4", b"17")

    def test_gets_miss(self):
        """pymemcache reports a miss as (None, None)."""
        self.client.gets.return_value = (None, None)
        assert self.cache.gets("ctr") is None

    def test_add(self):
        """add waits for the reply and uses the expiry."""
        self.client.add.return_value = False
        assert self.cache.add("ctr", b"0") is False
        self.client.add.assert_called_once_with("ctr", b"0", expire=86400, noreply=False)

    def test_cas(self):
        """cas passes the token through."""
        self.client.cas.return_value = True
        assert self.cache.cas("ctr", b"3", b"17") is True
        self.client.cas.assert_called_once_with("ctr", b"3", b"17", expire=86400, noreply=False)

    @pytest.mark.parametrize("reply", [False, None])
    def test_cas_conflict(self, reply):
        """Both a token mismatch and a vanished key are conflicts."""
        self.client.cas.return_value = reply
        assert self.cache.cas("ctr", b"3", b"17") is False

    def test_set(self):
        """set overwrites with the expiry."""
        self.cache.set("ctr", b"3")
        self.client.set.assert_called_once_with("ctr", b"3", expire=86400, noreply=False)

    def test_delete_absent(self):
        """Deleting an absent key is not an error."""
        self.client.delete.return_value = False
        assert self.cache.delete("ctr") is False

    @pytest.mark.parametrize("error", [
        MemcacheUnexpectedCloseError(),
        ConnectionRefusedError("refused"),
        TimeoutError("timed out"),
    ])
    def test_transport_errors(self, error):
        """Dropped or refused connections become CacheConnectionError."""
        self.client.gets.side_effect = error
        with pytest.raises(CacheConnectionError) as exc_info:
            self.cache.gets("ctr")
        assert exc_info.value.__cause__ is error

    def test_protocol_errors(self):
        """Rejected commands become CacheError."""
        self.client.set.side_effect = MemcacheClientError("bad key")
        with pytest.raises(CacheError) as exc_info:
            self.cache.set("ctr", b"0")
        assert not isinstance(exc_info.value, CacheConnectionError)

    def test_close(self):
        """close releases the library client."""
        self.cache.close()
        self.client.close.assert_called_once()


class TestValkeyCache:
    """Test the valkey-backed client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = CacheConfig(engine="valkey", host="vk", port=6379, expire=60)
        patcher = patch("get_apply_set.cache.client.valkey.Valkey")
        self.client_class = patcher.start()
        self.stop = patcher.stop
        self.client = self.client_class.return_value
        self.script = MagicMock()
        self.client.register_script.return_value = self.script
        self.cache = ValkeyCache(self.config)

    def teardown_method(self):
        self.stop()

    def test_gets_uses_value_as_fingerprint(self):
        """Valkey has no CAS token, the value read is the fingerprint."""
        self.client.get.return_value = b"7"
        assert self.cache.gets("ctr") == Entry(b"7", b"7")

    def test_gets_miss(self):
        """A nil reply is a miss."""
        self.client.get.return_value = None
        assert self.cache.gets("ctr") is None

    def test_add_is_set_nx(self):
        """add maps to SET NX EX."""
        self.client.set.return_value = None
        assert self.cache.add("ctr", b"0") is False
        self.client.set.assert_called_once_with("ctr", b"0", nx=True, ex=60)

    def test_cas_runs_script(self):
        """cas compares and sets server-side."""
        self.script.return_value = 1
        assert self.cache.cas("ctr", b"8", b"7") is True
        self.script.assert_called_once_with(keys=["ctr"], args=[b"7", b"8", 60])

    def test_cas_conflict(self):
        """A script reply of 0 is a conflict."""
        self.script.return_value = 0
        assert self.cache.cas("ctr", b"8", b"7") is False

    def test_no_expiry(self):
        """An expiry of 0 writes without EX."""
        cache = ValkeyCache(CacheConfig(engine="valkey", expire=0))
        cache.set("ctr", b"3")
        self.client.set.assert_called_with("ctr", b"3", ex=None)

    def test_delete(self):
        """delete turns the removed count into a bool."""
        self.client.delete.return_value = 0
        assert self.cache.delete("ctr") is False
        self.client.delete.return_value = 1
        assert self.cache.delete("ctr") is True

    def test_connection_error(self):
        """Connection failures become CacheConnectionError."""
        self.client.get.side_effect = ValkeyConnectionError("down")
        with pytest.raises(CacheConnectionError):
            self.cache.gets("ctr")

    def test_response_error(self):
        """Server errors become CacheError."""
        self.script.side_effect = ResponseError("NOSCRIPT")
        with pytest.raises(CacheError) as exc_info:
            self.cache.cas("ctr", b"8", b"7")
        assert not isinstance(exc_info.value, CacheConnectionError)


class TestCacheOpener:
    """Test client factories."""

    def test_memory_clients_share_store(self):
        """Clients from one memory opener see each other's writes."""
        open_cache = cache_opener(CacheConfig(engine="memory"))
        first, second = open_cache(), open_cache()
        first.set("ctr", b"3")
        assert second.gets("ctr").value == b"3"

    def test_memory_openers_are_isolated(self):
        """Separate openers behave like separate servers."""
        first = cache_opener(CacheConfig(engine="memory"))()
        second = cache_opener(CacheConfig(engine="memory"))()
        first.set("ctr", b"3")
        assert second.gets("ctr") is None

    def test_memcached_opener(self):
        """Each call opens a new memcached client."""
        with patch("get_apply_set.cache.client.MemcacheClient") as client_class:
            open_cache = cache_opener(CacheConfig(engine="memcached"))
            assert isinstance(open_cache(), MemcachedCache)
            open_cache()
            assert client_class.call_count == 2

    def test_valkey_opener(self):
        """The valkey engine opens ValkeyCache clients."""
        with patch("get_apply_set.cache.client.valkey.Valkey"):
            assert isinstance(cache_opener(CacheConfig(engine="valkey"))(), ValkeyCache)

    def test_get_cache_client_from_env(self):
        """Without a config the environment decides the engine."""
        with patch.dict('os.environ', {'CACHE_ENGINE': 'memory'}):
            assert isinstance(get_cache_client(), MemoryCache)

    def test_store_is_shared_explicitly(self):
        """MemoryCache can wrap an existing store."""
        store = MemoryStore()
        MemoryCache(store).set("ctr", b"0")
        assert MemoryCache(store).gets("ctr").value == b"0"
