from utils.cache import ApiCache, CacheManager, SearchCache


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = Clock()
    cache = CacheManager(ttl=10, max_size=5, clock=clock)
    cache.set('a', 1)
    assert cache.get('a') == 1

    clock.now += 11
    assert cache.get('a') is None
    assert cache.get_stats()['size'] == 0


def test_oldest_entry_is_evicted_when_full():
    cache = CacheManager(ttl=10, max_size=2, clock=Clock())
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('c', 3)

    assert not cache.has('a')
    assert cache.get('b') == 2
    assert cache.get('c') == 3


def test_overwrite_does_not_evict():
    cache = CacheManager(ttl=10, max_size=2, clock=Clock())
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('a', 10)
    assert cache.get('a') == 10
    assert cache.get('b') == 2


def test_cleanup_removes_only_expired():
    clock = Clock()
    cache = CacheManager(ttl=10, max_size=5, clock=clock)
    cache.set('short', 1, ttl=1)
    cache.set('long', 2, ttl=100)
    clock.now += 5

    assert cache.cleanup() == 1
    assert cache.get('long') == 2


def test_api_cache_keys_include_body_hash():
    assert ApiCache.generate_key('/reports', 'GET') == 'GET:/reports:'
    with_body = ApiCache.generate_key('/reports', 'POST', {'id': 1, 'page': 2})
    assert with_body.startswith('POST:/reports:')
    assert len(with_body.split(':')[-1]) == 16

    cache = ApiCache(clock=Clock())
    cache.cache_response('/reports', 'POST', {'id': 1}, {'ok': True})
    assert cache.get_cached_response('/reports', 'POST', {'id': 1}) == {'ok': True}
    assert not cache.has_response('/reports', 'POST', {'id': 2})
    cache.invalidate()
    assert not cache.has_response('/reports', 'POST', {'id': 1})


def test_search_cache_keys_are_order_independent():
    cache = SearchCache(clock=Clock())
    cache.cache_search_results('soil', {'b': 1, 'a': 2}, ['result'])
    assert cache.get_cached_search_results('soil', {'a': 2, 'b': 1}) == ['result']
    cache.invalidate_search()
    assert cache.get_cached_search_results('soil', {'a': 2, 'b': 1}) is None


def test_zero_ttl_expires_immediately():
    clock = Clock()
    cache = CacheManager(ttl=10, max_size=5, clock=clock)
    cache.set('k', 1, ttl=0)
    clock.now += 1
    assert cache.get('k') is None

    immediate = CacheManager(ttl=0, max_size=5, clock=clock)
    immediate.set('k', 1)
    clock.now += 1
    assert not immediate.has('k')


def test_cached_none_is_a_hit():
    clock = Clock()
    cache = CacheManager(ttl=10, max_size=5, clock=clock)
    cache.set('empty', None)
    assert cache.has('empty')

    clock.now += 11
    assert not cache.has('empty')
    assert cache.get_stats()['size'] == 0


def test_zero_size_cache_stores_nothing():
    cache = CacheManager(ttl=10, max_size=0, clock=Clock())
    cache.set('a', 1)
    assert not cache.has('a')
