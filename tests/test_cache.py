from fnzo.cache import EntityCache, EntityCaches

from tests.helpers.store import FakeClock


def test_value_is_served_within_ttl_and_expires_after():
    clock = FakeClock()
    cache = EntityCache("categories", 30.0, clock=clock)
    cache.put(["Food"])
    clock.advance(29.9)
    assert cache.get() == ["Food"]
    clock.advance(0.1)
    assert cache.get() is None
    # Stale value is still available for degraded reads
    assert cache.peek() == ["Food"]


def test_invalidate_clears_value_and_bumps_generation():
    cache = EntityCache("templates", 300.0, clock=FakeClock())
    cache.put(["t"])
    before = cache.generation
    cache.invalidate()
    assert cache.get() is None
    assert cache.peek() is None
    assert cache.generation == before + 1


def test_fetch_started_before_invalidation_cannot_overwrite():
    cache = EntityCache("transactions", 60.0, clock=FakeClock())
    generation = cache.begin_fetch()
    cache.invalidate()  # a mutation lands while the read is in flight
    assert cache.put(["old"], generation) is False
    assert cache.get() is None

    fresh = cache.begin_fetch()
    assert cache.put(["new"], fresh) is True
    assert cache.get() == ["new"]


def test_entity_caches_use_their_own_ttls():
    clock = FakeClock()
    caches = EntityCaches.create(
        transactions_ttl=60, categories_ttl=30, templates_ttl=300, recent_categories_ttl=60,
        clock=clock,
    )
    for cache in (caches.transactions, caches.categories, caches.templates, caches.recent_categories):
        cache.put([cache.name])
    clock.advance(45)
    assert caches.categories.get() is None
    assert caches.transactions.get() == ["transactions"]
    assert caches.templates.get() == ["templates"]

    caches.invalidate_all()
    assert caches.templates.get() is None
    assert caches.transactions.peek() is None
