import pytest

from fakes import SAGAR_URL, FakeSessionFactory, StubStrategy, found, no_sleep, uninformative
from listing_resolver.config import Settings
from listing_resolver.models.listing import ADDRESS_UNAVAILABLE, NAME_UNAVAILABLE, RATING_NOT_APPLICABLE
from listing_resolver.scraper.resolver import ListingResolver, name_from_url


def _resolver(*strategies: StubStrategy, **kwargs) -> ListingResolver:
    kwargs.setdefault("sleep", no_sleep)
    return ListingResolver(list(strategies), **kwargs)


@pytest.mark.asyncio
async def test_first_useful_strategy_wins_and_is_cached() -> None:
    fast = StubStrategy("fast", found("Joe's Cafe"))
    balanced = StubStrategy("balanced", found("Other"))
    resolver = _resolver(fast, balanced)

    first = await resolver.resolve("https://maps.example/joes")
    second = await resolver.resolve("https://maps.example/joes")

    assert first == second
    assert first.name == "Joe's Cafe"
    assert fast.calls == ["https://maps.example/joes"]
    assert balanced.calls == []
    assert resolver.cache_size == 1


@pytest.mark.asyncio
async def test_strategies_are_tried_in_order_until_one_is_useful() -> None:
    fast = StubStrategy("fast", None)
    balanced = StubStrategy("balanced", uninformative)
    stealth = StubStrategy("maximal_stealth", found("Joe's Cafe"))
    resolver = _resolver(fast, balanced, stealth)

    record = await resolver.resolve("https://maps.example/joes")

    assert record.name == "Joe's Cafe"
    assert len(fast.calls) == len(balanced.calls) == len(stealth.calls) == 1


@pytest.mark.asyncio
async def test_all_strategies_failing_falls_back_to_url_name() -> None:
    strategies = [StubStrategy(name, None) for name in ("fast", "balanced", "maximal_stealth")]
    resolver = _resolver(*strategies)

    record = await resolver.resolve(SAGAR_URL)

    assert record.public_fields() == {
        "name": "Sagar Stationers",
        "address": ADDRESS_UNAVAILABLE,
        "rating": RATING_NOT_APPLICABLE,
    }
    assert resolver.cache_snapshot() == {SAGAR_URL: record}

    await resolver.resolve(SAGAR_URL)
    assert all(len(strategy.calls) == 1 for strategy in strategies)


@pytest.mark.asyncio
async def test_clear_cache_forces_fresh_extraction() -> None:
    fast = StubStrategy("fast", found("Joe's Cafe"), found("Joe's Diner"))
    resolver = _resolver(fast)
    await resolver.resolve("https://maps.example/joes")

    assert resolver.clear_cache() == 1
    record = await resolver.resolve("https://maps.example/joes")

    assert record.name == "Joe's Diner"
    assert len(fast.calls) == 2


@pytest.mark.asyncio
async def test_raising_strategy_is_skipped() -> None:
    broken = StubStrategy("fast", RuntimeError("browser crashed"))
    stealth = StubStrategy("maximal_stealth", found("Joe's Cafe"))

    record = await _resolver(broken, stealth).resolve("https://maps.example/joes")

    assert record.name == "Joe's Cafe"


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "   ", None])
async def test_blank_url_is_rejected(url) -> None:
    fast = StubStrategy("fast", found("Joe's Cafe"))

    with pytest.raises(ValueError):
        await _resolver(fast).resolve(url)

    assert fast.calls == []


def test_empty_strategy_list_is_rejected() -> None:
    with pytest.raises(ValueError):
        ListingResolver([])


def test_name_from_url_variants() -> None:
    assert name_from_url(SAGAR_URL) == "Sagar Stationers"
    assert name_from_url("https://www.google.com/maps/place/Caf%C3%A9+Roma/@1,2") == "Café Roma"
    assert name_from_url("https://www.google.com/maps/place/Ab/@1,2") == "www.google.com"
    assert name_from_url("https://maps.app.goo.gl/abc123") == "maps.app.goo.gl"
    assert name_from_url("http://[::1") == NAME_UNAVAILABLE
    assert name_from_url("not a url") == NAME_UNAVAILABLE


@pytest.mark.asyncio
async def test_resolve_many_preserves_order_and_deduplicates(recording_sleep, sleeps) -> None:
    fast = StubStrategy("fast", lambda url: found(url.rsplit("/", 1)[-1].title())(url))
    resolver = _resolver(fast, batch_size=1, sleep=recording_sleep)
    urls = ["https://maps.example/alpha", "https://maps.example/bravo", "https://maps.example/alpha", "https://maps.example/charlie"]

    records = await resolver.resolve_many(urls)

    assert [record.name for record in records] == ["Alpha", "Bravo", "Alpha", "Charlie"]
    assert len(fast.calls) == 3
    assert len(sleeps) == 2
    assert all(1.0 <= delay <= 2.0 for delay in sleeps)


@pytest.mark.asyncio
async def test_resolve_many_skips_delay_for_cached_batches(recording_sleep, sleeps) -> None:
    fast = StubStrategy("fast", found("Joe's Cafe"))
    resolver = _resolver(fast, batch_size=1, sleep=recording_sleep)
    urls = ["https://maps.example/a", "https://maps.example/b", "https://maps.example/c"]
    await resolver.resolve_many(urls)
    sleeps.clear()

    records = await resolver.resolve_many(urls)

    assert len(records) == 3
    assert sleeps == []
    assert len(fast.calls) == 3


@pytest.mark.asyncio
async def test_resolve_many_limits_concurrency_to_batch_size() -> None:
    fast = StubStrategy("fast", found("Joe's Cafe"), delay_s=0.01)
    resolver = _resolver(fast, batch_size=2)

    await resolver.resolve_many([f"https://maps.example/{idx}" for idx in range(5)])

    assert fast.max_active == 2
    assert len(fast.calls) == 5


@pytest.mark.asyncio
async def test_resolve_many_of_nothing_is_empty() -> None:
    assert await _resolver(StubStrategy("fast")).resolve_many([]) == []


def test_from_settings_builds_configured_chain() -> None:
    factory = FakeSessionFactory()
    source = Settings(scraper_strategy_order="fast", scraper_batch_size=9, scraper_fast_timeout_ms=5000)

    resolver = ListingResolver.from_settings(source, session_factory=factory)

    assert resolver.strategy_names == ["fast"]
    assert resolver._batch_size == 3
