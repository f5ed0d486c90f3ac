from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Any, Awaitable, Callable, Protocol, Sequence
from urllib.parse import unquote, urlsplit

from listing_resolver.config import Settings, settings
from listing_resolver.models.listing import NAME_UNAVAILABLE, ListingRecord, StrategyOutcome
from listing_resolver.scraper.cache import ListingCache
from listing_resolver.scraper.stealth import open_stealth_session
from listing_resolver.scraper.strategies import SessionFactory, build_strategies
from listing_resolver.scraper.validators import clean_text, is_valid_name

LOGGER = logging.getLogger(__name__)

_PLACE_SEGMENT = re.compile(r"place/([^/@]+)")


class Strategy(Protocol):
    @property
    def name(self) -> str: ...

    async def run(self, url: str) -> StrategyOutcome: ...


def name_from_url(url: str) -> str:
    """Best name obtainable from the URL text alone.

    ``.../place/Sagar+Stationers/@26.49,80.31`` yields ``Sagar Stationers``; URLs
    without a place segment fall back to their host name.
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return NAME_UNAVAILABLE

    match = _PLACE_SEGMENT.search(parts.path)
    if match:
        candidate = clean_text(unquote(match.group(1)).replace("+", " "))
        if is_valid_name(candidate):
            return candidate

    host = clean_text(hostname)
    if is_valid_name(host):
        return host

    return NAME_UNAVAILABLE


def listing_from_url(url: str) -> ListingRecord:
    return ListingRecord(source_url=url, name=name_from_url(url))


class ListingResolver:
    """Cache check, then each strategy in order, then the URL-derived record.

    The first strategy whose record carries a real name wins. When none does, the
    URL-derived record is cached like any other so an unreachable listing costs the
    browser work once per process (or until :meth:`clear_cache`).
    """

    def __init__(
        self,
        strategies: Sequence[Strategy],
        *,
        cache: ListingCache | None = None,
        batch_size: int = 2,
        batch_delay_s: tuple[float, float] = (1.0, 2.0),
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not strategies:
            raise ValueError("At least one extraction strategy must be configured.")
        self._strategies = list(strategies)
        self._cache = cache if cache is not None else ListingCache()
        self._batch_size = max(1, batch_size)
        low, high = batch_delay_s
        self._batch_delay_s = (max(0.0, low), max(0.0, low, high))
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        source: Settings = settings,
        *,
        session_factory: SessionFactory = open_stealth_session,
    ) -> ListingResolver:
        return cls(
            build_strategies(source, session_factory=session_factory),
            cache=ListingCache(max_entries=source.scraper_cache_max_entries),
            batch_size=source.scraper_batch_size,
            batch_delay_s=(source.scraper_batch_min_delay_s, source.scraper_batch_max_delay_s),
        )

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def resolve(self, url: str) -> ListingRecord:
        if not isinstance(url, str) or not url.strip():
            raise ValueError("A listing URL is required.")

        cached = self._cache.get(url)
        if cached is not None:
            LOGGER.info("Using cached listing for %s", url)
            return cached

        for strategy in self._strategies:
            outcome = await self._try_strategy(strategy, url)
            if outcome.useful and outcome.record is not None:
                self._cache.put(url, outcome.record)
                return outcome.record

            reason = outcome.error or "no listing name found"
            LOGGER.info("Strategy %s gave up on %s (%s), trying next.", strategy.name, url, reason)

        record = listing_from_url(url)
        LOGGER.warning("All strategies failed for %s, using URL-derived name %r", url, record.name)
        self._cache.put(url, record)
        return record

    async def resolve_many(self, urls: Sequence[str]) -> list[ListingRecord]:
        """Resolve ``urls`` a few at a time, pausing between batches that hit the browser."""
        unique_urls = list(dict.fromkeys(urls))
        resolved: dict[str, ListingRecord] = {}

        for start in range(0, len(unique_urls), self._batch_size):
            batch = unique_urls[start : start + self._batch_size]
            needs_browser = any(url not in self._cache for url in batch)
            records = await asyncio.gather(*(self.resolve(url) for url in batch))
            resolved.update(zip(batch, records))

            has_more = start + self._batch_size < len(unique_urls)
            if needs_browser and has_more:
                await self._sleep(self._rng.uniform(*self._batch_delay_s))

        return [resolved[url] for url in urls]

    def clear_cache(self) -> int:
        cleared = self._cache.clear()
        LOGGER.info("Listing cache cleared (%d entries).", cleared)
        return cleared

    def cache_snapshot(self) -> dict[str, ListingRecord]:
        return dict(self._cache.snapshot())

    async def _try_strategy(self, strategy: Strategy, url: str) -> StrategyOutcome:
        try:
            return await strategy.run(url)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Strategy %s raised for %s", strategy.name, url)
            return StrategyOutcome.failed(strategy.name, f"{type(exc).__name__}: {exc}")
