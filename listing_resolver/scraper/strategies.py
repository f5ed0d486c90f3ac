from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from time import monotonic
from typing import Any, AsyncContextManager, Awaitable, Callable, Final, Literal, Sequence

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from listing_resolver.config import Settings
from listing_resolver.models.listing import ListingRecord, StrategyOutcome
from listing_resolver.scraper.field_extractor import FieldExtractor, FieldMatch
from listing_resolver.scraper.selectors import CONTENT_READY, TITLE_READY
from listing_resolver.scraper.stealth import SessionOptions, StealthLevel, open_stealth_session

LOGGER = logging.getLogger(__name__)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]
SessionFactory = Callable[[SessionOptions], AsyncContextManager[Any]]

# Launch, extraction and teardown on top of the navigation and wait budgets.
_SESSION_OVERHEAD_MS: Final[int] = 15000


class NavigationError(RuntimeError):
    pass


@dataclass(frozen=True)
class StrategyConfig:
    name: str
    navigation_timeout_ms: int
    wait_until: WaitUntil
    stealth_level: StealthLevel
    pre_navigation_delay_ms: tuple[int, int] = (0, 0)
    settle_delay_ms: tuple[int, int] = (0, 0)
    content_selectors: tuple[str, ...] = TITLE_READY
    content_wait_attempts: int = 1
    content_wait_timeout_ms: int = 5000
    content_retry_pause_ms: int = 1000
    simulate_pointer: bool = False

    @property
    def budget_seconds(self) -> float:
        content_wait_ms = self.content_wait_attempts * (self.content_wait_timeout_ms + self.content_retry_pause_ms)
        total_ms = (
            self.navigation_timeout_ms
            + self.pre_navigation_delay_ms[1]
            + self.settle_delay_ms[1]
            + content_wait_ms
            + _SESSION_OVERHEAD_MS
        )
        return total_ms / 1000


FAST: Final[StrategyConfig] = StrategyConfig(
    name="fast",
    navigation_timeout_ms=20000,
    wait_until="domcontentloaded",
    stealth_level="minimal",
    settle_delay_ms=(4000, 4000),
    content_wait_attempts=0,
)

BALANCED: Final[StrategyConfig] = StrategyConfig(
    name="balanced",
    navigation_timeout_ms=22000,
    wait_until="domcontentloaded",
    stealth_level="partial",
    pre_navigation_delay_ms=(1000, 3000),
    settle_delay_ms=(3000, 3000),
    content_selectors=TITLE_READY,
    content_wait_attempts=1,
    content_wait_timeout_ms=5000,
)

MAXIMAL_STEALTH: Final[StrategyConfig] = StrategyConfig(
    name="maximal_stealth",
    navigation_timeout_ms=25000,
    wait_until="networkidle",
    stealth_level="full",
    pre_navigation_delay_ms=(500, 1500),
    settle_delay_ms=(2000, 4000),
    content_selectors=CONTENT_READY,
    content_wait_attempts=3,
    content_wait_timeout_ms=3000,
    content_retry_pause_ms=1000,
    simulate_pointer=True,
)

BUILTIN_STRATEGIES: Final[dict[str, StrategyConfig]] = {
    config.name: config for config in (FAST, BALANCED, MAXIMAL_STEALTH)
}


class ExtractionStrategy:
    """Launch a session, open ``url``, wait as the config says, extract, release.

    ``run`` never raises for browser or network trouble; every such failure comes
    back as a failed :class:`StrategyOutcome` so the resolver can move on.
    """

    def __init__(
        self,
        config: StrategyConfig,
        *,
        session_options: SessionOptions | None = None,
        session_factory: SessionFactory = open_stealth_session,
        extractor: FieldExtractor | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        base_options = session_options or SessionOptions()
        self.config = config
        self._session_options = replace(
            base_options,
            stealth_level=config.stealth_level,
            timeout_ms=config.navigation_timeout_ms,
            simulate_pointer=base_options.simulate_pointer and config.simulate_pointer,
        )
        self._session_factory = session_factory
        self._extractor = extractor or FieldExtractor()
        self._rng = rng or random.Random()
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def session_options(self) -> SessionOptions:
        return self._session_options

    async def run(self, url: str) -> StrategyOutcome:
        LOGGER.info("Strategy %s starting for %s", self.name, url)
        started = monotonic()
        budget = self.config.budget_seconds

        try:
            fields = await asyncio.wait_for(self._attempt(url), timeout=budget)
        except asyncio.TimeoutError:
            LOGGER.warning("Strategy %s exceeded its %.0fs budget for %s", self.name, budget, url)
            return StrategyOutcome.failed(self.name, f"timed out after {budget:.0f}s")
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Strategy %s failed for %s: %s", self.name, url, exc)
            return StrategyOutcome.failed(self.name, f"{type(exc).__name__}: {exc}")

        record = ListingRecord(
            source_url=url,
            name=fields["name"].value,
            address=fields["address"].value,
            rating=fields["rating"].value,
        )
        LOGGER.info(
            "Strategy %s finished for %s in %.1fs: %s",
            self.name,
            url,
            monotonic() - started,
            record.public_fields(),
        )
        return StrategyOutcome.succeeded(
            self.name,
            record,
            {field: match.selector for field, match in fields.items()},
        )

    async def _attempt(self, url: str) -> dict[str, FieldMatch]:
        await self._pause(self.config.pre_navigation_delay_ms)

        async with self._session_factory(self._session_options) as session:
            page = session.page
            response = await page.goto(
                url,
                wait_until=self.config.wait_until,
                timeout=self.config.navigation_timeout_ms,
            )
            self._ensure_navigation_ok(response)

            session.start_pointer_simulation()
            await self._pause(self.config.settle_delay_ms)
            await self._wait_for_content(page)
            return await self._extractor.extract(page)

    def _ensure_navigation_ok(self, response: Any) -> None:
        if response is None:
            raise NavigationError("Navigation returned no response.")
        if not response.ok:
            raise NavigationError(f"Navigation failed with status: {response.status}")

    async def _wait_for_content(self, page: Any) -> bool:
        attempts = self.config.content_wait_attempts
        if attempts <= 0:
            return False

        selector = ", ".join(self.config.content_selectors)
        for attempt in range(1, attempts + 1):
            try:
                await page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=self.config.content_wait_timeout_ms,
                )
                LOGGER.debug("Strategy %s saw content on attempt %d", self.name, attempt)
                return True
            except PlaywrightTimeoutError:
                if attempt < attempts:
                    await self._sleep_ms(self.config.content_retry_pause_ms)

        LOGGER.info("Strategy %s found no content selector, extracting anyway.", self.name)
        return False

    async def _pause(self, delay_range_ms: tuple[int, int]) -> None:
        low, high = delay_range_ms
        if high <= 0:
            return
        await self._sleep_ms(self._rng.randint(low, max(low, high)))

    async def _sleep_ms(self, delay_ms: int) -> None:
        await self._sleep(max(0, delay_ms) / 1000)


def build_strategies(
    source: Settings,
    *,
    names: Sequence[str] | None = None,
    session_factory: SessionFactory = open_stealth_session,
    extractor: FieldExtractor | None = None,
) -> list[ExtractionStrategy]:
    """Instantiate the configured fallback chain, cheapest strategy first."""
    order = list(names if names is not None else source.scraper_strategy_order)
    if not order:
        raise ValueError("At least one extraction strategy must be configured.")

    unknown = [name for name in order if name not in BUILTIN_STRATEGIES]
    if unknown:
        supported = " | ".join(BUILTIN_STRATEGIES)
        raise ValueError(f"Unknown extraction strategy {unknown[0]!r}. Supported: {supported}")

    timeouts = {
        FAST.name: source.scraper_fast_timeout_ms,
        BALANCED.name: source.scraper_balanced_timeout_ms,
        MAXIMAL_STEALTH.name: source.scraper_stealth_timeout_ms,
    }
    session_options = SessionOptions.from_settings(source)
    shared_extractor = extractor or FieldExtractor()

    return [
        ExtractionStrategy(
            replace(BUILTIN_STRATEGIES[name], navigation_timeout_ms=timeouts[name]),
            session_options=session_options,
            session_factory=session_factory,
            extractor=shared_extractor,
        )
        for name in order
    ]
