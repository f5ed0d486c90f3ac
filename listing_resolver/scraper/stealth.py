from __future__ import annotations

import asyncio
import json
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Final, Literal

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from listing_resolver.config import Settings

LOGGER = logging.getLogger(__name__)

StealthLevel = Literal["minimal", "partial", "full"]

DEFAULT_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Flags every session gets: no sandbox in a server container, no GPU, no extensions,
# no background throttling, and no "controlled by automated software" signal.
_BASE_CHROMIUM_ARGS: Final[tuple[str, ...]] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
)

_FULL_STEALTH_CHROMIUM_ARGS: Final[tuple[str, ...]] = (
    "--disable-accelerated-2d-canvas",
    "--disable-software-rasterizer",
    "--disable-background-networking",
    "--disable-client-side-phishing-detection",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-features=TranslateUI",
    "--mute-audio",
    "--autoplay-policy=user-gesture-required",
)

_IGNORED_DEFAULT_ARGS: Final[list[str]] = ["--enable-automation"]

_WEBDRIVER_OVERRIDE = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
delete Object.getPrototypeOf(navigator).webdriver;
"""

_LANGUAGES_OVERRIDE = """
Object.defineProperty(navigator, 'languages', { get: () => __LANGUAGES__ });
"""

_PLATFORM_OVERRIDE = """
Object.defineProperty(navigator, 'platform', { get: () => __PLATFORM__ });
"""

_HARDWARE_OVERRIDE = """
Object.defineProperty(navigator, 'hardwareConcurrency', { get: () => 8 });
Object.defineProperty(navigator, 'deviceMemory', { get: () => 8 });
"""

_PLUGINS_OVERRIDE = """
const pdfPlugin = {
    description: 'Portable Document Format',
    filename: 'internal-pdf-viewer',
    length: 1,
    name: 'Chrome PDF Plugin',
};
const pdfMimeType = {
    type: 'application/pdf',
    suffixes: 'pdf',
    description: 'Portable Document Format',
    enabledPlugin: pdfPlugin,
};
pdfPlugin[0] = pdfMimeType;
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        pdfPlugin,
        { description: '', filename: 'internal-pdf-viewer', length: 1, name: 'Chrome PDF Viewer' },
        { description: '', filename: 'internal-nacl-plugin', length: 2, name: 'Native Client' },
    ],
});
Object.defineProperty(navigator, 'mimeTypes', { get: () => [pdfMimeType] });
"""

_CHROME_RUNTIME_OVERRIDE = """
window.chrome = window.chrome || {};
window.chrome.runtime = window.chrome.runtime || { onConnect: undefined, onMessage: undefined };
window.chrome.loadTimes = window.chrome.loadTimes || function () {};
window.chrome.csi = window.chrome.csi || function () {};
"""

_PERMISSIONS_OVERRIDE = """
const permissions = window.navigator.permissions;
if (permissions && typeof permissions.query === 'function') {
    const originalQuery = permissions.query.bind(permissions);
    permissions.query = (parameters) => (
        parameters && parameters.name === 'notifications'
            ? Promise.resolve({ state: Notification.permission })
            : originalQuery(parameters)
    );
}
"""

_OVERRIDES_BY_LEVEL: Final[dict[str, tuple[str, ...]]] = {
    "minimal": (_WEBDRIVER_OVERRIDE,),
    "partial": (_WEBDRIVER_OVERRIDE, _LANGUAGES_OVERRIDE, _PLATFORM_OVERRIDE, _PLUGINS_OVERRIDE),
    "full": (
        _WEBDRIVER_OVERRIDE,
        _LANGUAGES_OVERRIDE,
        _PLATFORM_OVERRIDE,
        _HARDWARE_OVERRIDE,
        _PLUGINS_OVERRIDE,
        _CHROME_RUNTIME_OVERRIDE,
        _PERMISSIONS_OVERRIDE,
    ),
}


class SessionLaunchError(RuntimeError):
    pass


@dataclass(frozen=True)
class SessionOptions:
    stealth_level: StealthLevel = "full"
    headless: bool = True
    browser_channel: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "en-US"
    accept_language: str = "en-US,en;q=0.9"
    viewport_width: int = 1366
    viewport_height: int = 768
    timeout_ms: int = 30000
    extra_chromium_args: tuple[str, ...] = ()
    simulate_pointer: bool = True
    pointer_duration_s: float = 10.0

    @classmethod
    def from_settings(cls, source: Settings, **overrides: Any) -> SessionOptions:
        options = cls(
            headless=source.scraper_headless,
            browser_channel=source.scraper_browser_channel.strip() or None,
            user_agent=source.scraper_user_agent or DEFAULT_USER_AGENT,
            locale=source.scraper_locale,
            accept_language=source.scraper_accept_language,
            viewport_width=source.scraper_viewport_width,
            viewport_height=source.scraper_viewport_height,
            extra_chromium_args=tuple(source.scraper_extra_chromium_args),
            simulate_pointer=source.scraper_simulate_pointer,
            pointer_duration_s=source.scraper_pointer_duration_s,
        )
        return replace(options, **overrides) if overrides else options


def build_chromium_args(options: SessionOptions) -> list[str]:
    args = list(_BASE_CHROMIUM_ARGS)
    if options.stealth_level == "full":
        args.extend(_FULL_STEALTH_CHROMIUM_ARGS)
    args.append(f"--window-size={options.viewport_width},{options.viewport_height}")
    args.extend(options.extra_chromium_args)

    deduped: list[str] = []
    seen: set[str] = set()
    for arg in args:
        cleaned = str(arg or "").strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        deduped.append(cleaned)
    return deduped


def build_request_headers(options: SessionOptions) -> dict[str, str]:
    headers = {"Accept-Language": options.accept_language}
    if options.stealth_level == "minimal":
        return headers

    headers.update(
        {
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
            "Upgrade-Insecure-Requests": "1",
        }
    )
    if options.stealth_level == "partial":
        return headers

    headers.update(
        {
            "Accept-Encoding": "gzip, deflate, br",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
            "Sec-Ch-Ua-Mobile": "?0",
            "Sec-Ch-Ua-Platform": f'"{_client_hint_platform(options.user_agent)}"',
        }
    )
    return headers


def build_init_script(options: SessionOptions) -> str:
    """Compose the navigator overrides for ``options.stealth_level``.

    Each override runs in its own try block so one property the engine refuses to
    redefine leaves the rest in place.
    """
    substitutions = {
        "__LANGUAGES__": json.dumps(_languages_from_header(options.accept_language)),
        "__PLATFORM__": json.dumps(_navigator_platform(options.user_agent)),
    }
    blocks: list[str] = []
    for override in _OVERRIDES_BY_LEVEL[options.stealth_level]:
        body = override
        for token, value in substitutions.items():
            body = body.replace(token, value)
        blocks.append(f"try {{{body}}} catch (error) {{}}")
    return "\n".join(blocks)


def _languages_from_header(accept_language: str) -> list[str]:
    languages = [part.split(";")[0].strip() for part in accept_language.split(",")]
    return [language for language in languages if language] or ["en-US", "en"]


def _navigator_platform(user_agent: str) -> str:
    if "Macintosh" in user_agent:
        return "MacIntel"
    if "Linux" in user_agent and "Android" not in user_agent:
        return "Linux x86_64"
    return "Win32"


def _client_hint_platform(user_agent: str) -> str:
    return {"MacIntel": "macOS", "Linux x86_64": "Linux"}.get(_navigator_platform(user_agent), "Windows")


class StealthSession:
    """One headless Chromium with a single context and page, owned by one extraction run."""

    def __init__(self, options: SessionOptions, *, rng: random.Random | None = None) -> None:
        self._options = options
        self._rng = rng or random.Random()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._pointer_task: asyncio.Task[None] | None = None

    @property
    def options(self) -> SessionOptions:
        return self._options

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not launched.")
        return self._page

    async def launch(self) -> Page:
        if self._page is not None:
            return self._page

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._launch_browser(self._playwright)
            self._context = await self._browser.new_context(
                viewport={"width": self._options.viewport_width, "height": self._options.viewport_height},
                user_agent=self._options.user_agent,
                locale=self._options.locale,
                extra_http_headers=build_request_headers(self._options),
            )
            self._context.set_default_timeout(self._options.timeout_ms)
            await self._apply_init_script(self._context)
            self._page = await self._context.new_page()
        except BaseException as exc:
            # Cancellation from a strategy timeout must release whatever already started.
            await self.close()
            if not isinstance(exc, Exception):
                raise
            raise SessionLaunchError(f"Browser session could not start: {exc}") from exc

        return self._page

    def start_pointer_simulation(self) -> None:
        if not self._options.simulate_pointer or self._options.pointer_duration_s <= 0:
            return
        if self._page is None or self._pointer_task is not None:
            return
        self._pointer_task = asyncio.create_task(self._simulate_pointer(self._page))

    async def close(self) -> None:
        if self._pointer_task is not None:
            self._pointer_task.cancel()
            await asyncio.gather(self._pointer_task, return_exceptions=True)

        releases: list[tuple[str, Any]] = [
            ("page", self._page.close if self._page is not None else None),
            ("context", self._context.close if self._context is not None else None),
            ("browser", self._browser.close if self._browser is not None else None),
            ("playwright", self._playwright.stop if self._playwright is not None else None),
        ]
        for label, release in releases:
            if release is None:
                continue
            try:
                await release()
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to close browser %s: %s", label, exc)

        self._pointer_task = None
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    async def _launch_browser(self, playwright: Playwright) -> Browser:
        launch_options: dict[str, Any] = {
            "headless": self._options.headless,
            "args": build_chromium_args(self._options),
            "ignore_default_args": _IGNORED_DEFAULT_ARGS,
            "timeout": self._options.timeout_ms,
        }
        channel = self._options.browser_channel
        if channel:
            launch_options["channel"] = channel

        try:
            return await playwright.chromium.launch(**launch_options)
        except Exception:
            if not channel:
                raise
            LOGGER.warning("Browser channel %r unavailable, falling back to bundled Chromium.", channel)
            launch_options.pop("channel", None)
            return await playwright.chromium.launch(**launch_options)

    async def _apply_init_script(self, context: BrowserContext) -> None:
        try:
            await context.add_init_script(build_init_script(self._options))
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Stealth init script was not installed: %s", exc)

    async def _simulate_pointer(self, page: Page) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._options.pointer_duration_s
        width = self._options.viewport_width
        height = self._options.viewport_height
        x = self._rng.uniform(0, width)
        y = self._rng.uniform(0, height)

        try:
            while loop.time() < deadline:
                await asyncio.sleep(self._rng.uniform(1.0, 3.0))
                x = min(max(x + self._rng.uniform(-25, 25), 0), width)
                y = min(max(y + self._rng.uniform(-25, 25), 0), height)
                await page.mouse.move(x, y)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Pointer simulation stopped early: %s", exc)


@asynccontextmanager
async def open_stealth_session(options: SessionOptions) -> AsyncIterator[StealthSession]:
    session = StealthSession(options)
    try:
        await session.launch()
        yield session
    finally:
        await session.close()
