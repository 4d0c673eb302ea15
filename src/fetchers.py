"""
HTML fetching strategies: plain aiohttp GET and Playwright-rendered pages
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiohttp
from playwright.async_api import (
    async_playwright,
    Browser,
    Page,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from config import BROWSER_ENGINES, BrowserOptions, ConfigError
from rate_limiter import RateLimiter
from retry import with_retries

logger = logging.getLogger(__name__)

# Headers to mimic a real browser; the default client UA gets blocked
DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
}

TABLE_ROW_SELECTOR = 'table tbody tr'
CONSENT_BUTTON_NAME = re.compile(r'accept|agree', re.I)
CONSENT_CLICK_TIMEOUT = 3000  # ms


class FetchError(Exception):
    """A page could not be fetched; `status` is the HTTP status when known"""

    def __init__(self, url: str, status: Optional[int] = None, message: Optional[str] = None):
        self.url = url
        self.status = status
        if message is None:
            message = f"HTTP {status} for {url}" if status else f"Failed to fetch {url}"
        super().__init__(message)


async def fetch_html(
    session: aiohttp.ClientSession,
    url: str,
    rate_limiter: Optional[RateLimiter] = None,
    max_retries: int = 3,
    backoff_base: float = 1.0,
) -> str:
    """GET a page with browser-like headers, rate limiting and retries"""
    if rate_limiter:
        await rate_limiter.wait()

    async def attempt_fetch(attempt: int) -> str:
        try:
            async with session.get(url, headers=DEFAULT_HEADERS) as response:
                if response.status >= 400:
                    logger.warning(f"HTTP {response.status} for {url} (attempt {attempt + 1})")
                    raise FetchError(url, response.status)
                return await response.text(errors='replace')
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(url, None, f"Request failed for {url}: {e}") from e

    return await with_retries(attempt_fetch, max_retries=max_retries, base_delay=backoff_base)


async def launch_browser(playwright, options: BrowserOptions) -> Browser:
    """Launch the configured Playwright engine"""
    engine = getattr(playwright, options.engine, None) if options.engine in BROWSER_ENGINES else None
    if engine is None:
        raise ConfigError(
            f'Unsupported browser engine "{options.engine}". Use chromium, firefox, or webkit.'
        )

    launch_kwargs = {'headless': options.headless}
    if options.channel:
        launch_kwargs['channel'] = options.channel
    if options.executable_path:
        launch_kwargs['executable_path'] = options.executable_path
    if options.launch_args:
        launch_kwargs['args'] = options.launch_args

    logger.info(f"Launching {options.engine} (headless={options.headless})")
    return await engine.launch(**launch_kwargs)


@asynccontextmanager
async def open_shared_browser(options: BrowserOptions):
    """One browser for a whole batch; closed exactly once on exit"""
    async with async_playwright() as playwright:
        browser = await launch_browser(playwright, options)
        try:
            yield browser
        finally:
            await browser.close()
            logger.info("Shared browser closed")


async def dismiss_cookie_consent(page: Page):
    """Best-effort click on an accept/agree button"""
    try:
        button = page.get_by_role('button', name=CONSENT_BUTTON_NAME).first
        if await button.count():
            await button.click(timeout=CONSENT_CLICK_TIMEOUT)
    except PlaywrightError as e:
        logger.debug(f"Cookie consent not dismissed: {e}")


async def save_debug_artifacts(page: Page, url: str, html: str, debug_dir: str):
    """Write a full-page screenshot and the raw HTML for diagnosis"""
    directory = Path(debug_dir)
    directory.mkdir(parents=True, exist_ok=True)
    segments = [segment for segment in url.split('/') if segment]
    safe_name = segments[-1] if segments else 'page'

    await page.screenshot(path=str(directory / f"{safe_name}.png"), full_page=True)
    (directory / f"{safe_name}.html").write_text(html, encoding='utf-8')
    logger.debug(f"Debug artifacts saved to {directory / safe_name}.*")


async def _render_page(
    browser: Browser,
    url: str,
    options: BrowserOptions,
    wait_selector: Optional[str],
    require_selector: bool,
    wait_until: str,
    prepare: Optional[Callable[[Page], Awaitable[None]]],
) -> str:
    context = await browser.new_context(
        user_agent=DEFAULT_HEADERS['User-Agent'],
        extra_http_headers={'Accept-Language': DEFAULT_HEADERS['Accept-Language']},
    )
    page = await context.new_page()

    try:
        page.set_default_timeout(options.default_timeout)
        await page.goto(url, wait_until=wait_until, timeout=options.navigation_timeout)

        await dismiss_cookie_consent(page)

        if prepare:
            await prepare(page)

        if wait_selector:
            try:
                await page.wait_for_selector(wait_selector, timeout=options.selector_timeout)
            except PlaywrightTimeoutError:
                if require_selector:
                    raise
                # Riders without races legitimately have no table
                logger.warning(f"Selector {wait_selector!r} not found on {url}, continuing with raw HTML")

        html = await page.content()

        if options.debug_dir:
            await save_debug_artifacts(page, url, html, options.debug_dir)

        return html
    finally:
        await page.close()
        await context.close()


async def fetch_html_with_browser(
    url: str,
    options: Optional[BrowserOptions] = None,
    browser: Optional[Browser] = None,
    wait_selector: Optional[str] = TABLE_ROW_SELECTOR,
    require_selector: bool = False,
    wait_until: str = 'domcontentloaded',
    prepare: Optional[Callable[[Page], Awaitable[None]]] = None,
) -> str:
    """Render a page in a headless browser and return its HTML.

    A caller-supplied browser is borrowed and never closed here; otherwise a
    browser is launched for this call and closed before returning.
    """
    options = options or BrowserOptions()
    owns_browser = browser is None
    logger.info(f"Fetching {url} with browser ({'owned' if owns_browser else 'shared'})")

    try:
        if not owns_browser:
            return await _render_page(browser, url, options, wait_selector, require_selector, wait_until, prepare)

        async with async_playwright() as playwright:
            browser = await launch_browser(playwright, options)
            try:
                return await _render_page(browser, url, options, wait_selector, require_selector, wait_until, prepare)
            finally:
                await browser.close()
    except PlaywrightError as e:
        raise FetchError(url, None, f"Browser fetch failed for {url}: {e}") from e
